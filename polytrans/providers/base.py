"""Translation provider capability interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from polytrans.models import ContentBundle, StepResult


class TranslationProvider(ABC):
    """A raw translation backend addressed as provider_<provider_id>."""

    provider_id: str = ""
    name: str = ""
    # Setting that must hold a credential for the provider to be usable
    api_key_setting: Optional[str] = None

    @abstractmethod
    def translate(self, bundle: ContentBundle, source_lang: str, target_lang: str,
                  config: Dict[str, Any]) -> StepResult:
        """Translate a whole bundle for one hop."""

    def is_configured(self, config: Dict[str, Any]) -> bool:
        if not self.api_key_setting:
            return True
        return bool(config.get(self.api_key_setting))

    def supported_languages(self) -> Dict[str, str]:
        """Language code to display name; empty means any code is accepted."""
        return {}
