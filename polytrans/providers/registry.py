"""Lookup table from provider id to TranslationProvider, populated at startup."""

from __future__ import annotations

from typing import Dict, List, Optional

from polytrans.logger import get_logger
from polytrans.providers.base import TranslationProvider

logger = get_logger(__name__)


class ProviderRegistry:

    def __init__(self):
        self._providers: Dict[str, TranslationProvider] = {}

    def register(self, provider: TranslationProvider) -> None:
        if provider.provider_id in self._providers:
            logger.warning(f"Replacing registered translation provider '{provider.provider_id}'")
        self._providers[provider.provider_id] = provider
        logger.debug(f"Registered translation provider '{provider.provider_id}'")

    def get(self, provider_id: str) -> Optional[TranslationProvider]:
        return self._providers.get(provider_id)

    def ids(self) -> List[str]:
        return list(self._providers)

    def all(self) -> List[TranslationProvider]:
        return list(self._providers.values())
