"""
Pre-flight validation of backend ids and translation paths.

Nothing here calls a vendor. Each check answers "would this backend be usable
right now with these settings", and path validation reports every broken hop
at once instead of stopping at the first.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from polytrans.ai.assistant_clients import AssistantClientFactory
from polytrans.ai.chat_clients import ChatClientFactory
from polytrans.ai.exceptions import ErrorKind
from polytrans.assistants.manager import AssistantManager
from polytrans.config import get_enabled_providers
from polytrans.logger import get_logger
from polytrans.providers.registry import ProviderRegistry
from polytrans.translation.backend_id import (
    ManagedRef,
    ProviderRef,
    VendorAssistantRef,
    parse_backend_id,
)
from polytrans.translation.mapping import hop_key, path_hops

logger = get_logger(__name__)

DEFAULT_MANAGED_PROVIDER = "openai"


@dataclass
class IdValidation:
    valid: bool
    error: Optional[str] = None
    code: Optional[str] = None
    kind: Optional[ErrorKind] = None

    @classmethod
    def ok(cls) -> "IdValidation":
        return cls(valid=True)

    @classmethod
    def fail(cls, error: str, code: str, kind: ErrorKind = ErrorKind.CONFIGURATION) -> "IdValidation":
        return cls(valid=False, error=error, code=code, kind=kind)


@dataclass
class PathValidation:
    valid: bool
    errors: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    def summary(self) -> str:
        return "; ".join(f"{key}: {message}" for key, message in self.errors.items())

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "errors": dict(self.errors), "warnings": list(self.warnings)}


class PathValidator:

    def __init__(self, providers: ProviderRegistry, assistant_factory: AssistantClientFactory,
                 assistants: AssistantManager, chat_factory: ChatClientFactory):
        self.providers = providers
        self.assistant_factory = assistant_factory
        self.assistants = assistants
        self.chat_factory = chat_factory

    def validate_assistant_id(self, backend_id: Optional[str], config: Dict[str, Any]) -> IdValidation:
        ref = parse_backend_id(backend_id)
        if ref is None:
            return IdValidation.fail("Empty assistant/provider ID", "unknown_backend_id", ErrorKind.ROUTING)

        enabled = get_enabled_providers(config)

        if isinstance(ref, ProviderRef):
            return self._validate_provider(ref, enabled, config)
        if isinstance(ref, ManagedRef):
            return self._validate_managed(ref, enabled, config)
        return self._validate_vendor_assistant(ref, enabled, config)

    def _validate_provider(self, ref: ProviderRef, enabled: List[str], config: Dict[str, Any]) -> IdValidation:
        provider_id = ref.provider_id
        if provider_id not in enabled:
            return IdValidation.fail(
                f"Translation provider '{provider_id}' is not enabled. Please enable it in Translation Settings.",
                "provider_not_enabled",
            )
        provider = self.providers.get(provider_id)
        if provider is None:
            return IdValidation.fail(
                f"Translation provider '{provider_id}' not found in registry",
                "provider_not_found",
            )
        if not provider.is_configured(config):
            return IdValidation.fail(
                f"Translation provider '{provider_id}' is not properly configured",
                "provider_not_configured",
            )
        return IdValidation.ok()

    def _validate_managed(self, ref: ManagedRef, enabled: List[str], config: Dict[str, Any]) -> IdValidation:
        if ref.assistant_id <= 0:
            return IdValidation.fail(
                f"Invalid managed assistant ID: {ref.raw}", "unknown_backend_id", ErrorKind.ROUTING
            )

        assistant = self.assistants.get(ref.assistant_id)
        if assistant is None:
            return IdValidation.fail(
                f"Managed assistant not found (ID: {ref.assistant_id}). It may have been deleted.",
                "assistant_not_found",
            )
        if not assistant.is_active:
            return IdValidation.fail(
                f"Managed assistant '{assistant.name}' (ID: {ref.assistant_id}) is inactive",
                "assistant_inactive",
            )

        vendor = assistant.provider or DEFAULT_MANAGED_PROVIDER
        if vendor not in enabled:
            return IdValidation.fail(
                f"Provider '{vendor}' used by managed assistant '{assistant.name}' is not enabled. "
                "Please enable it in Translation Settings.",
                "provider_not_enabled",
            )
        if not self.chat_factory.is_registered(vendor):
            return IdValidation.fail(
                f"Managed assistant '{assistant.name}' uses unknown provider '{vendor}'",
                "provider_not_found",
            )
        credential = self.chat_factory.required_credential(vendor)
        if credential and not config.get(credential):
            return IdValidation.fail(
                f"{self.chat_factory.display_name(vendor)} API key is not configured "
                f"(required by managed assistant '{assistant.name}')",
                "provider_not_configured",
            )
        return IdValidation.ok()

    def _validate_vendor_assistant(self, ref: VendorAssistantRef, enabled: List[str],
                                   config: Dict[str, Any]) -> IdValidation:
        client_cls = self.assistant_factory.find_client_class(ref.assistant_id)
        if client_cls is None:
            return IdValidation.fail(
                f"Unknown assistant/provider ID format: {ref.raw}", "unknown_backend_id", ErrorKind.ROUTING
            )
        if client_cls.provider_id not in enabled:
            return IdValidation.fail(
                f"{client_cls.display_name} assistants are not enabled (assistant {ref.raw}). "
                f"Please enable '{client_cls.provider_id}' in Translation Settings.",
                "provider_not_enabled",
            )
        if self.assistant_factory.create(ref.assistant_id, config) is None:
            return IdValidation.fail(
                f"{client_cls.display_name} API key is not configured (assistant {ref.raw})",
                "client_creation_failed",
            )
        return IdValidation.ok()

    def validate_path(self, path: List[str], mapping: Dict[str, Any], config: Dict[str, Any]) -> PathValidation:
        """
        Check that every hop of a resolved path has a usable backend.

        Returns:
            PathValidation whose errors are keyed by hop ("en_to_fr").
        """
        if len(path) < 2:
            return PathValidation(valid=False, errors={"path": "Translation path must contain at least two languages"})

        errors: Dict[str, str] = {}
        for source, target in path_hops(path):
            key = hop_key(source, target)
            backend_id = (mapping or {}).get(key)
            if not backend_id:
                errors[key] = f"No provider/assistant configured for step {source} -> {target}"
                continue
            result = self.validate_assistant_id(backend_id, config)
            if not result.valid:
                errors[key] = result.error

        if errors:
            logger.warning(f"Path {' -> '.join(path)} failed validation: {errors}")
        return PathValidation(valid=not errors, errors=errors)

    def validate_assistants_mapping(self, mapping: Dict[str, Any], config: Dict[str, Any]) -> PathValidation:
        """Validate every non-empty entry of a mapping; empty entries are skipped."""
        errors: Dict[str, str] = {}
        warnings: List[str] = []
        for key, backend_id in (mapping or {}).items():
            if not backend_id:
                continue
            if "_to_" not in key:
                warnings.append(f"Mapping key '{key}' is not in the form <source>_to_<target>")
            result = self.validate_assistant_id(backend_id, config)
            if not result.valid:
                errors[key] = result.error
        return PathValidation(valid=not errors, errors=errors, warnings=warnings)
