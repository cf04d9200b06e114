"""
Single-hop execution.

StepExecutor runs one source -> target hop on one backend and always returns
a StepResult, whichever of the three backend kinds the id addresses. An
exception escaping a backend becomes a failed step_crashed result.
"""

from __future__ import annotations

import json
from typing import Any, Dict

from polytrans.ai.assistant_clients import AssistantClientFactory
from polytrans.ai.exceptions import ErrorKind, TranslationError
from polytrans.assistants.executor import AssistantExecutor
from polytrans.logger import get_logger
from polytrans.models import ContentBundle, StepResult
from polytrans.providers.registry import ProviderRegistry
from polytrans.translation.backend_id import (
    ManagedRef,
    ProviderRef,
    VendorAssistantRef,
    parse_backend_id,
)
from polytrans.translation.mapping import hop_key

logger = get_logger(__name__)

# Assistant lookup failures are configuration problems, everything else is an execution failure
_MANAGED_CONFIG_CODES = ("assistant_not_found", "assistant_inactive", "client_creation_failed", "invalid_config")


class StepExecutor:

    def __init__(self, providers: ProviderRegistry, assistant_factory: AssistantClientFactory,
                 assistant_executor: AssistantExecutor):
        self.providers = providers
        self.assistant_factory = assistant_factory
        self.assistant_executor = assistant_executor

    def execute_step(self, bundle: ContentBundle, source_lang: str, target_lang: str,
                     backend_id: str, config: Dict[str, Any]) -> StepResult:
        """
        Translate a bundle for one hop.

        Args:
            bundle: Input content; not modified.
            source_lang: Hop source language.
            target_lang: Hop target language.
            backend_id: provider_<id>, managed_<n> or a vendor-native assistant id.
            config: Current settings.

        Returns:
            StepResult tagged with the hop key and backend id.
        """
        ref = parse_backend_id(backend_id)
        logger.info(f"Executing step {source_lang} -> {target_lang} with {backend_id}")

        try:
            if isinstance(ref, ProviderRef):
                result = self._execute_provider(ref, bundle, source_lang, target_lang, config)
            elif isinstance(ref, ManagedRef):
                result = self._execute_managed(ref, bundle, source_lang, target_lang, config)
            elif isinstance(ref, VendorAssistantRef):
                result = self._execute_vendor_assistant(ref, bundle, source_lang, target_lang, config)
            else:
                result = StepResult.fail("Empty assistant/provider ID", "unknown_backend_id", ErrorKind.ROUTING)
        except Exception as e:
            logger.exception(f"Step {source_lang} -> {target_lang} with {backend_id} raised an unexpected error")
            result = StepResult.fail(f"Unexpected error from {backend_id}: {e}", "step_crashed", ErrorKind.WORKER_CRASH)

        result.hop = hop_key(source_lang, target_lang)
        result.backend_id = backend_id
        if not result.success:
            logger.error(f"Step {source_lang} -> {target_lang} with {backend_id} failed: {result.error}")
        return result

    def _execute_provider(self, ref: ProviderRef, bundle, source_lang, target_lang, config) -> StepResult:
        provider = self.providers.get(ref.provider_id)
        if provider is None:
            return StepResult.fail(
                f"Translation provider '{ref.provider_id}' not found in registry",
                "provider_not_found",
                ErrorKind.CONFIGURATION,
            )
        if not provider.is_configured(config):
            return StepResult.fail(
                f"Translation provider '{ref.provider_id}' is not properly configured",
                "provider_not_configured",
                ErrorKind.CONFIGURATION,
            )
        try:
            return provider.translate(bundle, source_lang, target_lang, config)
        except TranslationError as e:
            return StepResult.fail(f"{provider.name}: {e}", e.code or "transport_error", e.kind)

    def _execute_managed(self, ref: ManagedRef, bundle, source_lang, target_lang, config) -> StepResult:
        context = {
            "source_language": source_lang,
            "target_language": target_lang,
            "translated": bundle.to_dict(),
            "original": bundle.to_dict(),
            **bundle.to_dict(),
        }
        run = self.assistant_executor.execute(ref.assistant_id, context, config)

        if not run.success:
            if run.error_code == "invalid_json":
                return StepResult.fail(
                    f"Invalid output format from managed assistant {ref.raw}: {run.error}",
                    "invalid_output_format",
                    ErrorKind.FORMAT,
                )
            if run.error_code in _MANAGED_CONFIG_CODES:
                return StepResult.fail(run.error, run.error_code, ErrorKind.CONFIGURATION)
            return StepResult.fail(
                f"Managed assistant {ref.raw} failed: {run.error}",
                "managed_assistant_execution_failed",
                ErrorKind.TRANSPORT,
            )

        output: Any = run.data
        if run.expected_format == "json" and isinstance(output, str):
            try:
                output = json.loads(output)
            except json.JSONDecodeError:
                output = None

        if run.expected_format != "json" or not isinstance(output, dict):
            return StepResult.fail(
                f"Invalid output format from managed assistant {ref.raw}: a translation step needs a JSON object",
                "invalid_output_format",
                ErrorKind.FORMAT,
            )

        return StepResult.ok(ContentBundle.from_dict(output, fallback=bundle), tokens_used=run.tokens_used)

    def _execute_vendor_assistant(self, ref: VendorAssistantRef, bundle, source_lang, target_lang,
                                  config) -> StepResult:
        client_cls = self.assistant_factory.find_client_class(ref.assistant_id)
        if client_cls is None:
            return StepResult.fail(
                f"Unknown assistant/provider ID format: {ref.raw}",
                "unknown_backend_id",
                ErrorKind.ROUTING,
            )
        client = self.assistant_factory.create(ref.assistant_id, config)
        if client is None:
            return StepResult.fail(
                f"{client_cls.display_name} assistant client could not be created. "
                "Please check API key configuration.",
                "client_creation_failed",
                ErrorKind.CONFIGURATION,
            )
        try:
            return client.execute_assistant(ref.assistant_id, bundle, source_lang, target_lang)
        except TranslationError as e:
            return StepResult.fail(
                f"{client_cls.display_name} assistant {ref.raw}: {e}", e.code or "transport_error", e.kind
            )
