"""Runs managed assistants: render prompts, call the vendor chat client, process the output."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from polytrans.ai.chat_clients import ChatClientFactory
from polytrans.ai.response_parser import extract_json
from polytrans.assistants.manager import AssistantManager, ManagedAssistant
from polytrans.logger import get_logger
from polytrans.templating import render_template

logger = get_logger(__name__)


@dataclass
class AssistantRun:
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    error_code: Optional[str] = None
    raw_response: Optional[str] = None
    interpolated_system_prompt: Optional[str] = None
    interpolated_user_message: Optional[str] = None
    tokens_used: int = 0
    warnings: List[str] = field(default_factory=list)
    expected_format: str = "text"


class AssistantExecutor:

    def __init__(self, manager: AssistantManager, chat_factory: ChatClientFactory):
        self.manager = manager
        self.chat_factory = chat_factory

    def execute(self, assistant_id: int, context: Dict[str, Any], config: Dict[str, Any]) -> AssistantRun:
        """Load an assistant by id and run it against a variable context."""
        assistant = self.manager.get(assistant_id)
        if assistant is None:
            return AssistantRun(
                success=False,
                error=f"Managed assistant not found (ID: {assistant_id})",
                error_code="assistant_not_found",
            )
        if not assistant.is_active:
            return AssistantRun(
                success=False,
                error=f"Managed assistant '{assistant.name}' (ID: {assistant_id}) is inactive",
                error_code="assistant_inactive",
            )
        return self.execute_with_config(assistant, context, config)

    def execute_with_config(self, assistant: ManagedAssistant, context: Dict[str, Any],
                            config: Dict[str, Any]) -> AssistantRun:
        if not assistant.system_prompt:
            return AssistantRun(
                success=False,
                error=f"Managed assistant '{assistant.name}' has no system prompt",
                error_code="invalid_config",
            )

        system_prompt, user_message = self.interpolate_prompts(assistant, context)
        messages = [{"role": "system", "content": system_prompt}]
        if user_message:
            messages.append({"role": "user", "content": user_message})

        parameters = dict(assistant.api_parameters or {})
        if not parameters.get("model"):
            parameters["model"] = config.get(f"{assistant.provider}_model", "")

        client = self.chat_factory.create(assistant.provider, config)
        if client is None:
            return AssistantRun(
                success=False,
                error=(
                    f"{self.chat_factory.display_name(assistant.provider)} client could not be created "
                    f"for managed assistant '{assistant.name}'. Please check API key configuration."
                ),
                error_code="client_creation_failed",
                interpolated_system_prompt=system_prompt,
                interpolated_user_message=user_message,
            )

        logger.info(
            f"Running managed assistant {assistant.id} ('{assistant.name}') "
            f"on {assistant.provider}/{parameters['model']}"
        )
        response = client.chat_completion(messages, parameters)
        if not response.success:
            return AssistantRun(
                success=False,
                error=response.error,
                error_code=response.error_code or "api_error",
                interpolated_system_prompt=system_prompt,
                interpolated_user_message=user_message,
            )

        content = client.extract_content(response.data)
        if content is None:
            return AssistantRun(
                success=False,
                error=f"{client.display_name} response contained no text content",
                error_code="invalid_output_format",
                interpolated_system_prompt=system_prompt,
                interpolated_user_message=user_message,
            )

        data, error, warnings = self.process_response(content, assistant)
        return AssistantRun(
            success=error is None,
            data=data,
            error=error,
            error_code="invalid_json" if error else None,
            raw_response=content,
            interpolated_system_prompt=system_prompt,
            interpolated_user_message=user_message,
            tokens_used=client.extract_tokens_used(response.data),
            warnings=warnings,
            expected_format=assistant.expected_format,
        )

    @staticmethod
    def interpolate_prompts(assistant: ManagedAssistant, context: Dict[str, Any]) -> Tuple[str, str]:
        return (
            render_template(assistant.system_prompt, context),
            render_template(assistant.user_message_template, context),
        )

    @staticmethod
    def process_response(content: str, assistant: ManagedAssistant) -> Tuple[Dict[str, Any], Optional[str], List[str]]:
        """
        Turn raw model output into step data.

        Returns:
            (data, error, warnings). Text assistants yield {"output": content}; JSON
            assistants yield the parsed object, or an error when it cannot be parsed.
        """
        if assistant.expected_format != "json":
            return {"output": content}, None, []

        parsed = extract_json(content)
        if parsed is None:
            logger.warning(f"Managed assistant {assistant.id} returned invalid JSON")
            return {}, f"Managed assistant '{assistant.name}' returned invalid JSON", []

        warnings = [
            f"Expected output variable '{name}' missing from response"
            for name in assistant.output_variables
            if name not in parsed
        ]
        return parsed, None, warnings
