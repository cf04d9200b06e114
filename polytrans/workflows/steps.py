"""
Workflow step kinds.

Every kind shares one contract: validate_config(step) lists problems with a
step definition, execute(step, context, config) runs it and returns a
StepOutcome. Kinds:
- ai_assistant: an inline prompt sent to a chat vendor
- predefined_assistant: a vendor-native assistant (asst_..., agent_...)
- managed_assistant: a locally stored assistant run through AssistantExecutor
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from polytrans.ai.assistant_clients import AssistantClientFactory
from polytrans.ai.chat_clients import ChatClientFactory
from polytrans.ai.exceptions import TranslationError
from polytrans.assistants.executor import AssistantExecutor
from polytrans.logger import get_logger
from polytrans.translation.backend_id import MANAGED_PREFIX
from polytrans.workflows.variables import VariableManager

logger = get_logger(__name__)

EXPECTED_FORMATS = ("text", "json")
DEFAULT_TEMPERATURE = 0.7
JSON_INSTRUCTION = "\n\nPlease respond with valid JSON only."
# Variable that receives plain-text step output
TEXT_OUTPUT_VARIABLE = "ai_response"


@dataclass
class StepOutcome:
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    raw_response: Optional[str] = None
    interpolated_system_prompt: Optional[str] = None
    interpolated_user_message: Optional[str] = None
    tokens_used: int = 0
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def clamp_temperature(value: Any) -> float:
    try:
        temperature = float(value)
    except (TypeError, ValueError):
        return DEFAULT_TEMPERATURE
    return min(1.0, max(0.0, temperature))


def shape_output(content: str, expected_format: str, variables: VariableManager) -> Dict[str, Any]:
    """
    Step data for a raw text reply.

    JSON replies that cannot be parsed keep the raw text and carry a
    _parsing_error entry instead of failing the step.
    """
    if expected_format != "json":
        return {TEXT_OUTPUT_VARIABLE: content}
    parsed = variables.parse_json_response(content)
    if parsed is None:
        logger.warning("Step expected JSON but the response could not be parsed")
        return {TEXT_OUTPUT_VARIABLE: content, "_parsing_error": "Response is not valid JSON"}
    return parsed


class WorkflowStepKind(ABC):
    """Base class of a step kind."""

    type: str = ""

    def __init__(self, variables: Optional[VariableManager] = None):
        self.variables = variables or VariableManager()

    def validate_config(self, step: Dict[str, Any]) -> List[str]:
        errors = []
        expected_format = step.get("expected_format", "text")
        if expected_format not in EXPECTED_FORMATS:
            errors.append(f"Invalid expected format '{expected_format}'")
        return errors

    @staticmethod
    def text_field_errors(step: Dict[str, Any], names: Dict[str, str]) -> List[str]:
        """Errors for fields present but not strings; names maps field to label."""
        return [
            f"{label} must be text"
            for name, label in names.items()
            if step.get(name) is not None and not isinstance(step[name], str)
        ]

    @abstractmethod
    def execute(self, step: Dict[str, Any], context: Dict[str, Any], config: Dict[str, Any]) -> StepOutcome:
        """Run the step against the current variable context."""


class AiAssistantStep(WorkflowStepKind):
    """Inline prompt sent to a chat vendor."""

    type = "ai_assistant"

    def __init__(self, chat_factory: ChatClientFactory, variables: Optional[VariableManager] = None):
        super().__init__(variables)
        self.chat_factory = chat_factory

    def validate_config(self, step):
        errors = super().validate_config(step)
        errors.extend(self.text_field_errors(step, {"system_prompt": "System prompt", "user_message": "User message"}))
        system_prompt = step.get("system_prompt")
        if not system_prompt or (isinstance(system_prompt, str) and not system_prompt.strip()):
            errors.append("System prompt is required")
        provider = step.get("provider", "openai")
        if not self.chat_factory.is_registered(provider):
            errors.append(f"Unknown AI provider '{provider}'")
        if "temperature" in step:
            try:
                float(step["temperature"])
            except (TypeError, ValueError):
                errors.append("Temperature must be a number between 0 and 1")
        if "max_tokens" in step and step["max_tokens"] not in (None, ""):
            try:
                if int(step["max_tokens"]) <= 0:
                    errors.append("Max tokens must be a positive integer")
            except (TypeError, ValueError):
                errors.append("Max tokens must be a positive integer")
        return errors

    def execute(self, step, context, config):
        provider = step.get("provider", "openai")
        expected_format = step.get("expected_format", "text")

        system_prompt = self.variables.interpolate(step.get("system_prompt", ""), context)
        user_message = self.variables.interpolate(step.get("user_message", ""), context)
        if expected_format == "json" and "json" not in system_prompt.lower():
            system_prompt += JSON_INSTRUCTION

        client = self.chat_factory.create(provider, config)
        if client is None:
            return StepOutcome(
                success=False,
                error=f"{self.chat_factory.display_name(provider)} API key is not configured",
                interpolated_system_prompt=system_prompt,
                interpolated_user_message=user_message,
            )

        messages = [{"role": "system", "content": system_prompt}]
        if user_message:
            messages.append({"role": "user", "content": user_message})
        parameters: Dict[str, Any] = {
            "model": step.get("model") or config.get(f"{provider}_model", ""),
            "temperature": clamp_temperature(step.get("temperature", DEFAULT_TEMPERATURE)),
        }
        if step.get("max_tokens"):
            parameters["max_tokens"] = int(step["max_tokens"])

        response = client.chat_completion(messages, parameters)
        if not response.success:
            return StepOutcome(
                success=False,
                error=response.error,
                interpolated_system_prompt=system_prompt,
                interpolated_user_message=user_message,
            )

        content = client.extract_content(response.data)
        if content is None:
            return StepOutcome(
                success=False,
                error=f"{client.display_name} response contained no text content",
                interpolated_system_prompt=system_prompt,
                interpolated_user_message=user_message,
            )

        return StepOutcome(
            success=True,
            data=shape_output(content, expected_format, self.variables),
            raw_response=content,
            interpolated_system_prompt=system_prompt,
            interpolated_user_message=user_message,
            tokens_used=client.extract_tokens_used(response.data),
        )


class PredefinedAssistantStep(WorkflowStepKind):
    """Vendor-native assistant addressed by its vendor id."""

    type = "predefined_assistant"

    def __init__(self, assistant_factory: AssistantClientFactory, variables: Optional[VariableManager] = None):
        super().__init__(variables)
        self.assistant_factory = assistant_factory

    def validate_config(self, step):
        errors = super().validate_config(step)
        assistant_id = str(step.get("assistant_id") or "").strip()
        if not assistant_id:
            errors.append("Assistant ID is required")
        elif self.assistant_factory.find_client_class(assistant_id) is None:
            errors.append(f"Unsupported assistant ID format: {assistant_id}")
        type_errors = self.text_field_errors(step, {"user_message": "User message"})
        errors.extend(type_errors)
        if not type_errors and not (step.get("user_message") or "").strip():
            errors.append("User message is required")
        return errors

    def execute(self, step, context, config):
        assistant_id = str(step.get("assistant_id")).strip()
        user_message = self.variables.interpolate(step.get("user_message", ""), context)

        client = self.assistant_factory.create(assistant_id, config)
        if client is None:
            return StepOutcome(
                success=False,
                error=f"Assistant client for {assistant_id} could not be created. Please check API key configuration.",
                interpolated_user_message=user_message,
            )
        try:
            content = client.send_message(assistant_id, user_message)
        except TranslationError as e:
            return StepOutcome(success=False, error=str(e), interpolated_user_message=user_message)

        return StepOutcome(
            success=True,
            data=shape_output(content, step.get("expected_format", "text"), self.variables),
            raw_response=content,
            interpolated_user_message=user_message,
        )


def managed_assistant_number(value: Any) -> int:
    """Numeric id from 7, "7" or "managed_7"; 0 when unparseable."""
    text = str(value or "").strip()
    if text.startswith(MANAGED_PREFIX):
        text = text[len(MANAGED_PREFIX):]
    try:
        return int(text)
    except ValueError:
        return 0


class ManagedAssistantStep(WorkflowStepKind):
    """Locally stored assistant; prompts and output format come from the assistant record."""

    type = "managed_assistant"

    def __init__(self, assistant_executor: AssistantExecutor, variables: Optional[VariableManager] = None):
        super().__init__(variables)
        self.assistant_executor = assistant_executor

    def validate_config(self, step):
        errors = super().validate_config(step)
        if managed_assistant_number(step.get("assistant_id")) <= 0:
            errors.append("A valid managed assistant ID is required")
        return errors

    def execute(self, step, context, config):
        run = self.assistant_executor.execute(managed_assistant_number(step.get("assistant_id")), context, config)
        if not run.success:
            return StepOutcome(
                success=False,
                error=run.error,
                raw_response=run.raw_response,
                interpolated_system_prompt=run.interpolated_system_prompt,
                interpolated_user_message=run.interpolated_user_message,
            )

        if run.expected_format == "json":
            data = dict(run.data)
        else:
            data = {TEXT_OUTPUT_VARIABLE: run.data.get("output", "")}
        return StepOutcome(
            success=True,
            data=data,
            raw_response=run.raw_response,
            interpolated_system_prompt=run.interpolated_system_prompt,
            interpolated_user_message=run.interpolated_user_message,
            tokens_used=run.tokens_used,
            warnings=list(run.warnings),
        )
