"""
Managed assistant records.

A managed assistant is a centrally stored prompt configuration (system prompt,
user message template, model parameters and expected output format) that can
run on any registered chat vendor. Records live in the assistants table.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from polytrans.core import database as db
from polytrans.logger import get_logger

logger = get_logger(__name__)

STATUSES = ("active", "inactive")
EXPECTED_FORMATS = ("text", "json")
MAX_NAME_LENGTH = 255


class AssistantValidationError(ValueError):
    """Raised when assistant data fails validation; errors maps field name to message."""

    def __init__(self, errors: Dict[str, str]):
        super().__init__("; ".join(f"{key}: {message}" for key, message in errors.items()))
        self.errors = errors


@dataclass
class ManagedAssistant:
    id: int
    name: str
    provider: str = "openai"
    status: str = "active"
    system_prompt: str = ""
    user_message_template: str = ""
    api_parameters: Dict[str, Any] = field(default_factory=dict)
    expected_format: str = "text"
    expected_output_schema: Optional[Dict[str, Any]] = None
    output_variables: List[str] = field(default_factory=list)
    description: str = ""

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ManagedAssistant":
        return cls(
            id=int(row["id"]),
            name=row.get("name") or "",
            provider=row.get("provider") or "openai",
            status=row.get("status") or "active",
            system_prompt=row.get("system_prompt") or "",
            user_message_template=row.get("user_message_template") or "",
            api_parameters=row.get("api_parameters") or {},
            expected_format=row.get("expected_format") or "text",
            expected_output_schema=row.get("expected_output_schema"),
            output_variables=row.get("output_variables") or [],
            description=row.get("description") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AssistantManager:
    """CRUD and validation for managed assistants."""

    def __init__(self, known_providers: Optional[Sequence[str]] = None):
        self.known_providers = list(known_providers) if known_providers else None

    def validate_assistant_data(self, data: Dict[str, Any], partial: bool = False) -> Dict[str, str]:
        """
        Validate assistant fields and return every problem found.

        Args:
            data: Assistant fields.
            partial: When True only the fields present are checked (updates).

        Returns:
            Dict of field name to error message; empty when valid.
        """
        errors: Dict[str, str] = {}

        if not partial or "name" in data:
            name = (data.get("name") or "").strip()
            if not name:
                errors["name"] = "Name is required"
            elif len(name) > MAX_NAME_LENGTH:
                errors["name"] = f"Name must be at most {MAX_NAME_LENGTH} characters"

        if not partial or "system_prompt" in data:
            if not (data.get("system_prompt") or "").strip():
                errors["system_prompt"] = "System prompt is required"

        if "provider" in data:
            provider = data.get("provider")
            if not provider:
                errors["provider"] = "Provider is required"
            elif self.known_providers is not None and provider not in self.known_providers:
                errors["provider"] = f"Unknown provider '{provider}'"

        if "status" in data and data["status"] not in STATUSES:
            errors["status"] = f"Status must be one of: {', '.join(STATUSES)}"

        if "expected_format" in data and data["expected_format"] not in EXPECTED_FORMATS:
            errors["expected_format"] = 'Expected format must be either "text" or "json"'

        parameters = data.get("api_parameters")
        if parameters is not None:
            if not isinstance(parameters, dict):
                errors["api_parameters"] = "API parameters must be an object"
            else:
                temperature = parameters.get("temperature")
                if temperature is not None and (
                    not isinstance(temperature, (int, float)) or not 0 <= temperature <= 2
                ):
                    errors["api_parameters.temperature"] = "Temperature must be a number between 0 and 2"
                max_tokens = parameters.get("max_tokens")
                if max_tokens is not None and (not isinstance(max_tokens, int) or max_tokens <= 0):
                    errors["api_parameters.max_tokens"] = "Max tokens must be a positive integer"

        output_variables = data.get("output_variables")
        if output_variables is not None and (
            not isinstance(output_variables, list) or not all(isinstance(v, str) for v in output_variables)
        ):
            errors["output_variables"] = "Output variables must be a list of names"

        return errors

    def create(self, data: Dict[str, Any]) -> int:
        errors = self.validate_assistant_data(data)
        if errors:
            raise AssistantValidationError(errors)
        assistant_id = db.create_assistant(data)
        logger.info(f"Created managed assistant {assistant_id} ('{data['name']}')")
        return assistant_id

    def get(self, assistant_id: int) -> Optional[ManagedAssistant]:
        row = db.get_assistant(assistant_id)
        return ManagedAssistant.from_row(row) if row else None

    def list(self, status: str = None) -> List[ManagedAssistant]:
        return [ManagedAssistant.from_row(row) for row in db.get_all_assistants(status)]

    def update(self, assistant_id: int, data: Dict[str, Any]) -> bool:
        errors = self.validate_assistant_data(data, partial=True)
        if errors:
            raise AssistantValidationError(errors)
        updated = db.update_assistant(assistant_id, data)
        if updated:
            logger.info(f"Updated managed assistant {assistant_id}")
        return updated

    def delete(self, assistant_id: int) -> bool:
        deleted = db.delete_assistant(assistant_id)
        if deleted:
            logger.info(f"Deleted managed assistant {assistant_id}")
        return deleted
