"""
Assistants module - Managed assistants

This module provides:
- manager: ManagedAssistant records, validation and CRUD
- executor: AssistantExecutor running an assistant against a variable context
"""

from polytrans.assistants.manager import (
    AssistantManager,
    AssistantValidationError,
    ManagedAssistant,
)
from polytrans.assistants.executor import AssistantExecutor, AssistantRun
