"""
Workflows module - post-processing pipelines run after translation

This module provides:
- variables: the variable context and prompt interpolation
- steps: the ai_assistant, predefined_assistant and managed_assistant step kinds
- output_processor: output actions that write step results back
- engine: ordered step execution with a configurable failure policy
- storage: workflow definitions
- manager: triggering, locking and background runs
"""

from polytrans.workflows.engine import WorkflowEngine, WorkflowRunResult, WorkflowStepResult
from polytrans.workflows.variables import VariableManager, build_post_context
