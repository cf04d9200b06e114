"""
Workflow execution.

Steps run strictly in declared order against one variable context. A failing
step is recorded and, under the default "continue" policy, the next step runs
against whatever context the earlier steps left behind. The "abort" policy, or
continue_on_error: false on a step, stops the run at that step instead.
"""

from __future__ import annotations

import copy
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Union

from polytrans.config import FAILURE_POLICIES
from polytrans.logger import get_logger
from polytrans.workflows.output_processor import WorkflowOutputProcessor
from polytrans.workflows.steps import TEXT_OUTPUT_VARIABLE, StepOutcome, WorkflowStepKind
from polytrans.workflows.variables import VariableManager

logger = get_logger(__name__)

DEFAULT_FAILURE_POLICY = "continue"


@dataclass
class WorkflowStepResult:
    step_id: str
    step_name: str
    step_type: str
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    execution_time: float = 0.0
    interpolated_system_prompt: Optional[str] = None
    interpolated_user_message: Optional[str] = None
    tokens_used: int = 0
    raw_response: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    output_processing: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class WorkflowRunResult:
    success: bool
    step_results: List[WorkflowStepResult] = field(default_factory=list)
    final_context: Dict[str, Any] = field(default_factory=dict)
    steps_executed: int = 0
    execution_time: float = 0.0
    test_mode: bool = False
    error: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    workflow_id: Optional[str] = None
    workflow_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["step_results"] = [step.to_dict() for step in self.step_results]
        return result


class WorkflowEngine:

    def __init__(self, step_kinds: Optional[List[WorkflowStepKind]] = None,
                 output_processor: Optional[WorkflowOutputProcessor] = None,
                 variables: Optional[VariableManager] = None):
        self._kinds: Dict[str, WorkflowStepKind] = {}
        self.output_processor = output_processor or WorkflowOutputProcessor()
        self.variables = variables or VariableManager()
        for kind in step_kinds or []:
            self.register_step_kind(kind)

    def register_step_kind(self, kind: WorkflowStepKind) -> None:
        self._kinds[kind.type] = kind
        logger.debug(f"Registered workflow step kind '{kind.type}'")

    def step_types(self) -> List[str]:
        return list(self._kinds)

    def validate(self, workflow: Dict[str, Any]) -> List[str]:
        """All structural problems of a workflow definition."""
        errors = []
        steps = workflow.get("steps")
        if not isinstance(steps, list) or not steps:
            return ["Workflow must have at least one step"]

        seen = set()
        for index, step in enumerate(steps):
            label = f"Step {index + 1}"
            if not isinstance(step, dict):
                errors.append(f"{label}: must be an object")
                continue
            step_id = step.get("id")
            if not step_id:
                errors.append(f"{label}: missing id")
            elif not isinstance(step_id, str):
                errors.append(f"{label}: id must be text")
            elif step_id in seen:
                errors.append(f"{label}: duplicate id '{step_id}'")
            seen.add(step_id)

            step_type = step.get("type")
            if not step_type:
                errors.append(f"{label}: missing type")
            elif not isinstance(step_type, str) or step_type not in self._kinds:
                errors.append(f"{label}: unknown type '{step_type}'")
            errors.extend(
                f"{label}: {error}"
                for error in self.output_processor.validate_actions(step.get("output_actions") or [])
            )
        return errors

    def execute(self, workflow: Union[Dict[str, Any], List[Dict[str, Any]]], context: Dict[str, Any],
                config: Dict[str, Any], test_mode: bool = False) -> WorkflowRunResult:
        """
        Run a workflow.

        Args:
            workflow: Workflow definition, or a bare list of steps.
            context: Initial variable context; not modified.
            config: Current settings.
            test_mode: Record output actions instead of persisting them.

        Returns:
            WorkflowRunResult with one step result per attempted step.
        """
        if isinstance(workflow, list):
            workflow = {"steps": workflow}
        started = time.monotonic()
        run_context = copy.deepcopy(context or {})
        run_context.setdefault("previous_steps", {})

        errors = self.validate(workflow)
        if errors:
            logger.error(f"Workflow {workflow.get('id', '<unsaved>')} failed validation: {errors}")
            return WorkflowRunResult(
                success=False,
                final_context=run_context,
                test_mode=test_mode,
                error="Workflow validation failed: " + "; ".join(errors),
                errors=errors,
                workflow_id=workflow.get("id"),
                workflow_name=workflow.get("name"),
            )

        policy = config.get("workflow_failure_policy", DEFAULT_FAILURE_POLICY)
        if policy not in FAILURE_POLICIES:
            policy = DEFAULT_FAILURE_POLICY

        logger.info(f"Executing workflow {workflow.get('id', '<unsaved>')} (test_mode={test_mode}, policy={policy})")
        results: List[WorkflowStepResult] = []
        for step in workflow["steps"]:
            if not step.get("enabled", True):
                logger.debug(f"Skipping disabled step {step['id']}")
                continue

            result = self._run_step(step, run_context, config)
            results.append(result)

            if result.success:
                self._merge_output(step, result.data, run_context)
                actions = step.get("output_actions") or []
                if actions:
                    processing = self.output_processor.process_step_outputs(
                        result.data, actions, run_context, test_mode
                    )
                    run_context = processing.pop("updated_context")
                    result.output_processing = processing
                continue

            if not step.get("continue_on_error", policy == "continue"):
                logger.warning(f"Step {step['id']} failed, stopping workflow")
                break
            logger.warning(f"Step {step['id']} failed, continuing with the next step")

        return WorkflowRunResult(
            success=all(r.success for r in results),
            step_results=results,
            final_context=run_context,
            steps_executed=len(results),
            execution_time=round(time.monotonic() - started, 3),
            test_mode=test_mode,
            error=next((f"Step '{r.step_id}' failed: {r.error}" for r in results if not r.success), None),
            workflow_id=workflow.get("id"),
            workflow_name=workflow.get("name"),
        )

    def _run_step(self, step: Dict[str, Any], context: Dict[str, Any], config: Dict[str, Any]) -> WorkflowStepResult:
        kind = self._kinds[step["type"]]
        started = time.monotonic()

        try:
            outcome = self._checked_execute(kind, step, context, config)
        except Exception as e:
            logger.exception(f"Step {step['id']} raised an unexpected error")
            outcome = StepOutcome(success=False, error=f"Unexpected error: {e}")

        if not outcome.success:
            logger.error(f"Workflow step {step['id']} ({step['type']}) failed: {outcome.error}")
        return WorkflowStepResult(
            step_id=step["id"],
            step_name=step.get("name") or step["id"],
            step_type=step["type"],
            success=outcome.success,
            data=outcome.data,
            error=outcome.error,
            execution_time=round(time.monotonic() - started, 3),
            interpolated_system_prompt=outcome.interpolated_system_prompt,
            interpolated_user_message=outcome.interpolated_user_message,
            tokens_used=outcome.tokens_used,
            raw_response=outcome.raw_response,
            warnings=outcome.warnings,
        )

    def _checked_execute(self, kind, step, context, config) -> StepOutcome:
        config_errors = kind.validate_config(step)
        if config_errors:
            return StepOutcome(success=False, error="Invalid step configuration: " + "; ".join(config_errors))
        missing = self.variables.missing_variables(context, step.get("required_variables") or [])
        if missing:
            return StepOutcome(success=False, error="Missing required variables: " + ", ".join(missing))
        return kind.execute(step, context, config)

    @staticmethod
    def _merge_output(step: Dict[str, Any], data: Dict[str, Any], context: Dict[str, Any]) -> None:
        context.setdefault("previous_steps", {})[step["id"]] = data
        declared = step.get("output_variables") or []
        for name in declared:
            if name in data:
                context[name] = data[name]
        if not declared and TEXT_OUTPUT_VARIABLE in data:
            context[TEXT_OUTPUT_VARIABLE] = data[TEXT_OUTPUT_VARIABLE]
