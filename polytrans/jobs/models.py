"""Background job records, results and store keys."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class JobAction(str, Enum):
    TRANSLATE = "translate"
    WORKFLOW_TEST = "workflow-test"
    WORKFLOW_EXECUTE = "workflow-execute"


class JobStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"


# Fields a job must carry before it may be spawned
REQUIRED_ARGS: Dict[JobAction, List[str]] = {
    JobAction.TRANSLATE: ["post_id", "source_lang", "target_lang"],
    JobAction.WORKFLOW_TEST: ["test_id", "workflow"],
    JobAction.WORKFLOW_EXECUTE: ["execution_id", "workflow_id", "post_id"],
}


def job_record_key(token: str) -> str:
    return f"bg_{token}"


def translation_result_key(post_id: Any, target_lang: str) -> str:
    return f"translation_{post_id}_{target_lang}"


def workflow_test_key(test_id: str) -> str:
    return f"workflow_test_{test_id}"


def workflow_exec_key(execution_id: str) -> str:
    return f"workflow_exec_{execution_id}"


def workflow_lock_key(workflow_id: str, post_id: Any) -> str:
    return f"workflow_lock_{workflow_id}_{post_id}"


def result_key(action: JobAction, args: Dict[str, Any]) -> str:
    """Key the worker writes the JobResult of a job under."""
    if action == JobAction.TRANSLATE:
        return translation_result_key(args["post_id"], args["target_lang"])
    if action == JobAction.WORKFLOW_TEST:
        return workflow_test_key(args["test_id"])
    return workflow_exec_key(args["execution_id"])


def missing_args(action: JobAction, args: Dict[str, Any]) -> List[str]:
    return [name for name in REQUIRED_ARGS[action] if args.get(name) in (None, "", {}, [])]


@dataclass
class JobRecord:
    token: str
    action: JobAction
    args: Dict[str, Any]
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token,
            "action": self.action.value,
            "args": self.args,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobRecord":
        return cls(
            token=data["token"],
            action=JobAction(data["action"]),
            args=dict(data.get("args") or {}),
            created_at=data.get("created_at", 0.0),
        )


@dataclass
class JobResult:
    status: JobStatus
    success: Optional[bool] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    error_code: Optional[str] = None
    started_at: Optional[float] = None
    completed_at: Optional[float] = None

    @classmethod
    def completed(cls, success: bool, payload: Optional[Dict[str, Any]] = None, error: Optional[str] = None,
                  error_code: Optional[str] = None, started_at: Optional[float] = None) -> "JobResult":
        return cls(
            status=JobStatus.COMPLETED,
            success=success,
            payload=payload or {},
            error=error,
            error_code=error_code,
            started_at=started_at,
            completed_at=time.time(),
        )

    @property
    def is_completed(self) -> bool:
        return self.status == JobStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "success": self.success,
            "payload": self.payload,
            "error": self.error,
            "error_code": self.error_code,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobResult":
        return cls(
            status=JobStatus(data.get("status", JobStatus.RUNNING.value)),
            success=data.get("success"),
            payload=dict(data.get("payload") or {}),
            error=data.get("error"),
            error_code=data.get("error_code"),
            started_at=data.get("started_at"),
            completed_at=data.get("completed_at"),
        )
