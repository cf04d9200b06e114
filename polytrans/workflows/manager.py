"""
Workflow triggering and background runs.

WorkflowManager starts workflow test runs and executions as background jobs,
holds the per workflow/post execution lock, and runs the jobs when a worker
picks them up.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from polytrans.config import get_background_setting
from polytrans.core import database as db
from polytrans.core.stores import JobStore
from polytrans.jobs.dispatcher import BackgroundJobDispatcher
from polytrans.jobs.models import JobAction, workflow_lock_key
from polytrans.logger import get_logger
from polytrans.workflows.engine import WorkflowEngine, WorkflowRunResult
from polytrans.workflows.storage import WorkflowStorage
from polytrans.workflows.variables import build_post_context

logger = get_logger(__name__)

# Published posts in the post language offered to prompts as recent_articles
RECENT_ARTICLES_COUNT = 20


@dataclass
class ExecutionStart:
    status: str  # sent|locked|failed
    workflow_id: str
    post_id: Any
    execution_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def started(self) -> bool:
        return self.status == "sent"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class WorkflowManager:

    def __init__(self, storage: WorkflowStorage, engine: WorkflowEngine, dispatcher: BackgroundJobDispatcher,
                 job_store: JobStore):
        self.storage = storage
        self.engine = engine
        self.dispatcher = dispatcher
        self.job_store = job_store

    @staticmethod
    def should_execute(workflow: Dict[str, Any]) -> bool:
        """Whether a workflow runs automatically when a translation completes."""
        triggers = workflow.get("triggers") or {}
        if not workflow.get("enabled", True) or triggers.get("manual_only"):
            return False
        return bool(triggers.get("on_translation_complete", True))

    def trigger_workflows(self, original_post_id: Any, translated_post_id: Any, target_language: str,
                          config: Dict[str, Any]) -> List[ExecutionStart]:
        """Start an execution of every workflow of the target language that runs on translation."""
        starts = []
        for workflow in self.storage.for_language(target_language):
            if not self.should_execute(workflow):
                logger.debug(f"Workflow {workflow['id']} is not triggered by translations")
                continue
            start = self.start_execution(workflow["id"], translated_post_id, config)
            starts.append(start)
        if starts:
            logger.info(
                f"Translation of post {original_post_id} to {target_language} triggered "
                f"{sum(1 for s in starts if s.started)} of {len(starts)} workflow(s)"
            )
        return starts

    def start_execution(self, workflow_id: str, post_id: Any, config: Dict[str, Any]) -> ExecutionStart:
        lock_key = workflow_lock_key(workflow_id, post_id)
        execution_id = secrets.token_hex(8)
        acquired = self.job_store.add(
            lock_key,
            {"execution_id": execution_id, "started_at": time.time()},
            get_background_setting(config, "execution_result_ttl"),
        )
        if not acquired:
            lock = self.job_store.get(lock_key) or {}
            logger.warning(f"Workflow {workflow_id} is already running for post {post_id}")
            return ExecutionStart(
                status="locked",
                workflow_id=workflow_id,
                post_id=post_id,
                execution_id=lock.get("execution_id"),
                error=f"Workflow {workflow_id} is already running for post {post_id}",
            )

        args = {"execution_id": execution_id, "workflow_id": workflow_id, "post_id": post_id}
        if not self.dispatcher.spawn(args, JobAction.WORKFLOW_EXECUTE):
            self.job_store.delete(lock_key)
            return ExecutionStart(
                status="failed",
                workflow_id=workflow_id,
                post_id=post_id,
                error="Could not start the workflow execution in the background",
            )
        return ExecutionStart(status="sent", workflow_id=workflow_id, post_id=post_id, execution_id=execution_id)

    def start_test(self, workflow: Dict[str, Any], context: Optional[Dict[str, Any]] = None,
                   post_id: Any = None) -> Optional[str]:
        """Start a test-mode run; returns the test id, or None when it could not be spawned."""
        test_id = secrets.token_hex(8)
        args = {"test_id": test_id, "workflow": workflow, "context": context or {}, "post_id": post_id}
        return test_id if self.dispatcher.spawn(args, JobAction.WORKFLOW_TEST) else None

    @staticmethod
    def build_context(post_id: Any) -> Optional[Dict[str, Any]]:
        post = db.get_post(post_id)
        if post is None:
            return None
        original = db.get_post(post["source_post_id"]) if post.get("source_post_id") else None
        recent = db.get_recent_posts(post.get("language"), RECENT_ARTICLES_COUNT, exclude_post_id=post["id"])
        return build_post_context(post, original, recent, target_language=post.get("language"))

    def run_test(self, workflow: Dict[str, Any], context: Dict[str, Any], config: Dict[str, Any],
                 post_id: Any = None) -> WorkflowRunResult:
        if post_id:
            post_context = self.build_context(post_id)
            if post_context is not None:
                context = {**post_context, **(context or {})}
        return self.engine.execute(workflow, context or {}, config, test_mode=True)

    def run_execution(self, workflow_id: str, post_id: Any, config: Dict[str, Any]) -> WorkflowRunResult:
        workflow = self.storage.get(workflow_id)
        if workflow is None:
            return WorkflowRunResult(success=False, error=f"Workflow {workflow_id} not found", workflow_id=workflow_id)
        context = self.build_context(post_id)
        if context is None:
            return WorkflowRunResult(
                success=False,
                error=f"Post {post_id} not found",
                workflow_id=workflow_id,
                workflow_name=workflow.get("name"),
            )
        logger.info(f"Executing workflow {workflow_id} on post {post_id}")
        return self.engine.execute(workflow, context, config, test_mode=False)

    def release_lock(self, workflow_id: str, post_id: Any) -> None:
        self.job_store.delete(workflow_lock_key(workflow_id, post_id))
