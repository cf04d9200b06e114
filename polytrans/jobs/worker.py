"""
Background worker entry point.

JobWorker.run(token) is what every launcher ends up calling: from the bootstrap
script of a spawned process, from the loopback endpoint, or on a thread. It
never raises; a crash becomes a failed JobResult so the initiator's poll loop
always terminates.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Dict, Optional

from polytrans.config import get_background_setting
from polytrans.jobs.models import (
    JobAction,
    JobRecord,
    JobResult,
    job_record_key,
    result_key,
)
from polytrans.logger import get_logger

logger = get_logger(__name__)

RESULT_TTL_SETTINGS = {
    JobAction.TRANSLATE: "translation_result_ttl",
    JobAction.WORKFLOW_TEST: "test_result_ttl",
    JobAction.WORKFLOW_EXECUTE: "execution_result_ttl",
}


class JobWorker:

    def __init__(self, runtime):
        self.runtime = runtime
        self.store = runtime.job_store

    def run(self, token: str) -> bool:
        """
        Execute the job stored under a token.

        Returns:
            True when a result was written, False when no job exists for the token.
        """
        record_key = job_record_key(token)
        data = self.store.get(record_key)
        if data is None:
            logger.error(f"Background job {token} not found (expired or already processed)")
            return False
        try:
            record = JobRecord.from_dict(data)
        except (KeyError, ValueError) as e:
            logger.error(f"Background job {token} has an unreadable record: {e}")
            self.store.delete(record_key)
            return False

        key = result_key(record.action, record.args)
        started = time.time()
        config: Dict[str, Any] = {}
        try:
            try:
                config = self.runtime.config_store.load()
                logger.info(f"Background job {token} ({record.action.value}) started")
                result = self._handle(record, config, started)
            except Exception as e:
                logger.exception(f"Background job {token} ({record.action.value}) crashed")
                result = JobResult.completed(
                    success=False,
                    error=f"Background job crashed: {e}",
                    error_code="worker_crash",
                    started_at=started,
                )
            self.store.set(key, result.to_dict(), self._result_ttl(record.action, config))
            logger.info(f"Background job {token} completed (success={result.success})")
        finally:
            self.store.delete(record_key)
            if record.action == JobAction.WORKFLOW_EXECUTE:
                self.runtime.workflow_manager.release_lock(record.args["workflow_id"], record.args["post_id"])
        return True

    @staticmethod
    def _result_ttl(action: JobAction, config: Dict[str, Any]) -> float:
        return get_background_setting(config, RESULT_TTL_SETTINGS[action])

    def _handle(self, record: JobRecord, config: Dict[str, Any], started: float) -> JobResult:
        args = record.args
        if record.action == JobAction.TRANSLATE:
            outcome = self.runtime.translation_manager.process_translation(
                args["post_id"], args["source_lang"], args["target_lang"], config
            )
            return JobResult.completed(
                success=outcome.success,
                payload=outcome.to_dict(),
                error=outcome.error,
                error_code=outcome.error_code,
                started_at=started,
            )

        if record.action == JobAction.WORKFLOW_TEST:
            run = self.runtime.workflow_manager.run_test(
                args["workflow"], args.get("context") or {}, config, post_id=args.get("post_id")
            )
        else:
            run = self.runtime.workflow_manager.run_execution(args["workflow_id"], args["post_id"], config)
        return JobResult.completed(
            success=run.success,
            payload=run.to_dict(),
            error=run.error,
            started_at=started,
        )


def run_token(token: str, db_file: Optional[str] = None) -> bool:
    """Entry point of spawned worker processes."""
    from polytrans.core import database as db
    from polytrans.runtime import create_runtime

    if db_file:
        db.DB_FILE = Path(db_file)
    return create_runtime().worker.run(token)
