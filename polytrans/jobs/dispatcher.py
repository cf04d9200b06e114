"""
Fire-and-forget background jobs.

spawn() stores a JobRecord under a fresh random token and hands the token to
the first launcher that accepts it. The worker later writes a JobResult under
an action-specific key, which initiators read back with poll().
"""

from __future__ import annotations

import secrets
from typing import Any, Dict, List, Optional, Union

from polytrans.core.stores import JobStore
from polytrans.jobs.launchers import JobLauncher
from polytrans.jobs.models import (
    JobAction,
    JobRecord,
    JobResult,
    JobStatus,
    job_record_key,
    missing_args,
    result_key,
)
from polytrans.logger import get_logger

logger = get_logger(__name__)

DEFAULT_JOB_TTL = 3600


class BackgroundJobDispatcher:

    def __init__(self, store: JobStore, launchers: List[JobLauncher], job_ttl: float = DEFAULT_JOB_TTL):
        self.store = store
        self.launchers = list(launchers)
        self.job_ttl = job_ttl

    def validate(self, args: Dict[str, Any], action: Union[JobAction, str]) -> List[str]:
        """Problems that prevent a job from being spawned; empty when it may run."""
        try:
            action = JobAction(action)
        except ValueError:
            return [f"Unknown background action '{action}'"]
        return [f"Missing required field '{name}'" for name in missing_args(action, args)]

    def dispatch(self, args: Dict[str, Any], action: Union[JobAction, str]) -> Optional[str]:
        """
        Spawn a job and return its token.

        Args:
            args: Action arguments; stored with the job record.
            action: JobAction or its string value.

        Returns:
            The job token, or None when validation failed or no launcher started the job.
        """
        errors = self.validate(args, action)
        if errors:
            logger.error(f"Refusing to spawn background job '{action}': {'; '.join(errors)}")
            return None
        action = JobAction(action)

        token = secrets.token_hex(16)
        record = JobRecord(token=token, action=action, args=dict(args))
        self.store.set(job_record_key(token), record.to_dict(), self.job_ttl)

        for launcher in self.launchers:
            if launcher.launch(token):
                logger.info(f"Background job {token} ({action.value}) launched via {launcher.name}")
                return token
            logger.warning(f"Launcher '{launcher.name}' could not start job {token}")

        self.store.delete(job_record_key(token))
        logger.error(f"No launcher could start background job {token} ({action.value})")
        return None

    def spawn(self, args: Dict[str, Any], action: Union[JobAction, str]) -> bool:
        return self.dispatch(args, action) is not None

    @staticmethod
    def result_key(args: Dict[str, Any], action: Union[JobAction, str]) -> str:
        return result_key(JobAction(action), args)

    def poll(self, key: str) -> JobResult:
        """Current result under a result key; running while the worker has not written one."""
        data = self.store.get(key)
        if data is None:
            return JobResult(status=JobStatus.RUNNING)
        return JobResult.from_dict(data)
