"""Initiator-side polling for job results with a bounded budget."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from polytrans.core.stores import JobStore
from polytrans.jobs.models import JobResult
from polytrans.logger import get_logger

logger = get_logger(__name__)


@dataclass
class PollOutcome:
    completed: bool
    timed_out: bool
    result: Optional[JobResult]
    attempts: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "completed": self.completed,
            "timed_out": self.timed_out,
            "result": self.result.to_dict() if self.result else None,
            "attempts": self.attempts,
        }


class JobPoller:

    def __init__(self, store: JobStore, attempts: int = 150, interval: float = 2.0,
                 sleep: Callable[[float], None] = time.sleep):
        self.store = store
        self.attempts = max(1, int(attempts))
        self.interval = interval
        self._sleep = sleep

    def wait(self, key: str) -> PollOutcome:
        """
        Read a result key until the job completes or the budget runs out.

        A timeout is reported separately from a worker-reported failure: a
        completed result with success=False is not a timeout.
        """
        for attempt in range(1, self.attempts + 1):
            data = self.store.get(key)
            if data is not None:
                result = JobResult.from_dict(data)
                if result.is_completed:
                    return PollOutcome(completed=True, timed_out=False, result=result, attempts=attempt)
            if attempt < self.attempts:
                self._sleep(self.interval)

        logger.warning(f"Gave up waiting for {key} after {self.attempts} polls")
        return PollOutcome(completed=False, timed_out=True, result=None, attempts=self.attempts)
