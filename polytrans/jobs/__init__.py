"""
Jobs module - fire-and-forget background jobs

This module provides:
- models: job records, results and store keys
- launchers: process, loopback and thread launchers
- dispatcher: spawning jobs and reading their results
- worker: running a job from its token
- poller: waiting for a result with a bounded budget
"""

from polytrans.jobs.models import JobAction, JobRecord, JobResult, JobStatus
