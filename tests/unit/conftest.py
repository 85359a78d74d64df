"""
Shared fixtures for unit tests.

RecordingEngine stands in for the external execution engine: it records
every job it is asked to run and answers with canned results per job ID.
"""

import asyncio

import pytest

from ci_common.engine import JobEngine
from ci_common.errors import ExecutionError
from ci_common.models import Job, JobResult, Project


class RecordingEngine(JobEngine):
    """In-memory JobEngine returning configured results per job ID."""

    def __init__(self):
        self.results: dict[str, JobResult | ExecutionError] = {}
        self.executed: list[Job] = []
        self.delay = 0.0

    async def execute(self, job: Job) -> JobResult:
        self.executed.append(job)
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.results.get(job.id, JobResult(output=f"{job.id} ok"))
        if isinstance(result, ExecutionError):
            raise result
        return result

    def executed_ids(self) -> list[str]:
        return [job.id for job in self.executed]

    def job(self, job_id: str) -> Job:
        """Return the last executed job with the given ID."""
        for job in reversed(self.executed):
            if job.id == job_id:
                return job
        raise AssertionError(f"job {job_id} was never executed")


@pytest.fixture
def engine():
    """Create a fresh recording engine."""
    return RecordingEngine()


@pytest.fixture
def project():
    """A project without delivery token."""
    return Project(id="example-app", repo_name="example/app")
