"""
Abstract execution engine interface.

This module defines the contract for the external service that actually runs
containerized jobs, allowing the orchestration core to be tested without
Docker and the engine to be swapped (Docker, Kubernetes, ...).
"""

from abc import ABC, abstractmethod

from .models import Job, JobResult


class JobEngine(ABC):
    """
    Abstract base class for job execution.

    Implementations own container lifecycle, log capture and resource limits.
    No timeout is imposed by callers; that policy belongs to the engine.
    """

    @abstractmethod
    async def execute(self, job: Job) -> JobResult:
        """
        Run a job to completion.

        Args:
            job: Job to execute (already marked as submitted)

        Returns:
            JobResult with the job's combined output

        Raises:
            ExecutionError: If the job exits non-zero or cannot be started
        """
        pass
