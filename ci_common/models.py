"""
Data models for event-driven pipeline orchestration.

These models represent the domain objects used throughout the application,
independent of the transport that delivers events and of the engine that
executes jobs.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from .errors import ExecutionError, JobSubmittedError

if TYPE_CHECKING:
    from .engine import JobEngine

# Job IDs end up in container names, so keep them DNS-label shaped
JOB_ID_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")

# Project secret holding the gateway delivery token
TOKEN_SECRET = "eventGridToken"

# Event Grid subscription handshake, answered by the gateway itself
VALIDATION_EVENT = "Microsoft.EventGrid.SubscriptionValidationEvent"

# Structured-mode CloudEvents body
CLOUDEVENTS_CONTENT_TYPE = "application/cloudevents+json"


@dataclass(frozen=True)
class Event:
    """
    A named event delivered by an external transport.

    The payload is opaque to the core and passed through to reporting jobs.
    """

    name: str
    payload: bytes = b""
    provider: str = "local"
    event_id: str | None = None

    def payload_text(self) -> str:
        """Decode the payload for use in job environments."""
        return self.payload.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class Project:
    """
    Context describing the source repository under test.

    Secrets are never logged; `eventGridToken` gates gateway delivery.
    """

    id: str
    repo_name: str
    secrets: dict[str, str] = field(default_factory=dict)

    def working_path(self, root: str) -> str:
        """Deterministic location of the project's source inside job containers."""
        return f"{root.rstrip('/')}/{self.repo_name}"

    def to_dict(self) -> dict[str, Any]:
        """Convert project to dictionary format (secrets are reduced to key names)."""
        return {
            "id": self.id,
            "repo_name": self.repo_name,
            "secrets": sorted(self.secrets),
        }


@dataclass
class JobResult:
    """Output of a job that completed successfully."""

    output: str = ""

    def __str__(self) -> str:
        return self.output


@dataclass(frozen=True)
class Ok:
    """Successful outcome of a step or sequence."""

    result: JobResult
    is_ok = True

    def unwrap(self) -> JobResult:
        return self.result


@dataclass(frozen=True)
class Err:
    """Failed outcome of a step or sequence."""

    error: ExecutionError
    is_ok = False

    def unwrap(self) -> JobResult:
        raise self.error


Outcome = Ok | Err


class Conclusion(str, Enum):
    """Terminal states of a check run."""

    SUCCESS = "success"
    FAILURE = "failure"
    NEUTRAL = "neutral"


class PipelineState(str, Enum):
    """
    Lifecycle of one pipeline invocation.

    States advance strictly in declaration order; DONE is terminal.
    """

    NOT_STARTED = "not_started"
    REPORTING_START = "reporting_start"
    RUNNING_JOBS = "running_jobs"
    REPORTING_END = "reporting_end"
    DONE = "done"


@dataclass(frozen=True)
class CheckRun:
    """Identity of an external check run, plus the raw event it answers."""

    name: str
    title: str
    payload: str = ""


@dataclass
class Job:
    """
    One unit of containerized work.

    A job can be freely modified until it is submitted with run(); after that
    any attribute assignment raises JobSubmittedError.
    """

    id: str
    image: str
    tasks: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    force_pull: bool = False
    submitted: bool = field(default=False, init=False, compare=False)

    def __post_init__(self) -> None:
        if not JOB_ID_PATTERN.match(self.id):
            raise ValueError(
                f"Invalid job id {self.id!r}: use lowercase letters, digits and '-'"
            )

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "submitted", False):
            raise JobSubmittedError(f"Job {self.id} was already submitted")
        super().__setattr__(name, value)

    def copy(self, job_id: str | None = None) -> "Job":
        """Return an unsubmitted copy, optionally under a new ID."""
        return Job(
            id=job_id or self.id,
            image=self.image,
            tasks=list(self.tasks),
            env=dict(self.env),
            force_pull=self.force_pull,
        )

    async def run(self, engine: "JobEngine") -> JobResult:
        """
        Submit the job to the execution engine and wait for it to finish.

        Raises:
            ExecutionError: If the engine reports a failure
        """
        self.submitted = True
        return await engine.execute(self)
