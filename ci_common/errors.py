"""
Exceptions shared by the orchestration core and its boundary adapters.

The taxonomy follows the three places things go wrong while handling an
event: a handler throws, a job fails, or reporting itself fails.
"""


class ExecutionError(Exception):
    """
    A submitted job failed (non-zero exit or engine-reported failure).

    `output` carries whatever the job printed before failing, if anything.
    """

    def __init__(self, message: str, output: str = ""):
        super().__init__(message)
        self.message = message
        self.output = output

    def __str__(self) -> str:
        return self.message


class ReportingError(Exception):
    """
    A start or end check-run reporting job failed to run.

    The underlying ExecutionError is chained as __cause__.
    """

    def __init__(self, check_name: str, job_id: str, message: str):
        super().__init__(
            f"Reporting job {job_id} for check {check_name} failed: {message}"
        )
        self.check_name = check_name
        self.job_id = job_id


class HandlerError(Exception):
    """Record of an event handler that raised while processing an event."""

    def __init__(self, event_name: str, handler_name: str, original: BaseException):
        super().__init__(f"Handler {handler_name} for {event_name} failed: {original}")
        self.event_name = event_name
        self.handler_name = handler_name
        self.original = original


class JobSubmittedError(Exception):
    """Raised when a job is modified after it was submitted for execution."""


class ProjectNotFoundError(Exception):
    """Raised when a project ID has no entry in the project store."""
