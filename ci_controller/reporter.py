"""
Check-run status reporting around a unit of work.

A check run is opened by a start job (pending, with a summary) and closed by
exactly one end job carrying the conclusion. Both jobs run against a
dedicated reporting image and are parameterized only through their env:

    CHECK_PAYLOAD     raw event payload, passed through
    CHECK_NAME        internal identifier of the check run
    CHECK_TITLE       display title
    CHECK_SUMMARY     short status text
    CHECK_TEXT        long-form detail (job output or error text)
    CHECK_CONCLUSION  success | failure | neutral (end jobs only)
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from ci_common.engine import JobEngine
from ci_common.errors import ExecutionError, ReportingError
from ci_common.models import (
    CheckRun,
    Conclusion,
    Err,
    Job,
    JobResult,
    Ok,
    Outcome,
    PipelineState,
)

logger = logging.getLogger(__name__)

DEFAULT_CHECK_RUN_IMAGE = "brigadecore/brigade-github-check-run:latest"

Work = Callable[[], Awaitable[JobResult | Outcome]]
StateCallback = Callable[[PipelineState], None]


def check_run_job(
    job_id: str,
    check: CheckRun,
    summary: str,
    image: str = DEFAULT_CHECK_RUN_IMAGE,
    text: str | None = None,
) -> Job:
    """
    Build a reporting job for a check run.

    Without CHECK_CONCLUSION in its env, the job reports the check as pending.
    """
    env = {
        "CHECK_PAYLOAD": check.payload,
        "CHECK_NAME": check.name,
        "CHECK_TITLE": check.title,
        "CHECK_SUMMARY": summary,
    }
    if text is not None:
        env["CHECK_TEXT"] = text
    return Job(id=job_id, image=image, env=env)


def describe_error(error: BaseException) -> str:
    """
    Render an error as check-run detail text.

    Only the error message is reported; captured job output stays on
    ExecutionError.output and in the engine's logs.
    """
    return f"Error: {error}"


@dataclass
class EndJobTemplate:
    """
    Blueprint for the end job of a check run.

    The template job is never run itself; populate() returns a fresh copy
    carrying the conclusion derived from the work's outcome.
    """

    job: Job
    success_summary: str
    failure_summary: str
    success_conclusion: Conclusion = Conclusion.SUCCESS
    failure_conclusion: Conclusion = Conclusion.FAILURE

    @classmethod
    def advisory(
        cls, job: Job, success_summary: str, failure_summary: str
    ) -> "EndJobTemplate":
        """Template whose failures are reported as non-blocking (neutral)."""
        return cls(
            job=job,
            success_summary=success_summary,
            failure_summary=failure_summary,
            failure_conclusion=Conclusion.NEUTRAL,
        )

    def populate(self, outcome: Outcome) -> Job:
        job = self.job.copy()
        if isinstance(outcome, Ok):
            job.env["CHECK_CONCLUSION"] = self.success_conclusion.value
            job.env["CHECK_SUMMARY"] = self.success_summary
            job.env["CHECK_TEXT"] = str(outcome.result)
        else:
            job.env["CHECK_CONCLUSION"] = self.failure_conclusion.value
            job.env["CHECK_SUMMARY"] = self.failure_summary
            job.env["CHECK_TEXT"] = describe_error(outcome.error)
        return job


class StatusReporter:
    """
    Wraps work between a start and an end reporting job.

    The end job runs exactly once on every exit path of the work. Failures
    of the reporting jobs themselves surface as ReportingError and are not
    retried.
    """

    def __init__(self, engine: JobEngine):
        self.engine = engine

    async def _report(self, job: Job) -> None:
        check_name = job.env.get("CHECK_NAME", "")
        try:
            await job.run(self.engine)
        except ExecutionError as e:
            logger.error(f"Reporting job {job.id} for check {check_name} failed: {e}")
            raise ReportingError(check_name, job.id, str(e)) from e

    async def wrap(
        self,
        start_job: Job,
        work: Work,
        end_template: EndJobTemplate,
        on_state: StateCallback | None = None,
    ) -> Outcome:
        """
        Report pending, run the work, then report its conclusion.

        Args:
            start_job: Reporting job marking the check run as in progress
            work: Async callable returning a JobResult or Outcome, or raising
                  ExecutionError
            end_template: Template for the terminal reporting job
            on_state: Optional callback notified of each PipelineState change

        Returns:
            The work's outcome

        Raises:
            ReportingError: If the start or end reporting job fails
        """

        def advance(state: PipelineState) -> None:
            if on_state is not None:
                on_state(state)

        advance(PipelineState.REPORTING_START)
        await self._report(start_job)

        advance(PipelineState.RUNNING_JOBS)
        try:
            result = await work()
            outcome = result if isinstance(result, (Ok, Err)) else Ok(result)
        except ExecutionError as e:
            outcome = Err(e)
        except Exception as e:
            # Close the check run before letting the unexpected error escape
            logger.error(f"Unexpected error in work: {e}", exc_info=True)
            advance(PipelineState.REPORTING_END)
            await self._report(end_template.populate(Err(ExecutionError(str(e)))))
            advance(PipelineState.DONE)
            raise

        advance(PipelineState.REPORTING_END)
        end_job = end_template.populate(outcome)
        logger.info(
            f"Reporting {end_job.env['CHECK_CONCLUSION']} "
            f"for check {end_job.env.get('CHECK_NAME', '')}"
        )
        await self._report(end_job)
        advance(PipelineState.DONE)
        return outcome
