"""
Sequential job runner.

Runs a fixed list of steps one at a time. A step is either a ready-made Job
or a callable building the next Job from the previous step's result.
"""

import logging
from collections.abc import Callable, Sequence

from ci_common.engine import JobEngine
from ci_common.errors import ExecutionError
from ci_common.models import Err, Job, JobResult, Ok, Outcome

logger = logging.getLogger(__name__)

Step = Job | Callable[[JobResult | None], Job]


class JobRunner:
    """
    Sequences jobs with short-circuit on failure.

    The runner never parallelizes; pipelines that need concurrent jobs start
    independent runners and join them themselves.
    """

    def __init__(self, engine: JobEngine):
        self.engine = engine

    async def run_sequential(self, steps: Sequence[Step]) -> Outcome:
        """
        Run steps in order, stopping at the first failure.

        Args:
            steps: Jobs, or callables taking the previous JobResult (None for
                   the first step) and returning the Job to run

        Returns:
            Ok with the last step's result, or Err with the first failure.
            Steps after a failure are never built nor started.
        """
        previous: JobResult | None = None

        for index, step in enumerate(steps, start=1):
            job = step if isinstance(step, Job) else step(previous)
            logger.info(f"Running job {job.id} ({index}/{len(steps)}) image={job.image}")
            try:
                previous = await job.run(self.engine)
            except ExecutionError as e:
                skipped = len(steps) - index
                logger.warning(
                    f"Job {job.id} failed: {e}; skipping {skipped} remaining job(s)"
                )
                return Err(e)
            logger.debug(f"Job {job.id} succeeded")

        return Ok(previous if previous is not None else JobResult(""))
