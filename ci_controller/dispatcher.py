"""
Pipeline dispatcher: the composition root for check-suite events.

On a trigger event every configured pipeline is spawned as its own asyncio
task, wrapped by its own StatusReporter. Pipelines race freely; one
pipeline's failure never affects another's execution or reporting.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field

from ci_common.engine import JobEngine
from ci_common.models import (
    VALIDATION_EVENT,
    CheckRun,
    Event,
    Outcome,
    PipelineState,
    Project,
)

from .pipelines import DEFAULT_PIPELINES, Pipeline
from .reporter import EndJobTemplate, StatusReporter, check_run_job
from .router import EventRouter
from .runner import JobRunner
from .settings import PipelineSettings

logger = logging.getLogger(__name__)

TRIGGER_EVENTS = (
    "check_suite:requested",
    "check_suite:rerequested",
    "check_run:rerequested",
    "exec",
)

STORAGE_EVENTS = (
    "Microsoft.Storage.BlobCreated",
    "Microsoft.Storage.BlobDeleted",
    VALIDATION_EVENT,
)

_ORDER = list(PipelineState)

# Finished runs kept until the next wait_idle(); oldest are dropped first
MAX_FINISHED_RUNS = 1000


@dataclass
class PipelineRun:
    """Record of one pipeline invocation and the states it went through."""

    pipeline: str
    project_id: str
    state: PipelineState = PipelineState.NOT_STARTED
    history: list[PipelineState] = field(
        default_factory=lambda: [PipelineState.NOT_STARTED]
    )
    outcome: Outcome | None = None
    error: BaseException | None = None

    def advance(self, state: PipelineState) -> None:
        """Move to the next state; skipping or going back is a bug."""
        position = _ORDER.index(self.state)
        expected = _ORDER[position + 1] if position + 1 < len(_ORDER) else None
        if state is not expected:
            raise RuntimeError(
                f"Pipeline {self.pipeline}: invalid transition "
                f"{self.state.value} -> {state.value}"
            )
        logger.debug(f"Pipeline {self.pipeline}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)


class PipelineDispatcher:
    """
    Runs independently reporting pipelines for routed trigger events.

    The dispatcher does not wait for the pipelines it spawns; wait_idle()
    is available for graceful shutdown and tests. Finished runs are held
    until wait_idle() drains them, at most max_finished of them.
    """

    def __init__(
        self,
        engine: JobEngine,
        settings: PipelineSettings | None = None,
        pipelines: Sequence[Pipeline] = DEFAULT_PIPELINES,
        max_finished: int = MAX_FINISHED_RUNS,
    ):
        self.engine = engine
        self.settings = settings or PipelineSettings()
        self.pipelines = tuple(pipelines)
        self.reporter = StatusReporter(engine)
        self._tasks: set[asyncio.Task] = set()
        self.finished: deque[PipelineRun] = deque(maxlen=max_finished)

    def register(self, router: EventRouter) -> None:
        """Register trigger and storage-notification handlers on a router."""
        for name in TRIGGER_EVENTS:
            router.register(name, self.trigger)
        for name in STORAGE_EVENTS:
            router.register(name, log_event)

    def trigger(self, event: Event, project: Project) -> list[asyncio.Task]:
        """
        Spawn one task per pipeline without waiting for them.

        Must be called from within a running event loop.
        """
        logger.info(
            f"Event {event.name} triggers {len(self.pipelines)} pipeline(s) "
            f"for {project.repo_name}"
        )
        tasks = []
        for pipeline in self.pipelines:
            task = asyncio.create_task(
                self._run_detached(pipeline, event, project),
                name=f"pipeline-{pipeline.name}-{project.id}",
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            tasks.append(task)
        return tasks

    async def _run_detached(
        self, pipeline: Pipeline, event: Event, project: Project
    ) -> PipelineRun:
        run = await self.run_pipeline(pipeline, event, project)
        self.finished.append(run)
        return run

    async def run_pipeline(
        self, pipeline: Pipeline, event: Event, project: Project
    ) -> PipelineRun:
        """
        Run one pipeline end to end: start report, jobs, end report.

        Reporting errors and unexpected failures are logged and recorded on
        the returned PipelineRun rather than raised, so sibling pipelines are
        unaffected.
        """
        run = PipelineRun(pipeline=pipeline.name, project_id=project.id)
        check = CheckRun(
            name=pipeline.name, title=pipeline.title, payload=event.payload_text()
        )
        image = self.settings.check_run_image

        start_job = check_run_job(
            f"start-{pipeline.name}", check, f"Beginning {pipeline.title}", image=image
        )
        end_job = check_run_job(f"end-{pipeline.name}", check, "", image=image)
        if pipeline.advisory:
            template = EndJobTemplate.advisory(
                end_job, pipeline.success_summary, pipeline.failure_summary
            )
        else:
            template = EndJobTemplate(
                end_job, pipeline.success_summary, pipeline.failure_summary
            )

        steps = pipeline.build_steps(project, self.settings)
        runner = JobRunner(self.engine)

        try:
            run.outcome = await self.reporter.wrap(
                start_job,
                lambda: runner.run_sequential(steps),
                template,
                on_state=run.advance,
            )
        except Exception as e:
            run.error = e
            logger.error(
                f"Pipeline {pipeline.name} for {project.repo_name} aborted: {e}",
                exc_info=True,
            )
        else:
            status = "succeeded" if run.outcome.is_ok else "failed"
            logger.info(f"Pipeline {pipeline.name} for {project.repo_name} {status}")
        return run

    async def wait_idle(self) -> list[PipelineRun]:
        """
        Wait for every in-flight pipeline task.

        Returns:
            Every run finished since the previous call, including runs that
            completed before this call; each run is returned only once
        """
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
        runs = list(self.finished)
        self.finished.clear()
        return runs


def log_event(event: Event, project: Project) -> None:
    """Log a storage notification; no pipeline is attached to these."""
    logger.info(
        f"Received {event.name} ({event.provider}) for project {project.id}: "
        f"{event.payload_text()}"
    )
