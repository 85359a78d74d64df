"""
Pipeline definitions run on check-suite events.

Each pipeline builds fresh jobs on every invocation; nothing is shared
between pipelines or between invocations.
"""

import shlex
from collections.abc import Callable
from dataclasses import dataclass

from ci_common.models import Job, Project

from .runner import Step
from .settings import PipelineSettings

# Build jobs get the checked-out source mounted here by the engine
SOURCE_MOUNT = "/src"


@dataclass(frozen=True)
class Pipeline:
    """
    One independently reporting pipeline.

    Advisory pipelines report failures as neutral so they never block merges.
    """

    name: str
    title: str
    success_summary: str
    failure_summary: str
    build_steps: Callable[[Project, PipelineSettings], list[Step]]
    advisory: bool = False


def _copy_source_tasks(path: str) -> list[str]:
    path = shlex.quote(path)
    return [
        f"mkdir -p {path}",
        f"cp -a {SOURCE_MOUNT}/. {path}",
        f"cd {path}",
    ]


def build_steps(project: Project, settings: PipelineSettings) -> list[Step]:
    path = project.working_path(settings.source_root)
    job = Job(
        id="go-build-test",
        image=settings.build_image,
        tasks=[*_copy_source_tasks(path), "go build ./...", "go test -v ./..."],
        env={"CGO_ENABLED": "0", "REPO_NAME": project.repo_name},
        force_pull=settings.force_pull,
    )
    return [job]


def analyze_steps(project: Project, settings: PipelineSettings) -> list[Step]:
    path = project.working_path(settings.source_root)
    job = Job(
        id="go-lint",
        image=settings.lint_image,
        tasks=[*_copy_source_tasks(path), "golangci-lint run ./..."],
        env={"REPO_NAME": project.repo_name},
        force_pull=settings.force_pull,
    )
    return [job]


BUILD = Pipeline(
    name="build",
    title="Build and test",
    success_summary="Build and tests passed",
    failure_summary="Build or tests failed",
    build_steps=build_steps,
)

ANALYZE = Pipeline(
    name="analyze",
    title="Static analysis",
    success_summary="No lint issues found",
    failure_summary="Linter reported issues",
    build_steps=analyze_steps,
    advisory=True,
)

DEFAULT_PIPELINES = (BUILD, ANALYZE)
