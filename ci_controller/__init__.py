"""
CI Controller module.

This module contains the orchestration core: the event router, the
sequential job runner, the check-run status reporter and the pipeline
dispatcher, plus a Docker-backed execution engine.

The controller can run standalone (see __main__) or behind the ci_server
gateway, which feeds it events received over HTTP.
"""

from .container_manager import ContainerInfo, DockerJobEngine
from .dispatcher import PipelineDispatcher, PipelineRun
from .reporter import EndJobTemplate, StatusReporter, check_run_job
from .router import EventRouter
from .runner import JobRunner
from .settings import PipelineSettings

__all__ = [
    "ContainerInfo",
    "DockerJobEngine",
    "EndJobTemplate",
    "EventRouter",
    "JobRunner",
    "PipelineDispatcher",
    "PipelineRun",
    "PipelineSettings",
    "StatusReporter",
    "check_run_job",
]
