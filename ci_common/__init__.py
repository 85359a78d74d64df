"""
CI Common module.

This module contains shared domain models, errors and interfaces used across
the components (controller, server, persistence, client).

The common module has no dependencies on other ci_* modules, making it
a pure domain layer that can be imported by any component.
"""

from .engine import JobEngine
from .errors import ExecutionError, HandlerError, ReportingError
from .models import (
    CheckRun,
    Conclusion,
    Err,
    Event,
    Job,
    JobResult,
    Ok,
    Outcome,
    PipelineState,
    Project,
)
from .repository import ProjectRepository

__all__ = [
    "CheckRun",
    "Conclusion",
    "Err",
    "Event",
    "ExecutionError",
    "HandlerError",
    "Job",
    "JobEngine",
    "JobResult",
    "Ok",
    "Outcome",
    "PipelineState",
    "Project",
    "ProjectRepository",
    "ReportingError",
]
