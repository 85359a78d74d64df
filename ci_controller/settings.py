"""
Pipeline configuration read from the environment.

Environment Variables:
    CI_BUILD_IMAGE: Image for build/test jobs (default: golang:1.21)
    CI_LINT_IMAGE: Image for analysis jobs (default: golangci/golangci-lint:latest)
    CI_CHECK_RUN_IMAGE: Image for check-run reporting jobs
    CI_SOURCE_ROOT: Root of working paths inside job containers (default: /go/src)
    CI_FORCE_PULL: Pull images before every job when "1"/"true" (default: false)
"""

import logging
import os
from dataclasses import dataclass

from .reporter import DEFAULT_CHECK_RUN_IMAGE

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class PipelineSettings:
    """Images and paths used when building pipeline jobs."""

    build_image: str = "golang:1.21"
    lint_image: str = "golangci/golangci-lint:latest"
    check_run_image: str = DEFAULT_CHECK_RUN_IMAGE
    source_root: str = "/go/src"
    force_pull: bool = False

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        """Build settings from CI_* environment variables, falling back to defaults."""
        defaults = cls()
        settings = cls(
            build_image=os.environ.get("CI_BUILD_IMAGE", defaults.build_image),
            lint_image=os.environ.get("CI_LINT_IMAGE", defaults.lint_image),
            check_run_image=os.environ.get(
                "CI_CHECK_RUN_IMAGE", defaults.check_run_image
            ),
            source_root=os.environ.get("CI_SOURCE_ROOT", defaults.source_root),
            force_pull=_env_flag("CI_FORCE_PULL", defaults.force_pull),
        )
        logger.debug(f"Pipeline settings: {settings}")
        return settings
