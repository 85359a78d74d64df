"""
Standalone entrypoint for dispatching a single event locally.

This runs the same router and pipelines the gateway uses, against the
Docker engine, and waits for every triggered pipeline to finish. Useful for
trying pipelines without the HTTP gateway.

Usage:
    python -m ci_controller --event check_suite:requested --repo-name org/repo
    ci-controller [OPTIONS]  (after pip install)

Environment Variables:
    CI_CONTAINER_PREFIX: Container name prefix for namespace isolation (default: "")
    CI_SOURCE_DIR: Host directory mounted at /src in job containers
    CI_BUILD_IMAGE, CI_LINT_IMAGE, CI_CHECK_RUN_IMAGE, CI_SOURCE_ROOT, CI_FORCE_PULL:
        see ci_controller.settings
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from ci_common.models import Event, Project
from ci_controller.container_manager import DockerJobEngine
from ci_controller.dispatcher import PipelineDispatcher, PipelineRun
from ci_controller.router import EventRouter
from ci_controller.settings import PipelineSettings

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="CI Controller - dispatch one event through the pipelines",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  CI_CONTAINER_PREFIX   Container name prefix for namespace isolation
  CI_SOURCE_DIR         Host directory mounted at /src in job containers
  CI_BUILD_IMAGE        Image for build/test jobs
  CI_LINT_IMAGE         Image for analysis jobs
  CI_CHECK_RUN_IMAGE    Image for check-run reporting jobs

Note: Command-line arguments override environment variables.

Examples:
  # Run build and analyze pipelines for a repository
  ci-controller --event check_suite:requested --repo-name example/app --source-dir .

  # Replay a stored webhook payload
  ci-controller --event check_suite:rerequested --repo-name example/app \\
      --payload-file payload.json --log-level DEBUG
        """,
    )

    parser.add_argument(
        "--event",
        type=str,
        default="exec",
        help="Event name to dispatch (default: exec)",
    )

    parser.add_argument(
        "--repo-name",
        type=str,
        required=True,
        help="Repository name of the project, e.g. example/app",
    )

    parser.add_argument(
        "--project-id",
        type=str,
        default=None,
        help="Project ID (default: derived from the repository name)",
    )

    parser.add_argument(
        "--payload-file",
        type=Path,
        default=None,
        help="File whose contents become the event payload",
    )

    parser.add_argument(
        "--source-dir",
        type=str,
        default=None,
        help="Host source directory for jobs (default: CI_SOURCE_DIR env)",
    )

    parser.add_argument(
        "--container-prefix",
        type=str,
        default=None,
        help="Container name prefix (default: CI_CONTAINER_PREFIX env or '')",
    )

    parser.add_argument(
        "--cleanup",
        action="store_true",
        help="Remove leftover job containers from earlier runs before dispatching",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )

    return parser.parse_args(argv)


def get_container_prefix(args: argparse.Namespace) -> str:
    """Container name prefix from CLI args or environment."""
    if args.container_prefix is not None:
        return args.container_prefix
    return os.environ.get("CI_CONTAINER_PREFIX", "")


def get_source_dir(args: argparse.Namespace) -> str | None:
    """Host source directory from CLI args or environment."""
    if args.source_dir:
        return str(Path(args.source_dir).resolve())
    return os.environ.get("CI_SOURCE_DIR") or None


def build_event(args: argparse.Namespace) -> Event:
    payload = args.payload_file.read_bytes() if args.payload_file else b""
    return Event(name=args.event, payload=payload, provider="local")


def build_project(args: argparse.Namespace) -> Project:
    project_id = args.project_id or args.repo_name.replace("/", "-").lower()
    return Project(id=project_id, repo_name=args.repo_name)


async def run_event(args: argparse.Namespace) -> list[PipelineRun]:
    """
    Dispatch one event and wait for the pipelines it triggered.

    Returns:
        The finished pipeline runs
    """
    engine = DockerJobEngine(
        container_name_prefix=get_container_prefix(args),
        source_dir=get_source_dir(args),
    )
    if args.cleanup:
        removed = await engine.cleanup_containers()
        logger.info(f"Removed {removed} leftover container(s)")

    router = EventRouter()
    dispatcher = PipelineDispatcher(engine, PipelineSettings.from_env())
    dispatcher.register(router)

    event = build_event(args)
    project = build_project(args)

    logger.info(f"Dispatching {event.name} for {project.repo_name}")
    errors = await router.dispatch(event, project)
    for error in errors:
        logger.error(str(error))

    runs = await dispatcher.wait_idle()
    for run in runs:
        conclusion = "error" if run.error else ("ok" if run.outcome.is_ok else "failed")
        logger.info(f"Pipeline {run.pipeline}: {conclusion}")
    return runs


def main(argv: list[str] | None = None) -> int:
    """
    Main entrypoint for the controller.

    Returns:
        Exit code (0 when every pipeline reported, 1 otherwise)
    """
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        runs = asyncio.run(run_event(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1

    return 1 if any(run.error for run in runs) else 0


if __name__ == "__main__":
    sys.exit(main())
