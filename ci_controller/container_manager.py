"""
Docker-backed execution engine.

This module runs jobs as throwaway Docker containers through the docker CLI.
Containers are named "{prefix}{job_id}-{suffix}" and labelled so that
leftovers from crashed runs can be found and removed.
"""

import asyncio
import logging
import os
import re
import tempfile
import uuid
from dataclasses import dataclass

from ci_common.engine import JobEngine
from ci_common.errors import ExecutionError
from ci_common.models import Job, JobResult

from .pipelines import SOURCE_MOUNT

logger = logging.getLogger(__name__)

CONTAINER_LABEL = "ci-events.job"

# Keep only the tail of a failed job's output in the error
MAX_ERROR_OUTPUT = 4000


def _is_multiline(value: str) -> bool:
    return "\n" in value or "\r" in value


@dataclass
class ContainerInfo:
    """A job container as listed by Docker."""

    container_id: str
    name: str
    job_id: str
    status: str


class DockerJobEngine(JobEngine):
    """
    Executes jobs with `docker run`.

    Each job runs its tasks joined with && in `sh -c`, so the first failing
    task fails the job. Combined stdout/stderr is the job's output.
    """

    def __init__(self, container_name_prefix: str = "", source_dir: str | None = None):
        """
        Initialize the engine.

        Args:
            container_name_prefix: Optional prefix for container names.
                                  Enables parallel instances without interference.
            source_dir: Host directory mounted read-only at /src in every job
        """
        self.container_name_prefix = container_name_prefix
        self.source_dir = source_dir

    def _get_container_name(self, job_id: str) -> str:
        """Container name for a job: prefix, job ID and a random suffix."""
        return f"{self.container_name_prefix}{job_id}-{uuid.uuid4().hex[:8]}"

    def _extract_job_id(self, container_name: str) -> str | None:
        """
        Extract the job ID from a container name created by this engine.

        Returns:
            Job ID if the name carries our prefix and suffix, None otherwise
        """
        if not container_name.startswith(self.container_name_prefix):
            return None

        match = re.match(
            r"^([a-z0-9][a-z0-9-]*)-[0-9a-f]{8}$",
            container_name[len(self.container_name_prefix) :],
        )
        return match.group(1) if match else None

    def build_command(
        self, job: Job, container_name: str, env_file: str | None = None
    ) -> list[str]:
        """
        Build the docker CLI arguments for running a job.

        Args:
            job: Job to run
            container_name: Name for the job container
            env_file: File already holding the job's single-line env values.
                      Without it they are passed inline as -e KEY=VALUE.

        Multi-line values cannot be written to an env file, so they are
        passed by name only (-e KEY) and read from the docker CLI's own
        environment (see _process_env).
        """
        args = [
            "docker",
            "run",
            "--rm",
            "--name",
            container_name,
            "--label",
            f"{CONTAINER_LABEL}={job.id}",
        ]
        if env_file:
            args.extend(["--env-file", env_file])
        for key, value in job.env.items():
            if _is_multiline(value):
                args.extend(["-e", key])
            elif not env_file:
                args.extend(["-e", f"{key}={value}"])
        if self.source_dir:
            args.extend(["-v", f"{self.source_dir}:{SOURCE_MOUNT}:ro"])
        args.append(job.image)
        if job.tasks:
            args.extend(["sh", "-c", " && ".join(job.tasks)])
        return args

    def _write_env_file(self, job: Job) -> str:
        """
        Write the job's single-line env values to a private temp file.

        Keeps large values such as CHECK_PAYLOAD off the command line, where
        each argument is limited in size by the kernel. The caller removes
        the file.
        """
        fd, path = tempfile.mkstemp(suffix=".env", prefix=f"ci_job_{job.id}_")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            for key, value in job.env.items():
                if not _is_multiline(value):
                    f.write(f"{key}={value}\n")
        return path

    def _process_env(self, job: Job) -> dict[str, str] | None:
        """Environment for the docker CLI carrying the job's multi-line values."""
        multiline = {k: v for k, v in job.env.items() if _is_multiline(v)}
        if not multiline:
            return None
        return {**os.environ, **multiline}

    async def _pull_image(self, image: str) -> None:
        logger.info(f"Pulling image {image}")
        try:
            process = await asyncio.create_subprocess_exec(
                "docker",
                "pull",
                image,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExecutionError(f"Failed to run docker: {e}") from e

        _, stderr = await process.communicate()

        if process.returncode != 0:
            raise ExecutionError(
                f"Failed to pull image {image}: {stderr.decode().strip()}"
            )

    async def execute(self, job: Job) -> JobResult:
        """
        Run a job container to completion.

        Args:
            job: Job to run

        Returns:
            JobResult with the container's combined output

        Raises:
            ExecutionError: If docker cannot be started, the pull fails or the
                            container exits non-zero
        """
        if job.force_pull:
            await self._pull_image(job.image)

        container_name = self._get_container_name(job.id)
        logger.info(f"Starting container {container_name} ({job.image})")

        env_file = self._write_env_file(job)
        try:
            try:
                process = await asyncio.create_subprocess_exec(
                    *self.build_command(job, container_name, env_file),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                    env=self._process_env(job),
                )
            except OSError as e:
                raise ExecutionError(f"Failed to run docker: {e}") from e

            stdout, _ = await process.communicate()
        finally:
            os.unlink(env_file)

        output = stdout.decode(errors="replace") if stdout else ""

        if process.returncode != 0:
            logger.warning(
                f"Container {container_name} exited with code {process.returncode}"
            )
            logger.debug(f"Output of {container_name}:\n{output[-MAX_ERROR_OUTPUT:]}")
            raise ExecutionError(
                f"exit {process.returncode}", output=output[-MAX_ERROR_OUTPUT:]
            )

        logger.info(f"Container {container_name} finished")
        return JobResult(output=output)

    async def list_ci_containers(self) -> list[ContainerInfo]:
        """
        List all job containers created by this engine (running and stopped).

        Returns:
            ContainerInfo for every container whose name matches our prefix
        """
        process = await asyncio.create_subprocess_exec(
            "docker",
            "ps",
            "-a",
            "--filter",
            f"label={CONTAINER_LABEL}",
            "--format",
            "{{.ID}}\t{{.Names}}\t{{.State}}",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        stdout, stderr = await process.communicate()

        if process.returncode != 0:
            raise RuntimeError(f"Failed to list containers: {stderr.decode()}")

        containers = []
        for line in stdout.decode().strip().split("\n"):
            if not line:
                continue
            container_id, name, status = line.split("\t")
            job_id = self._extract_job_id(name)
            if job_id:
                containers.append(
                    ContainerInfo(
                        container_id=container_id,
                        name=name,
                        job_id=job_id,
                        status=status.lower(),
                    )
                )

        return containers

    async def remove_container(self, container_id: str, force: bool = False) -> None:
        """
        Remove a container.

        Args:
            container_id: Docker container ID or name
            force: If True, force removal even if running

        Raises:
            RuntimeError: If removal fails
        """
        args = ["docker", "rm"]
        if force:
            args.append("--force")
        args.append(container_id)

        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        _, stderr = await process.communicate()

        if process.returncode != 0:
            # Ignore "already removed" errors
            error = stderr.decode()
            if "No such container" not in error:
                raise RuntimeError(f"Failed to remove container: {error}")

    async def cleanup_containers(self) -> int:
        """
        Force-remove leftover job containers from earlier runs.

        Returns:
            Number of containers removed
        """
        removed = 0
        for container in await self.list_ci_containers():
            try:
                await self.remove_container(container.name, force=True)
                removed += 1
            except RuntimeError as e:
                logger.warning(f"Could not remove container {container.name}: {e}")
        return removed
