"""Thin wrapper over the docker command line.

Every call runs ``docker <argv>`` with captured output. Non-zero exits raise
``DockerCommandError``; failures to reach the daemon raise
``DockerUnavailableError``. Read-only commands (inspect, ps, logs, version)
are retried on those; builds and container changes are not.
"""

import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

import structlog

from shared.models import ContainerSpec, ContainerStatus

from ..errors import DockerCommandError, DockerTimeoutError, DockerUnavailableError
from ..utils.error_handler import RetryConfig, retry_with_backoff
from . import commands

logger = structlog.get_logger(__name__)

DAEMON_UNAVAILABLE_MARKERS = (
    "cannot connect to the docker daemon",
    "is the docker daemon running",
    "error during connect",
    "docker daemon is not running",
)

NOT_FOUND_MARKERS = ("no such", "not found")


class DockerCLI:
    """Runs docker commands through subprocess."""

    def __init__(
        self,
        binary: str = "docker",
        timeout: float = 600.0,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.binary = binary
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig(max_attempts=3)
        self._run_with_retry = retry_with_backoff(self.retry_config)(self._run_once)

    def run(
        self,
        argv: Sequence[str],
        check: bool = True,
        timeout: Optional[float] = None,
        retry: bool = False,
    ) -> subprocess.CompletedProcess:
        """Run one docker command.

        Args:
            argv: Arguments after the docker binary
            check: Raise on non-zero exit
            timeout: Override the default command timeout
            retry: Retry when the daemon is unreachable. Only for commands
                that are safe to repeat (inspect, ps, logs, version)

        Returns:
            The completed process with text stdout/stderr

        Raises:
            DockerCommandError: non-zero exit or missing binary
            DockerTimeoutError: the command outlived its timeout
        """
        if retry:
            return self._run_with_retry(list(argv), check, timeout)
        return self._run_once(list(argv), check, timeout)

    def _run_once(self, argv: List[str], check: bool, timeout: Optional[float]) -> subprocess.CompletedProcess:
        full_argv = [self.binary, *argv]
        timeout = timeout or self.timeout
        logger.debug("docker_command", argv=commands.to_shell(commands.redact_argv(argv), self.binary))
        try:
            result = subprocess.run(
                full_argv,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError as e:
            raise DockerCommandError(full_argv, 127, "", f"{self.binary}: command not found") from e
        except subprocess.TimeoutExpired as e:
            logger.warning("docker_command_timeout", argv=argv[:2], timeout=timeout)
            raise DockerTimeoutError(commands.redact_argv(full_argv), timeout) from e

        if result.returncode != 0:
            stderr_lower = (result.stderr or "").lower()
            if any(marker in stderr_lower for marker in DAEMON_UNAVAILABLE_MARKERS):
                raise DockerUnavailableError(full_argv, result.returncode, result.stdout, result.stderr)
            if check:
                logger.debug(
                    "docker_command_failed",
                    argv=argv[:2],
                    returncode=result.returncode,
                    stderr=(result.stderr or "").strip()[-500:],
                )
                raise DockerCommandError(full_argv, result.returncode, result.stdout, result.stderr)
        return result

    def _exists(self, argv: Sequence[str]) -> bool:
        result = self.run(argv, check=False, retry=True)
        if result.returncode == 0:
            return True
        if any(marker in (result.stderr or "").lower() for marker in NOT_FOUND_MARKERS):
            return False
        raise DockerCommandError([self.binary, *argv], result.returncode, result.stdout, result.stderr)

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def build_image(self, tag: str, context: Path, dockerfile: Optional[Path] = None, no_cache: bool = False) -> str:
        """Build an image and return the build output."""
        result = self.run(commands.build_image_command(tag, context, dockerfile, no_cache))
        # BuildKit reports progress on stderr
        return result.stdout + result.stderr

    def image_exists(self, image: str) -> bool:
        return self._exists(commands.image_inspect_command(image))

    def prune_dangling_images(self) -> str:
        return self.run(commands.prune_images_command()).stdout

    # ------------------------------------------------------------------
    # Networks
    # ------------------------------------------------------------------

    def network_exists(self, name: str) -> bool:
        return self._exists(commands.network_inspect_command(name))

    def create_network(self, name: str, driver: str = "bridge") -> None:
        self.run(commands.create_network_command(name, driver))

    def remove_network(self, name: str) -> None:
        self.run(commands.remove_network_command(name))

    # ------------------------------------------------------------------
    # Containers
    # ------------------------------------------------------------------

    def run_container(self, spec: ContainerSpec) -> str:
        """Start a container and return its id."""
        return self.run(commands.run_container_command(spec)).stdout.strip()

    def remove_container(self, name: str) -> None:
        self.run(commands.remove_container_command(name))

    def list_containers(self, names: Sequence[str] = ()) -> List[ContainerStatus]:
        output = self.run(commands.ps_command(names), retry=True).stdout
        statuses = []
        for line in output.splitlines():
            if not line.strip():
                continue
            parts = line.split("\t")
            parts += [""] * (4 - len(parts))
            statuses.append(
                ContainerStatus(name=parts[0], image=parts[1], state=parts[2], status=parts[3])
            )
        if names:
            wanted = set(names)
            statuses = [s for s in statuses if s.name in wanted]
        return statuses

    def container_state(self, name: str) -> ContainerStatus:
        """Status of one container; state is ``missing`` if it does not exist."""
        for status in self.list_containers([name]):
            if status.name == name:
                return status
        return ContainerStatus(name=name)

    def logs(self, name: str, tail: Optional[int] = None) -> str:
        result = self.run(commands.logs_command(name, tail), retry=True)
        # Containers write to both streams; MySQL logs to stderr
        return result.stdout + result.stderr

    def version(self) -> str:
        return self.run(commands.version_command(), retry=True).stdout.strip()

