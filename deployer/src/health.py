"""Readiness probes for the database and the application."""

import re
import time
from typing import Callable, Optional

import requests
import structlog

from .errors import DockerCommandError, HealthCheckTimeout
from .runtime.docker_cli import DockerCLI

logger = structlog.get_logger(__name__)

# mysqld logs this twice: once for the temporary init server (port: 0) and
# once for the real server, which is the one we wait for.
MYSQL_READY_PATTERN = r"ready for connections.*port: {port}\b"


def mysql_ready_pattern(port: int = 3306) -> str:
    return MYSQL_READY_PATTERN.format(port=port)


class HealthChecker:
    """Polls container logs and HTTP endpoints until they look ready."""

    def __init__(
        self,
        docker: DockerCLI,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.docker = docker
        self.session = session or requests.Session()
        self.clock = clock
        self.sleep = sleep

    def wait_for_log(self, container: str, pattern: str, timeout: float, interval: float = 2.0) -> str:
        """Wait until a container's logs match ``pattern``.

        Returns:
            The matching log line

        Raises:
            HealthCheckTimeout: when the pattern does not appear in time or
                the container exits first
        """
        regex = re.compile(pattern)
        deadline = self.clock() + timeout
        last_error = None
        while True:
            try:
                output = self.docker.logs(container)
            except DockerCommandError as e:
                output = ""
                last_error = str(e)
            else:
                match = regex.search(output)
                if match:
                    line = match.group(0)
                    logger.info("container_ready", container=container, matched=line)
                    return line
                state = self.docker.container_state(container)
                if state.state in ("exited", "dead", "missing"):
                    raise HealthCheckTimeout(
                        container, timeout, f"container is {state.state}\n{output[-2000:]}"
                    )
            if self.clock() >= deadline:
                raise HealthCheckTimeout(container, timeout, last_error or output[-2000:] or None)
            self.sleep(interval)

    def wait_for_http(self, url: str, timeout: float, interval: float = 2.0) -> int:
        """Wait until ``url`` answers with a status below 500.

        Any response, even 404, proves the server is serving; 5xx usually
        means the app started but its datasource is broken.

        Returns:
            The HTTP status code
        """
        deadline = self.clock() + timeout
        last_error = None
        while True:
            try:
                response = self.session.get(url, timeout=max(interval, 1.0))
            except requests.RequestException as e:
                last_error = f"{type(e).__name__}: {e}"
            else:
                if response.status_code < 500:
                    logger.info("http_ready", url=url, status_code=response.status_code)
                    return response.status_code
                last_error = f"HTTP {response.status_code}"
            if self.clock() >= deadline:
                raise HealthCheckTimeout(url, timeout, last_error)
            logger.debug("http_not_ready", url=url, error=last_error)
            self.sleep(interval)
