"""Bring the application stack up and down.

``up`` runs these steps in order and stops at the first failure:
preflight, build, network, database, database-ready, application,
application-ready, then optionally prune. A failed step is diagnosed
against the failure catalogue and raised as ``StackStepError``.
"""

import time
from contextlib import contextmanager
from typing import Iterator, List, Optional

import structlog

from shared.logging import bind_context, unbind_context
from shared.metrics import StackMetrics, setup_metrics
from shared.models import ContainerSpec, ContainerStatus, StackStatus, StepResult

from ..config import Config
from ..datasource import app_environment, database_environment
from ..diagnostics import diagnose
from ..errors import DockerCommandError, HealthCheckTimeout, StackStepError
from ..health import HealthChecker, mysql_ready_pattern
from . import commands
from .docker_cli import DockerCLI

logger = structlog.get_logger(__name__)


class StackOrchestrator:
    """Runs the deployment steps for the MySQL and application containers."""

    def __init__(
        self,
        config: Config,
        docker: Optional[DockerCLI] = None,
        health: Optional[HealthChecker] = None,
        metrics: Optional[StackMetrics] = None,
    ):
        self.config = config
        self.docker = docker or DockerCLI(binary=config.docker_binary, timeout=config.command_timeout)
        self.health = health or HealthChecker(self.docker)
        self.metrics = metrics or setup_metrics()
        self.results: List[StepResult] = []

    # ------------------------------------------------------------------
    # Container specs
    # ------------------------------------------------------------------

    def database_spec(self) -> ContainerSpec:
        mysql = self.config.mysql
        ports = {mysql.port: mysql.host_port} if mysql.host_port else {}
        return ContainerSpec(
            name=mysql.container_name,
            image=mysql.image,
            network=self.config.network.name,
            env=database_environment(self.config),
            ports=ports,
        )

    def application_spec(self) -> ContainerSpec:
        app = self.config.app
        return ContainerSpec(
            name=app.container_name,
            image=app.image_ref,
            network=self.config.network.name,
            env=app_environment(self.config),
            ports={app.port: app.host_port},
        )

    @property
    def application_url(self) -> str:
        return f"http://localhost:{self.config.app.host_port}{self.config.app.health_path}"

    # ------------------------------------------------------------------
    # Step bookkeeping
    # ------------------------------------------------------------------

    @contextmanager
    def _step(self, name: str, logs_from: Optional[str] = None) -> Iterator[StepResult]:
        result = StepResult(step=name, success=False)
        bind_context(step=name)
        logger.info("stack_step_started")
        started = time.monotonic()
        try:
            yield result
        except Exception as e:
            duration = time.monotonic() - started
            text = self._failure_text(e, logs_from)
            diagnoses = diagnose(text)
            self.metrics.record_step(name, False, duration)
            self.metrics.record_failure(name, diagnoses[0].failure_mode.id if diagnoses else None)
            self.results.append(result.model_copy(update={
                "duration_seconds": duration,
                "detail": str(e),
            }))
            logger.error(
                "stack_step_failed",
                error=str(e),
                error_type=type(e).__name__,
                failure_modes=[d.failure_mode.id for d in diagnoses],
            )
            raise StackStepError(name, e, diagnoses) from e
        else:
            duration = time.monotonic() - started
            self.metrics.record_step(name, True, duration)
            finished = result.model_copy(update={"success": True, "duration_seconds": duration})
            self.results.append(finished)
            logger.info("stack_step_finished", duration_seconds=round(duration, 2), detail=result.detail)
        finally:
            unbind_context("step")

    def _failure_text(self, error: Exception, logs_from: Optional[str]) -> str:
        parts = [str(error)]
        if isinstance(error, DockerCommandError):
            parts.append(error.output)
        if isinstance(error, HealthCheckTimeout) and error.last_error:
            parts.append(error.last_error)
        if logs_from:
            try:
                parts.append(self.docker.logs(logs_from, tail=200))
            except DockerCommandError as e:
                logger.debug("container_logs_unavailable", container=logs_from, error=str(e))
        return "\n".join(part for part in parts if part)

    def _export_metrics(self) -> None:
        if self.config.metrics_textfile:
            self.metrics.write_textfile(self.config.metrics_textfile)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def plan(self) -> List[List[str]]:
        """The docker commands ``up`` runs on a clean host, in order."""
        build = self.config.build
        return [
            commands.build_image_command(
                self.config.app.image_ref, build.context, build.dockerfile_path, build.no_cache
            ),
            commands.create_network_command(self.config.network.name, self.config.network.driver),
            commands.run_container_command(self.database_spec()),
            commands.run_container_command(self.application_spec()),
        ]

    def up(self, build: bool = True, fresh: bool = False, prune: bool = False) -> List[StepResult]:
        """Build and start the stack, waiting until both containers serve.

        Args:
            build: Build the application image before starting
            fresh: Recreate containers even when they are already running
            prune: Remove dangling images afterwards

        Returns:
            One result per executed step

        Raises:
            StackStepError: on the first failed step
        """
        self.results = []
        bind_context(network=self.config.network.name)
        try:
            self._up(build, fresh, prune)
        finally:
            unbind_context("network")
            self._export_metrics()
        return list(self.results)

    def _up(self, build: bool, fresh: bool, prune: bool) -> None:
        cfg = self.config

        with self._step("preflight") as step:
            step.detail = f"docker server {self.docker.version()}"

        with self._step("build") as step:
            image = cfg.app.image_ref
            if build:
                self.docker.build_image(
                    image, cfg.build.context, cfg.build.dockerfile_path, cfg.build.no_cache
                )
                step.detail = f"built {image}"
            elif not self.docker.image_exists(image):
                argv = [cfg.docker_binary, *commands.image_inspect_command(image)]
                raise DockerCommandError(argv, 1, "", f"Unable to find image '{image}' locally")
            else:
                step.detail = f"using existing {image}"

        with self._step("network") as step:
            if self.docker.network_exists(cfg.network.name):
                step.detail = f"network {cfg.network.name} exists"
            else:
                self.docker.create_network(cfg.network.name, cfg.network.driver)
                step.detail = f"created network {cfg.network.name}"

        database = self.database_spec()
        with self._step("database") as step:
            step.detail = self._start(database, fresh)

        with self._step("database-ready", logs_from=database.name) as step:
            step.detail = self.health.wait_for_log(
                database.name,
                mysql_ready_pattern(cfg.mysql.port),
                timeout=cfg.mysql_ready_timeout,
                interval=cfg.poll_interval,
            )

        application = self.application_spec()
        with self._step("application") as step:
            step.detail = self._start(application, fresh or build)

        with self._step("application-ready", logs_from=application.name) as step:
            status_code = self.health.wait_for_http(
                self.application_url, timeout=cfg.app_ready_timeout, interval=cfg.poll_interval
            )
            step.detail = f"{self.application_url} answered {status_code}"

        if prune:
            with self._step("prune") as step:
                output = self.docker.prune_dangling_images().strip()
                step.detail = output.splitlines()[-1] if output else "nothing to prune"

    def _start(self, spec: ContainerSpec, recreate: bool) -> str:
        current = self.docker.container_state(spec.name)
        if current.is_up and not recreate:
            return f"{spec.name} already running"
        if current.state != "missing":
            # A stopped container keeps its name reserved
            logger.info("removing_existing_container", container=spec.name, state=current.state)
            self.docker.remove_container(spec.name)
        logger.info(
            "starting_container",
            container=spec.name,
            image=spec.image,
            env=dict(spec.env),
            ports=dict(spec.ports),
        )
        container_id = self.docker.run_container(spec)
        return f"started {spec.name} ({container_id[:12]})"

    def down(self, remove_network: bool = True) -> List[str]:
        """Remove both containers and, optionally, the network.

        Returns:
            Names of the removed resources
        """
        removed = []
        for name in (self.config.app.container_name, self.config.mysql.container_name):
            if self.docker.container_state(name).state != "missing":
                self.docker.remove_container(name)
                removed.append(name)
                logger.info("container_removed", container=name)
        if remove_network and self.docker.network_exists(self.config.network.name):
            self.docker.remove_network(self.config.network.name)
            removed.append(self.config.network.name)
            logger.info("network_removed", network=self.config.network.name)
        self.metrics.containers_up.set(0)
        self._export_metrics()
        return removed

    def status(self) -> StackStatus:
        """Report the network and both containers, like ``docker ps``."""
        names = [self.config.mysql.container_name, self.config.app.container_name]
        found = {c.name: c for c in self.docker.list_containers(names)}
        containers = [found.get(name, ContainerStatus(name=name)) for name in names]
        status = StackStatus(
            network=self.config.network.name,
            network_exists=self.docker.network_exists(self.config.network.name),
            containers=containers,
        )
        self.metrics.containers_up.set(sum(1 for c in containers if c.is_up))
        return status
