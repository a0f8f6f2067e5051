"""Prometheus metrics definitions and helpers.

Provides metric definitions for stack deployment steps.
"""

from pathlib import Path
from typing import Optional

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    write_to_textfile,
    REGISTRY,
    CollectorRegistry,
)


class StackMetrics:
    """Deployment step metrics."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        """Initialize stack metrics.

        Args:
            registry: Prometheus registry to use
        """
        self.registry = registry

        # Steps executed
        self.steps_total = Counter(
            "bankapp_stack_steps_total",
            "Total number of stack steps executed",
            ["step", "status"],
            registry=registry,
        )

        # Step duration
        self.step_duration = Histogram(
            "bankapp_stack_step_duration_seconds",
            "Time spent executing stack steps",
            ["step"],
            buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0],
            registry=registry,
        )

        # Failures by diagnosed failure mode
        self.failures_total = Counter(
            "bankapp_stack_failures_total",
            "Total number of failed steps by diagnosed failure mode",
            ["step", "failure_mode"],
            registry=registry,
        )

        # Containers currently up
        self.containers_up = Gauge(
            "bankapp_stack_containers_up",
            "Number of stack containers reported as running",
            registry=registry,
        )

    def record_step(self, step: str, success: bool, duration_seconds: float) -> None:
        """Record the outcome of one step."""
        status = "success" if success else "failure"
        self.steps_total.labels(step=step, status=status).inc()
        self.step_duration.labels(step=step).observe(duration_seconds)

    def record_failure(self, step: str, failure_mode: Optional[str]) -> None:
        """Record a failed step under its diagnosed failure mode."""
        self.failures_total.labels(step=step, failure_mode=failure_mode or "unknown").inc()

    def write_textfile(self, path: Path) -> None:
        """Write the registry in node-exporter textfile format."""
        write_to_textfile(str(path), self.registry)


def setup_metrics(registry: Optional[CollectorRegistry] = None) -> StackMetrics:
    """Setup and return metric instances.

    Args:
        registry: Registry to register into; a private one is created if None

    Returns:
        StackMetrics instance
    """
    return StackMetrics(registry or CollectorRegistry())
