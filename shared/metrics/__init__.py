"""Metrics module using Prometheus."""

from .prometheus_metrics import (
    StackMetrics,
    setup_metrics,
)

__all__ = [
    "StackMetrics",
    "setup_metrics",
]
