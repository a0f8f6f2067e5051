"""Shared Pydantic models for the bank application stack."""

from .common import (
    ContainerSpec,
    ContainerStatus,
    HealthStatus,
    StackStatus,
    StepResult,
)

__all__ = [
    "ContainerSpec",
    "ContainerStatus",
    "HealthStatus",
    "StackStatus",
    "StepResult",
]
