"""Common Pydantic models shared across the stack tooling."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class HealthStatus(str, Enum):
    """Health status enum."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


class ContainerSpec(BaseModel):
    """Everything needed to start one container."""

    name: str = Field(..., description="Container name, also its DNS name on the network")
    image: str = Field(..., description="Image reference including tag")
    network: Optional[str] = Field(None, description="User-defined network to join")
    env: Dict[str, str] = Field(default_factory=dict, description="Environment variables")
    ports: Dict[int, int] = Field(
        default_factory=dict, description="Published ports, container port -> host port"
    )
    detach: bool = Field(True, description="Run in the background")

    model_config = ConfigDict(frozen=True)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Container names double as hostnames, so no whitespace."""
        if not v or any(ch.isspace() for ch in v):
            raise ValueError(f"invalid container name: {v!r}")
        return v

    @field_validator("ports")
    @classmethod
    def validate_ports(cls, v: Dict[int, int]) -> Dict[int, int]:
        """Validate port numbers are in range."""
        for container_port, host_port in v.items():
            for port in (container_port, host_port):
                if not 0 < port < 65536:
                    raise ValueError(f"port out of range: {port}")
        return v


class ContainerStatus(BaseModel):
    """One row of `docker ps -a`."""

    name: str
    image: str = ""
    state: str = Field("missing", description="created|running|exited|... or missing")
    status: str = Field("", description="Human readable status, e.g. 'Up 2 minutes'")

    @property
    def is_up(self) -> bool:
        return self.state == "running"


class StackStatus(BaseModel):
    """Aggregate status of the network and both containers."""

    network: str
    network_exists: bool = False
    containers: List[ContainerStatus] = Field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return bool(self.containers) and all(c.is_up for c in self.containers)

    @property
    def health(self) -> HealthStatus:
        up = sum(1 for c in self.containers if c.is_up)
        if self.healthy:
            return HealthStatus.HEALTHY
        if up:
            return HealthStatus.DEGRADED
        return HealthStatus.UNHEALTHY


class StepResult(BaseModel):
    """Outcome of one deployment step."""

    step: str = Field(..., description="Step name")
    success: bool = Field(..., description="Whether the step completed")
    duration_seconds: float = Field(0.0, ge=0.0, description="Wall clock duration")
    detail: str = Field("", description="Short human readable outcome")
