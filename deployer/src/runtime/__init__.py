"""Docker CLI command construction and execution."""

from .docker_cli import DockerCLI

__all__ = ["DockerCLI"]
