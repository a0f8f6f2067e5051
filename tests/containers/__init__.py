"""Testcontainers for integration testing."""

from .containers import (
    BankMySqlContainer,
    docker_available,
    get_mysql_container,
    stop_mysql_container,
)

__all__ = [
    "BankMySqlContainer",
    "docker_available",
    "get_mysql_container",
    "stop_mysql_container",
]
