"""JDBC datasource URL handling and container environments.

The application reaches MySQL over the user-defined network by container
name, so the JDBC host is the MySQL container name. MySQL 8 authenticates
with caching_sha2_password, which over a non-TLS connection only works when
the driver may fetch the server's public key.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import parse_qsl, urlencode

from .config import Config
from .errors import InvalidJdbcUrlError

DEFAULT_MYSQL_PORT = 3306
LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1", "0.0.0.0"})

_JDBC_PATTERN = re.compile(
    r"^jdbc:mysql://(?P<host>\[[^\]]+\]|[^:/?#]+)(?::(?P<port>\d+))?"
    r"/(?P<database>[^?/#]+)(?:\?(?P<query>.*))?$"
)


def default_params(allow_public_key_retrieval: bool = True, use_ssl: bool = False) -> Dict[str, str]:
    """Connection parameters needed for MySQL 8 without TLS."""
    params = {}
    if allow_public_key_retrieval:
        params["allowPublicKeyRetrieval"] = "true"
    params["useSSL"] = "true" if use_ssl else "false"
    return params


@dataclass
class JdbcUrl:
    """A ``jdbc:mysql://`` connection URL."""

    host: str
    database: str
    port: int = DEFAULT_MYSQL_PORT
    params: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        host: str,
        database: str,
        port: int = DEFAULT_MYSQL_PORT,
        params: Optional[Dict[str, str]] = None,
    ) -> "JdbcUrl":
        if not host:
            raise InvalidJdbcUrlError("host must not be empty")
        if not database:
            raise InvalidJdbcUrlError("database must not be empty")
        if not 0 < port < 65536:
            raise InvalidJdbcUrlError(f"port out of range: {port}")
        return cls(host=host, database=database, port=port, params=dict(params or {}))

    @classmethod
    def parse(cls, url: str) -> "JdbcUrl":
        """Parse a MySQL JDBC URL.

        Raises:
            InvalidJdbcUrlError: if the URL is not a single-host MySQL URL
        """
        match = _JDBC_PATTERN.match(url.strip())
        if not match:
            raise InvalidJdbcUrlError(f"not a jdbc:mysql URL: {url!r}")
        query = match.group("query") or ""
        try:
            params = dict(parse_qsl(query, keep_blank_values=True, strict_parsing=bool(query)))
        except ValueError as e:
            raise InvalidJdbcUrlError(f"malformed query string in {url!r}: {e}") from e
        port = int(match.group("port")) if match.group("port") else DEFAULT_MYSQL_PORT
        return cls.build(match.group("host"), match.group("database"), port, params)

    @property
    def is_loopback(self) -> bool:
        return self.host.strip("[]").lower() in LOOPBACK_HOSTS

    def with_params(self, **params: str) -> "JdbcUrl":
        merged = dict(self.params)
        merged.update(params)
        return JdbcUrl(self.host, self.database, self.port, merged)

    def __str__(self) -> str:
        query = f"?{urlencode(self.params)}" if self.params else ""
        return f"jdbc:mysql://{self.host}:{self.port}/{self.database}{query}"


def datasource_url(config: Config) -> JdbcUrl:
    """JDBC URL the application container should use."""
    return JdbcUrl.build(
        host=config.mysql.container_name,
        database=config.mysql.database,
        port=config.mysql.port,
        params=default_params(config.app.allow_public_key_retrieval, config.app.use_ssl),
    )


def app_environment(config: Config) -> Dict[str, str]:
    """Spring datasource variables for the application container."""
    return {
        "SPRING_DATASOURCE_URL": str(datasource_url(config)),
        "SPRING_DATASOURCE_USERNAME": config.app.username,
        "SPRING_DATASOURCE_PASSWORD": config.datasource_password,
    }


def database_environment(config: Config) -> Dict[str, str]:
    """Initialization variables for the MySQL container."""
    return {
        "MYSQL_DATABASE": config.mysql.database,
        "MYSQL_ROOT_PASSWORD": config.mysql.root_password,
    }


def check_datasource(url: JdbcUrl, config: Config) -> List[str]:
    """Return the reasons a URL will not work from the app container."""
    problems = []
    if url.is_loopback:
        problems.append(
            f"host {url.host} is the app container itself; use the MySQL container "
            f"name '{config.mysql.container_name}'"
        )
    elif url.host != config.mysql.container_name:
        problems.append(
            f"host {url.host} does not match the MySQL container name "
            f"'{config.mysql.container_name}'"
        )
    if url.port != config.mysql.port:
        problems.append(f"port {url.port} differs from MySQL port {config.mysql.port}")
    if url.database != config.mysql.database:
        problems.append(
            f"database {url.database} differs from MYSQL_DATABASE '{config.mysql.database}'"
        )
    use_ssl = url.params.get("useSSL", "true").lower() == "true"
    if not use_ssl and url.params.get("allowPublicKeyRetrieval", "false").lower() != "true":
        problems.append(
            "caching_sha2_password over a non-TLS connection needs allowPublicKeyRetrieval=true"
        )
    return problems
