"""Configuration management for the bank application stack.

Uses Pydantic Settings for environment-based configuration. Every value can
be overridden with a ``BANKAPP_`` prefixed environment variable or a ``.env``
file in the working directory.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MySQLConfig(BaseSettings):
    """MySQL container configuration."""

    container_name: str = Field(default="mysql", description="Container name and network hostname")
    image: str = Field(default="mysql:8.0", description="MySQL image")
    database: str = Field(default="BankDB", description="Schema created on first start")
    root_password: str = Field(default="Test@123", description="MYSQL_ROOT_PASSWORD")
    port: int = Field(default=3306, description="Port MySQL listens on inside the network", gt=0, lt=65536)
    host_port: Optional[int] = Field(default=None, description="Publish MySQL on this host port")

    model_config = SettingsConfigDict(env_prefix="BANKAPP_MYSQL_", env_file=".env", extra="ignore")


class AppConfig(BaseSettings):
    """Application container configuration."""

    container_name: str = Field(default="bankapp", description="Container name")
    image: str = Field(default="bankapp", description="Image repository")
    tag: str = Field(default="latest", description="Image tag")
    port: int = Field(default=8080, description="Port the application listens on", gt=0, lt=65536)
    host_port: int = Field(default=8080, description="Host port published for the application", gt=0, lt=65536)
    username: str = Field(default="root", description="SPRING_DATASOURCE_USERNAME")
    password: Optional[str] = Field(
        default=None, description="SPRING_DATASOURCE_PASSWORD, defaults to the MySQL root password"
    )
    health_path: str = Field(default="/", description="Path probed to decide the app is serving")
    allow_public_key_retrieval: bool = Field(
        default=True, description="Needed for caching_sha2_password over plain connections"
    )
    use_ssl: bool = Field(default=False, description="useSSL JDBC parameter")

    model_config = SettingsConfigDict(env_prefix="BANKAPP_APP_", env_file=".env", extra="ignore")

    @property
    def image_ref(self) -> str:
        return f"{self.image}:{self.tag}"

    @field_validator("health_path")
    @classmethod
    def validate_health_path(cls, v: str) -> str:
        """Health path must be absolute."""
        return v if v.startswith("/") else f"/{v}"


class BuildConfig(BaseSettings):
    """Image build configuration."""

    context: Path = Field(default=Path("."), description="Build context directory")
    dockerfile: Path = Field(default=Path("Dockerfile"), description="Dockerfile path relative to context")
    builder_image: str = Field(default="maven:3.8.3-openjdk-17", description="Builder stage base image")
    runtime_image: str = Field(default="eclipse-temurin:17-jre", description="Runtime stage base image")
    artifact_name: str = Field(default="bankapp.jar", description="Jar name inside the runtime image")
    skip_tests: bool = Field(default=True, description="Pass -DskipTests=true to Maven")
    no_cache: bool = Field(default=False, description="Build without layer cache")

    model_config = SettingsConfigDict(env_prefix="BANKAPP_BUILD_", env_file=".env", extra="ignore")

    @property
    def dockerfile_path(self) -> Path:
        if self.dockerfile.is_absolute():
            return self.dockerfile
        return self.context / self.dockerfile

    @field_validator("artifact_name")
    @classmethod
    def validate_artifact_name(cls, v: str) -> str:
        """The artifact must be a jar file name, not a path."""
        if "/" in v or not v.endswith(".jar"):
            raise ValueError(f"artifact_name must be a bare .jar file name, got: {v}")
        return v


class NetworkConfig(BaseSettings):
    """Container network configuration."""

    name: str = Field(default="bankapp", description="User-defined network name")
    driver: str = Field(default="bridge", description="Network driver")

    model_config = SettingsConfigDict(env_prefix="BANKAPP_NETWORK_", env_file=".env", extra="ignore")


class Config(BaseSettings):
    """Main configuration."""

    # Sub-configurations
    mysql: MySQLConfig = Field(default_factory=MySQLConfig)
    app: AppConfig = Field(default_factory=AppConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)

    # Tool configuration
    log_level: str = Field(default="INFO", description="Log level")
    json_logs: bool = Field(default=False, description="Render logs as JSON")
    docker_binary: str = Field(default="docker", description="Docker CLI executable")
    command_timeout: float = Field(default=600.0, description="Timeout for one docker command (seconds)", gt=0)
    mysql_ready_timeout: float = Field(default=120.0, description="Seconds to wait for MySQL readiness", gt=0)
    app_ready_timeout: float = Field(default=180.0, description="Seconds to wait for the app to serve", gt=0)
    poll_interval: float = Field(default=2.0, description="Seconds between readiness probes", gt=0)
    metrics_textfile: Optional[Path] = Field(default=None, description="Write Prometheus metrics here after runs")

    model_config = SettingsConfigDict(
        env_prefix="BANKAPP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got: {v}")
        return v_upper

    @property
    def datasource_password(self) -> str:
        return self.app.password if self.app.password is not None else self.mysql.root_password


@lru_cache()
def get_config() -> Config:
    """Get cached configuration instance.

    Returns:
        Config instance
    """
    return Config()


def clear_config_cache() -> None:
    """Clear the configuration cache so the next call re-reads the environment."""
    get_config.cache_clear()
