"""Shared fixtures for unit and integration tests."""

from pathlib import Path
from unittest.mock import Mock

import pytest
from prometheus_client import CollectorRegistry

from deployer.src.config import AppConfig, BuildConfig, Config, MySQLConfig, NetworkConfig
from shared.metrics import StackMetrics
from shared.models import ContainerStatus

# The Dockerfile as first committed: a single stage with a malformed stage
# name, a misspelled Maven property and a broken java launcher.
ORIGINAL_DOCKERFILE = """\
#-------------stage1------------------
  
# Pull base image so that we can use to build the jar file 
FROM maven:3.8.3-openjdk-17 AS a builder

# Create a workdir where code and jar file will be stored  
WORKDIR /app 

# Copy our code from host to container  
COPY . /app

# Build the app to generate jar file  
RUN mvn clean install -DskipTest=true

# Expose the port so that the port can be mapped with the host  
EXPOSE 8080  

# Execute the jar file using java command  
ENTRYPOINT ["java", "jar", "/bankapp.jar"]  

"""


@pytest.fixture
def original_dockerfile() -> str:
    return ORIGINAL_DOCKERFILE


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Configuration with defaults, isolated from the environment and .env files."""
    return Config(
        mysql=MySQLConfig(_env_file=None),
        app=AppConfig(_env_file=None),
        build=BuildConfig(_env_file=None, context=tmp_path),
        network=NetworkConfig(_env_file=None),
        poll_interval=0.01,
        mysql_ready_timeout=1.0,
        app_ready_timeout=1.0,
        _env_file=None,
    )


@pytest.fixture
def metrics() -> StackMetrics:
    return StackMetrics(CollectorRegistry())


@pytest.fixture
def fake_docker():
    """DockerCLI double for a clean host: no network, no containers."""
    docker = Mock()
    docker.version.return_value = "24.0.7"
    docker.build_image.return_value = "Successfully built"
    docker.image_exists.return_value = True
    docker.network_exists.return_value = False
    docker.container_state.side_effect = lambda name: ContainerStatus(name=name)
    docker.run_container.return_value = "0123456789abcdef0123"
    docker.logs.return_value = ""
    docker.list_containers.return_value = []
    docker.prune_dangling_images.return_value = "Total reclaimed space: 0B\n"
    return docker


@pytest.fixture
def fake_health():
    health = Mock()
    health.wait_for_log.return_value = "ready for connections. port: 3306"
    health.wait_for_http.return_value = 200
    return health
