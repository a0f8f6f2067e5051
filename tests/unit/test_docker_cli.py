"""Unit tests for the docker CLI wrapper."""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest
from structlog.testing import capture_logs

from deployer.src.errors import DockerCommandError, DockerTimeoutError, DockerUnavailableError, StackError
from deployer.src.runtime.docker_cli import DockerCLI
from deployer.src.utils.error_handler import RetryConfig
from shared.models import ContainerSpec


def _completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def cli():
    return DockerCLI(retry_config=RetryConfig(max_attempts=2, initial_delay=0, jitter=False))


class TestRun:
    """Test command execution and error mapping"""

    def test_argv_prefixed_with_binary(self, cli):
        """Test the binary is prepended and output captured"""
        with patch("subprocess.run", return_value=_completed(stdout="24.0.7\n")) as run:
            assert cli.version() == "24.0.7"

        argv = run.call_args.args[0]
        assert argv[:2] == ["docker", "version"]
        assert run.call_args.kwargs["capture_output"] is True
        assert run.call_args.kwargs["text"] is True

    def test_nonzero_exit_raises(self, cli):
        """Test failures carry argv, exit code and stderr"""
        failure = _completed(125, stderr="docker: Error response from daemon: port is already allocated.\n")
        with patch("subprocess.run", return_value=failure):
            with pytest.raises(DockerCommandError) as exc_info:
                cli.run(["run", "-d", "mysql:8.0"])

        error = exc_info.value
        assert error.returncode == 125
        assert error.argv[:2] == ["docker", "run"]
        assert "port is already allocated" in error.output
        assert not isinstance(error, DockerUnavailableError)

    def test_nonzero_exit_unchecked(self, cli):
        """Test check=False returns the result"""
        with patch("subprocess.run", return_value=_completed(1, stderr="boom")):
            assert cli.run(["ps"], check=False).returncode == 1

    def test_daemon_unavailable_retried(self, cli):
        """Test daemon connection errors are retried then raised"""
        down = _completed(1, stderr="Cannot connect to the Docker daemon at unix:///var/run/docker.sock. "
                                    "Is the docker daemon running?")
        with patch("subprocess.run", return_value=down) as run:
            with pytest.raises(DockerUnavailableError):
                cli.version()

        assert run.call_count == 2

    def test_daemon_recovers(self, cli):
        """Test a transient daemon error followed by success"""
        down = _completed(1, stderr="error during connect: this error may indicate that the docker daemon is not running")
        with patch("subprocess.run", side_effect=[down, _completed(stdout="24.0.7")]):
            assert cli.version() == "24.0.7"

    def test_missing_binary(self, cli):
        """Test a missing docker executable fails once, without retries"""
        with patch("subprocess.run", side_effect=FileNotFoundError("docker")) as run:
            with pytest.raises(DockerCommandError) as exc_info:
                cli.version()

        assert exc_info.value.returncode == 127
        assert not isinstance(exc_info.value, DockerUnavailableError)
        assert run.call_count == 1

    def test_timeout_raises_stack_error(self, cli):
        """Test a hung command surfaces as DockerTimeoutError"""
        hung = subprocess.TimeoutExpired(["docker", "ps"], 0.2)
        with patch("subprocess.run", side_effect=hung) as run:
            with pytest.raises(DockerTimeoutError) as exc_info:
                cli.list_containers(["mysql"])

        assert isinstance(exc_info.value, StackError)
        assert "timed out" in str(exc_info.value)
        assert run.call_count == 1

    def test_state_changing_commands_not_retried(self, cli):
        """Test docker run is not repeated when the daemon drops"""
        down = _completed(1, stderr="Cannot connect to the Docker daemon. Is the docker daemon running?")
        spec = ContainerSpec(name="mysql", image="mysql:8.0")
        with patch("subprocess.run", return_value=down) as run:
            with pytest.raises(DockerUnavailableError):
                cli.run_container(spec)

        assert run.call_count == 1

    def test_password_masked_in_command_log(self, cli):
        """Test password environment values never reach the logs"""
        spec = ContainerSpec(
            name="mysql",
            image="mysql:8.0",
            env={"MYSQL_ROOT_PASSWORD": "S3cretPw", "MYSQL_DATABASE": "BankDB"},
        )
        with capture_logs() as logs:
            with patch("subprocess.run", return_value=_completed(stdout="f00dfeed\n")) as run:
                cli.run_container(spec)

        logged = [entry["argv"] for entry in logs if entry["event"] == "docker_command"]
        assert len(logged) == 1
        assert "S3cretPw" not in logged[0]
        assert "MYSQL_ROOT_PASSWORD=***" in logged[0]
        assert "MYSQL_DATABASE=BankDB" in logged[0]
        assert "MYSQL_ROOT_PASSWORD=S3cretPw" in run.call_args.args[0]


class TestOperations:
    """Test higher level operations"""

    def test_image_exists(self, cli):
        """Test inspect success and 'No such image'"""
        with patch("subprocess.run", return_value=_completed(stdout="sha256:abc")):
            assert cli.image_exists("bankapp:latest")
        with patch("subprocess.run", return_value=_completed(1, stderr="Error: No such image: bankapp:latest")):
            assert not cli.image_exists("bankapp:latest")

    def test_network_exists_other_error(self, cli):
        """Test unexpected inspect errors propagate"""
        with patch("subprocess.run", return_value=_completed(1, stderr="permission denied")):
            with pytest.raises(DockerCommandError):
                cli.network_exists("bankapp")

    def test_list_containers(self, cli):
        """Test ps output parsing and exact name filtering"""
        output = (
            "mysql\tmysql:8.0\trunning\tUp 3 minutes\n"
            "bankapp\tbankapp:latest\texited\tExited (1) 10 seconds ago\n"
        )
        with patch("subprocess.run", return_value=_completed(stdout=output)):
            statuses = cli.list_containers(["mysql", "bankapp"])

        assert [(s.name, s.is_up) for s in statuses] == [("mysql", True), ("bankapp", False)]
        assert statuses[1].status.startswith("Exited (1)")

    def test_container_state_missing(self, cli):
        """Test an absent container reports state 'missing'"""
        with patch("subprocess.run", return_value=_completed(stdout="")):
            status = cli.container_state("bankapp")

        assert status.state == "missing"
        assert not status.is_up

    def test_run_container_returns_id(self, cli):
        """Test docker run output is the container id"""
        spec = ContainerSpec(name="mysql", image="mysql:8.0", env={"MYSQL_DATABASE": "BankDB"})
        with patch("subprocess.run", return_value=_completed(stdout="f00dfeed\n")) as run:
            assert cli.run_container(spec) == "f00dfeed"

        assert "MYSQL_DATABASE=BankDB" in run.call_args.args[0]

    def test_logs_include_stderr(self, cli):
        """Test both output streams are returned"""
        with patch("subprocess.run", return_value=_completed(stdout="out\n", stderr="ready for connections\n")):
            assert "ready for connections" in cli.logs("mysql")

    def test_build_image(self, cli):
        """Test build passes the Dockerfile and context"""
        with patch("subprocess.run", return_value=_completed(stderr="#8 DONE 0.1s\n")) as run:
            output = cli.build_image("bankapp:latest", Path("/src"), Path("/src/Dockerfile"))

        assert "DONE" in output
        assert run.call_args.args[0][-3:] == ["-f", "/src/Dockerfile", "/src"]
