"""Exception hierarchy for stack operations."""

from typing import List, Optional, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from .diagnostics.catalog import Diagnosis


class StackError(Exception):
    """Base class for every error raised by the stack tooling."""


class DockerfileParseError(StackError):
    """A Dockerfile could not be parsed."""

    def __init__(self, message: str, line: Optional[int] = None):
        self.line = line
        prefix = f"line {line}: " if line is not None else ""
        super().__init__(f"{prefix}{message}")


class InvalidJdbcUrlError(StackError, ValueError):
    """A JDBC URL is not of the form jdbc:mysql://host[:port]/database[?params]."""


class DockerCommandError(StackError):
    """A docker CLI invocation exited non-zero."""

    def __init__(self, argv: Sequence[str], returncode: int, stdout: str = "", stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        summary = stderr.strip().splitlines()[-1] if stderr.strip() else f"exit code {returncode}"
        super().__init__(f"{' '.join(self.argv[:3])} failed: {summary}")

    @property
    def output(self) -> str:
        """Combined output, used for diagnosis."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class DockerUnavailableError(DockerCommandError):
    """The docker daemon could not be reached. Retryable."""


class DockerTimeoutError(DockerCommandError):
    """A docker command did not finish within its timeout."""

    def __init__(self, argv: Sequence[str], timeout: float, stdout: str = "", stderr: str = ""):
        self.timeout = timeout
        super().__init__(argv, -1, stdout, stderr or f"timed out after {timeout:g}s")


class HealthCheckTimeout(StackError, TimeoutError):
    """A readiness probe did not succeed in time."""

    def __init__(self, target: str, timeout: float, last_error: Optional[str] = None):
        self.target = target
        self.timeout = timeout
        self.last_error = last_error
        detail = f" (last error: {last_error})" if last_error else ""
        super().__init__(f"{target} not ready after {timeout:.0f}s{detail}")


class StackStepError(StackError):
    """A deployment step failed."""

    def __init__(self, step: str, cause: Exception, diagnoses: Optional[List["Diagnosis"]] = None):
        self.step = step
        self.cause = cause
        self.diagnoses = list(diagnoses or [])
        super().__init__(f"step '{step}' failed: {cause}")
