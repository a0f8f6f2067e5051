"""Docker CLI argument vectors for each stack operation.

Functions return argv lists without the docker binary. ``to_shell`` turns
one into a copy-pasteable command line.
"""

import shlex
from pathlib import Path
from typing import List, Optional, Sequence

from shared.models import ContainerSpec

PS_FORMAT = "{{.Names}}\t{{.Image}}\t{{.State}}\t{{.Status}}"


def build_image_command(
    tag: str,
    context: Path,
    dockerfile: Optional[Path] = None,
    no_cache: bool = False,
) -> List[str]:
    argv = ["build", "-t", tag]
    if dockerfile is not None:
        argv += ["-f", str(dockerfile)]
    if no_cache:
        argv.append("--no-cache")
    argv.append(str(context))
    return argv


def image_inspect_command(image: str) -> List[str]:
    return ["image", "inspect", "--format", "{{.Id}}", image]


def network_inspect_command(name: str) -> List[str]:
    return ["network", "inspect", "--format", "{{.Name}}", name]


def create_network_command(name: str, driver: str = "bridge") -> List[str]:
    return ["network", "create", "--driver", driver, name]


def remove_network_command(name: str) -> List[str]:
    return ["network", "rm", name]


def run_container_command(spec: ContainerSpec) -> List[str]:
    argv = ["run"]
    if spec.detach:
        argv.append("-d")
    argv += ["--name", spec.name]
    if spec.network:
        argv += ["--network", spec.network]
    for key, value in spec.env.items():
        argv += ["-e", f"{key}={value}"]
    for container_port, host_port in spec.ports.items():
        argv += ["-p", f"{host_port}:{container_port}"]
    argv.append(spec.image)
    return argv


def remove_container_command(name: str, force: bool = True) -> List[str]:
    argv = ["rm"]
    if force:
        argv.append("-f")
    argv.append(name)
    return argv


def ps_command(names: Sequence[str] = (), all_containers: bool = True) -> List[str]:
    argv = ["ps"]
    if all_containers:
        argv.append("-a")
    for name in names:
        # Anchored so "mysql" does not also match "mysql-old"
        argv += ["--filter", f"name=^{name}$"]
    argv += ["--format", PS_FORMAT]
    return argv


def logs_command(name: str, tail: Optional[int] = None) -> List[str]:
    argv = ["logs"]
    if tail is not None:
        argv += ["--tail", str(tail)]
    argv.append(name)
    return argv


def prune_images_command() -> List[str]:
    """Remove dangling (``<none>``) images left behind by rebuilds."""
    return ["image", "prune", "-f"]


def version_command() -> List[str]:
    return ["version", "--format", "{{.Server.Version}}"]


def to_shell(argv: Sequence[str], binary: str = "docker") -> str:
    """Render argv as a shell command line.

    Every argument is quoted where needed, so ``&`` and ``?`` in a JDBC URL
    reach docker intact instead of backgrounding the command.
    """
    return " ".join(shlex.quote(arg) for arg in [binary, *argv])


def redact_argv(argv: Sequence[str]) -> List[str]:
    """Mask ``KEY=value`` arguments whose key names a password."""
    redacted = []
    for arg in argv:
        key, sep, value = arg.partition("=")
        if sep and value and "password" in key.lower():
            arg = f"{key}=***"
        redacted.append(arg)
    return redacted
