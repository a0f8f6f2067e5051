"""Command line entry point for the bank application stack tooling."""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional, Sequence

import structlog
from pydantic import ValidationError

from shared.logging.structured_logger import configure_logging

from .config import Config, get_config
from .datasource import JdbcUrl, check_datasource, datasource_url
from .diagnostics import diagnose
from .dockerfile import Severity, fix_dockerfile, lint, parse_dockerfile, render_dockerfile
from .errors import StackError, StackStepError
from .runtime import commands
from .runtime.orchestrator import StackOrchestrator

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bankapp-stack",
        description="Build, run, verify and diagnose the bank application Docker stack",
    )
    parser.add_argument("--log-level", help="Override BANKAPP_LOG_LEVEL")
    parser.add_argument("--json-logs", action="store_true", help="Render logs as JSON")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("lint", help="Lint a Dockerfile")
    p.add_argument("dockerfile", nargs="?", type=Path, help="Defaults to the configured Dockerfile")
    p.add_argument("--strict", action="store_true", help="Fail on warnings too")

    p = sub.add_parser("fix", help="Apply mechanical Dockerfile fixes")
    p.add_argument("dockerfile", nargs="?", type=Path)
    p.add_argument("--write", action="store_true", help="Rewrite the file in place")

    p = sub.add_parser("render", help="Print the canonical two-stage Dockerfile")
    p.add_argument("-o", "--output", type=Path, help="Write to this file instead of stdout")

    sub.add_parser("plan", help="Print the docker argv lists 'up' would run, as JSON")
    sub.add_parser("commands", help="Print the equivalent shell runbook")

    p = sub.add_parser("check-url", help="Check a JDBC URL against the stack configuration")
    p.add_argument("url", nargs="?", help="Defaults to the URL the stack would use")

    p = sub.add_parser("up", help="Build and start the stack")
    p.add_argument("--no-build", action="store_true", help="Use the existing image")
    p.add_argument("--fresh", action="store_true", help="Recreate running containers")
    p.add_argument("--prune", action="store_true", help="Remove dangling images afterwards")

    p = sub.add_parser("down", help="Remove the containers and network")
    p.add_argument("--keep-network", action="store_true")

    p = sub.add_parser("status", help="Show container status")
    p.add_argument("--json", action="store_true", dest="as_json")

    p = sub.add_parser("diagnose", help="Match output against known failure modes")
    p.add_argument("source", nargs="?", default="-", help="File to read, '-' for stdin")

    return parser


def _dockerfile_path(args: argparse.Namespace, config: Config) -> Path:
    return args.dockerfile or config.build.dockerfile_path


def cmd_lint(args: argparse.Namespace, config: Config) -> int:
    path = _dockerfile_path(args, config)
    findings = lint(parse_dockerfile(path.read_text()), app_port=config.app.port)
    for finding in findings:
        print(finding.format(str(path)))
    failing = [
        f for f in findings
        if f.severity == Severity.ERROR or (args.strict and f.severity == Severity.WARNING)
    ]
    logger.info("lint_finished", path=str(path), findings=len(findings), failing=len(failing))
    return EXIT_FAILURE if failing else EXIT_OK


def cmd_fix(args: argparse.Namespace, config: Config) -> int:
    path = _dockerfile_path(args, config)
    original = path.read_text()
    fixed = fix_dockerfile(original, app_port=config.app.port)
    if args.write:
        if fixed != original:
            path.write_text(fixed)
            logger.info("dockerfile_rewritten", path=str(path))
    else:
        sys.stdout.write(fixed)
    remaining = lint(parse_dockerfile(fixed), app_port=config.app.port)
    for finding in remaining:
        print(finding.format(str(path)), file=sys.stderr)
    return EXIT_FAILURE if any(f.severity == Severity.ERROR for f in remaining) else EXIT_OK


def cmd_render(args: argparse.Namespace, config: Config) -> int:
    text = render_dockerfile(config.build, config.app)
    if args.output:
        args.output.write_text(text)
        logger.info("dockerfile_rendered", path=str(args.output))
    else:
        sys.stdout.write(text)
    return EXIT_OK


def cmd_plan(args: argparse.Namespace, config: Config) -> int:
    print(json.dumps(StackOrchestrator(config).plan(), indent=2))
    return EXIT_OK


def runbook(config: Config) -> List[str]:
    """Shell commands an operator would type, with comments."""
    orchestrator = StackOrchestrator(config)
    binary = config.docker_binary
    build, network, database, application = orchestrator.plan()
    return [
        "# build the application image",
        commands.to_shell(build, binary),
        "# create the network both containers join",
        commands.to_shell(network, binary),
        "# start MySQL, then wait for 'ready for connections' in its logs",
        commands.to_shell(database, binary),
        commands.to_shell(commands.logs_command(config.mysql.container_name), binary),
        "# start the application",
        commands.to_shell(application, binary),
        "# verify both containers are Up and the app answers",
        commands.to_shell(
            commands.ps_command([config.mysql.container_name, config.app.container_name]), binary
        ),
        f"curl -i {orchestrator.application_url}",
        "# remove dangling images left by rebuilds",
        commands.to_shell(commands.prune_images_command(), binary),
    ]


def cmd_commands(args: argparse.Namespace, config: Config) -> int:
    print("\n".join(runbook(config)))
    return EXIT_OK


def cmd_check_url(args: argparse.Namespace, config: Config) -> int:
    url = JdbcUrl.parse(args.url) if args.url else datasource_url(config)
    problems = check_datasource(url, config)
    print(url)
    for problem in problems:
        print(f"  - {problem}")
    return EXIT_FAILURE if problems else EXIT_OK


def cmd_up(args: argparse.Namespace, config: Config) -> int:
    orchestrator = StackOrchestrator(config)
    results = orchestrator.up(build=not args.no_build, fresh=args.fresh, prune=args.prune)
    for result in results:
        print(f"{result.step:<18} ok  {result.duration_seconds:6.1f}s  {result.detail}")
    return EXIT_OK


def cmd_down(args: argparse.Namespace, config: Config) -> int:
    removed = StackOrchestrator(config).down(remove_network=not args.keep_network)
    print("removed: " + (", ".join(removed) if removed else "nothing"))
    return EXIT_OK


def cmd_status(args: argparse.Namespace, config: Config) -> int:
    status = StackOrchestrator(config).status()
    if args.as_json:
        print(json.dumps({**status.model_dump(), "health": status.health.value}, indent=2))
    else:
        print(f"network {status.network}: {'present' if status.network_exists else 'missing'}")
        for container in status.containers:
            print(f"{container.name:<16} {container.state:<10} {container.status}")
        print(f"stack: {status.health.value}")
    return EXIT_OK if status.healthy else EXIT_FAILURE


def cmd_diagnose(args: argparse.Namespace, config: Config) -> int:
    text = sys.stdin.read() if args.source == "-" else Path(args.source).read_text()
    diagnoses = diagnose(text)
    if not diagnoses:
        print("no known failure mode matched")
        return EXIT_FAILURE
    print("\n\n".join(d.format() for d in diagnoses))
    return EXIT_OK


HANDLERS = {
    "lint": cmd_lint,
    "fix": cmd_fix,
    "render": cmd_render,
    "plan": cmd_plan,
    "commands": cmd_commands,
    "check-url": cmd_check_url,
    "up": cmd_up,
    "down": cmd_down,
    "status": cmd_status,
    "diagnose": cmd_diagnose,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    try:
        config = get_config()
    except ValidationError as e:
        print(f"invalid configuration:\n{e}", file=sys.stderr)
        return EXIT_FAILURE

    configure_logging(
        log_level=args.log_level or config.log_level,
        json_logs=args.json_logs or config.json_logs,
        service_name="bankapp-stack",
    )

    try:
        return HANDLERS[args.command](args, config)
    except StackStepError as e:
        logger.error("stack_step_failed", step=e.step, error=str(e.cause))
        print(f"step '{e.step}' failed: {e.cause}", file=sys.stderr)
        for diagnosis in e.diagnoses:
            print(diagnosis.format(), file=sys.stderr)
        return EXIT_FAILURE
    except StackError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except OSError as e:
        logger.error("io_error", command=args.command, error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt_received")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
