"""Dockerfile lint rules for the application image.

Each rule targets a defect that breaks the build or the container start:
malformed stage names, a ``java jar`` entrypoint, Maven flags that are
silently ignored, single-stage images that ship the whole build toolchain,
and base images whose tags are gone from the registry.
"""

import json
import re
from enum import Enum
from typing import Callable, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field

from .parser import DockerfileDocument, Instruction, Stage, parse_dockerfile

logger = structlog.get_logger(__name__)

BUILD_TOOL_IMAGES = frozenset({"maven", "gradle"})
DEPRECATED_IMAGES = frozenset({"openjdk"})
JAVA_LAUNCHERS = ("java", "/usr/bin/java")

_SKIP_TEST_SINGULAR = re.compile(r"-DskipTest(?=[=\s]|$)")
_BARE_SKIP_TESTS = re.compile(r"(?<=\s)(?:--?)?skipTests(?:=(\w+))?(?=\s|$)")


class Severity(str, Enum):
    """Finding severity."""

    ERROR = "error"
    WARNING = "warning"


class LintFinding(BaseModel):
    """One problem found in a Dockerfile."""

    rule: str = Field(..., description="Rule identifier")
    severity: Severity
    line: int = Field(..., description="First line of the offending instruction")
    end_line: int = Field(..., description="Last line of the offending instruction")
    message: str
    replacement: Optional[str] = Field(
        None, description="Corrected instruction text when the fix is mechanical"
    )

    def format(self, path: str = "Dockerfile") -> str:
        fix = f" -> {self.replacement}" if self.replacement else ""
        return f"{path}:{self.line}: {self.severity.value}: [{self.rule}] {self.message}{fix}"


def _finding(rule, severity, instruction: Instruction, message, replacement=None) -> LintFinding:
    return LintFinding(
        rule=rule,
        severity=severity,
        line=instruction.line,
        end_line=instruction.end_line,
        message=message,
        replacement=replacement,
    )


def _from_line(base_image: str, name: Optional[str]) -> str:
    return f"FROM {base_image} AS {name}" if name else f"FROM {base_image}"


def check_stage_alias(document: DockerfileDocument, app_port: int) -> List[LintFinding]:
    findings = []
    for stage in document.stages:
        if not stage.extra_tokens:
            continue
        tokens = " ".join(stage.extra_tokens)
        if stage.name:
            findings.append(_finding(
                "stage-alias-syntax", Severity.ERROR, stage.from_instruction,
                f"stage name must be a single word after AS, found extra '{tokens}'",
                _from_line(stage.base_image, stage.name),
            ))
        else:
            findings.append(_finding(
                "stage-alias-syntax", Severity.ERROR, stage.from_instruction,
                f"unexpected '{tokens}' after image; use 'FROM <image> AS <name>'",
            ))
    return findings


def _java_jar_index(argv: List[str]) -> Optional[int]:
    """Index of a bare ``jar`` argument passed to java, if any."""
    if not argv or not argv[0].endswith(JAVA_LAUNCHERS):
        return None
    for index, arg in enumerate(argv[1:], start=1):
        if arg == "jar":
            return index
        if not arg.startswith("-"):
            return None
    return None


def check_entrypoint_jar_flag(document: DockerfileDocument, app_port: int) -> List[LintFinding]:
    findings = []
    for instruction in document.instructions:
        if instruction.keyword not in ("ENTRYPOINT", "CMD"):
            continue
        argv = instruction.arguments
        index = _java_jar_index(argv)
        if index is None:
            continue
        fixed = list(argv)
        fixed[index] = "-jar"
        if instruction.is_exec_form:
            replacement = f"{instruction.keyword} {json.dumps(fixed)}"
        else:
            replacement = f"{instruction.keyword} {' '.join(fixed)}"
        findings.append(_finding(
            "entrypoint-jar-flag", Severity.ERROR, instruction,
            "java treats 'jar' as a main class name; the option is '-jar'",
            replacement,
        ))
    return findings


def check_maven_skip_tests(document: DockerfileDocument, app_port: int) -> List[LintFinding]:
    findings = []
    for instruction in document.instructions_by_keyword("RUN"):
        if "mvn" not in instruction.value:
            continue
        value = instruction.value
        fixed = _SKIP_TEST_SINGULAR.sub("-DskipTests", value)
        fixed = _BARE_SKIP_TESTS.sub(
            lambda m: f"-DskipTests={m.group(1) or 'true'}", fixed
        )
        if fixed == value:
            continue
        findings.append(_finding(
            "maven-skip-tests-flag", Severity.WARNING, instruction,
            "Maven ignores -DskipTest and treats a bare skipTests as a lifecycle phase; "
            "use -DskipTests=true",
            f"RUN {fixed}",
        ))
    return findings


def check_single_stage(document: DockerfileDocument, app_port: int) -> List[LintFinding]:
    if len(document.stages) != 1:
        return []
    stage = document.stages[0]
    if stage.base_repository not in BUILD_TOOL_IMAGES:
        return []
    return [_finding(
        "single-stage-build", Severity.WARNING, stage.from_instruction,
        f"the image ships the {stage.base_repository} toolchain; copy the jar into a "
        "JRE runtime stage instead",
    )]


def check_copy_from(document: DockerfileDocument, app_port: int) -> List[LintFinding]:
    findings = []
    for instruction in document.instructions_by_keyword("COPY"):
        reference = instruction.flags.get("from")
        if not reference:
            continue
        if ":" in reference or "/" in reference:
            # An image reference, not a stage
            continue
        stage = document.resolve_stage(reference)
        if stage is None or stage.index >= instruction.stage_index:
            known = ", ".join(document.stage_names) or "none"
            findings.append(_finding(
                "copy-from-unknown-stage", Severity.ERROR, instruction,
                f"--from={reference} does not name an earlier stage (known stages: {known})",
            ))
    return findings


def _exposed_ports(stage: Stage) -> List[int]:
    ports = []
    for instruction in stage.find("EXPOSE"):
        for token in instruction.arguments:
            number = token.split("/", 1)[0]
            if number.isdigit():
                ports.append(int(number))
    return ports


def check_expose(document: DockerfileDocument, app_port: int) -> List[LintFinding]:
    stage = document.final_stage
    if stage is None or app_port in _exposed_ports(stage):
        return []
    return [_finding(
        "missing-expose", Severity.WARNING, stage.from_instruction,
        f"final stage does not EXPOSE {app_port}",
    )]


def _jar_path(argv: List[str]) -> Optional[str]:
    for index, arg in enumerate(argv[:-1]):
        if arg == "-jar":
            return argv[index + 1]
    return None


def _copied_destinations(stage: Stage) -> List[str]:
    destinations = []
    workdir = "/"
    for instruction in stage.instructions:
        if instruction.keyword == "WORKDIR" and instruction.arguments:
            target = instruction.arguments[0]
            workdir = target if target.startswith("/") else f"{workdir.rstrip('/')}/{target}"
        elif instruction.keyword in ("COPY", "ADD") and len(instruction.arguments) >= 2:
            dest = instruction.arguments[-1]
            if not dest.startswith("/"):
                dest = f"{workdir.rstrip('/')}/{dest}" if dest != "." else workdir
            destinations.append(dest)
    return destinations


def check_artifact_path(document: DockerfileDocument, app_port: int) -> List[LintFinding]:
    stage = document.final_stage
    if stage is None:
        return []
    findings = []
    destinations = _copied_destinations(stage)
    for instruction in stage.find("ENTRYPOINT") + stage.find("CMD"):
        argv = list(instruction.arguments)
        index = _java_jar_index(argv)
        if index is not None:
            argv[index] = "-jar"
        jar = _jar_path(argv)
        if not jar or not jar.startswith("/"):
            continue
        produced = any(
            jar == dest or jar.startswith(dest.rstrip("/") + "/")
            for dest in destinations
            if dest != "/"
        )
        if not produced:
            findings.append(_finding(
                "entrypoint-artifact-path", Severity.WARNING, instruction,
                f"{jar} is not copied into the final stage; the build writes the jar "
                "under target/",
            ))
    return findings


def _temurin_equivalent(stage: Stage) -> str:
    tag = stage.base_tag or "17"
    match = re.match(r"\d+", tag)
    version = match.group(0) if match else "17"
    flavor = "jdk" if "jdk" in tag and "jre" not in tag else "jre"
    suffix = "-alpine" if "alpine" in tag else ""
    return f"eclipse-temurin:{version}-{flavor}{suffix}"


def check_deprecated_base(document: DockerfileDocument, app_port: int) -> List[LintFinding]:
    findings = []
    for stage in document.stages:
        if stage.base_repository not in DEPRECATED_IMAGES:
            continue
        replacement_image = _temurin_equivalent(stage)
        findings.append(_finding(
            "deprecated-base-image", Severity.ERROR, stage.from_instruction,
            f"{stage.base_image} is deprecated and many of its tags no longer exist; "
            f"use {replacement_image}",
            _from_line(replacement_image, stage.name),
        ))
    return findings


def check_exec_form(document: DockerfileDocument, app_port: int) -> List[LintFinding]:
    findings = []
    for instruction in document.instructions:
        for warning in instruction.warnings:
            findings.append(_finding("exec-form-invalid-json", Severity.WARNING, instruction, warning))
    return findings

RULES: Dict[str, Callable[[DockerfileDocument, int], List[LintFinding]]] = {
    "stage-alias-syntax": check_stage_alias,
    "entrypoint-jar-flag": check_entrypoint_jar_flag,
    "maven-skip-tests-flag": check_maven_skip_tests,
    "single-stage-build": check_single_stage,
    "copy-from-unknown-stage": check_copy_from,
    "missing-expose": check_expose,
    "entrypoint-artifact-path": check_artifact_path,
    "deprecated-base-image": check_deprecated_base,
    "exec-form-invalid-json": check_exec_form,
}


def lint(document: DockerfileDocument, app_port: int = 8080) -> List[LintFinding]:
    """Run every rule against a parsed Dockerfile.

    Args:
        document: Parsed Dockerfile
        app_port: Port the application listens on

    Returns:
        Findings sorted by line, then rule id
    """
    findings: List[LintFinding] = []
    for rule in RULES.values():
        findings.extend(rule(document, app_port))
    findings.sort(key=lambda f: (f.line, f.rule))
    logger.debug(
        "dockerfile_linted",
        findings=len(findings),
        errors=sum(1 for f in findings if f.severity == Severity.ERROR),
    )
    return findings


def fix_dockerfile(text: str, app_port: int = 8080, max_passes: int = 5) -> str:
    """Apply every mechanical replacement until none are left.

    Findings without a replacement are left for a human. Running the
    function on its own output returns it unchanged.
    """
    for _ in range(max_passes):
        findings = [f for f in lint(parse_dockerfile(text), app_port) if f.replacement]
        if not findings:
            break
        lines = text.splitlines()
        touched = set()
        # One replacement per instruction per pass; later passes pick up the rest
        for finding in sorted(findings, key=lambda f: f.line, reverse=True):
            if finding.line in touched:
                continue
            touched.add(finding.line)
            lines[finding.line - 1:finding.end_line] = [finding.replacement]
        text = "\n".join(lines) + "\n"
    return text
