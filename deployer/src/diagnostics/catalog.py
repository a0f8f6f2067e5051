"""Failure mode catalogue.

Each entry pairs the messages docker, Maven, the JDBC driver or the shell
print for a failure with its cause and the fix. ``diagnose`` scans any
output (build log, container log, CLI stderr) against the catalogue.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FailureMode:
    """A recognisable failure with its cause and remedy."""

    id: str
    title: str
    cause: str
    remedy: str
    patterns: List[Pattern] = field(default_factory=list)

    def search(self, text: str) -> Optional[re.Match]:
        for pattern in self.patterns:
            match = pattern.search(text)
            if match:
                return match
        return None


@dataclass(frozen=True)
class Diagnosis:
    """A failure mode matched in some output."""

    failure_mode: FailureMode
    excerpt: str

    def format(self) -> str:
        return (
            f"[{self.failure_mode.id}] {self.failure_mode.title}\n"
            f"  matched: {self.excerpt}\n"
            f"  cause:   {self.failure_mode.cause}\n"
            f"  fix:     {self.failure_mode.remedy}"
        )


def _patterns(*expressions: str) -> List[Pattern]:
    return [re.compile(expression, re.IGNORECASE | re.MULTILINE) for expression in expressions]


CATALOG: List[FailureMode] = [
    FailureMode(
        id="image-not-found",
        title="Image not found",
        cause="docker run was given an image that is neither local nor pullable.",
        remedy="Build the image first (bankapp-stack up --build) or correct the image name and tag.",
        patterns=_patterns(
            r"pull access denied for [^\s,]+",
            r"repository does not exist",
            r"Unable to find image '[^']+' locally",
        ),
    ),
    FailureMode(
        id="missing-pom",
        title="Maven build manifest missing",
        cause="mvn ran in a directory without pom.xml, usually a wrong WORKDIR or COPY.",
        remedy="Run the build from the project root and COPY the source into the WORKDIR that runs mvn.",
        patterns=_patterns(r"there is no POM in this directory[^\n]*"),
    ),
    FailureMode(
        id="unknown-lifecycle-phase",
        title="Wrong Maven flag",
        cause="A property was passed without -D, so Maven read it as a lifecycle phase.",
        remedy="Pass properties as -Dname=value, e.g. -DskipTests=true.",
        patterns=_patterns(r"Unknown lifecycle phase \"[^\"]*\""),
    ),
    FailureMode(
        id="base-image-tag-not-found",
        title="Base image tag does not exist",
        cause="The FROM image tag is not published (many openjdk tags were removed).",
        remedy="Pick an existing tag, e.g. eclipse-temurin:17-jre for the runtime stage.",
        patterns=_patterns(
            r"manifest for [^\s]+ not found[^\n]*",
            r"manifest unknown[^\n]*",
            r"failed to resolve source metadata for [^\s]+",
        ),
    ),
    FailureMode(
        id="unknown-host",
        title="Database host not resolvable",
        cause="The app cannot resolve the JDBC host: it is not on the MySQL container's network, "
              "or the URL uses localhost.",
        remedy="Run both containers with --network <name> and use the MySQL container name as JDBC host.",
        patterns=_patterns(
            r"UnknownHostException[^\n]*",
            r"Communications link failure",
            r"Name or service not known",
            r"Temporary failure in name resolution",
        ),
    ),
    FailureMode(
        id="shell-metacharacter",
        title="Unquoted shell metacharacter",
        cause="An unquoted & in the JDBC URL made the shell background docker run and run the rest "
              "as a command.",
        remedy="Quote the whole -e value: -e 'SPRING_DATASOURCE_URL=jdbc:mysql://...?a=b&c=d'.",
        patterns=_patterns(
            r"\w+=\w+: (?:command )?not found",
            r"^\[\d+\]\s+\d+\s*$",
        ),
    ),
    FailureMode(
        id="dangling-images",
        title="Untagged image layers",
        cause="Rebuilding a tag leaves the previous image as <none>:<none>.",
        remedy="Remove them with docker image prune -f.",
        patterns=_patterns(r"^<none>\s+<none>[^\n]*"),
    ),
    FailureMode(
        id="public-key-retrieval",
        title="MySQL 8 public key retrieval refused",
        cause="caching_sha2_password needs the server RSA key on non-TLS connections and the driver "
              "refuses to fetch it by default.",
        remedy="Append allowPublicKeyRetrieval=true&useSSL=false to SPRING_DATASOURCE_URL.",
        patterns=_patterns(r"Public Key Retrieval is not allowed"),
    ),
    FailureMode(
        id="container-name-conflict",
        title="Container name already in use",
        cause="A stopped or running container already has the requested name.",
        remedy="Remove it with docker rm -f <name>, or run with --fresh.",
        patterns=_patterns(r"The container name \"[^\"]+\" is already in use[^\n]*", r"is already in use by container"),
    ),
    FailureMode(
        id="port-already-allocated",
        title="Host port in use",
        cause="Another process or container already publishes the host port.",
        remedy="Stop whatever holds the port or publish a different host port.",
        patterns=_patterns(r"port is already allocated", r"address already in use"),
    ),
    FailureMode(
        id="access-denied",
        title="Database credentials rejected",
        cause="SPRING_DATASOURCE_USERNAME/PASSWORD do not match the MySQL account.",
        remedy="Use the same value for SPRING_DATASOURCE_PASSWORD and MYSQL_ROOT_PASSWORD.",
        patterns=_patterns(r"Access denied for user [^\n]*"),
    ),
    FailureMode(
        id="unknown-database",
        title="Schema missing",
        cause="The database in the JDBC URL was never created.",
        remedy="Set MYSQL_DATABASE to the schema in the JDBC URL (BankDB) and recreate the MySQL container.",
        patterns=_patterns(r"Unknown database '[^']+'"),
    ),
]

_BY_ID = {mode.id: mode for mode in CATALOG}


def get_failure_mode(failure_id: str) -> FailureMode:
    """Look up a failure mode by id.

    Raises:
        KeyError: if the id is not catalogued
    """
    return _BY_ID[failure_id]


def diagnose(text: str) -> List[Diagnosis]:
    """Match output against every failure mode.

    Args:
        text: Any command or container output

    Returns:
        One diagnosis per matched failure mode, in catalogue order
    """
    if not text:
        return []
    diagnoses = []
    for mode in CATALOG:
        match = mode.search(text)
        if match:
            diagnoses.append(Diagnosis(failure_mode=mode, excerpt=match.group(0).strip()))
    if diagnoses:
        logger.debug("failure_modes_matched", ids=[d.failure_mode.id for d in diagnoses])
    return diagnoses
