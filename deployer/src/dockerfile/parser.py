"""Line-oriented Dockerfile parser.

Understands the subset of the Dockerfile grammar the linter needs:
comments, backslash continuations, exec (JSON array) and shell forms, and
``FROM image [AS name]`` stage boundaries. Parser directives and heredocs
are treated as ordinary lines.
"""

import json
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import structlog

from ..errors import DockerfileParseError

logger = structlog.get_logger(__name__)

KNOWN_KEYWORDS = frozenset({
    "ADD", "ARG", "CMD", "COPY", "ENTRYPOINT", "ENV", "EXPOSE", "FROM",
    "HEALTHCHECK", "LABEL", "MAINTAINER", "ONBUILD", "RUN", "SHELL",
    "STOPSIGNAL", "USER", "VOLUME", "WORKDIR",
})

EXEC_FORM_KEYWORDS = frozenset({"ADD", "CMD", "COPY", "ENTRYPOINT", "RUN", "SHELL", "VOLUME"})


@dataclass
class Instruction:
    """One logical Dockerfile instruction."""

    keyword: str
    value: str
    line: int
    end_line: int
    exec_form: Optional[List[str]] = None
    stage_index: int = -1
    warnings: List[str] = field(default_factory=list)

    @property
    def is_exec_form(self) -> bool:
        return self.exec_form is not None

    @property
    def flags(self) -> Dict[str, str]:
        """Leading ``--name=value`` flags, e.g. ``COPY --from=builder``."""
        result = {}
        for token in self.value.split():
            if not token.startswith("--"):
                break
            name, _, flag_value = token[2:].partition("=")
            result[name] = flag_value
        return result

    @property
    def arguments(self) -> List[str]:
        """Arguments after any leading flags (shell form split on whitespace)."""
        if self.exec_form is not None:
            return list(self.exec_form)
        tokens = self.value.split()
        while tokens and tokens[0].startswith("--"):
            tokens.pop(0)
        return tokens


@dataclass
class Stage:
    """A build stage, started by ``FROM``."""

    index: int
    base_image: str
    name: Optional[str]
    from_instruction: Instruction
    instructions: List[Instruction] = field(default_factory=list)
    extra_tokens: List[str] = field(default_factory=list)

    @property
    def base_repository(self) -> str:
        """Image repository without registry path, tag or digest."""
        image = self.base_image.split("@", 1)[0]
        last = image.rsplit("/", 1)[-1]
        return last.split(":", 1)[0]

    @property
    def base_tag(self) -> Optional[str]:
        image = self.base_image.split("@", 1)[0]
        last = image.rsplit("/", 1)[-1]
        return last.split(":", 1)[1] if ":" in last else None

    def find(self, keyword: str) -> List[Instruction]:
        return [i for i in self.instructions if i.keyword == keyword]


@dataclass
class DockerfileDocument:
    """Parsed Dockerfile."""

    instructions: List[Instruction]
    stages: List[Stage]
    source: str = ""

    @property
    def stage_names(self) -> List[str]:
        return [s.name for s in self.stages if s.name]

    @property
    def final_stage(self) -> Optional[Stage]:
        return self.stages[-1] if self.stages else None

    def instructions_by_keyword(self, keyword: str) -> List[Instruction]:
        keyword = keyword.upper()
        return [i for i in self.instructions if i.keyword == keyword]

    def resolve_stage(self, reference: str) -> Optional[Stage]:
        """Find a stage by name or numeric index, as ``COPY --from`` does."""
        if reference.isdigit():
            index = int(reference)
            return self.stages[index] if index < len(self.stages) else None
        for stage in self.stages:
            if stage.name and stage.name.lower() == reference.lower():
                return stage
        return None


def _logical_lines(text: str):
    """Yield (start_line, end_line, content) with continuations joined."""
    buffer: List[str] = []
    start = last = 0
    for number, raw in enumerate(text.splitlines(), start=1):
        stripped = raw.strip()
        if not stripped or stripped.startswith("#"):
            # Also dropped inside a continuation, as the builder does
            continue
        if not buffer:
            start = number
        last = number
        if stripped.endswith("\\"):
            buffer.append(stripped[:-1].strip())
            continue
        buffer.append(stripped)
        yield start, number, " ".join(part for part in buffer if part)
        buffer = []
    if buffer:
        yield start, last, " ".join(part for part in buffer if part)


def _parse_exec_form(keyword: str, value: str, warnings: List[str]) -> Optional[List[str]]:
    if keyword not in EXEC_FORM_KEYWORDS or not value.startswith("["):
        return None
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        warnings.append("exec form is not valid JSON; docker runs it in shell form")
        return None
    if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
        warnings.append("exec form must be a JSON array of strings")
        return None
    return parsed


def _parse_from(instruction: Instruction, index: int) -> Stage:
    tokens = instruction.arguments
    if not tokens:
        raise DockerfileParseError("FROM requires an image", line=instruction.line)
    base_image = tokens[0]
    name = None
    extra: List[str] = []
    rest = tokens[1:]
    if rest:
        if rest[0].upper() != "AS" or len(rest) < 2:
            extra = rest
        else:
            # FROM image AS a builder: docker rejects this, keep the tail for the linter
            name = rest[-1]
            extra = rest[1:-1]
    return Stage(
        index=index,
        base_image=base_image,
        name=name,
        from_instruction=instruction,
        extra_tokens=extra,
    )


def parse_dockerfile(text: str) -> DockerfileDocument:
    """Parse Dockerfile text into instructions and stages.

    Args:
        text: Dockerfile contents

    Returns:
        Parsed document

    Raises:
        DockerfileParseError: on an unknown instruction keyword or a
            ``FROM`` without an image
    """
    instructions: List[Instruction] = []
    stages: List[Stage] = []

    for start, end, content in _logical_lines(text):
        keyword, _, value = content.partition(" ")
        keyword = keyword.upper()
        if keyword not in KNOWN_KEYWORDS:
            raise DockerfileParseError(f"unknown instruction: {keyword}", line=start)
        value = value.strip()
        warnings: List[str] = []
        instruction = Instruction(
            keyword=keyword,
            value=value,
            line=start,
            end_line=end,
            exec_form=_parse_exec_form(keyword, value, warnings),
            warnings=warnings,
        )
        if keyword == "FROM":
            stages.append(_parse_from(instruction, len(stages)))
        instruction.stage_index = len(stages) - 1
        if stages:
            stages[-1].instructions.append(instruction)
        instructions.append(instruction)

    logger.debug(
        "dockerfile_parsed",
        instructions=len(instructions),
        stages=len(stages),
    )
    return DockerfileDocument(instructions=instructions, stages=stages, source=text)
