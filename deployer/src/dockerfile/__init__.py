"""Dockerfile parsing, linting and rendering."""

from .parser import DockerfileDocument, Instruction, Stage, parse_dockerfile
from .linter import LintFinding, Severity, fix_dockerfile, lint
from .renderer import render_dockerfile

__all__ = [
    "DockerfileDocument",
    "Instruction",
    "LintFinding",
    "Severity",
    "Stage",
    "fix_dockerfile",
    "lint",
    "parse_dockerfile",
    "render_dockerfile",
]
