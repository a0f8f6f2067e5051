"""Known failure modes of the stack and their remedies."""

from .catalog import CATALOG, Diagnosis, FailureMode, diagnose, get_failure_mode

__all__ = ["CATALOG", "Diagnosis", "FailureMode", "diagnose", "get_failure_mode"]
