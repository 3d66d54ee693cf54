"""
Error taxonomy for annotest.

Parse-time problems degrade to warnings wherever a function can simply be
excluded. Structural misuse of the registration API and unresolvable fixture
graphs are raised as exceptions and attributed to the caller or the test
that triggered them.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Categories of problems reported by annotest."""

    DIRECTIVE_PARSE = "directive_parse"
    REGISTRATION = "registration"
    DEPENDENCY_CYCLE = "dependency_cycle"
    MISSING_DEPENDENCY = "missing_dependency"
    HOOK_FAILURE = "hook_failure"
    LABEL_MISMATCH = "label_mismatch"


def type_name(tp: Any) -> str:
    """Human readable name for a type token used in messages."""
    name = getattr(tp, "__qualname__", None) or getattr(tp, "__name__", None)
    return name if isinstance(name, str) else repr(tp)


class AnnotestError(Exception):
    """Base class for all annotest errors."""

    kind: ErrorKind


class DirectiveParseError(AnnotestError, ValueError):
    """Raised when an annotation is present but malformed."""

    kind = ErrorKind.DIRECTIVE_PARSE

    def __init__(self, annotation: str, line: str, reason: str) -> None:
        self.annotation = annotation
        self.line = line
        self.reason = reason
        super().__init__(f"@{annotation} {reason}: '{line}'")


class RegistrationError(AnnotestError, TypeError):
    """Raised when a function cannot be registered with the engine."""

    kind = ErrorKind.REGISTRATION


class ResolutionError(AnnotestError):
    """Raised when a value cannot be produced for a requested type."""

    kind = ErrorKind.MISSING_DEPENDENCY


class DependencyCycleError(ResolutionError):
    """Raised when fixtures depend on each other in a cycle."""

    kind = ErrorKind.DEPENDENCY_CYCLE

    def __init__(self, cycle: list[Any]) -> None:
        self.cycle = cycle
        cycle_str = " -> ".join(type_name(tp) for tp in cycle)
        super().__init__(f"Circular dependency detected: {cycle_str}")


class MissingDependencyError(ResolutionError, LookupError):
    """Raised when no fixture produces a requested type."""

    kind = ErrorKind.MISSING_DEPENDENCY

    def __init__(self, dependency: Any, requested_by: str | None = None) -> None:
        self.dependency = dependency
        self.requested_by = requested_by
        msg = f"No fixture provides '{type_name(dependency)}'"
        if requested_by:
            msg += f" (requested by '{requested_by}')"
        super().__init__(msg)


class HookFailure(AnnotestError):
    """Raised when a before/after hook fails for a test."""

    kind = ErrorKind.HOOK_FAILURE

    def __init__(self, hook: str, stage: str, cause: BaseException) -> None:
        self.hook = hook
        self.stage = stage
        super().__init__(f"{stage} hook '{hook}' failed: {cause}")


class SkipTest(Exception):
    """Raised to mark the running test as skipped."""
