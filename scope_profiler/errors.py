"""Structured error types for the profiler.

Fatal invariant violations (stack misuse, concurrent access) are raised
as exceptions rather than producing silently wrong measurements.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Categories of profiler errors."""

    INVARIANT = "invariant"  # Scope stack discipline broken
    CONCURRENCY = "concurrency"  # Arena shared across call stacks
    CONFIGURATION = "configuration"  # Unknown presets, bad settings


@dataclass
class ProfilerError(Exception):
    """Base class for structured profiler errors.

    Attributes:
        category: Error category for grouping.
        message: Human-readable error message.
        suggestion: Optional actionable recovery suggestion.
        details: Optional additional details dict.
        exit_code: Exit code used by the CLI when this error terminates it.
    """

    category: ErrorCategory
    message: str
    suggestion: str | None = None
    details: dict[str, Any] | None = field(default_factory=dict)
    exit_code: int = 1

    def __post_init__(self) -> None:
        """Initialize the exception with the message."""
        super().__init__(self.message)

    def format(self) -> str:
        """Format the error for display, including suggestion and details."""
        lines = [f"Error: {self.message}"]

        if self.suggestion:
            lines.append(f"Suggestion: {self.suggestion}")

        if self.details:
            for key, value in self.details.items():
                lines.append(f"  {key}: {value}")

        return "\n".join(lines)

    def __str__(self) -> str:
        return self.format()


class ScopeStackError(ProfilerError):
    """The active scope stack was used out of order."""

    def __init__(self, message: str, scope: str | None = None):
        super().__init__(
            category=ErrorCategory.INVARIANT,
            message=message,
            suggestion=(
                "Release trackers in reverse order of entry, "
                "preferably with a 'with measure(...)' block"
            ),
            details={"scope": scope} if scope else None,
        )


class ConcurrentAccessError(ProfilerError):
    """The measurement arena was entered from more than one call stack."""

    def __init__(self, message: str, owner_thread: int | None = None):
        super().__init__(
            category=ErrorCategory.CONCURRENCY,
            message=message,
            suggestion="Create one MeasurementArena per thread of control",
            details={"owner_thread": owner_thread} if owner_thread else None,
        )


class UnknownFormatError(ProfilerError):
    """A formatting preset name was not recognized."""

    def __init__(self, name: str, available: list[str]):
        super().__init__(
            category=ErrorCategory.CONFIGURATION,
            message=f"Unknown format preset: {name}",
            suggestion=f"Use one of: {', '.join(available)}",
            details={"format": name},
        )
