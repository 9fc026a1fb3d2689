"""
Exceptions for Ghii.

Every failure the engine reports derives from GhiiError so callers can
catch the whole family at once, or pick out the specific case:

- LoaderError / LoaderFailureError: a configuration source failed
- SnapshotValidationError: the merged tree violates the schema
- RendezvousTimeoutError: no snapshot became ready in time
- ActivationError: the deferred target failed after the snapshot was ready
- SourceUnavailableError: a file or HTTP source could not be read
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .schema import Violation


class GhiiError(Exception):
    """Base exception for configuration engine errors."""

    pass


class LoaderError(GhiiError):
    """Raised when a single loader fails."""

    def __init__(self, index: int, name: str, cause: BaseException):
        self.index = index
        self.name = name
        self.cause = cause
        super().__init__(f"Loader #{index} '{name}' failed: {type(cause).__name__}: {cause}")


class LoaderFailureError(GhiiError):
    """Raised when one or more loaders failed during a snapshot."""

    def __init__(self, errors: list[LoaderError]):
        self.errors = list(errors)
        names = ", ".join(f"#{e.index} '{e.name}'" for e in self.errors)
        super().__init__(f"{len(self.errors)} loader(s) failed: {names}")


class SnapshotValidationError(GhiiError):
    """
    Raised when the merged configuration fails schema validation.

    Carries the complete list of violations, never only the first.
    """

    def __init__(self, violations: list["Violation"]):
        self.violations = list(violations)
        super().__init__(f"Configuration is invalid ({len(self.violations)} violation(s))")

    def __str__(self) -> str:
        lines = [self.args[0]]
        for v in self.violations:
            lines.append(f"  - {v.dotted_path}: {v.reason} [{v.constraint}]")
        return "\n".join(lines)


class RendezvousTimeoutError(GhiiError, TimeoutError):
    """Raised when waiting for the first snapshot exceeds its deadline."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"No snapshot available after {timeout:.3f}s")


class ActivationError(GhiiError):
    """Raised when a deferred activation target fails."""

    def __init__(self, target: Any, cause: BaseException):
        self.target = target
        self.cause = cause
        super().__init__(f"Activation of {target!r} failed: {type(cause).__name__}: {cause}")


class SourceUnavailableError(GhiiError):
    """Raised when a configuration source cannot be read."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"[{source}] {reason}")


class SourceNotFoundError(SourceUnavailableError):
    """Raised at loader creation when the source path does not exist."""

    def __init__(self, source: str):
        super().__init__(source, "not found")
