"""Error taxonomy shared by the status pipeline."""

from __future__ import annotations

from collections.abc import Sequence


class BorgReportError(RuntimeError):
    """Base class for all pipeline failures."""


class ConfigError(BorgReportError):
    """Raised when a repository configuration is malformed or incomplete."""


class InvocationError(BorgReportError):
    """Raised when the borg process cannot start or exits abnormally."""


class CheckFailure(BorgReportError):
    """Raised when ``borg check`` ran but reported an integrity failure."""

    def __init__(self, message: str, *, exit_status: int) -> None:
        super().__init__(message)
        self.exit_status = exit_status


class RenderError(BorgReportError):
    """Raised when a report cannot be rendered into an output format."""


class DeliveryError(BorgReportError):
    """Raised when one or more output destinations could not be written."""

    def __init__(self, failures: Sequence[tuple[str, BaseException]]) -> None:
        self.failures = tuple(failures)
        joined = "; ".join(f"{target}: {error}" for target, error in self.failures)
        super().__init__(f"Failed to deliver the report to {joined}")


__all__ = [
    "BorgReportError",
    "CheckFailure",
    "ConfigError",
    "DeliveryError",
    "InvocationError",
    "RenderError",
]
