"""In-memory report model built during a single borgreport run."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ArchiveSelector:
    """A glob pattern, or ``None`` for the implicit "latest archive" selector."""

    glob: str | None = None

    @property
    def is_latest(self) -> bool:
        return self.glob is None

    @property
    def label(self) -> str:
        """Metric label value; the implicit selector is the empty string."""

        return self.glob or ""

    @classmethod
    def from_globs(cls, globs: tuple[str, ...]) -> tuple["ArchiveSelector", ...]:
        """Expand configured globs, falling back to the implicit selector."""

        if not globs:
            return (cls(),)
        unique = tuple(dict.fromkeys(globs))
        if len(unique) != len(globs):
            logger.debug("Ignoring repeated archive globs in %s", " ".join(globs))
        return tuple(cls(glob) for glob in unique)


@dataclass(frozen=True, slots=True)
class ArchiveInfo:
    """Metadata of the most recent archive matching a selector."""

    name: str
    hostname: str
    start: datetime
    duration: float
    original_size: int
    compressed_size: int
    deduplicated_size: int
    nfiles: int

    @property
    def start_timestamp(self) -> float:
        return self.start.timestamp()


@dataclass(frozen=True, slots=True)
class ArchiveStatus:
    """Per-selector result; ``archive`` is ``None`` when nothing matched."""

    selector: ArchiveSelector
    archive: ArchiveInfo | None = None

    @property
    def absent(self) -> bool:
        return self.archive is None


@dataclass(frozen=True, slots=True)
class RepositoryHealth:
    """Aggregate status of one repository across all of its selectors."""

    name: str
    selectors: tuple[ArchiveSelector, ...]
    total_size: int | None = None
    statuses: tuple[ArchiveStatus, ...] = ()
    unreachable: tuple[ArchiveSelector, ...] = ()

    @property
    def reachable(self) -> bool:
        return bool(self.statuses) and not self.unreachable

    @property
    def archives(self) -> list[ArchiveInfo]:
        return [status.archive for status in self.statuses if status.archive]

    def status_for(self, selector: ArchiveSelector) -> ArchiveStatus | None:
        for status in self.statuses:
            if status.selector == selector:
                return status
        return None


@dataclass(frozen=True, slots=True)
class CheckResult:
    """Outcome of ``borg check``; ``okay`` is ``None`` when the check did not run."""

    repository: str
    selector: ArchiveSelector
    archive_name: str | None
    okay: bool | None
    duration: float = 0.0
    diagnostics: str = ""

    @property
    def ran(self) -> bool:
        return self.okay is not None


@dataclass(frozen=True, slots=True)
class CompactResult:
    """Outcome of ``borg compact``; ``okay`` is ``None`` when it was skipped."""

    repository: str
    okay: bool | None
    duration: float = 0.0
    freed_bytes: int | None = None

    @property
    def ran(self) -> bool:
        return self.okay is not None


@dataclass(frozen=True, slots=True)
class Finding:
    """A warning or error attributed to a repository (and optionally a glob)."""

    severity: Severity
    repository: str
    message: str
    selector: ArchiveSelector | None = None

    @property
    def text(self) -> str:
        prefix = self.repository
        if self.selector is not None and self.selector.glob is not None:
            prefix = f"{prefix}[{self.selector.glob}]"
        if not prefix:
            return self.message
        return f"{prefix}: {self.message}"


@dataclass(slots=True)
class RepositoryReport:
    """Everything the pipeline learned about one repository."""

    health: RepositoryHealth
    findings: list[Finding] = field(default_factory=list)
    checks: list[CheckResult] = field(default_factory=list)
    compact: CompactResult | None = None

    @property
    def name(self) -> str:
        return self.health.name

    @property
    def clean(self) -> bool:
        return not self.findings

    def warn(self, message: str, selector: ArchiveSelector | None = None) -> None:
        self.findings.append(
            Finding(Severity.WARNING, self.health.name, message, selector)
        )

    def error(self, message: str, selector: ArchiveSelector | None = None) -> None:
        self.findings.append(Finding(Severity.ERROR, self.health.name, message, selector))


@dataclass(slots=True)
class Report:
    """Root aggregate rendered into every output format."""

    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    repositories: list[RepositoryHealth] = field(default_factory=list)
    warnings: list[Finding] = field(default_factory=list)
    errors: list[Finding] = field(default_factory=list)
    checks: list[CheckResult] = field(default_factory=list)
    compacts: list[CompactResult] = field(default_factory=list)

    def add_finding(self, finding: Finding) -> None:
        if finding.severity is Severity.ERROR:
            self.errors.append(finding)
        else:
            self.warnings.append(finding)

    def add_warning(self, repository: str, message: str) -> None:
        self.add_finding(Finding(Severity.WARNING, repository, message))

    def add_error(self, repository: str, message: str) -> None:
        self.add_finding(Finding(Severity.ERROR, repository, message))

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    @property
    def count_errors(self) -> int:
        return len(self.errors)

    @property
    def count_warnings(self) -> int:
        return len(self.warnings)

    def findings_for(self, repository: str) -> Iterator[Finding]:
        for finding in (*self.errors, *self.warnings):
            if finding.repository == repository:
                yield finding


__all__ = [
    "ArchiveInfo",
    "ArchiveSelector",
    "ArchiveStatus",
    "CheckResult",
    "CompactResult",
    "Finding",
    "Report",
    "RepositoryHealth",
    "RepositoryReport",
    "Severity",
]
