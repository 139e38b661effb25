"""Turn raw borg results into findings and merge them into one report."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from borgreport.core.config import ConfigFailure, RepositoryConfig
from borgreport.domain.contracts import BorgInfoContract
from borgreport.domain.errors import BorgReportError
from borgreport.domain.models import (
    ArchiveInfo,
    ArchiveSelector,
    ArchiveStatus,
    CheckResult,
    CompactResult,
    Report,
    RepositoryHealth,
    RepositoryReport,
)
from borgreport.integrations.borg import CommandOutput, CompactOutput

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600.0


@dataclass(slots=True)
class SelectorRun:
    """What the invoker learned for one archive selector."""

    selector: ArchiveSelector
    info: BorgInfoContract | None = None
    info_error: BorgReportError | None = None
    check_archive: str | None = None
    check: CommandOutput | None = None
    check_error: BorgReportError | None = None

    @property
    def archive(self) -> ArchiveInfo | None:
        return self.info.latest_archive() if self.info else None


@dataclass(slots=True)
class RepositoryRun:
    """Collected invoker results of one repository, in selector order."""

    config: RepositoryConfig
    selectors: list[SelectorRun] = field(default_factory=list)
    compact: CompactOutput | None = None
    compact_error: BorgReportError | None = None
    compact_skipped: bool = False


def format_hours(hours: float) -> str:
    return f"{hours:g}"


def _health(run: RepositoryRun) -> RepositoryHealth:
    statuses: list[ArchiveStatus] = []
    unreachable: list[ArchiveSelector] = []
    total_size: int | None = None
    for selector_run in run.selectors:
        if selector_run.info is None:
            unreachable.append(selector_run.selector)
            continue
        total_size = selector_run.info.unique_csize
        statuses.append(ArchiveStatus(selector_run.selector, selector_run.archive))
    return RepositoryHealth(
        name=run.config.name,
        selectors=tuple(selector_run.selector for selector_run in run.selectors),
        total_size=total_size,
        statuses=tuple(statuses),
        unreachable=tuple(unreachable),
    )


def _is_empty(health: RepositoryHealth) -> bool:
    if not health.statuses or health.archives:
        return False
    implicit_queried = any(status.selector.is_latest for status in health.statuses)
    return implicit_queried or health.total_size == 0


def _evaluate_archive(
    report: RepositoryReport,
    selector: ArchiveSelector,
    archive: ArchiveInfo,
    *,
    max_age_hours: float,
    now: datetime,
) -> None:
    age_hours = (now - archive.start).total_seconds() / SECONDS_PER_HOUR
    if age_hours > max_age_hours:
        report.warn(
            f"Last backup is older than {format_hours(max_age_hours)} hours", selector
        )
    if archive.original_size == 0:
        report.warn(
            f"Last backup archive contains no data. Archive {archive.name} is empty.",
            selector,
        )


def _evaluate_check(report: RepositoryReport, selector_run: SelectorRun) -> None:
    selector = selector_run.selector
    if selector_run.check_error is not None:
        report.error(str(selector_run.check_error), selector)
        report.checks.append(
            CheckResult(report.name, selector, selector_run.check_archive, okay=None)
        )
        return

    output = selector_run.check
    if output is None:
        return
    report.checks.append(
        CheckResult(
            repository=report.name,
            selector=selector,
            archive_name=selector_run.check_archive,
            okay=output.ok,
            duration=output.duration,
            diagnostics=output.stderr.strip(),
        )
    )
    failure = output.check_failure()
    if failure is not None:
        report.error(str(failure), selector)
    elif output.stderr.strip():
        report.warn(output.stderr.strip(), selector)
    if output.stdout.strip():
        report.warn(output.stdout.strip(), selector)


def _evaluate_compact(report: RepositoryReport, run: RepositoryRun) -> None:
    name = report.name
    if run.compact_error is not None:
        report.error(str(run.compact_error))
        report.compact = CompactResult(name, okay=None)
        return
    if run.compact is None:
        if run.compact_skipped:
            report.compact = CompactResult(name, okay=None)
        return

    output = run.compact.output
    report.compact = CompactResult(
        repository=name,
        okay=output.ok,
        duration=output.duration,
        freed_bytes=run.compact.freed_bytes,
    )
    if output.stdout.strip():
        report.warn(output.stdout.strip())
    if not output.ok:
        report.error(
            output.stderr.strip()
            or f"borg compact failed with exit status {output.returncode}"
        )
    elif output.stderr.strip():
        report.warn(output.stderr.strip())


def evaluate_repository(run: RepositoryRun, now: datetime) -> RepositoryReport:
    """Evaluate warning and error conditions for one repository.

    Pure function of its inputs: *now* is passed in so age checks can be
    tested at exact boundaries.
    """

    health = _health(run)
    report = RepositoryReport(health)

    if _is_empty(health):
        report.warn("Repository is empty")

    for selector_run in run.selectors:
        selector = selector_run.selector
        if selector_run.info_error is not None:
            report.error(str(selector_run.info_error), selector)
            continue
        if selector_run.info is None:
            continue

        archive = selector_run.archive
        if archive is None:
            if not selector.is_latest:
                report.warn(f"The glob '{selector.glob}' yields no result!", selector)
        else:
            _evaluate_archive(
                report,
                selector,
                archive,
                max_age_hours=run.config.max_age_hours,
                now=now,
            )
        _evaluate_check(report, selector_run)

    _evaluate_compact(report, run)
    return report


def unreachable_repository(name: str, message: str) -> RepositoryReport:
    """Report for a repository that could not be queried at all."""

    selector = ArchiveSelector()
    report = RepositoryReport(
        RepositoryHealth(
            name=name,
            selectors=(selector,),
            unreachable=(selector,),
        )
    )
    report.error(message)
    return report


def failed_repository(failure: ConfigFailure) -> RepositoryReport:
    """Report for a repository whose configuration could not be resolved."""

    return unreachable_repository(failure.name, str(failure.error))


class StatusAggregator:
    """Sole owner of the ``Report``; merges repository reports in order.

    Repository reports may arrive in any order. Each is buffered until all
    reports with a lower discovery position have been merged.
    """

    def __init__(self, report: Report | None = None) -> None:
        self.report = report or Report()
        self._pending: dict[int, RepositoryReport] = {}
        self._next_position = 0

    def add_warning(self, message: str) -> None:
        self.report.add_warning("", message)

    def accept(self, position: int, repository: RepositoryReport) -> list[RepositoryReport]:
        """Buffer *repository*; return the reports merged by this call."""

        if position < self._next_position or position in self._pending:
            raise ValueError(f"Duplicate report for position {position}")
        self._pending[position] = repository

        merged: list[RepositoryReport] = []
        while self._next_position in self._pending:
            ready = self._pending.pop(self._next_position)
            self._merge(ready)
            merged.append(ready)
            self._next_position += 1
        return merged

    @property
    def pending(self) -> int:
        return len(self._pending)

    def _merge(self, repository: RepositoryReport) -> None:
        logger.debug(
            "Merging %s with %d findings", repository.name, len(repository.findings)
        )
        self.report.repositories.append(repository.health)
        for finding in repository.findings:
            self.report.add_finding(finding)
        self.report.checks.extend(repository.checks)
        if repository.compact is not None:
            self.report.compacts.append(repository.compact)

    def finish(self) -> Report:
        if self._pending:
            missing = sorted(self._pending)
            raise RuntimeError(f"Repository reports still pending: {missing}")
        return self.report


__all__ = [
    "RepositoryRun",
    "SelectorRun",
    "StatusAggregator",
    "evaluate_repository",
    "failed_repository",
    "unreachable_repository",
]
