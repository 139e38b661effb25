"""Display rows shared by the text and HTML renderers."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime

from borgreport.core.formatting import format_duration, format_size
from borgreport.domain.models import CheckResult, CompactResult, Report

PLACEHOLDER = "-"

SUMMARY_HEADERS = (
    "Repository",
    "Hostname",
    "Last archive",
    "Start",
    "Duration",
    "Source",
    "Δ Archive",
    "∑ Repository",
)
CHECK_HEADERS = ("Repository", "Archive", "Duration", "Okay")
COMPACT_HEADERS = ("Repository", "Duration", "Freed space")

# Columns from this index on are right aligned
SUMMARY_NUMERIC_FROM = 4
CHECK_NUMERIC_FROM = 2
COMPACT_NUMERIC_FROM = 1

CHECK_SKIPPED_NOTE = "Some repositories could not be checked due to previous errors."
COMPACT_SKIPPED_NOTE = "Repositories with errors or warnings are not compacted."
COMPACT_UNKNOWN_NOTE = (
    "Some remote repositories cannot return the freed bytes. This happens when "
    "the SSH_ORIGINAL_COMMAND is not passed to borg serve."
)


def local_date(moment: datetime) -> str:
    return moment.astimezone().strftime("%Y-%m-%d")


@dataclass(frozen=True, slots=True)
class SummaryRow:
    repository: str
    hostname: str
    archive: str
    start: str
    duration: str
    source: str
    delta: str
    total: str

    def cells(self) -> tuple[str, ...]:
        return (
            self.repository,
            self.hostname,
            self.archive,
            self.start,
            self.duration,
            self.source,
            self.delta,
            self.total,
        )


def summary_rows(report: Report) -> Iterator[SummaryRow]:
    """One row per repository and selector, in report order."""

    for health in report.repositories:
        for selector in health.selectors:
            status = health.status_for(selector)
            if selector in health.unreachable or status is None:
                yield SummaryRow(
                    health.name,
                    PLACEHOLDER,
                    selector.glob or PLACEHOLDER,
                    PLACEHOLDER,
                    PLACEHOLDER,
                    PLACEHOLDER,
                    PLACEHOLDER,
                    PLACEHOLDER,
                )
                continue

            total = format_size(health.total_size or 0)
            archive = status.archive
            if archive is None:
                yield SummaryRow(
                    health.name,
                    "",
                    selector.label,
                    "",
                    "",
                    format_size(0),
                    format_size(0),
                    total,
                )
                continue

            yield SummaryRow(
                health.name,
                archive.hostname,
                archive.name,
                local_date(archive.start),
                format_duration(archive.duration),
                format_size(archive.original_size),
                format_size(archive.deduplicated_size),
                total,
            )


def check_cells(check: CheckResult) -> tuple[str, ...]:
    if not check.ran:
        return (
            check.repository,
            check.archive_name or check.selector.glob or PLACEHOLDER,
            PLACEHOLDER,
            PLACEHOLDER,
        )
    return (
        check.repository,
        check.archive_name or "",
        format_duration(check.duration),
        "yes" if check.okay else "no",
    )


def compact_cells(compact: CompactResult) -> tuple[str, ...]:
    if not compact.ran:
        return (compact.repository, PLACEHOLDER, PLACEHOLDER)
    freed = "" if compact.freed_bytes is None else format_size(compact.freed_bytes)
    return (compact.repository, format_duration(compact.duration), freed)


def check_notes(report: Report) -> list[str]:
    if any(not check.ran for check in report.checks):
        return [CHECK_SKIPPED_NOTE]
    return []


def compact_notes(report: Report) -> list[str]:
    notes = []
    if any(not compact.ran for compact in report.compacts):
        notes.append(COMPACT_SKIPPED_NOTE)
    if any(compact.ran and compact.freed_bytes is None for compact in report.compacts):
        notes.append(COMPACT_UNKNOWN_NOTE)
    return notes


__all__ = [
    "CHECK_HEADERS",
    "COMPACT_HEADERS",
    "SUMMARY_HEADERS",
    "SummaryRow",
    "check_cells",
    "check_notes",
    "compact_cells",
    "compact_notes",
    "local_date",
    "summary_rows",
]
