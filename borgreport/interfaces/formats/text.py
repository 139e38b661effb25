"""Plain text rendering of a report (``text/plain``)."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from email.utils import format_datetime
from io import StringIO

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from borgreport import PACKAGE_NAME, __version__
from borgreport.domain.models import Finding, Report
from borgreport.interfaces.formats.tables import (
    CHECK_HEADERS,
    CHECK_NUMERIC_FROM,
    COMPACT_HEADERS,
    COMPACT_NUMERIC_FROM,
    SUMMARY_HEADERS,
    SUMMARY_NUMERIC_FROM,
    check_cells,
    check_notes,
    compact_cells,
    compact_notes,
    local_date,
    summary_rows,
)

_CONSOLE_WIDTH = 10_000


def bullet_list(findings: Iterable[Finding]) -> str:
    """Bullet each finding; continuation lines are indented under it."""

    lines: list[str] = []
    for finding in findings:
        entry = finding.text.strip().splitlines()
        if not entry:
            continue
        lines.append(f" * {entry[0]}")
        lines.extend(f"   {line}" for line in entry[1:])
    return "\n".join(lines) + "\n"


def markdown_table(
    headers: Sequence[str], rows: Iterable[Sequence[str]], *, numeric_from: int
) -> str:
    """Render rows as a markdown-style ASCII table."""

    table = Table(box=box.MARKDOWN, show_edge=True, highlight=False, pad_edge=True)
    for index, header in enumerate(headers):
        table.add_column(
            header,
            justify="right" if index >= numeric_from else "left",
            no_wrap=True,
        )
    for row in rows:
        # Text cells keep brackets in names from being read as console markup.
        table.add_row(*(Text(cell) for cell in row))

    buffer = StringIO()
    console = Console(
        file=buffer,
        width=_CONSOLE_WIDTH,
        color_system=None,
        force_terminal=False,
        legacy_windows=False,
        emoji=False,
    )
    console.print(table)
    lines = [line.rstrip() for line in buffer.getvalue().splitlines() if line.strip()]
    return "\n".join(lines) + "\n"


def render_text(report: Report) -> str:
    out: list[str] = [f"==== Backup report ({local_date(report.generated_at)}) ====\n"]

    if report.has_errors:
        out.append(f"=== Errors ===\n\n{bullet_list(report.errors)}")
    if report.has_warnings:
        out.append(f"=== Warnings ===\n\n{bullet_list(report.warnings)}")

    summary = markdown_table(
        SUMMARY_HEADERS,
        (row.cells() for row in summary_rows(report)),
        numeric_from=SUMMARY_NUMERIC_FROM,
    )
    out.append(f"=== Summary ===\n\n{summary}")

    if report.checks:
        notes = "".join(f"{note}\n\n" for note in check_notes(report))
        table = markdown_table(
            CHECK_HEADERS,
            (check_cells(check) for check in report.checks),
            numeric_from=CHECK_NUMERIC_FROM,
        )
        out.append(f"=== `borg check` result ===\n\n{notes}{table}")

    if report.compacts:
        notes = "".join(f"{note}\n\n" for note in compact_notes(report))
        table = markdown_table(
            COMPACT_HEADERS,
            (compact_cells(compact) for compact in report.compacts),
            numeric_from=COMPACT_NUMERIC_FROM,
        )
        out.append(f"=== `borg compact` result ===\n\n{notes}{table}")

    generated = format_datetime(report.generated_at.astimezone())
    out.append(f"Generated {generated} ({PACKAGE_NAME} {__version__})\n")
    return "\n".join(out)


__all__ = ["bullet_list", "markdown_table", "render_text"]
