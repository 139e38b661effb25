"""HTML rendering of a report (``text/html``) through a jinja2 template."""

from __future__ import annotations

from collections.abc import Iterable
from email.utils import format_datetime
from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from borgreport import PACKAGE_NAME, PROJECT_URL, __version__
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

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
TEMPLATE_NAME = "report.html"


@lru_cache(maxsize=1)
def template_environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(["html", "xml"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )


def _finding_lines(findings: Iterable[Finding]) -> list[list[str]]:
    entries = [finding.text.strip().splitlines() for finding in findings]
    return [lines for lines in entries if lines]


def render_html(report: Report) -> str:
    template = template_environment().get_template(TEMPLATE_NAME)
    return template.render(
        title=f"Backup report ({local_date(report.generated_at)})",
        package=PACKAGE_NAME,
        version=__version__,
        project_url=PROJECT_URL,
        generated=format_datetime(report.generated_at.astimezone()),
        errors=_finding_lines(report.errors),
        warnings=_finding_lines(report.warnings),
        summary_headers=SUMMARY_HEADERS,
        summary=[row.cells() for row in summary_rows(report)],
        summary_numeric_from=SUMMARY_NUMERIC_FROM,
        check_headers=CHECK_HEADERS,
        checks=[check_cells(check) for check in report.checks],
        check_notes=check_notes(report),
        check_numeric_from=CHECK_NUMERIC_FROM,
        compact_headers=COMPACT_HEADERS,
        compacts=[compact_cells(compact) for compact in report.compacts],
        compact_notes=compact_notes(report),
        compact_numeric_from=COMPACT_NUMERIC_FROM,
    )


__all__ = ["TEMPLATES_DIR", "render_html", "template_environment"]
