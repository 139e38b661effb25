"""Report renderers: plain text, HTML and OpenMetrics."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum

from borgreport.domain.errors import RenderError
from borgreport.domain.models import Report

from .html import render_html
from .metrics import render_metrics
from .text import render_text


class OutputFormat(str, Enum):
    TEXT = "text"
    HTML = "html"
    METRICS = "metrics"


RENDERERS: dict[OutputFormat, Callable[[Report], str]] = {
    OutputFormat.TEXT: render_text,
    OutputFormat.HTML: render_html,
    OutputFormat.METRICS: render_metrics,
}


def render(report: Report, output_format: OutputFormat) -> str:
    """Render *report*; any failure surfaces as ``RenderError``."""

    renderer = RENDERERS[output_format]
    try:
        return renderer(report)
    except RenderError:
        raise
    except Exception as exc:
        raise RenderError(
            f"Failed to render the {output_format.value} report: {exc}"
        ) from exc


__all__ = [
    "OutputFormat",
    "RENDERERS",
    "render",
    "render_html",
    "render_metrics",
    "render_text",
]
