"""Deliver rendered reports to stdout, files and mail."""

from __future__ import annotations

import os
import sys
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, TextIO

import structlog
from structlog.typing import FilteringBoundLogger

from borgreport.core.config import RunOptions
from borgreport.domain.errors import DeliveryError
from borgreport.domain.models import Report
from borgreport.integrations.mail import MailTransport, SendmailTransport, build_message
from borgreport.interfaces.formats import OutputFormat, render
from borgreport.interfaces.formats.tables import local_date

STDOUT_PATH = "-"


class Sink(Protocol):
    """A report destination."""

    @property
    def target(self) -> str: ...

    @property
    def formats(self) -> tuple[OutputFormat, ...]: ...

    def send(self, report: Report, rendered: Mapping[OutputFormat, str]) -> None: ...


@dataclass(slots=True)
class StdoutSink:
    output_format: OutputFormat = OutputFormat.TEXT
    stream: TextIO | None = None

    @property
    def target(self) -> str:
        return "stdout"

    @property
    def formats(self) -> tuple[OutputFormat, ...]:
        return (self.output_format,)

    def send(self, report: Report, rendered: Mapping[OutputFormat, str]) -> None:
        stream = self.stream or sys.stdout
        stream.write(rendered[self.output_format])
        stream.flush()


@dataclass(slots=True)
class FileSink:
    """Write one format to a file, replacing it atomically."""

    path: Path
    output_format: OutputFormat

    @property
    def target(self) -> str:
        return str(self.path)

    @property
    def formats(self) -> tuple[OutputFormat, ...]:
        return (self.output_format,)

    def send(self, report: Report, rendered: Mapping[OutputFormat, str]) -> None:
        directory = self.path.parent
        handle = tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=directory,
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            delete=False,
        )
        temp_path = Path(handle.name)
        try:
            with handle:
                handle.write(rendered[self.output_format])
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(temp_path, 0o644)
            os.replace(temp_path, self.path)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise


def mail_subject(report: Report) -> str:
    parts = [f"Backup report ({local_date(report.generated_at)})"]
    if report.has_errors:
        parts.append(f"Errors:{report.count_errors}")
    if report.has_warnings:
        parts.append(f"Warnings:{report.count_warnings}")
    return " ".join(parts)


@dataclass(slots=True)
class MailSink:
    """Send text and HTML as one ``multipart/alternative`` message."""

    to: str
    sender: str | None = None
    transport: MailTransport = field(default_factory=SendmailTransport)

    @property
    def target(self) -> str:
        return f"mail <{self.to}>"

    @property
    def formats(self) -> tuple[OutputFormat, ...]:
        return (OutputFormat.TEXT, OutputFormat.HTML)

    def send(self, report: Report, rendered: Mapping[OutputFormat, str]) -> None:
        message = build_message(
            to=self.to,
            sender=self.sender,
            subject=mail_subject(report),
            plain=rendered[OutputFormat.TEXT],
            html=rendered[OutputFormat.HTML],
        )
        self.transport.send(message, to=self.to, envelope_from=self.sender)


@dataclass(slots=True)
class DeliveryPlan:
    sinks: list[Sink] = field(default_factory=list)

    @property
    def formats(self) -> tuple[OutputFormat, ...]:
        needed = dict.fromkeys(fmt for sink in self.sinks for fmt in sink.formats)
        return tuple(needed)

    @classmethod
    def from_options(
        cls,
        options: RunOptions,
        *,
        stdout: TextIO | None = None,
        transport: MailTransport | None = None,
    ) -> DeliveryPlan:
        """Translate destination options into sinks.

        Text goes to stdout when the text destination is ``-`` or when neither
        a text file nor a mail recipient was requested.
        """

        sinks: list[Sink] = []
        to_stdout = options.text_to is None and options.mail_to is None
        if options.text_to is not None:
            if str(options.text_to) == STDOUT_PATH:
                to_stdout = True
            else:
                sinks.append(FileSink(options.text_to, OutputFormat.TEXT))
        if options.html_to is not None:
            sinks.append(FileSink(options.html_to, OutputFormat.HTML))
        if options.metrics_to is not None:
            sinks.append(FileSink(options.metrics_to, OutputFormat.METRICS))
        if options.mail_to is not None:
            sinks.append(
                MailSink(
                    options.mail_to,
                    options.mail_from,
                    transport or SendmailTransport(),
                )
            )
        if to_stdout:
            sinks.append(StdoutSink(OutputFormat.TEXT, stdout))
        return cls(sinks)


def deliver(
    report: Report,
    plan: DeliveryPlan,
    *,
    logger: FilteringBoundLogger | None = None,
) -> None:
    """Render each needed format once, then try every destination.

    Rendering happens before anything is written, so a ``RenderError`` leaves
    no output behind. Destination failures are collected and raised together
    as one ``DeliveryError`` once all destinations have been tried.
    """

    log = logger or structlog.get_logger(__name__)
    rendered = {fmt: render(report, fmt) for fmt in plan.formats}

    failures: list[tuple[str, BaseException]] = []
    for sink in plan.sinks:
        try:
            sink.send(report, rendered)
        except Exception as exc:
            log.error("report.delivery_failed", target=sink.target, error=str(exc))
            failures.append((sink.target, exc))
        else:
            log.info("report.delivered", target=sink.target)

    if failures:
        raise DeliveryError(failures)


__all__ = [
    "DeliveryPlan",
    "FileSink",
    "MailSink",
    "Sink",
    "StdoutSink",
    "deliver",
    "mail_subject",
]
