"""Mail transport used to send the report through the local ``sendmail``."""

from __future__ import annotations

import getpass
import logging
import socket
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate, make_msgid
from typing import Protocol

from borgreport import PACKAGE_NAME

logger = logging.getLogger(__name__)


class MailTransport(Protocol):
    def send(self, message: MIMEMultipart, *, to: str, envelope_from: str | None) -> None: ...


def default_sender() -> str:
    """Fallback ``From`` address: ``user@hostname`` of the current process."""

    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = PACKAGE_NAME
    host = socket.gethostname() or "localhost"
    return f"{user}@{host}"


def build_message(
    *, to: str, sender: str | None, subject: str, plain: str, html: str
) -> MIMEMultipart:
    """Assemble a ``multipart/alternative`` message with text and HTML parts."""

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = sender or default_sender()
    message["To"] = to
    message["Date"] = formatdate(localtime=True)
    message["Message-ID"] = make_msgid(domain=socket.gethostname() or None)
    message.attach(MIMEText(plain, "plain", "utf-8"))
    message.attach(MIMEText(html, "html", "utf-8"))
    return message


@dataclass(frozen=True, slots=True)
class SendmailTransport:
    """Pipe messages into a sendmail-compatible binary."""

    command: Sequence[str] = ("sendmail",)

    def send(self, message: MIMEMultipart, *, to: str, envelope_from: str | None) -> None:
        # Without -f sendmail falls back to its own configured sender.
        args = [*self.command, "-i"]
        if envelope_from:
            args.extend(["-f", envelope_from])
        args.extend(["--", to])

        logger.debug("Sending report mail to %s via %s", to, self.command[0])
        completed = subprocess.run(
            args,
            input=message.as_bytes(),
            capture_output=True,
            check=False,
        )
        if completed.returncode != 0:
            detail = completed.stderr.decode("utf-8", errors="replace").strip()
            raise OSError(
                f"{self.command[0]} exited with status {completed.returncode}"
                + (f": {detail}" if detail else "")
            )


__all__ = ["MailTransport", "SendmailTransport", "build_message", "default_sender"]
