"""Asynchronous wrapper around the ``borg`` command line tool."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from pydantic import ValidationError

from borgreport.core.config import RepositoryConfig
from borgreport.core.formatting import parse_si_bytes
from borgreport.domain.contracts import BorgInfoContract
from borgreport.domain.errors import CheckFailure, InvocationError
from borgreport.domain.models import ArchiveSelector

logger = logging.getLogger(__name__)

# borg prints timestamps in the local zone of the child; pin it to UTC.
BORG_DEFAULT_ENV: Mapping[str, str] = {"LC_ALL": "C.UTF-8", "TZ": "UTC"}


@dataclass(frozen=True, slots=True)
class CommandOutput:
    """Decoded result of one finished borg process."""

    returncode: int
    stdout: str
    stderr: str
    duration: float

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def check_failure(self) -> CheckFailure | None:
        """Describe a failed ``borg check`` run, or ``None`` when it passed."""

        if self.ok:
            return None
        message = self.stderr.strip() or (
            f"borg check failed with exit status {self.returncode}"
        )
        return CheckFailure(message, exit_status=self.returncode)


@dataclass(frozen=True, slots=True)
class CompactOutput:
    """Result of ``borg compact`` with the freed space pulled out of stderr."""

    output: CommandOutput
    freed_bytes: int | None = None


def build_child_env(
    environ: Mapping[str, str], repository_env: Mapping[str, str]
) -> dict[str, str]:
    """Compose the environment of a borg child process.

    BORG_* variables of the ambient environment never leak into a repository
    that did not set them; ``NOTIFY_SOCKET`` is dropped so borg cannot talk to
    the service manager on our behalf.
    """

    env = {
        key: value
        for key, value in environ.items()
        if not key.startswith("BORG_") and key != "NOTIFY_SOCKET"
    }
    env.update(BORG_DEFAULT_ENV)
    env.update(repository_env)
    return env


def split_freed_bytes(stderr: str) -> tuple[int | None, str]:
    """Pull the first byte quantity out of compact's log and drop that line."""

    freed: int | None = None
    kept: list[str] = []
    for line in stderr.splitlines():
        if freed is None:
            value = parse_si_bytes(line)
            if value is not None:
                freed = value
                continue
        kept.append(line)
    remainder = "\n".join(kept)
    return freed, f"{remainder}\n" if remainder else ""


@dataclass(slots=True)
class BorgInvoker:
    """Run borg subcommands for a single repository."""

    config: RepositoryConfig
    environ: Mapping[str, str] = field(default_factory=dict)

    @property
    def binary(self) -> str:
        return str(self.config.borg_binary)

    async def run(self, args: Sequence[str]) -> CommandOutput:
        """Execute borg with *args*; only a failure to spawn raises."""

        env = build_child_env(self.environ, self.config.env)
        logger.debug("Running %s %s for %s", self.binary, " ".join(args), self.config.name)
        started = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                self.binary,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except (OSError, ValueError) as exc:
            # ValueError: NUL bytes in the binary path or the environment
            raise InvocationError(
                f"Failed to execute borg binary: `{self.binary}`: {exc}"
            ) from exc

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
            await process.wait()
            raise

        duration = time.monotonic() - started
        returncode = process.returncode if process.returncode is not None else -1
        return CommandOutput(
            returncode=returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            duration=duration,
        )

    async def info(self, selector: ArchiveSelector) -> BorgInfoContract:
        """Query the newest archive matching *selector* plus repository stats."""

        args = ["--bypass-lock", "info"]
        if selector.glob is not None:
            args.extend(["--glob-archives", selector.glob])
        args.extend(["--last", "1", "--json", "::"])

        output = await self.run(args)
        if not output.ok:
            raise InvocationError(
                output.stderr.strip()
                or f"borg info failed with exit status {output.returncode}"
            )
        try:
            return BorgInfoContract.model_validate_json(output.stdout)
        except ValidationError as exc:
            raise InvocationError(
                f"Failed to parse JSON response of `borg info`: {exc}"
            ) from exc

    async def check(self, archive_name: str | None = None) -> CommandOutput:
        """Check one archive, or the whole repository when no name is given."""

        args = ["check", *self.config.check_options, f"::{archive_name or ''}"]
        return await self.run(args)

    async def compact(self) -> CompactOutput:
        # --verbose makes borg log the freed space to stderr
        args = ["compact", "--verbose", *self.config.compact_options]
        output = await self.run(args)
        freed, stderr = split_freed_bytes(output.stderr)
        return CompactOutput(
            output=CommandOutput(
                returncode=output.returncode,
                stdout=output.stdout,
                stderr=stderr,
                duration=output.duration,
            ),
            freed_bytes=freed,
        )


__all__ = [
    "BORG_DEFAULT_ENV",
    "BorgInvoker",
    "CommandOutput",
    "CompactOutput",
    "build_child_env",
    "split_freed_bytes",
]
