"""The ``borgreport`` command."""

from __future__ import annotations

import os
from pathlib import Path

import click

from borgreport import PACKAGE_NAME, __version__
from borgreport.application.delivery import DeliveryPlan, deliver
from borgreport.application.pipeline import ReportPipeline
from borgreport.core import config
from borgreport.core.observability import configure_logging
from borgreport.core.progress import ConsoleProgressListener
from borgreport.domain.errors import ConfigError, DeliveryError, RenderError

EXIT_INTERRUPTED = 130


@click.command(name=PACKAGE_NAME, context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--env-dir",
    "env_dirs",
    multiple=True,
    type=click.Path(file_okay=False, path_type=Path),
    envvar=config.ENV_DIR,
    help="Read repositories from the *.env files of this directory (repeatable).",
)
@click.option(
    "--env-inherit",
    is_flag=False,
    flag_value="",
    default=None,
    metavar="[NAME]",
    envvar=config.ENV_INHERIT,
    help="Report the single repository described by the BORG_* environment.",
)
@click.option(
    "--text-to",
    type=click.Path(dir_okay=False, allow_dash=True, path_type=Path),
    envvar=config.TEXT_TO,
    help="Write the text report to FILE ('-' for stdout).",
)
@click.option(
    "--html-to",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar=config.HTML_TO,
    help="Write the HTML report to FILE.",
)
@click.option(
    "--metrics-to",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar=config.METRICS_TO,
    help="Write OpenMetrics to FILE.",
)
@click.option("--mail-to", envvar=config.MAIL_TO, help="Send the report to this address.")
@click.option(
    "--mail-from",
    envvar=config.MAIL_FROM,
    help="Sender address of the mail (defaults to user@hostname).",
)
@click.option(
    "--no-progress",
    is_flag=True,
    default=False,
    envvar=config.NO_PROGRESS,
    help="Do not draw a progress bar on stderr.",
)
@click.option(
    "--max-workers",
    type=click.IntRange(min=1),
    default=config.DEFAULT_MAX_WORKERS,
    show_default=True,
    envvar=config.MAX_WORKERS,
    help="Number of repositories queried concurrently.",
)
@click.option(
    "--glob-archives",
    help="Space separated archive globs, overriding BORGREPORT_GLOB_ARCHIVES.",
)
@click.option(
    "--check/--no-check",
    default=None,
    help="Run `borg check` on the last archive, overriding BORGREPORT_CHECK.",
)
@click.option(
    "--compact/--no-compact",
    default=None,
    help="Run `borg compact` on clean repositories, overriding BORGREPORT_COMPACT.",
)
@click.option(
    "--borg-binary",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to the borg binary, overriding BORGREPORT_BORG_BINARY.",
)
@click.option(
    "--max-age-hours",
    type=float,
    help="Warn when the last archive is older, overriding BORGREPORT_MAX_AGE_HOURS.",
)
@click.option("-v", "--verbose", count=True, help="Log more (-v info, -vv debug).")
@click.version_option(__version__, prog_name=PACKAGE_NAME)
@click.pass_context
def cli(
    ctx: click.Context,
    env_dirs: tuple[Path, ...],
    env_inherit: str | None,
    text_to: Path | None,
    html_to: Path | None,
    metrics_to: Path | None,
    mail_to: str | None,
    mail_from: str | None,
    no_progress: bool,
    max_workers: int,
    glob_archives: str | None,
    check: bool | None,
    compact: bool | None,
    borg_binary: Path | None,
    max_age_hours: float | None,
    verbose: int,
) -> None:
    """Summarise the status of BorgBackup repositories in one report.

    Repositories come either from *.env files (--env-dir) or from the
    BORG_* variables of the current environment (--env-inherit).
    """

    if env_dirs and env_inherit is not None:
        raise click.UsageError("--env-dir and --env-inherit are mutually exclusive.")
    if not env_dirs and env_inherit is None:
        raise click.UsageError("Either --env-dir or --env-inherit is required.")

    configure_logging(verbose)

    options = config.RunOptions(
        env_dirs=tuple(env_dirs),
        env_inherit=env_inherit,
        text_to=text_to,
        html_to=html_to,
        metrics_to=metrics_to,
        mail_to=mail_to,
        mail_from=mail_from,
        progress=not no_progress,
        max_workers=max_workers,
        overrides=config.RepositoryOverrides(
            glob_archives=glob_archives,
            check=check,
            compact=compact,
            borg_binary=borg_binary,
            max_age_hours=max_age_hours,
        ),
    )
    environ = dict(os.environ)

    try:
        discovery = config.discover_repositories(options, environ)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    listener = ConsoleProgressListener(enabled=options.progress)
    pipeline = ReportPipeline(
        environ=environ, max_workers=options.max_workers, listener=listener
    )
    try:
        report = pipeline.run(discovery)
    except KeyboardInterrupt:
        listener.close()
        click.echo("Interrupted.", err=True)
        ctx.exit(EXIT_INTERRUPTED)

    try:
        deliver(report, DeliveryPlan.from_options(options))
    except (RenderError, DeliveryError) as exc:
        raise click.ClickException(str(exc)) from exc


def main() -> None:
    cli(prog_name=PACKAGE_NAME)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
