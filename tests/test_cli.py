"""Tests for the ``borgreport`` command line."""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from borg_fakes import FakeBorg, archive_payload
from borgreport import __version__
from borgreport.interfaces.cli import cli


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def env_dir(tmp_path: Path, fake_borg: FakeBorg) -> Path:
    directory = tmp_path / "env"
    directory.mkdir()
    (directory / "alpha.env").write_text(
        "BORG_REPO=/srv/borg/alpha\nBORG_PASSPHRASE='secret'\n", encoding="utf-8"
    )
    fake_borg.add_repository(
        "/srv/borg/alpha",
        [archive_payload("alpha-1", start="2099-01-01T00:00:00")],
    )
    return directory


def test_version(runner: CliRunner) -> None:
    result = runner.invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_requires_a_repository_source(runner: CliRunner) -> None:
    result = runner.invoke(cli, [], env={"BORGREPORT_ENV_DIR": None, "BORGREPORT_ENV_INHERIT": None})

    assert result.exit_code == 2
    assert "Either --env-dir or --env-inherit is required." in result.output


def test_sources_are_mutually_exclusive(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(cli, ["--env-dir", str(tmp_path), "--env-inherit"])

    assert result.exit_code == 2
    assert "mutually exclusive" in result.output


def test_missing_env_dir_fails(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(cli, ["--env-dir", str(tmp_path / "missing"), "--no-progress"])

    assert result.exit_code == 1
    assert "Cannot open env directory" in result.output


def test_text_report_on_stdout(runner: CliRunner, env_dir: Path, fake_borg: FakeBorg) -> None:
    result = runner.invoke(
        cli,
        ["--env-dir", str(env_dir), "--borg-binary", str(fake_borg.binary), "--no-progress"],
    )

    assert result.exit_code == 0, result.output
    assert result.output.startswith("==== Backup report")
    assert "| alpha " in result.output
    assert "alpha-1" in result.output
    (call,) = fake_borg.calls()
    assert call["env"]["BORG_PASSPHRASE"] == "secret"


def test_reports_are_written_to_files(
    runner: CliRunner, env_dir: Path, fake_borg: FakeBorg, tmp_path: Path
) -> None:
    text_to = tmp_path / "report.txt"
    html_to = tmp_path / "report.html"
    metrics_to = tmp_path / "report.prom"

    result = runner.invoke(
        cli,
        [
            "--env-dir",
            str(env_dir),
            "--borg-binary",
            str(fake_borg.binary),
            "--text-to",
            str(text_to),
            "--html-to",
            str(html_to),
            "--metrics-to",
            str(metrics_to),
            "--no-progress",
        ],
    )

    assert result.exit_code == 0, result.output
    assert result.output == ""
    assert text_to.read_text(encoding="utf-8").startswith("==== Backup report")
    assert "<h2>Summary</h2>" in html_to.read_text(encoding="utf-8")
    assert 'repository="alpha"' in metrics_to.read_text(encoding="utf-8")


def test_overrides_apply_to_every_repository(
    runner: CliRunner, env_dir: Path, fake_borg: FakeBorg
) -> None:
    result = runner.invoke(
        cli,
        [
            "--env-dir",
            str(env_dir),
            "--borg-binary",
            str(fake_borg.binary),
            "--glob-archives",
            "alpha-* beta-*",
            "--check",
            "--no-progress",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "alpha[beta-*]: The glob 'beta-*' yields no result!" in result.output
    assert "=== `borg check` result ===" in result.output
    checks = [call for call in fake_borg.calls() if call["argv"][0] == "check"]
    assert [call["argv"] for call in checks] == [["check", "::alpha-1"]]


def test_env_inherit_reads_current_environment(
    runner: CliRunner, fake_borg: FakeBorg
) -> None:
    fake_borg.add_repository("/srv/borg/nas", [archive_payload("nas-1", start="2099-01-01T00:00:00")])

    result = runner.invoke(
        cli,
        ["--env-inherit", "--borg-binary", str(fake_borg.binary), "--no-progress"],
        env={"BORG_REPO": "/srv/borg/nas", "BORGREPORT_ENV_DIR": None},
    )

    assert result.exit_code == 0, result.output
    assert "| nas " in result.output
    assert "nas-1" in result.output


def test_delivery_failure_exits_nonzero(
    runner: CliRunner, env_dir: Path, fake_borg: FakeBorg, tmp_path: Path
) -> None:
    result = runner.invoke(
        cli,
        [
            "--env-dir",
            str(env_dir),
            "--borg-binary",
            str(fake_borg.binary),
            "--html-to",
            str(tmp_path / "missing" / "report.html"),
            "--no-progress",
        ],
    )

    assert result.exit_code == 1
    assert "Failed to deliver the report" in result.output
    assert "==== Backup report" in result.output
