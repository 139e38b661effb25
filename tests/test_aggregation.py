from __future__ import annotations

import logging
from datetime import datetime, timedelta

import pytest

from borg_fakes import archive_payload, info_contract, repository_config
from borgreport.application.aggregation import (
    RepositoryRun,
    SelectorRun,
    StatusAggregator,
    evaluate_repository,
    failed_repository,
)
from borgreport.core.config import ConfigFailure
from borgreport.domain.errors import ConfigError, InvocationError
from borgreport.domain.models import ArchiveSelector, Severity
from borgreport.integrations.borg import CommandOutput, CompactOutput


def _messages(report) -> list[str]:
    return [finding.text for finding in report.findings]


def _run(*selector_runs: SelectorRun, **config) -> RepositoryRun:
    return RepositoryRun(repository_config("repo1", **config), list(selector_runs))


def test_empty_repository_warns_once(fixed_now: datetime) -> None:
    run = _run(SelectorRun(ArchiveSelector(), info=info_contract([], unique_csize=0)))

    report = evaluate_repository(run, fixed_now)

    assert _messages(report) == ["repo1: Repository is empty"]
    assert report.health.reachable
    assert report.health.total_size == 0
    (status,) = report.health.statuses
    assert status.absent


def test_empty_source_archive(fixed_now: datetime) -> None:
    archive = archive_payload("a1", start="2024-08-06T10:00:00", original_size=0)
    run = _run(SelectorRun(ArchiveSelector(), info=info_contract([archive])))

    report = evaluate_repository(run, fixed_now)

    assert _messages(report) == [
        "repo1: Last backup archive contains no data. Archive a1 is empty."
    ]


@pytest.mark.parametrize(
    ("age", "stale"),
    [
        (timedelta(hours=24), False),
        (timedelta(hours=24, seconds=1), True),
        (timedelta(hours=2), False),
    ],
)
def test_staleness_is_strictly_greater_than_threshold(
    fixed_now: datetime, age: timedelta, stale: bool
) -> None:
    start = (fixed_now - age).replace(tzinfo=None).isoformat()
    run = _run(SelectorRun(ArchiveSelector(), info=info_contract([archive_payload("a1", start=start)])))

    report = evaluate_repository(run, fixed_now)

    expected = ["repo1: Last backup is older than 24 hours"] if stale else []
    assert _messages(report) == expected


def test_fractional_threshold_in_message(fixed_now: datetime) -> None:
    run = _run(
        SelectorRun(
            ArchiveSelector(),
            info=info_contract([archive_payload("a1", start="2024-08-06T10:00:00")]),
        ),
        max_age_hours=1.5,
    )

    report = evaluate_repository(run, fixed_now)

    assert _messages(report) == ["repo1: Last backup is older than 1.5 hours"]


def test_two_globs_keep_declaration_order(fixed_now: datetime) -> None:
    recent = "2024-08-06T10:00:00"
    run = _run(
        SelectorRun(ArchiveSelector("etc-*"), info=info_contract([archive_payload("etc-1", start=recent)])),
        SelectorRun(ArchiveSelector("home-*"), info=info_contract([archive_payload("home-1", start=recent)])),
    )

    report = evaluate_repository(run, fixed_now)

    assert [status.selector.glob for status in report.health.statuses] == ["etc-*", "home-*"]
    assert [archive.name for archive in report.health.archives] == ["etc-1", "home-1"]
    assert report.clean


def test_glob_without_match_warns_and_is_not_empty_repository(fixed_now: datetime) -> None:
    run = _run(
        SelectorRun(ArchiveSelector("etc-*"), info=info_contract([], unique_csize=5_000)),
    )

    report = evaluate_repository(run, fixed_now)

    assert _messages(report) == ["repo1[etc-*]: The glob 'etc-*' yields no result!"]


def test_failed_check_is_an_error_and_repository_stays_reachable(fixed_now: datetime) -> None:
    run = _run(
        SelectorRun(
            ArchiveSelector(),
            info=info_contract([archive_payload("a1", start="2024-08-06T10:00:00")]),
            check_archive="a1",
            check=CommandOutput(1, "", "Index object count mismatch.\n", 3.2),
        ),
        run_check=True,
    )

    report = evaluate_repository(run, fixed_now)

    (check,) = report.checks
    assert check.okay is False
    assert check.archive_name == "a1"
    assert check.diagnostics == "Index object count mismatch."
    (finding,) = report.findings
    assert finding.severity is Severity.ERROR
    assert finding.text == "repo1: Index object count mismatch."
    assert report.health.reachable


def test_check_output_on_success_becomes_warnings(fixed_now: datetime) -> None:
    run = _run(
        SelectorRun(
            ArchiveSelector(),
            info=info_contract([archive_payload("a1", start="2024-08-06T10:00:00")]),
            check_archive="a1",
            check=CommandOutput(0, "progress noise\n", "Archive consistency check complete\n", 1.0),
        ),
    )

    report = evaluate_repository(run, fixed_now)

    assert [finding.severity for finding in report.findings] == [Severity.WARNING, Severity.WARNING]
    assert report.checks[0].okay is True


def test_unreachable_selector(fixed_now: datetime) -> None:
    run = _run(
        SelectorRun(
            ArchiveSelector(),
            info_error=InvocationError("/srv/borg/repo1 is not a valid repository."),
        )
    )

    report = evaluate_repository(run, fixed_now)

    assert not report.health.reachable
    assert report.health.total_size is None
    assert report.health.unreachable == (ArchiveSelector(),)
    assert _messages(report) == ["repo1: /srv/borg/repo1 is not a valid repository."]


def test_compact_result_and_warnings(fixed_now: datetime) -> None:
    run = _run(
        SelectorRun(
            ArchiveSelector(),
            info=info_contract([archive_payload("a1", start="2024-08-06T10:00:00")]),
        ),
        run_compact=True,
    )
    run.compact = CompactOutput(CommandOutput(0, "", "", 2.0), freed_bytes=3_400)

    report = evaluate_repository(run, fixed_now)

    assert report.compact is not None
    assert report.compact.okay is True
    assert report.compact.freed_bytes == 3_400
    assert report.clean


def test_skipped_compact_is_recorded(fixed_now: datetime) -> None:
    run = _run(SelectorRun(ArchiveSelector(), info=info_contract([], unique_csize=0)))
    run.compact_skipped = True

    report = evaluate_repository(run, fixed_now)

    assert report.compact is not None
    assert not report.compact.ran


def test_failed_repository_from_config_error() -> None:
    report = failed_repository(
        ConfigFailure("nas", ConfigError("No value for 'BORG_REPO' was provided for repository: 'nas'"))
    )

    assert not report.health.reachable
    assert _messages(report) == [
        "nas: No value for 'BORG_REPO' was provided for repository: 'nas'"
    ]


def test_aggregator_merges_in_discovery_order(fixed_now: datetime) -> None:
    def repository(name: str):
        run = RepositoryRun(
            repository_config(name),
            [SelectorRun(ArchiveSelector(), info=info_contract([], unique_csize=0))],
        )
        return evaluate_repository(run, fixed_now)

    aggregator = StatusAggregator()
    aggregator.add_warning("No *.env files found in ['/etc/borgreport']")

    assert aggregator.accept(2, repository("c")) == []
    assert aggregator.accept(1, repository("b")) == []
    merged = aggregator.accept(0, repository("a"))

    assert [item.name for item in merged] == ["a", "b", "c"]
    report = aggregator.finish()
    assert [health.name for health in report.repositories] == ["a", "b", "c"]
    assert [finding.text for finding in report.warnings] == [
        "No *.env files found in ['/etc/borgreport']",
        "a: Repository is empty",
        "b: Repository is empty",
        "c: Repository is empty",
    ]


def test_aggregator_refuses_unfinished_report(fixed_now: datetime) -> None:
    aggregator = StatusAggregator()
    aggregator.accept(
        1,
        failed_repository(ConfigFailure("x", ConfigError("broken"))),
    )

    with pytest.raises(RuntimeError, match="pending"):
        aggregator.finish()


def test_repeated_globs_collapse_with_a_debug_record(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.DEBUG, logger="borgreport.domain.models"):
        selectors = ArchiveSelector.from_globs(("etc-*", "home-*", "etc-*"))

    assert [selector.glob for selector in selectors] == ["etc-*", "home-*"]
    assert "Ignoring repeated archive globs in etc-* home-* etc-*" in caplog.messages


def test_distinct_globs_are_kept_silently(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.DEBUG, logger="borgreport.domain.models"):
        selectors = ArchiveSelector.from_globs(("etc-*", "home-*"))

    assert len(selectors) == 2
    assert caplog.messages == []
