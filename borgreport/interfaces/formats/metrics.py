"""OpenMetrics export of a report (``application/openmetrics-text``).

A report is written for humans: a repository without archives still shows
a zero-valued summary row. Here absent data means no series at all, so a
dashboard never mistakes "not measured" for "measured zero".
"""

from __future__ import annotations

from collections.abc import Iterator

from prometheus_client.core import GaugeMetricFamily, InfoMetricFamily
from prometheus_client.openmetrics.exposition import generate_latest
from prometheus_client.registry import Collector, CollectorRegistry

from borgreport import PACKAGE_NAME, __version__
from borgreport.domain.models import Report

BORG_PREFIX = "borg"

ARCHIVE_LABELS = ["repository", "hostname", "archive_glob"]
CHECK_LABELS = ["repository", "archive_glob"]
REPOSITORY_LABELS = ["repository"]


def _borg(name: str) -> str:
    return f"{BORG_PREFIX}_{name}"


class ReportMetaCollector(Collector):
    """``borgreport_info`` and the time the report was generated."""

    def __init__(self, report: Report) -> None:
        self.report = report

    def collect(self) -> Iterator[GaugeMetricFamily | InfoMetricFamily]:
        yield InfoMetricFamily(
            PACKAGE_NAME,
            f"{PACKAGE_NAME} metadata",
            value={"name": PACKAGE_NAME, "version": __version__},
        )
        yield GaugeMetricFamily(
            f"{PACKAGE_NAME}_last_report_timestamp",
            "Unix time when the metrics were generated",
            value=self.report.generated_at.timestamp(),
            unit="seconds",
        )


class BorgReportCollector(Collector):
    """Expose the measured values of a ``Report`` as ``borg_*`` gauges."""

    def __init__(self, report: Report) -> None:
        self.report = report

    def collect(self) -> Iterator[GaugeMetricFamily]:
        unique_csize = GaugeMetricFamily(
            _borg("deduplicated_compressed_size"),
            "Size of the backup repository in bytes (compressed and deduplicated)",
            labels=REPOSITORY_LABELS,
            unit="bytes",
        )
        original_size = GaugeMetricFamily(
            _borg("create_last_original_size"),
            "Source size of the last backup archive in bytes",
            labels=ARCHIVE_LABELS,
            unit="bytes",
        )
        compressed_size = GaugeMetricFamily(
            _borg("create_last_compressed_size"),
            "Compressed size of the last backup archive in bytes (not deduplicated)",
            labels=ARCHIVE_LABELS,
            unit="bytes",
        )
        deduplicated_size = GaugeMetricFamily(
            _borg("create_last_deduplicated_compressed_size"),
            "Deduplicated and compressed size of the last backup archive in bytes",
            labels=ARCHIVE_LABELS,
            unit="bytes",
        )
        start_timestamp = GaugeMetricFamily(
            _borg("create_last_start_timestamp"),
            "Unix time when the last backup was started",
            labels=ARCHIVE_LABELS,
            unit="seconds",
        )
        duration = GaugeMetricFamily(
            _borg("create_last_duration"),
            "Duration of the last backup in seconds",
            labels=ARCHIVE_LABELS,
            unit="seconds",
        )
        nfiles = GaugeMetricFamily(
            _borg("create_last_files"),
            "Number of files in the last archive",
            labels=ARCHIVE_LABELS,
        )
        check_duration = GaugeMetricFamily(
            _borg("check_last_duration"),
            "Duration of the check of the last archive in seconds",
            labels=CHECK_LABELS,
            unit="seconds",
        )
        check_success = GaugeMetricFamily(
            _borg("check_last_success"),
            "True (1) if the check of the last archive was successful",
            labels=CHECK_LABELS,
            unit="boolean",
        )
        compact_duration = GaugeMetricFamily(
            _borg("compact_duration"),
            "Duration of running borg compact in seconds",
            labels=REPOSITORY_LABELS,
            unit="seconds",
        )
        compact_freed = GaugeMetricFamily(
            _borg("compact_freed_size"),
            "Size of the freed space in bytes",
            labels=REPOSITORY_LABELS,
            unit="bytes",
        )

        for health in self.report.repositories:
            if health.total_size is not None:
                unique_csize.add_metric([health.name], health.total_size)
            for status in health.statuses:
                archive = status.archive
                if archive is None:
                    continue
                labels = [health.name, archive.hostname, status.selector.label]
                original_size.add_metric(labels, archive.original_size)
                compressed_size.add_metric(labels, archive.compressed_size)
                deduplicated_size.add_metric(labels, archive.deduplicated_size)
                nfiles.add_metric(labels, archive.nfiles)
                if archive.start_timestamp > 0:
                    start_timestamp.add_metric(labels, archive.start_timestamp)
                duration.add_metric(labels, archive.duration)

        for check in self.report.checks:
            if not check.ran:
                continue
            labels = [check.repository, check.selector.label]
            check_duration.add_metric(labels, check.duration)
            check_success.add_metric(labels, 1.0 if check.okay else 0.0)

        for compact in self.report.compacts:
            if not compact.ran:
                continue
            compact_duration.add_metric([compact.repository], compact.duration)
            if compact.freed_bytes is not None:
                compact_freed.add_metric([compact.repository], compact.freed_bytes)

        yield from (
            unique_csize,
            original_size,
            compressed_size,
            deduplicated_size,
            start_timestamp,
            duration,
            nfiles,
            check_duration,
            check_success,
            compact_duration,
            compact_freed,
        )


def build_registry(report: Report) -> CollectorRegistry:
    registry = CollectorRegistry(auto_describe=False)
    registry.register(ReportMetaCollector(report))
    registry.register(BorgReportCollector(report))
    return registry


def render_metrics(report: Report) -> str:
    return generate_latest(build_registry(report)).decode("utf-8")


__all__ = [
    "BorgReportCollector",
    "ReportMetaCollector",
    "build_registry",
    "render_metrics",
]
