"""Concurrent orchestration of the repository status pipeline."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime

from borgreport.application.aggregation import (
    RepositoryRun,
    SelectorRun,
    StatusAggregator,
    evaluate_repository,
    failed_repository,
    unreachable_repository,
)
from borgreport.core.config import (
    DEFAULT_MAX_WORKERS,
    ConfigFailure,
    Discovery,
    RepositoryConfig,
)
from borgreport.core.progress import NullProgressListener, ProgressListener
from borgreport.domain.errors import InvocationError
from borgreport.domain.models import ArchiveSelector, Report, RepositoryReport
from borgreport.integrations.borg import BorgInvoker

logger = logging.getLogger(__name__)

InvokerFactory = Callable[[RepositoryConfig, Mapping[str, str]], BorgInvoker]


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ReportPipeline:
    """Query every discovered repository and build the run's ``Report``.

    Each repository is handled by one worker coroutine; at most
    ``max_workers`` of them talk to borg at the same time. Workers never
    touch the report: they hand their ``RepositoryReport`` to a single
    aggregator task, which merges them in discovery order.
    """

    def __init__(
        self,
        *,
        environ: Mapping[str, str] | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        listener: ProgressListener | None = None,
        clock: Callable[[], datetime] = _utc_now,
        invoker_factory: InvokerFactory = BorgInvoker,
    ) -> None:
        self._environ = dict(environ or {})
        self._max_workers = max(1, max_workers)
        self._listener = listener or NullProgressListener()
        self._clock = clock
        self._invoker_factory = invoker_factory

    def run(self, discovery: Discovery) -> Report:
        return asyncio.run(self.run_async(discovery))

    async def run_async(self, discovery: Discovery) -> Report:
        aggregator = StatusAggregator(Report())
        for message in discovery.warnings:
            aggregator.add_warning(message)

        entries = discovery.repositories
        self._listener.on_start(len(entries))
        semaphore = asyncio.Semaphore(self._max_workers)
        queue: asyncio.Queue[tuple[int, RepositoryReport]] = asyncio.Queue()

        async with asyncio.TaskGroup() as group:
            group.create_task(self._aggregate(queue, aggregator, len(entries)))
            for position, entry in enumerate(entries):
                group.create_task(self._worker(position, entry, queue, semaphore))

        report = aggregator.finish()
        report.generated_at = self._clock()
        self._listener.on_complete(report)
        return report

    async def _aggregate(
        self,
        queue: asyncio.Queue[tuple[int, RepositoryReport]],
        aggregator: StatusAggregator,
        expected: int,
    ) -> None:
        for _ in range(expected):
            position, repository = await queue.get()
            self._listener.on_repository_complete(repository)
            aggregator.accept(position, repository)
            queue.task_done()

    async def _worker(
        self,
        position: int,
        entry: RepositoryConfig | ConfigFailure,
        queue: asyncio.Queue[tuple[int, RepositoryReport]],
        semaphore: asyncio.Semaphore,
    ) -> None:
        if isinstance(entry, ConfigFailure):
            await queue.put((position, failed_repository(entry)))
            return
        try:
            async with semaphore:
                logger.info("Processing repository %s", entry.name)
                repository = await self.process_repository(entry)
        except Exception as exc:
            logger.exception("Unexpected failure while processing %s", entry.name)
            repository = unreachable_repository(entry.name, f"Unexpected failure: {exc}")
        await queue.put((position, repository))

    async def process_repository(self, config: RepositoryConfig) -> RepositoryReport:
        """Run info, check and compact for one repository, one step at a time.

        Archive ages are measured against the clock once the repository's
        results are in, not against the start of the run.
        """

        invoker = self._invoker_factory(config, self._environ)
        run = RepositoryRun(config)

        for selector in ArchiveSelector.from_globs(config.archive_globs):
            selector_run = SelectorRun(selector)
            run.selectors.append(selector_run)
            try:
                selector_run.info = await invoker.info(selector)
            except InvocationError as exc:
                logger.info("borg info failed for %s: %s", config.name, exc)
                selector_run.info_error = exc
                continue

            if not config.run_check:
                continue
            archive = selector_run.archive
            if archive is None and not selector.is_latest:
                continue
            selector_run.check_archive = archive.name if archive else None
            try:
                selector_run.check = await invoker.check(selector_run.check_archive)
            except InvocationError as exc:
                selector_run.check_error = exc

        if config.run_compact:
            if evaluate_repository(run, self._clock()).clean:
                try:
                    run.compact = await invoker.compact()
                except InvocationError as exc:
                    run.compact_error = exc
            else:
                logger.info("Not compacting %s: it has findings", config.name)
                run.compact_skipped = True

        return evaluate_repository(run, self._clock())


__all__ = ["InvokerFactory", "ReportPipeline"]
