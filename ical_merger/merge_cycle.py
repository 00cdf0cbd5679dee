"""One merge cycle end to end, plus the periodic refresh loop.

A cycle fetches every configured source concurrently, runs each payload
through the per-source pipeline, merges, synthesizes the VTIMEZONE,
serializes and hands the document to the output writer. Fetch and parse
failures are source-scoped; an unknown output timezone is cycle-fatal.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Optional, Union

from .event_merger import merge_events
from .exceptions import FetchError, FetchTimeoutError, ParseError
from .fetcher import ICSFetcher
from .ics_models import MergedCalendar
from .ics_parser import parse_calendar
from .models import FetchResponse, MergerConfig, SourceConfig
from .output_writer import FileOutputWriter, OutputWriter
from .serializer import serialize_calendar
from .source_pipeline import PipelineResult, run_source_pipeline
from .timezone_utils import TimezoneRegistry, now_utc
from .vtimezone import build_vtimezone

logger = logging.getLogger(__name__)

FetchSlot = Union[FetchResponse, BaseException, None]


@dataclass
class MergeReport:
    """Counters describing one merge cycle."""

    sources_total: int = 0
    sources_ok: int = 0
    sources_failed: int = 0
    events_in: int = 0
    events_out: int = 0
    duplicates_dropped: int = 0
    events_dropped: int = 0
    repairs: int = 0
    written: bool = False
    failed_sources: list[str] = field(default_factory=list)
    generated_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.generated_at is not None:
            data["generated_at"] = self.generated_at.isoformat()
        return data


class MergeCycle:
    """Runs merge cycles for one output target.

    ``run_once`` is single-flight: concurrent callers (the scheduler and an
    HTTP refresh request) queue on the same lock and never interleave.
    """

    def __init__(
        self,
        config: MergerConfig,
        registry: Optional[TimezoneRegistry] = None,
        writer: Optional[OutputWriter] = None,
        fetcher: Optional[ICSFetcher] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        """Initialize the merge cycle.

        Args:
            config: Application configuration
            registry: Timezone rule provider (a fresh one by default)
            writer: Output destination (a FileOutputWriter on output_path by default)
            fetcher: Source fetcher (an ICSFetcher over config by default)
            clock: Returns the current UTC time; drives DTSTAMP and the VTIMEZONE year
        """
        self.config = config
        self.registry = registry or TimezoneRegistry()
        self.writer = writer or FileOutputWriter(config.output_path)
        self.fetcher = fetcher or ICSFetcher(config)
        self.clock = clock
        self.last_report: Optional[MergeReport] = None
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def close(self) -> None:
        await self.fetcher.close()

    async def __aenter__(self) -> MergeCycle:
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.close()

    async def _fetch_one(self, semaphore: asyncio.Semaphore, source: SourceConfig) -> FetchResponse:
        async with semaphore:
            deadline = self.config.source_deadline(source)
            try:
                return await asyncio.wait_for(self.fetcher.fetch(source), timeout=deadline)
            except asyncio.TimeoutError as e:
                raise FetchTimeoutError(
                    f"Source {source.name} did not complete within {deadline}s"
                ) from e

    async def fetch_all(self, sources: list[SourceConfig]) -> list[FetchSlot]:
        """Fetch every source with bounded concurrency.

        Returns one slot per source, in configured order: the response, or the
        exception that source failed with. Sources still pending when the
        cycle deadline passes are cancelled and get a FetchTimeoutError.
        """
        slots: list[FetchSlot] = [None] * len(sources)
        if not sources:
            return slots

        semaphore = asyncio.Semaphore(self.config.fetch_concurrency)
        tasks = [asyncio.create_task(self._fetch_one(semaphore, src)) for src in sources]
        done, pending = await asyncio.wait(tasks, timeout=self.config.cycle_timeout_seconds)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for index, task in enumerate(tasks):
            if task in pending:
                slots[index] = FetchTimeoutError(
                    f"Cycle deadline of {self.config.cycle_timeout_seconds}s reached"
                )
            elif task.exception() is not None:
                slots[index] = task.exception()
            else:
                slots[index] = task.result()
        return slots

    def _process_slot(
        self, source: SourceConfig, slot: FetchSlot, report: MergeReport
    ) -> Optional[PipelineResult]:
        if isinstance(slot, FetchError):
            logger.error("Failed to fetch calendar %s: %s", source.name, slot)
        elif isinstance(slot, BaseException):
            logger.error(
                "Unexpected error fetching calendar %s", source.name, exc_info=slot
            )
        elif slot is not None:
            logger.debug("Fetched calendar %s (%d bytes)", source.name, slot.content_length)
            try:
                calendar = parse_calendar(source.name, slot.content)
            except ParseError as e:
                logger.error("Failed to parse calendar %s: %s", source.name, e)
            else:
                return run_source_pipeline(
                    calendar, self.config.output_timezone, self.registry, prefix=source.prefix
                )

        report.sources_failed += 1
        report.failed_sources.append(source.name)
        return None

    async def run_once(self) -> MergeReport:
        """Run one full merge cycle.

        Returns:
            The cycle report; ``written`` is False when every source failed

        Raises:
            UnknownTimezoneError: if the output timezone cannot be resolved
            OSError: if the output writer fails
        """
        async with self._lock:
            report = await self._run_locked()
        self.last_report = report
        return report

    async def _run_locked(self) -> MergeReport:
        sources = self.config.calendars
        generated_at = self.clock()
        report = MergeReport(sources_total=len(sources), generated_at=generated_at)
        output_tzid = self.config.output_timezone

        # Resolve the output zone before any network traffic; failure is cycle-fatal
        vtimezone = build_vtimezone(output_tzid, self.registry, generated_at.year)

        logger.info("Starting merge cycle for %d calendars", len(sources))
        slots = await self.fetch_all(sources)

        results: list[PipelineResult] = []
        for source, slot in zip(sources, slots):
            result = self._process_slot(source, slot, report)
            if result is None:
                continue
            results.append(result)
            report.sources_ok += 1
            report.events_in += result.events_in
            report.events_dropped += result.events_dropped
            report.repairs += result.repairs

        if not results:
            logger.error("No calendars were successfully fetched. No output generated.")
            return report

        merged_result = merge_events([r.events for r in results])
        report.duplicates_dropped = merged_result.duplicates_dropped
        report.events_out = len(merged_result.events)

        merged = MergedCalendar(
            events=merged_result.events,
            output_timezone=output_tzid,
            vtimezone=vtimezone,
            generated_at=generated_at,
            calendar_name=self.config.calendar_name,
        )
        self.writer.write(serialize_calendar(merged))
        report.written = True

        logger.info(
            "Merge cycle complete: %d/%d sources, %d events written "
            "(%d duplicates, %d dropped, %d repairs)",
            report.sources_ok,
            report.sources_total,
            report.events_out,
            report.duplicates_dropped,
            report.events_dropped,
            report.repairs,
        )
        return report

    async def _run_logged(self) -> None:
        try:
            await self.run_once()
        except Exception:
            logger.exception("Merge cycle failed")

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """Run a cycle immediately, then every sync interval until ``stop_event`` is set.

        A failing cycle is logged and the loop carries on.
        """
        interval = self.config.sync_interval_seconds
        logger.debug("Refresh loop starting with interval %d seconds", interval)

        await self._run_logged()
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            if stop_event.is_set():
                break
            logger.debug("Starting periodic merge")
            await self._run_logged()

        logger.debug("Refresh loop stopped")
