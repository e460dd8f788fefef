"""
Batch scheduling: synchronize every configured subject now and/or on a cron
schedule.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime
from zoneinfo import ZoneInfo

from integrator.clients import HieClient, IngestClient
from integrator.config.settings import Settings
from integrator.service.cron_parser import next_fire_time_cron, parse_cron
from integrator.sync.engine import SyncEngine, SyncSummary
from integrator.sync.transaction_log import TransactionLog
from integrator.utils.logging import get_logger

logger = get_logger("integrator.service.scheduler")


class Scheduler:
    """
    Runs ``SyncEngine.synchronize`` for a fixed list of subjects.

    Subjects are independent, so up to ``max_concurrency`` of them run at
    once; a subject never overlaps with itself because each batch waits for
    the previous one to finish.
    """

    def __init__(
        self,
        engine: SyncEngine,
        subjects: Sequence[str],
        formats: Sequence[str],
        *,
        cron: str | None = None,
        timezone: str | None = None,
        max_concurrency: int = 1,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.engine = engine
        # Duplicates would run the same subject twice in one batch
        self.subjects = list(dict.fromkeys(subjects))
        self.formats = list(formats)
        self.cron = cron
        self.tz = ZoneInfo(timezone) if timezone else None
        self.max_concurrency = max_concurrency
        if cron:
            parse_cron(cron, tz=self.tz or ZoneInfo("UTC"))

    async def run_once(self) -> dict[str, SyncSummary | None]:
        """
        Synchronize every subject once.

        A subject whose run fails is logged and maps to None; the remaining
        subjects still run.
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _run(ee: str) -> SyncSummary | None:
            async with semaphore:
                try:
                    summary = await self.engine.synchronize(ee, self.formats)
                except Exception as e:
                    logger.error(f"Error copying data for ee {ee}: {e}")
                    return None
                logger.debug(f"Summary for {ee}: {summary.as_dict()}")
                return summary

        results = await asyncio.gather(*(_run(ee) for ee in self.subjects))
        return dict(zip(self.subjects, results))

    def next_run_at(self, now: datetime | None = None) -> datetime:
        if not self.cron:
            raise ValueError("no cron schedule configured")
        if now is None:
            # Without a configured zone the schedule follows local time
            now = datetime.now(self.tz) if self.tz else datetime.now().astimezone()
        tz_name = self.tz.key if self.tz else None
        return next_fire_time_cron(self.cron, now=now, timezone=tz_name)

    async def run_forever(self, stop_event: asyncio.Event | None = None) -> None:
        """Run a batch at every cron fire time until *stop_event* is set."""
        stop_event = stop_event or asyncio.Event()
        while not stop_event.is_set():
            next_run = self.next_run_at()
            delay = max(0.0, (next_run - datetime.now(next_run.tzinfo)).total_seconds())
            logger.info(f"Next synchronization at {next_run.isoformat()}")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass
            await self.run_once()


async def serve(settings: Settings, *, stop_event: asyncio.Event | None = None) -> None:
    """Wire clients, transaction log and engine from *settings* and run them."""
    store = TransactionLog(path=settings.state_db)
    hie = HieClient(
        settings.hie_url,
        user=settings.hie_user,
        password=settings.hie_password,
        timeout=settings.timeout,
    )
    ingest = IngestClient(settings.ingest_url, timeout=settings.timeout)
    try:
        async with hie, ingest:
            engine = SyncEngine(hie, ingest, store, copy_dir=settings.copy_dir)
            scheduler = Scheduler(
                engine,
                settings.subjects,
                settings.formats,
                cron=settings.cron,
                timezone=settings.timezone,
                max_concurrency=settings.max_concurrency,
            )
            if settings.now:
                await scheduler.run_once()
            if settings.cron:
                await scheduler.run_forever(stop_event)
    finally:
        store.close()
