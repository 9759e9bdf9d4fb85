"""
Market Data: Batch Scheduler

Runs the three batch jobs on independent cadences:

- ingestion:    every INGEST_INTERVAL_HOURS, each configured source in turn
- auto-map:     every AUTOMAP_INTERVAL_HOURS
- aggregation:  every AGGREGATION_INTERVAL_HOURS (daily)

Each job runs over every category in SCHEDULER_CATEGORIES with a fresh
session. A failing job is logged and the others keep their schedule. Jobs
that have never run are due immediately.
"""

from __future__ import annotations

import asyncio
import signal
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from market_data.config import settings
from market_data.pipeline.aggregator import run_daily_aggregation
from market_data.pipeline.ingest import ADAPTERS, run_ingestion
from market_data.pipeline.matcher import run_auto_map
from market_data.pipeline.summary import RunSummary

logger = structlog.get_logger(__name__)

INGEST = "ingest"
AUTOMAP = "automap"
AGGREGATE = "aggregate"


class Scheduler:
    """
    Async scheduler for the reconciliation batch jobs.

    Keeps one clock per job. Jobs run in dependency order within a tick
    (auto-map, then ingestion, then aggregation) so each sees the previous
    one's writes.
    """

    def __init__(
        self,
        db_engine: Any,
        session_factory: async_sessionmaker[AsyncSession],
        sources: list[str] | None = None,
        categories: list[str] | None = None,
    ):
        self.db_engine = db_engine
        self.session_factory = session_factory
        self.sources = sources if sources is not None else list(settings.INGEST_SOURCES)
        self.categories = categories if categories is not None else list(settings.SCHEDULER_CATEGORIES)
        self._shutdown_event = asyncio.Event()

        self._cadence_minutes: dict[str, float] = {
            AUTOMAP: settings.AUTOMAP_INTERVAL_HOURS * 60,
            INGEST: settings.INGEST_INTERVAL_HOURS * 60,
            AGGREGATE: settings.AGGREGATION_INTERVAL_HOURS * 60,
        }
        self._last_run: dict[str, datetime | None] = {job: None for job in self._cadence_minutes}

    async def shutdown(self) -> None:
        """Signal graceful shutdown to the scheduler loop."""
        logger.info("scheduler_shutdown_requested")
        self._shutdown_event.set()

    def _is_due(self, job: str) -> bool:
        last = self._last_run[job]
        if last is None:
            return True
        elapsed_minutes = (datetime.now(timezone.utc) - last).total_seconds() / 60
        return elapsed_minutes >= self._cadence_minutes[job]

    def _log_summary(self, job: str, category: str, summary: RunSummary) -> None:
        logger.info(
            "scheduler_job_summary",
            job=job,
            category=category,
            **summary.model_dump(mode="json", exclude={"errors"}),
            error_count=len(summary.errors),
        )

    async def _run_automap(self) -> int:
        mapped = 0
        for category in self.categories:
            try:
                async with self.session_factory() as session:
                    summary = await run_auto_map(session, game=category)
                mapped += summary.mappings_created
                self._log_summary(AUTOMAP, category, summary)
            except Exception as e:
                logger.error("scheduler_automap_failed", category=category, error=str(e))
        self._last_run[AUTOMAP] = datetime.now(timezone.utc)
        return mapped

    async def _run_ingest(self) -> int:
        created = 0
        for source in self.sources:
            adapter_cls = ADAPTERS.get(source)
            if adapter_cls is None:
                logger.warning("scheduler_unknown_source", source=source)
                continue
            for category in self.categories:
                try:
                    async with self.session_factory() as session:
                        summary = await run_ingestion(session, adapter_cls(), category=category)
                    created += summary.events_created
                    self._log_summary(f"{INGEST}:{source}", category, summary)
                except Exception as e:
                    logger.error(
                        "scheduler_ingest_failed", source=source, category=category, error=str(e)
                    )
        self._last_run[INGEST] = datetime.now(timezone.utc)
        return created

    async def _run_aggregation(self) -> int:
        updated = 0
        for category in self.categories:
            try:
                async with self.session_factory() as session:
                    summary = await run_daily_aggregation(session, category=category)
                updated += summary.updated
                self._log_summary(AGGREGATE, category, summary)
            except Exception as e:
                logger.error("scheduler_aggregation_failed", category=category, error=str(e))
        self._last_run[AGGREGATE] = datetime.now(timezone.utc)
        return updated

    async def run(self) -> None:
        """
        Main scheduler loop. Runs until shutdown is signaled.
        """
        logger.info(
            "scheduler_started",
            sources=self.sources,
            categories=self.categories,
            automap_cadence_hours=settings.AUTOMAP_INTERVAL_HOURS,
            ingest_cadence_hours=settings.INGEST_INTERVAL_HOURS,
            aggregation_cadence_hours=settings.AGGREGATION_INTERVAL_HOURS,
        )

        tick = settings.SCHEDULER_TICK_SECONDS

        try:
            while not self._shutdown_event.is_set():
                try:
                    if self._is_due(AUTOMAP):
                        await self._run_automap()

                    if self._is_due(INGEST) and not self._shutdown_event.is_set():
                        await self._run_ingest()

                    if self._is_due(AGGREGATE) and not self._shutdown_event.is_set():
                        await self._run_aggregation()

                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=tick)
                except asyncio.TimeoutError:
                    continue
                except Exception as e:
                    logger.error(
                        "scheduler_unknown_error",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    await asyncio.sleep(tick)

        except asyncio.CancelledError:
            logger.info("scheduler_cancelled")
            raise
        finally:
            logger.info("scheduler_stopped")


async def run_scheduler(db_engine: Any, session_factory: async_sessionmaker[AsyncSession]) -> None:
    """
    Initialize and run the scheduler with graceful shutdown handling.

    Registers SIGTERM/SIGINT handlers to trigger shutdown.
    """
    scheduler = Scheduler(db_engine, session_factory)

    def handle_signal(_signum: int, _frame: Any) -> None:
        logger.info("scheduler_signal_received")
        asyncio.create_task(scheduler.shutdown())

    loop = asyncio.get_running_loop()

    try:
        loop.add_signal_handler(signal.SIGTERM, handle_signal, signal.SIGTERM, None)
        loop.add_signal_handler(signal.SIGINT, handle_signal, signal.SIGINT, None)
    except NotImplementedError:
        logger.warning("signal_handlers_not_supported_on_platform")

    try:
        await scheduler.run()
    except Exception as e:
        logger.error("scheduler_fatal_error", error=str(e), error_type=type(e).__name__)
        raise
