"""Tick driver: runs the recurrence engine and propagates its output.

A run:
1. Tick the recurrence engine, retrying with exponential backoff while the
   store is unavailable (rules already advanced are not reprocessed)
2. Drop cached statistics for the periods of every created entry
3. Evaluate the budgets of every owner that received entries
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ledgerflow.services.budget_monitor import BudgetMonitor, BudgetReport
from ledgerflow.services.cache_service import SnapshotCache
from ledgerflow.services.config import Settings, get_settings
from ledgerflow.services.errors import LedgerFlowError, StoreUnavailable
from ledgerflow.services.notification_service import NotificationSink
from ledgerflow.services.recurrence_engine import RecurrenceEngine, TickResult
from ledgerflow.services.statistics_service import StatisticsAggregator

logger = logging.getLogger(__name__)


@dataclass
class SchedulerRun:
    """Outcome of one scheduler run."""

    tick: TickResult
    budget_reports: list[BudgetReport] = field(default_factory=list)
    budget_failures: dict[int, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return (
            self.tick.failed == 0
            and not self.budget_failures
            and all(report.failed == 0 for report in self.budget_reports)
        )


class RecurrenceScheduler:
    """Drive engine ticks on demand or on a fixed interval."""

    def __init__(
        self,
        db: Session,
        sink: NotificationSink | None = None,
        cache: SnapshotCache | None = None,
        settings: Settings | None = None,
        engine: RecurrenceEngine | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.engine = engine or RecurrenceEngine(
            db,
            catch_up_cap=self.settings.catch_up_cap,
            batch_size=self.settings.tick_batch_size,
            time_budget_seconds=self.settings.tick_time_budget_seconds,
        )
        self.aggregator = StatisticsAggregator(db, cache=cache)
        self.monitor = BudgetMonitor(db, sink=sink)

    def run_tick(self, now: date | None = None) -> SchedulerRun:
        """Run one tick and its follow-up work.

        Raises:
            StoreUnavailable: If the store stays unavailable after all retries
        """
        now = now or date.today()
        run = SchedulerRun(tick=self._tick_with_retry(now))

        self.aggregator.invalidate_entries(run.tick.created)

        for owner_id in sorted(run.tick.affected_owners):
            try:
                run.budget_reports.append(self.monitor.evaluate_owner(owner_id, now))
            except (SQLAlchemyError, LedgerFlowError) as e:
                self.db.rollback()
                logger.error("Budget evaluation for owner %d failed: %s", owner_id, e)
                run.budget_failures[owner_id] = str(e)

        alerts = sum(len(report.events) for report in run.budget_reports)
        logger.info(
            "Scheduler run %s: entries=%d owners=%d alerts=%d ok=%s",
            now,
            len(run.tick.created),
            len(run.tick.affected_owners),
            alerts,
            run.ok,
        )
        return run

    def run_forever(self, stop_event: threading.Event) -> None:
        """Run ticks every tick_interval_seconds until stop_event is set."""
        logger.info("Scheduler started (interval=%ds)", self.settings.tick_interval_seconds)
        while not stop_event.is_set():
            try:
                self.run_tick()
            except StoreUnavailable as e:
                logger.error("Tick abandoned after retries: %s", e)
            stop_event.wait(self.settings.tick_interval_seconds)
        logger.info("Scheduler stopped")

    def _tick_with_retry(self, now: date) -> TickResult:
        retrying = Retrying(
            stop=stop_after_attempt(self.settings.tick_retry_attempts),
            wait=wait_exponential(
                multiplier=1,
                min=self.settings.tick_retry_min_wait,
                max=self.settings.tick_retry_max_wait,
            ),
            retry=retry_if_exception_type(StoreUnavailable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        # Entries created by an attempt that later failed still need follow-up work
        partial = TickResult(now=now)
        return retrying(self.engine.tick, now, partial)


__all__ = ["RecurrenceScheduler", "SchedulerRun"]
