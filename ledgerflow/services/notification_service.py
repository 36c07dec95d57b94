"""Notification sink for budget alert events.

The engine only enqueues events; delivery (email, push, chat) belongs to a
downstream worker that drains the sink and calls
``BudgetStore.mark_delivered``.
"""

import logging
import queue
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Protocol

from ledgerflow.models.budget import AlertType, BudgetAlert

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BudgetAlertEvent:
    """Immutable event handed to the notification sink."""

    alert_id: int
    owner_id: int
    budget_id: int
    alert_type: AlertType
    percentage_used: Decimal
    window_start: date
    window_end: date
    triggered_at: datetime

    @classmethod
    def from_alert(cls, alert: BudgetAlert) -> "BudgetAlertEvent":
        return cls(
            alert_id=alert.id,
            owner_id=alert.owner_id,
            budget_id=alert.budget_id,
            alert_type=AlertType(alert.alert_type),
            percentage_used=alert.percentage_used,
            window_start=alert.window_start,
            window_end=alert.window_end,
            triggered_at=alert.triggered_at,
        )


class NotificationSink(Protocol):
    """Anything that accepts budget alert events for later delivery."""

    def enqueue(self, event: BudgetAlertEvent) -> None: ...


class QueueNotificationSink:
    """In-process sink backed by a thread-safe queue."""

    def __init__(self, maxsize: int = 0):
        self._queue: "queue.Queue[BudgetAlertEvent]" = queue.Queue(maxsize=maxsize)

    def enqueue(self, event: BudgetAlertEvent) -> None:
        """Add an event without blocking.

        When a bounded queue is full the event is dropped with a warning. The
        alert row stays undelivered, so a worker can still pick it up through
        ``BudgetStore.list_undelivered_alerts``.
        """
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            logger.warning(
                "Notification queue full; %s alert %d for owner %d left for redelivery",
                event.alert_type.value,
                event.alert_id,
                event.owner_id,
            )
            return
        logger.debug(
            "Enqueued %s alert %d for owner %d",
            event.alert_type.value,
            event.alert_id,
            event.owner_id,
        )

    def drain(self) -> list[BudgetAlertEvent]:
        """Remove and return every pending event in FIFO order."""
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def __len__(self) -> int:
        return self._queue.qsize()


__all__ = ["BudgetAlertEvent", "NotificationSink", "QueueNotificationSink"]
