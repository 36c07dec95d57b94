"""CLI entry point for the recurrence tick driver.

Materializes due recurring entries, refreshes statistics and evaluates
budgets. Meant to be called by cron or run as a long-lived loop.

Usage:
    python -m ledgerflow.cli.tick                    # one tick for today
    python -m ledgerflow.cli.tick --date 2024-01-31  # one tick as of a date
    python -m ledgerflow.cli.tick --loop             # tick every TICK_INTERVAL_SECONDS

Exit Codes:
    0 - Success: every rule and budget processed
    1 - Failure: at least one rule/budget failed, or the store was unavailable

Logging:
    LOG_LEVEL controls verbosity; output goes to stdout and LOG_FILE
"""

import argparse
import signal
import sys
import threading
from datetime import date

from ledgerflow.services.config import get_settings
from ledgerflow.services.errors import StoreUnavailable
from ledgerflow.services.logging import setup_logging


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run recurring-entry ticks")
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Tick as of this date (YYYY-MM-DD); default today",
    )
    parser.add_argument("--loop", action="store_true", help="Keep ticking on an interval")
    parser.add_argument(
        "--init-db", action="store_true", help="Create missing tables before ticking"
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the tick CLI.

    Returns:
        Exit code: 0 for success, 1 for failure
    """
    args = parse_args(argv)
    settings = get_settings()
    logger = setup_logging(settings)

    from ledgerflow.services.db import SessionLocal, init_db
    from ledgerflow.services.notification_service import QueueNotificationSink
    from ledgerflow.services.scheduler import RecurrenceScheduler

    if args.init_db:
        init_db()

    db = SessionLocal()
    try:
        scheduler = RecurrenceScheduler(db, sink=QueueNotificationSink(), settings=settings)

        if args.loop:
            stop_event = threading.Event()
            signal.signal(signal.SIGTERM, lambda *_: stop_event.set())
            try:
                scheduler.run_forever(stop_event)
            except KeyboardInterrupt:
                logger.warning("Tick loop interrupted by user")
            return 0

        run = scheduler.run_tick(args.date)
        return 0 if run.ok else 1
    except StoreUnavailable as e:
        logger.error("Tick failed: %s", e)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
