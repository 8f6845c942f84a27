#!/usr/bin/env python3
"""CLI entrypoint for the tour notification engine."""

from __future__ import annotations

import argparse
import time

from loguru import logger

from tourwatch.config import load_settings
from tourwatch.errors import PermissionDeniedError


def main() -> None:
    parser = argparse.ArgumentParser(description="Tour knowledge base notifications")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create all tables on DATABASE_URL")

    fanout = sub.add_parser("fanout", help="Deliver unprocessed changes for a tour")
    fanout.add_argument("--tour-id", type=int, required=True, help="Tour to process")
    fanout.add_argument("--caller-id", type=int, required=True, help="User triggering the run (TA/MGMT)")

    reminders = sub.add_parser("reminders", help="Send due reminders and scheduled texts")
    reminders.add_argument("--loop", action="store_true", help="Run in a loop")
    reminders.add_argument("--interval", type=int, default=None, help="Seconds between ticks")

    args = parser.parse_args()
    settings = load_settings()

    if args.command == "init-db":
        from tourwatch.db.base import init_db

        init_db()
        logger.success("Database tables created")
        return

    if args.command == "fanout":
        from tourwatch.jobs.change_fanout import ChangeFanoutJob

        try:
            result = ChangeFanoutJob(settings=settings).fanout(args.tour_id, args.caller_id)
        except PermissionDeniedError as e:
            logger.error("Fanout refused: {}", e)
            raise SystemExit(2)
        logger.success("Sent {} messages for {} changes", result.sent_count, result.processed_count)
        if result.failed_count:
            logger.warning("{} deliveries failed", result.failed_count)
        return

    from tourwatch.jobs.reminders import ReminderDispatchJob

    job = ReminderDispatchJob(settings=settings)
    if settings.twilio is None:
        logger.warning("Twilio is not configured; SMS sends will fail")

    if not args.loop:
        stats = job.run_tick()
        logger.success("Sent {} reminders and {} scheduled messages", stats["sent"], stats["scheduled_sent"])
        return

    interval = args.interval or settings.reminders.tick_seconds
    logger.info("Starting reminder loop every {}s...", interval)
    while True:
        try:
            job.run_tick()
        except Exception as e:
            logger.exception("Reminder tick crashed: {}", e)
        time.sleep(interval)


if __name__ == "__main__":
    main()
