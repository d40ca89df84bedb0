"""
Reset monthly usage counters for every user whose window has ended.

Meant to run from a daily scheduler (cron, Railway cron, etc.). Users whose
monthly_reset_date has passed get their counters zeroed and the next reset
date set 30 days out. Safe to run more than once a day.

Usage:
  python scripts/reset_monthly_counters.py
  python scripts/reset_monthly_counters.py --now 2026-10-01T00:00:00+00:00
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import datetime

from src.db import close_pool
from src.usage import get_usage_service
from src.utils.logging import log_duration, setup_logging

logger = logging.getLogger("scripts.reset_monthly_counters")


def _parse_now(raw: str | None) -> datetime | None:
    if not raw:
        return None
    return datetime.fromisoformat(raw)


async def _run(now: datetime | None) -> int:
    try:
        with log_duration("reset_monthly_counters", logger):
            return await get_usage_service().reset_monthly_counters(now)
    finally:
        await close_pool()


def main() -> int:
    parser = argparse.ArgumentParser(description="Reset monthly usage counters")
    parser.add_argument(
        "--now",
        default=None,
        help="Override the current time (ISO 8601), mainly for backfills",
    )
    args = parser.parse_args()

    setup_logging(service_name="usage-reset-job")

    try:
        now = _parse_now(args.now)
    except ValueError:
        print(f"Invalid --now value: {args.now}")
        return 2

    try:
        reset_count = asyncio.run(_run(now))
    except Exception as e:
        logger.error(f"Monthly counter reset failed: {e}")
        return 1

    print(f"Reset monthly counters for {reset_count} users")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
