"""
Create the default usage limit rows for user types that have none.

Existing rows are left untouched.

Usage:
  python scripts/seed_usage_limits.py
"""

from __future__ import annotations

import asyncio
import logging

from src.db import close_pool
from src.usage import get_usage_service
from src.utils.logging import setup_logging

logger = logging.getLogger("scripts.seed_usage_limits")


async def _run():
    try:
        return await get_usage_service().seed_default_limits()
    finally:
        await close_pool()


def main() -> int:
    setup_logging(service_name="usage-seed-job")

    try:
        created = asyncio.run(_run())
    except Exception as e:
        logger.error(f"Seeding usage limits failed: {e}")
        return 1

    if created:
        print("Seeded usage limits for: " + ", ".join(t.value for t in created))
    else:
        print("Usage limits already configured for every user type")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
