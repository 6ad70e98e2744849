#!/usr/bin/env python3
"""
Reaper runner
=============

Runs the expired-photo sweep outside the API process, either once
(for cron or a scheduled job) or in a loop.

    python scripts/run_reaper.py --once
    python scripts/run_reaper.py --interval 600
"""

import argparse
import asyncio
import logging
import sys

from ephemap.core.config import settings
from ephemap.core.exceptions import ReaperError
from ephemap.core.logging import setup_logging
from ephemap.services.database import AsyncSessionLocal, engine
from ephemap.services.reaper import Reaper
from ephemap.services.storage_manager import StorageManager

logger = logging.getLogger("ephemap.scripts.run_reaper")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Delete expired photos and their files.")
    parser.add_argument("--once", action="store_true", help="Run a single sweep and exit")
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.REAPER_INTERVAL_SECONDS,
        help="Seconds between sweeps when looping",
    )
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)
    reaper = Reaper(AsyncSessionLocal, StorageManager())
    try:
        if args.once:
            result = await reaper.sweep()
            logger.info(f"Sweep finished: {result.to_dict()}")
        else:
            await reaper.run_forever(args.interval)
    except ReaperError as exc:
        logger.error(f"{exc.message}: {exc.details}")
        return 1
    finally:
        await engine.dispose()
    return 0


if __name__ == "__main__":
    setup_logging()
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)
