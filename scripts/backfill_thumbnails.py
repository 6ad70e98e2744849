#!/usr/bin/env python3
"""
Thumbnail backfill
==================

Generates 64x64 thumbnails for photos uploaded before thumbnails were
stored, and records the new thumbnail key on each photo.

    python scripts/backfill_thumbnails.py --limit 500
"""

import argparse
import asyncio
import logging
import sys

from ephemap.core.logging import setup_logging
from ephemap.services.database import AsyncSessionLocal, engine
from ephemap.services.photo_store import PhotoStore
from ephemap.services.storage_manager import StorageManager
from ephemap.services.thumbnails import backfill_thumbnails

logger = logging.getLogger("ephemap.scripts.backfill_thumbnails")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Create missing photo thumbnails.")
    parser.add_argument("--limit", type=int, default=500, help="Maximum photos to process")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        async with AsyncSessionLocal() as session:
            store = PhotoStore(session, storage=StorageManager())
            result = await backfill_thumbnails(store, limit=args.limit)
    finally:
        await engine.dispose()
    logger.info(f"Migrated {result.migrated} photo(s), {result.failed} failed")
    return 1 if result.failed else 0


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(main()))
