"""Thumbnail backfill for photos stored before thumbnails existed."""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ephemap.core.exceptions import NotFoundException
from ephemap.models import Photo
from ephemap.services.photo_store import PhotoStore
from ephemap.services.storage_manager import StorageError

logger = logging.getLogger(__name__)


@dataclass
class BackfillResult:
    migrated: int = 0
    failed: int = 0


async def backfill_thumbnails(store: PhotoStore, limit: int = 500) -> BackfillResult:
    """Generate thumbnails for photos that have an image but no thumbnail.

    Each photo is handled on its own; a photo whose image cannot be read
    is logged and skipped.

    Args:
        store: Photo store bound to a session and a storage manager.
        limit: Maximum number of photos handled in one run.

    Returns:
        Counts of migrated and failed photos.
    """
    if store.storage is None:
        raise ValueError("thumbnail backfill needs a storage manager")

    session: AsyncSession = store.session
    result = await session.execute(
        select(Photo.id, Photo.photo_key)
        .where(Photo.thumbnail_key.is_(None), Photo.photo_key.is_not(None))
        .order_by(Photo.created_at)
        .limit(limit)
    )
    pending = result.all()
    if not pending:
        logger.info("No photos to migrate")
        return BackfillResult()

    outcome = BackfillResult()
    for row in pending:
        try:
            thumb_key = store.storage.create_thumbnail(row.id, row.photo_key)
            await store.update_photo(row.id, {"thumbnail_key": thumb_key})
        except (StorageError, NotFoundException) as exc:
            outcome.failed += 1
            logger.error(f"Failed to migrate photo {row.id}: {exc}")
            continue
        outcome.migrated += 1
        logger.info(f"Migrated photo {row.id}")

    logger.info("Thumbnail backfill complete (migrated=%d, failed=%d)", outcome.migrated, outcome.failed)
    return outcome
