"""
Reaper - periodic sweep of expired photos
=========================================

One sweep:

1. reads every finite photo whose ``expires_at`` is at or before now;
2. deletes the photo rows, their comments and votes in one batch,
   conditioned on still being expired at delete time;
3. settles every affected zone, which may revert it to infinite life;
4. deletes the image and thumbnail of each row actually removed (a
   failure is logged and counted, never fatal).

Store failures abort the sweep with ``ReaperError``. Sweeps are
idempotent and safe to overlap: a second run finds nothing to delete.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ephemap.core.exceptions import ConflictException, ReaperError
from ephemap.models import Photo
from ephemap.models.base import utcnow
from ephemap.services.change_feed import ChangeFeed, change_feed
from ephemap.services.lifecycle import Clock
from ephemap.services.photo_store import PhotoStore
from ephemap.services.storage_manager import StorageError, StorageManager

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Outcome of one reaper sweep.

    Attributes:
        deleted: Photo rows removed.
        asset_failures: Files that could not be removed.
        zones: Zones re-evaluated after the delete.
    """

    deleted: int = 0
    asset_failures: int = 0
    zones: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"deleted": self.deleted}


class Reaper:
    """Deletes expired photos and their assets.

    Args:
        session_factory: Creates a fresh session per sweep.
        storage: Asset storage the image files live in.
        feed: Change feed delete/revert events are published on.
        clock: Source of "now"; injectable for tests.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        storage: StorageManager,
        *,
        feed: ChangeFeed = change_feed,
        clock: Clock = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.storage = storage
        self.feed = feed
        self.clock = clock

    async def sweep(self) -> SweepResult:
        """Run one sweep.

        Returns:
            SweepResult; ``deleted`` is 0 when nothing had expired.

        Raises:
            ReaperError: If expired photos cannot be read or deleted.
        """
        now = self.clock()
        async with self.session_factory() as session:
            try:
                result = await session.execute(
                    select(Photo).where(Photo.expires_at.is_not(None), Photo.expires_at <= now)
                )
                expired = list(result.scalars().all())
            except SQLAlchemyError as exc:
                logger.error(f"Reaper could not read expired photos: {exc}")
                raise ReaperError(
                    "Failed to read expired photos", details={"reason": str(exc)}
                ) from exc

            if not expired:
                logger.info("Reaper sweep: no expired photos")
                return SweepResult()

            store = PhotoStore(
                session,
                feed=self.feed,
                storage=self.storage,
                clock=lambda: now,
            )
            try:
                outcome = await store.delete_photos(
                    [photo.id for photo in expired], expired_before=now
                )
            except (SQLAlchemyError, ConflictException) as exc:
                logger.error(f"Reaper could not delete expired photos: {exc}")
                raise ReaperError(
                    "Failed to delete expired photos", details={"reason": str(exc)}
                ) from exc

        asset_failures = await asyncio.to_thread(self._delete_assets, outcome.asset_keys)

        logger.info(
            "Reaper sweep: deleted=%d asset_failures=%d zones=%d",
            outcome.deleted,
            asset_failures,
            len(outcome.zones),
        )
        return SweepResult(
            deleted=outcome.deleted,
            asset_failures=asset_failures,
            zones=[zone.zone_id for zone in outcome.zones],
        )

    def _delete_assets(self, keys: List[str]) -> int:
        failures = 0
        for key in keys:
            try:
                self.storage.delete_file(key)
            except StorageError as exc:
                failures += 1
                logger.warning(f"Could not delete asset {key}: {exc}")
        return failures

    async def run_forever(self, interval_seconds: float, stop: Optional[asyncio.Event] = None) -> None:
        """Sweep every ``interval_seconds`` until cancelled or ``stop`` is set."""
        stop = stop or asyncio.Event()
        logger.info(f"Reaper loop started (interval={interval_seconds}s)")
        while not stop.is_set():
            try:
                await self.sweep()
            except ReaperError as exc:
                logger.error(f"Reaper sweep failed: {exc.message} {exc.details}")
            except Exception:
                logger.exception("Reaper sweep crashed")
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                continue
        logger.info("Reaper loop stopped")
