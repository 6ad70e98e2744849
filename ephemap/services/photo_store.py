"""Marker store: the photo and comment operations the map relies on.

Each public method is one unit of work: it runs the lifecycle rules in
a transaction, commits, and only then publishes change events. Writes
to photo rows are compare-and-set on the row version; a write that
lost a race is retried once against fresh data, then reported as a
``ConflictException``.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ephemap.core.config import settings
from ephemap.core.exceptions import ConflictException, NotFoundException
from ephemap.models import ActorTally, Comment, Interaction, Photo
from ephemap.models.base import generate_uuid, utcnow
from ephemap.schemas.comment import CommentResponse
from ephemap.schemas.photo import PhotoResponse
from ephemap.services.change_feed import (
    COMMENTS,
    DELETE,
    INSERT,
    PHOTOS,
    UPDATE,
    ChangeEvent,
    ChangeFeed,
    change_feed,
)
from ephemap.services.lifecycle import Clock, LifecycleEngine, ZoneOutcome
from ephemap.services.storage_manager import StorageManager
from ephemap.services.zones import validate_coordinates, zone_of

logger = logging.getLogger(__name__)

T = TypeVar("T")

UPDATABLE_FIELDS = (
    "likes",
    "dislikes",
    "expires_at",
    "created_by",
    "photo_key",
    "thumbnail_key",
)


@dataclass
class DeleteOutcome:
    """Result of a batch delete.

    Attributes:
        deleted: Photo rows removed.
        deleted_ids: Ids of the removed photos.
        asset_keys: Storage keys the removed photos referenced.
        zones: Zone evaluations run after the delete.
    """

    deleted: int
    deleted_ids: List[str] = field(default_factory=list)
    asset_keys: List[str] = field(default_factory=list)
    zones: List[ZoneOutcome] = field(default_factory=list)


class PhotoStore:
    """Photo and comment persistence with lifecycle rules applied.

    Args:
        session: Async session owned by the caller.
        feed: Change feed to publish committed changes on.
        storage: Asset storage, used to resolve public URLs in payloads.
        clock: Source of "now" shared with the lifecycle engine.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        feed: ChangeFeed = change_feed,
        storage: Optional[StorageManager] = None,
        clock: Clock = utcnow,
        engine: Optional[LifecycleEngine] = None,
    ) -> None:
        self.session = session
        self.feed = feed
        self.storage = storage
        self.clock = clock
        self.engine = engine or LifecycleEngine(session, clock=clock)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _payload(self, photo: Photo) -> Dict[str, Any]:
        return PhotoResponse.from_photo(photo, self.storage).model_dump(mode="json")

    async def _with_retry(self, operation: str, work: Callable[[], Awaitable[T]]) -> T:
        """Run ``work`` and commit, retrying once after a lost race."""
        for attempt in (1, 2):
            try:
                result = await work()
                await self.session.commit()
                return result
            except (StaleDataError, IntegrityError) as exc:
                await self.session.rollback()
                logger.warning("%s lost a concurrent write (attempt %d): %s", operation, attempt, exc)
            except Exception:
                await self.session.rollback()
                raise
        raise ConflictException(f"{operation} conflicted with a concurrent update")

    async def _require_photo(self, photo_id: str) -> Photo:
        result = await self.session.execute(
            select(Photo).where(Photo.id == photo_id).execution_options(populate_existing=True)
        )
        photo = result.scalar_one_or_none()
        if photo is None:
            raise NotFoundException("Photo not found", details={"photo_id": photo_id})
        return photo

    # -------------------------------------------------------------------------
    # Photos
    # -------------------------------------------------------------------------

    async def create_photo(
        self,
        latitude: float,
        longitude: float,
        created_by: str = "Anonymous",
        photo_key: Optional[str] = None,
        thumbnail_key: Optional[str] = None,
        photo_id: Optional[str] = None,
    ) -> Photo:
        """Create a photo and apply the zone threshold rule.

        Args:
            latitude: Capture latitude.
            longitude: Capture longitude.
            created_by: Author label; blank falls back to "Anonymous".
            photo_key: Storage key of the full image.
            thumbnail_key: Storage key of the thumbnail.
            photo_id: Pre-allocated id (when assets were stored first).

        Returns:
            The stored photo.

        Raises:
            ValidationException: If the coordinates are invalid.
            ConflictException: If the zone kept changing underneath.
        """
        validate_coordinates(latitude, longitude)
        photo_id = photo_id or generate_uuid()
        zone_id = zone_of(latitude, longitude)
        label = (created_by or "").strip() or "Anonymous"

        async def work() -> tuple[Photo, ZoneOutcome]:
            now = self.clock()
            photo = Photo(
                id=photo_id,
                latitude=latitude,
                longitude=longitude,
                zone_id=zone_id,
                created_at=now,
                last_interaction=now,
                created_by=label,
                photo_key=photo_key,
                thumbnail_key=thumbnail_key,
                likes=0,
                dislikes=0,
                views=0,
            )
            outcome = await self.engine.admit(photo)
            return photo, outcome

        photo, outcome = await self._with_retry("create_photo", work)

        events = [ChangeEvent(PHOTOS, INSERT, new=self._payload(photo))]
        events.extend(
            ChangeEvent(PHOTOS, UPDATE, new=self._payload(p)) for p in outcome.touched
        )
        await self.feed.publish_many(events)
        return photo

    async def get_photo(self, photo_id: str) -> Photo:
        return await self._require_photo(photo_id)

    async def get_photos(
        self, limit: int = settings.PHOTO_LIST_LIMIT, order_by_recency: bool = True
    ) -> List[Photo]:
        """Return photos for the map; expired ones are included."""
        order = Photo.created_at.desc() if order_by_recency else Photo.created_at.asc()
        result = await self.session.execute(
            select(Photo)
            .order_by(order)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def update_photo(self, photo_id: str, fields: Dict[str, Any]) -> Photo:
        """Apply a partial update to a photo.

        ``fields`` may carry ``version``; when it does the update only
        applies to that exact row version.

        Raises:
            NotFoundException: If the photo does not exist.
            ConflictException: On a version mismatch or a lost race.
        """
        expected_version = fields.get("version")
        changes = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}

        async def work() -> Photo:
            photo = await self._require_photo(photo_id)
            if expected_version is not None and photo.version != expected_version:
                raise ConflictException(
                    "Photo was modified since it was read",
                    details={"expected": expected_version, "actual": photo.version},
                )
            for name, value in changes.items():
                setattr(photo, name, value)
            await self.session.flush()
            return photo

        photo = await self._with_retry("update_photo", work)
        await self.feed.publish(ChangeEvent(PHOTOS, UPDATE, new=self._payload(photo)))
        return photo

    async def delete_photos(
        self, ids: Sequence[str], *, expired_before: Optional[datetime] = None
    ) -> DeleteOutcome:
        """Delete photos with their comments and votes, then settle their zones.

        Args:
            ids: Photo ids to delete; unknown ids are ignored.
            expired_before: When given, only rows whose ``expires_at`` is
                at or before this instant are deleted. The condition is
                evaluated at delete time, so overlapping sweeps are no-ops.

        Returns:
            DeleteOutcome with the number of photo rows removed.
        """
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            return DeleteOutcome(deleted=0)

        async def work() -> DeleteOutcome:
            stmt = select(Photo.id, Photo.zone_id, Photo.photo_key, Photo.thumbnail_key).where(Photo.id.in_(unique_ids))
            if expired_before is not None:
                stmt = stmt.where(
                    Photo.expires_at.is_not(None), Photo.expires_at <= expired_before
                )
            rows = (await self.session.execute(stmt)).all()
            if not rows:
                return DeleteOutcome(deleted=0)

            target_ids = [row.id for row in rows]
            zones = sorted({row.zone_id for row in rows})
            asset_keys = [
                key for row in rows for key in (row.photo_key, row.thumbnail_key) if key
            ]

            await self.session.execute(
                delete(Comment)
                .where(Comment.photo_id.in_(target_ids))
                .execution_options(synchronize_session=False)
            )
            await self.session.execute(
                delete(Interaction)
                .where(Interaction.photo_id.in_(target_ids))
                .execution_options(synchronize_session=False)
            )
            photo_delete = delete(Photo).where(Photo.id.in_(target_ids))
            if expired_before is not None:
                photo_delete = photo_delete.where(
                    Photo.expires_at.is_not(None), Photo.expires_at <= expired_before
                )
            result = await self.session.execute(
                photo_delete.execution_options(synchronize_session=False)
            )
            outcomes = [await self.engine.settle_zone(zone_id) for zone_id in zones]
            return DeleteOutcome(
                deleted=result.rowcount,
                deleted_ids=target_ids,
                asset_keys=asset_keys,
                zones=outcomes,
            )

        outcome = await self._with_retry("delete_photos", work)

        events = [ChangeEvent(PHOTOS, DELETE, old={"id": photo_id}) for photo_id in outcome.deleted_ids]
        for zone in outcome.zones:
            events.extend(ChangeEvent(PHOTOS, UPDATE, new=self._payload(p)) for p in zone.touched)
        await self.feed.publish_many(events)
        if outcome.deleted:
            logger.info("Deleted %d photo(s) across %d zone(s)", outcome.deleted, len(outcome.zones))
        return outcome

    async def increment_views(self, photo_id: str) -> int:
        """Atomically bump the view counter and return the new value."""
        result = await self.session.execute(
            update(Photo)
            .where(Photo.id == photo_id)
            .values(views=Photo.views + 1)
            .returning(Photo.views)
            .execution_options(synchronize_session=False)
        )
        views = result.scalar_one_or_none()
        if views is None:
            await self.session.rollback()
            raise NotFoundException("Photo not found", details={"photo_id": photo_id})
        await self.session.commit()
        return int(views)

    async def zone_summary(self, zone_id: str) -> Dict[str, Any]:
        """Live population of a zone and whether its photos are on a finite clock."""
        live = await self.engine.live_zone_photos(zone_id, self.clock())
        return {
            "zone_id": zone_id,
            "population": len(live),
            "threshold": self.engine.threshold,
            "finite": any(not photo.is_infinite for photo in live),
        }

    # -------------------------------------------------------------------------
    # Votes
    # -------------------------------------------------------------------------

    async def like(self, photo_id: str, actor_id: str) -> Photo:
        photo = await self._with_retry("like", lambda: self.engine.like(photo_id, actor_id))
        await self.feed.publish(ChangeEvent(PHOTOS, UPDATE, new=self._payload(photo)))
        return photo

    async def dislike(self, photo_id: str, actor_id: str) -> Photo:
        photo = await self._with_retry("dislike", lambda: self.engine.dislike(photo_id, actor_id))
        await self.feed.publish(ChangeEvent(PHOTOS, UPDATE, new=self._payload(photo)))
        return photo

    async def get_tally(self, actor_id: str) -> ActorTally:
        return await self.engine.get_tally(actor_id)

    # -------------------------------------------------------------------------
    # Comments
    # -------------------------------------------------------------------------

    async def add_comment(self, photo_id: str, user_initials: str, content: str) -> Comment:
        await self._require_photo(photo_id)
        comment = Comment(
            photo_id=photo_id,
            user_initials=user_initials,
            content=content,
            created_at=self.clock(),
            likes=0,
            dislikes=0,
        )
        self.session.add(comment)
        await self.session.commit()

        payload = CommentResponse.model_validate(comment).model_dump(mode="json")
        await self.feed.publish(ChangeEvent(COMMENTS, INSERT, new=payload))
        return comment

    async def get_comments(self, photo_id: str) -> List[Comment]:
        await self._require_photo(photo_id)
        result = await self.session.execute(
            select(Comment)
            .where(Comment.photo_id == photo_id)
            .order_by(Comment.created_at.desc())
        )
        return list(result.scalars().all())
