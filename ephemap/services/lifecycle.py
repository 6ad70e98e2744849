"""Photo lifecycle engine.

This module owns the rules that decide how long a photo lives:

- A zone (H3 cell) with at most ``threshold - 1`` live photos keeps all of
  them at infinite life (``expires_at`` NULL).
- When a creation lifts the live population to ``threshold``, every live
  photo in the zone is rebalanced: likes and dislikes reset to zero and a
  uniform ``expires_at = now + lifespan``.
- A like adds ``lifespan`` to a finite expiry, a dislike removes it.
  Infinite photos only count the vote.
- When a deletion drops the zone below ``threshold``, the remaining photos
  revert to infinite life with their counters untouched.

The engine works inside the caller's session and never commits; the
store decides transaction boundaries and publishes change events.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import ColumnElement, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ephemap.core.config import settings
from ephemap.core.exceptions import (
    AlreadyInteractedException,
    DislikeNotAllowedException,
    NotFoundException,
    PhotoExpiredException,
)
from ephemap.models import ActorTally, Interaction, InteractionKind, Photo
from ephemap.models.base import utcnow

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class LifeState(str, enum.Enum):
    """Lifecycle state of a photo, derived from ``expires_at`` and the clock."""

    INFINITE = "infinite"
    ACTIVE = "active"
    EXPIRED = "expired"


class ZoneTransition(str, enum.Enum):
    """What a zone evaluation did to the zone's photos."""

    NONE = "none"
    REBALANCED = "rebalanced"
    JOINED = "joined"
    REVERTED = "reverted"


def life_state(photo: Photo, now: datetime) -> LifeState:
    """Classify a photo at instant ``now``."""
    if photo.expires_at is None:
        return LifeState.INFINITE
    if now >= photo.expires_at:
        return LifeState.EXPIRED
    return LifeState.ACTIVE


def is_live(now: datetime) -> ColumnElement[bool]:
    """SQL condition selecting photos that have not expired at ``now``."""
    return or_(Photo.expires_at.is_(None), Photo.expires_at > now)


@dataclass
class ZoneOutcome:
    """Result of evaluating a zone after a creation or deletion.

    Attributes:
        zone_id: Zone that was evaluated.
        population: Live photos in the zone after the change.
        transition: Which rule fired.
        touched: Photos whose lifecycle fields were rewritten.
    """

    zone_id: str
    population: int
    transition: ZoneTransition = ZoneTransition.NONE
    touched: List[Photo] = field(default_factory=list)


class LifecycleEngine:
    """Applies the lifecycle rules against a database session.

    Args:
        session: Async session the caller commits.
        lifespan: BASE_LIFESPAN, the finite baseline and per-vote step.
        threshold: Live population at which a zone turns finite.
        clock: Source of "now"; injectable for tests.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        lifespan: Optional[timedelta] = None,
        threshold: int = settings.ZONE_FINITE_THRESHOLD,
        clock: Clock = utcnow,
    ) -> None:
        self.session = session
        self.lifespan = lifespan if lifespan is not None else settings.base_lifespan
        self.threshold = threshold
        self.clock = clock

    # -------------------------------------------------------------------------
    # Zone population
    # -------------------------------------------------------------------------

    async def live_zone_photos(
        self, zone_id: str, now: datetime, *, lock: bool = False
    ) -> List[Photo]:
        """Load the live photos of a zone.

        With ``lock`` the rows are selected FOR UPDATE so a concurrent
        rebalance of the same zone waits for this transaction.
        """
        stmt = (
            select(Photo)
            .where(Photo.zone_id == zone_id, is_live(now))
            .order_by(Photo.created_at, Photo.id)
            .execution_options(populate_existing=True)
        )
        if lock:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def zone_population(self, zone_id: str, now: Optional[datetime] = None) -> int:
        now = now or self.clock()
        result = await self.session.execute(
            select(func.count()).select_from(Photo).where(Photo.zone_id == zone_id, is_live(now))
        )
        return int(result.scalar_one())

    # -------------------------------------------------------------------------
    # Creation and deletion triggers
    # -------------------------------------------------------------------------

    async def admit(self, photo: Photo) -> ZoneOutcome:
        """Decide the initial life of a new photo and add it to the session.

        ``photo`` must carry its zone id and zero counters. Live siblings
        are counted with the new photo included:

        - below threshold: the photo is infinite, and any finite sibling
          is reverted so the whole zone stays infinite;
        - reaching threshold from below: the whole zone is rebalanced;
        - zone already finite: the new photo joins with a fresh baseline.
        """
        now = self.clock()
        siblings = await self.live_zone_photos(photo.zone_id, now, lock=True)
        population = len(siblings) + 1
        outcome = ZoneOutcome(zone_id=photo.zone_id, population=population)

        photo.likes = 0
        photo.dislikes = 0
        photo.expires_at = None
        self.session.add(photo)

        if population < self.threshold:
            outcome.touched = self._revert(siblings)
            if outcome.touched:
                outcome.transition = ZoneTransition.REVERTED
        elif len(siblings) >= self.threshold and all(not p.is_infinite for p in siblings):
            photo.expires_at = now + self.lifespan
            outcome.transition = ZoneTransition.JOINED
        else:
            outcome.touched = self._rebalance(siblings, now)
            photo.expires_at = now + self.lifespan
            outcome.transition = ZoneTransition.REBALANCED

        await self.session.flush()
        logger.info(
            "Photo %s admitted to zone %s (population=%d, transition=%s)",
            photo.id,
            photo.zone_id,
            population,
            outcome.transition.value,
        )
        return outcome

    async def settle_zone(self, zone_id: str) -> ZoneOutcome:
        """Re-evaluate a zone after photos were removed from it.

        Dropping below threshold reverts every live photo to infinite
        life; counters are left as they are.
        """
        now = self.clock()
        live = await self.live_zone_photos(zone_id, now, lock=True)
        outcome = ZoneOutcome(zone_id=zone_id, population=len(live))
        if len(live) < self.threshold:
            outcome.touched = self._revert(live)
            if outcome.touched:
                outcome.transition = ZoneTransition.REVERTED
                await self.session.flush()
                logger.info(
                    "Zone %s reverted to infinite life (population=%d, photos=%d)",
                    zone_id,
                    len(live),
                    len(outcome.touched),
                )
        return outcome

    def _rebalance(self, photos: List[Photo], now: datetime) -> List[Photo]:
        deadline = now + self.lifespan
        for photo in photos:
            photo.likes = 0
            photo.dislikes = 0
            photo.expires_at = deadline
        return list(photos)

    @staticmethod
    def _revert(photos: List[Photo]) -> List[Photo]:
        reverted = []
        for photo in photos:
            if photo.expires_at is not None:
                photo.expires_at = None
                reverted.append(photo)
        return reverted

    # -------------------------------------------------------------------------
    # Likes and dislikes
    # -------------------------------------------------------------------------

    async def get_tally(self, actor_id: str) -> ActorTally:
        """Return the actor's tally, or an unsaved zero tally for new actors."""
        tally = await self.session.get(ActorTally, actor_id, populate_existing=True)
        if tally is None:
            return ActorTally(actor_id=actor_id, likes=0, dislikes=0)
        return tally

    async def like(self, photo_id: str, actor_id: str) -> Photo:
        """Count a like and, on a finite photo, extend it by one lifespan."""
        return await self._vote(photo_id, actor_id, InteractionKind.LIKE)

    async def dislike(self, photo_id: str, actor_id: str) -> Photo:
        """Count a dislike and, on a finite photo, shorten it by one lifespan.

        Only allowed while the actor's global likes exceed their dislikes.
        """
        return await self._vote(photo_id, actor_id, InteractionKind.DISLIKE)

    async def _vote(self, photo_id: str, actor_id: str, kind: InteractionKind) -> Photo:
        now = self.clock()
        result = await self.session.execute(
            select(Photo).where(Photo.id == photo_id).execution_options(populate_existing=True)
        )
        photo = result.scalar_one_or_none()
        if photo is None:
            raise NotFoundException("Photo not found", details={"photo_id": photo_id})
        if life_state(photo, now) is LifeState.EXPIRED:
            raise PhotoExpiredException(details={"photo_id": photo_id})

        existing = await self.session.execute(
            select(Interaction.kind).where(
                Interaction.actor_id == actor_id, Interaction.photo_id == photo_id
            )
        )
        previous = existing.scalar_one_or_none()
        if previous is not None:
            raise AlreadyInteractedException(
                details={"photo_id": photo_id, "previous": InteractionKind(previous).value}
            )

        tally = await self.session.get(ActorTally, actor_id, populate_existing=True)
        if kind is InteractionKind.DISLIKE and (tally is None or not tally.can_dislike):
            raise DislikeNotAllowedException(
                details={
                    "likes": tally.likes if tally else 0,
                    "dislikes": tally.dislikes if tally else 0,
                }
            )

        self.session.add(Interaction(actor_id=actor_id, photo_id=photo_id, kind=kind))
        await self._bump_tally(actor_id, tally, kind)

        if kind is InteractionKind.LIKE:
            photo.likes += 1
            if photo.expires_at is not None:
                photo.expires_at = photo.expires_at + self.lifespan
        else:
            photo.dislikes += 1
            if photo.expires_at is not None:
                photo.expires_at = photo.expires_at - self.lifespan
        photo.last_interaction = now

        await self.session.flush()
        logger.info(
            "%s on photo %s by %s (likes=%d, dislikes=%d, expires_at=%s)",
            kind.value,
            photo.id,
            actor_id,
            photo.likes,
            photo.dislikes,
            photo.expires_at.isoformat() if photo.expires_at else "never",
        )
        return photo

    async def _bump_tally(
        self, actor_id: str, tally: Optional[ActorTally], kind: InteractionKind
    ) -> None:
        if tally is None:
            self.session.add(
                ActorTally(
                    actor_id=actor_id,
                    likes=1 if kind is InteractionKind.LIKE else 0,
                    dislikes=1 if kind is InteractionKind.DISLIKE else 0,
                )
            )
            return
        column = ActorTally.likes if kind is InteractionKind.LIKE else ActorTally.dislikes
        await self.session.execute(
            update(ActorTally)
            .where(ActorTally.actor_id == actor_id)
            .values({column: column + 1})
            .execution_options(synchronize_session=False)
        )
