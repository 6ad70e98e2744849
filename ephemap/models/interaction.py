"""Interaction ledger and per-actor tallies.

``interactions`` enforces at most one like or dislike per actor and
photo with a unique constraint. ``actor_tallies`` keeps the running
global counts used to gate dislikes; it outlives the photos it counts.
"""

import enum
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ephemap.models.base import Base, UTCDateTime, generate_uuid, utcnow


class InteractionKind(str, enum.Enum):
    """Kind of vote an actor cast on a photo."""

    LIKE = "like"
    DISLIKE = "dislike"


class Interaction(Base):
    """One actor's single vote on one photo.

    Attributes:
        id: Primary key (UUID string).
        actor_id: Free-text actor label (session or user chosen).
        photo_id: Photo the vote was cast on.
        kind: Like or dislike.
        created_at: When the vote was cast.
    """

    __tablename__ = "interactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    photo_id: Mapped[str] = mapped_column(
        ForeignKey("photos.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    kind: Mapped[InteractionKind] = mapped_column(
        Enum(InteractionKind, name="interaction_kind", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("actor_id", "photo_id", name="uq_interactions_actor_photo"),
    )


class ActorTally(Base):
    """Cumulative likes and dislikes an actor has given, across all photos."""

    __tablename__ = "actor_tallies"

    actor_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    likes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    dislikes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    @property
    def can_dislike(self) -> bool:
        return self.likes > self.dislikes
