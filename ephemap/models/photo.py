"""Photo model for geo-tagged, decaying map markers.

This module defines the Photo model: the marker a user drops on the
map, its zone grouping key and the counters that drive its lifetime.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional, Tuple

from sqlalchemy import Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ephemap.models.base import Base, UTCDateTime, generate_uuid, utcnow

if TYPE_CHECKING:
    from ephemap.models.comment import Comment


class Photo(Base):
    """Represents a photo marker placed on the map.

    ``expires_at`` being NULL means infinite life. Every ORM update is
    guarded by ``version`` (optimistic concurrency): a write based on a
    stale read raises ``StaleDataError`` instead of silently winning.

    Attributes:
        id: Primary key (UUID string), immutable.
        latitude: Capture latitude, immutable.
        longitude: Capture longitude, immutable.
        zone_id: Zone cell id derived from the position at creation.
        created_at: Creation timestamp.
        expires_at: Instant after which the photo may be reaped, or NULL.
        likes: Likes received since the last zone rebalance.
        dislikes: Dislikes received since the last zone rebalance.
        views: Detail view counter.
        created_by: Free-text author label.
        last_interaction: Time of the last like/dislike.
        photo_key: Storage key of the full-resolution image.
        thumbnail_key: Storage key of the thumbnail.
        version: Row version for compare-and-set updates.
        comments: Related comment records.
    """

    __tablename__ = "photos"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    zone_id: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    likes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    dislikes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_by: Mapped[str] = mapped_column(String(64), nullable=False, default="Anonymous")
    last_interaction: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    photo_key: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    thumbnail_key: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    comments: Mapped[list["Comment"]] = relationship(
        "Comment",
        back_populates="photo",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index("ix_photos_created_at", "created_at"),
        Index("ix_photos_zone_expires", "zone_id", "expires_at"),
    )

    @property
    def position(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)

    @property
    def is_infinite(self) -> bool:
        return self.expires_at is None
