"""Comment model for notes left under a photo."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ephemap.models.base import Base, UTCDateTime, generate_uuid, utcnow

if TYPE_CHECKING:
    from ephemap.models.photo import Photo


class Comment(Base):
    """A comment attached to a photo.

    Comments are removed together with their photo. The store deletes
    them explicitly before the photo rows, so the cascade does not
    depend on the backend enforcing foreign keys.

    Attributes:
        id: Primary key (UUID string).
        photo_id: Parent photo.
        user_initials: Author label (up to 5 characters).
        content: Comment body (up to 700 characters).
        created_at: Creation timestamp.
        likes: Reserved counter, not used by the lifecycle rules.
        dislikes: Reserved counter, not used by the lifecycle rules.
    """

    __tablename__ = "comments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    photo_id: Mapped[str] = mapped_column(
        ForeignKey("photos.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_initials: Mapped[str] = mapped_column(String(16), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, index=True
    )
    likes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    dislikes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    photo: Mapped["Photo"] = relationship("Photo", back_populates="comments")
