"""Initial schema: photos, comments, interactions, actor tallies.

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

interaction_kind = sa.Enum("like", "dislike", name="interaction_kind")


def upgrade() -> None:
    op.create_table(
        "photos",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("zone_id", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("likes", sa.Integer(), server_default="0", nullable=False),
        sa.Column("dislikes", sa.Integer(), server_default="0", nullable=False),
        sa.Column("views", sa.Integer(), server_default="0", nullable=False),
        sa.Column("created_by", sa.String(length=64), nullable=False),
        sa.Column("last_interaction", sa.DateTime(timezone=True), nullable=False),
        sa.Column("photo_key", sa.String(length=512), nullable=True),
        sa.Column("thumbnail_key", sa.String(length=512), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
    )
    op.create_index("ix_photos_zone_id", "photos", ["zone_id"])
    op.create_index("ix_photos_created_at", "photos", ["created_at"])
    op.create_index("ix_photos_zone_expires", "photos", ["zone_id", "expires_at"])

    op.create_table(
        "comments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "photo_id",
            sa.String(length=36),
            sa.ForeignKey("photos.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_initials", sa.String(length=16), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("likes", sa.Integer(), server_default="0", nullable=False),
        sa.Column("dislikes", sa.Integer(), server_default="0", nullable=False),
    )
    op.create_index("ix_comments_photo_id", "comments", ["photo_id"])
    op.create_index("ix_comments_created_at", "comments", ["created_at"])

    op.create_table(
        "interactions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("actor_id", sa.String(length=64), nullable=False),
        sa.Column(
            "photo_id",
            sa.String(length=36),
            sa.ForeignKey("photos.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("kind", interaction_kind, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("actor_id", "photo_id", name="uq_interactions_actor_photo"),
    )
    op.create_index("ix_interactions_actor_id", "interactions", ["actor_id"])
    op.create_index("ix_interactions_photo_id", "interactions", ["photo_id"])

    op.create_table(
        "actor_tallies",
        sa.Column("actor_id", sa.String(length=64), primary_key=True),
        sa.Column("likes", sa.Integer(), server_default="0", nullable=False),
        sa.Column("dislikes", sa.Integer(), server_default="0", nullable=False),
    )


def downgrade() -> None:
    op.drop_table("actor_tallies")
    op.drop_index("ix_interactions_photo_id", table_name="interactions")
    op.drop_index("ix_interactions_actor_id", table_name="interactions")
    op.drop_table("interactions")
    interaction_kind.drop(op.get_bind(), checkfirst=True)
    op.drop_index("ix_comments_created_at", table_name="comments")
    op.drop_index("ix_comments_photo_id", table_name="comments")
    op.drop_table("comments")
    op.drop_index("ix_photos_zone_expires", table_name="photos")
    op.drop_index("ix_photos_created_at", table_name="photos")
    op.drop_index("ix_photos_zone_id", table_name="photos")
    op.drop_table("photos")
