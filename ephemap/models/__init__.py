"""ORM models; importing this package registers every table on Base.metadata."""

from ephemap.models.base import Base
from ephemap.models.comment import Comment
from ephemap.models.interaction import ActorTally, Interaction, InteractionKind
from ephemap.models.photo import Photo

__all__ = ["ActorTally", "Base", "Comment", "Interaction", "InteractionKind", "Photo"]
