"""Comment endpoints nested under a photo."""

from typing import List

from fastapi import APIRouter, Request, status

from ephemap.api.deps import Store
from ephemap.core.config import settings
from ephemap.middleware.rate_limit import limiter
from ephemap.schemas.comment import CommentCreate, CommentResponse

router = APIRouter(prefix="/photos/{photo_id}/comments", tags=["Comments"])


@router.get("", response_model=List[CommentResponse])
async def list_comments(photo_id: str, store: Store) -> List[CommentResponse]:
    """Comments on a photo, newest first."""
    comments = await store.get_comments(photo_id)
    return [CommentResponse.model_validate(c) for c in comments]


@router.post("", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_INTERACTIONS)
async def add_comment(
    request: Request, photo_id: str, payload: CommentCreate, store: Store
) -> CommentResponse:
    comment = await store.add_comment(
        photo_id, user_initials=payload.user_initials, content=payload.content
    )
    return CommentResponse.model_validate(comment)
