"""Photo marker endpoints: create, list, update, delete, views and votes."""

import logging
from typing import List

from fastapi import APIRouter, File, Form, Query, Request, UploadFile, status

from ephemap.api.deps import ActorId, Storage, Store
from ephemap.core.config import settings
from ephemap.core.exceptions import ValidationException
from ephemap.middleware.rate_limit import limiter
from ephemap.models.base import generate_uuid
from ephemap.schemas.photo import (
    DeleteResponse,
    PhotoCreate,
    PhotoDeleteRequest,
    PhotoResponse,
    PhotoUpdate,
    ViewsResponse,
)
from ephemap.services.storage_manager import StorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/photos", tags=["Photos"])


@router.post("", response_model=PhotoResponse, status_code=status.HTTP_201_CREATED)
async def create_photo(payload: PhotoCreate, store: Store) -> PhotoResponse:
    """Create a photo whose assets are already in storage."""
    photo = await store.create_photo(
        latitude=payload.latitude,
        longitude=payload.longitude,
        created_by=payload.created_by,
        photo_key=payload.photo_key,
        thumbnail_key=payload.thumbnail_key,
    )
    return PhotoResponse.from_photo(photo, store.storage)


@router.post("/upload", response_model=PhotoResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_INTERACTIONS)
async def upload_photo(
    request: Request,
    store: Store,
    storage: Storage,
    file: UploadFile = File(..., description="Captured photo"),
    latitude: float = Form(..., ge=-90, le=90),
    longitude: float = Form(..., ge=-180, le=180),
    created_by: str = Form("Anonymous", max_length=64),
) -> PhotoResponse:
    """Store an uploaded photo with its thumbnail and place it on the map.

    Raises:
        422: Not an image, larger than MAX_UPLOAD_BYTES, or coordinates
            out of range.
    """
    if not file.content_type or not file.content_type.startswith("image/"):
        raise ValidationException(f"File {file.filename} is not an image")

    contents = await file.read()
    if len(contents) > settings.MAX_UPLOAD_BYTES:
        raise ValidationException(
            "File too large",
            details={"max_bytes": settings.MAX_UPLOAD_BYTES, "size": len(contents)},
        )

    photo_id = generate_uuid()
    photo_key, thumb_key = storage.store_upload(photo_id, contents)
    try:
        photo = await store.create_photo(
            latitude=latitude,
            longitude=longitude,
            created_by=created_by,
            photo_key=photo_key,
            thumbnail_key=thumb_key,
            photo_id=photo_id,
        )
    except Exception:
        for key in (photo_key, thumb_key):
            try:
                storage.delete_file(key)
            except StorageError as exc:
                logger.warning(f"Could not remove orphaned upload {key}: {exc}")
        raise
    return PhotoResponse.from_photo(photo, storage)


@router.get("", response_model=List[PhotoResponse])
async def list_photos(
    store: Store,
    limit: int = Query(settings.PHOTO_LIST_LIMIT, ge=1, le=500, description="Max photos"),
    newest_first: bool = Query(True, description="Order by recency"),
) -> List[PhotoResponse]:
    """List photos for the map, newest first. Expired photos are included."""
    photos = await store.get_photos(limit=limit, order_by_recency=newest_first)
    return [PhotoResponse.from_photo(photo, store.storage) for photo in photos]


@router.get("/{photo_id}", response_model=PhotoResponse)
async def get_photo(photo_id: str, store: Store) -> PhotoResponse:
    photo = await store.get_photo(photo_id)
    return PhotoResponse.from_photo(photo, store.storage)


@router.patch("/{photo_id}", response_model=PhotoResponse)
async def update_photo(photo_id: str, payload: PhotoUpdate, store: Store) -> PhotoResponse:
    """Partially update a photo. Send ``version`` to make the write conditional."""
    photo = await store.update_photo(photo_id, payload.model_dump(exclude_unset=True))
    return PhotoResponse.from_photo(photo, store.storage)


@router.post("/delete", response_model=DeleteResponse)
async def delete_photos(payload: PhotoDeleteRequest, store: Store, storage: Storage) -> DeleteResponse:
    """Delete photos (and their comments) by id, removing their files.

    A file that cannot be removed is logged; the rows are gone either way.
    """
    outcome = await store.delete_photos(payload.ids)
    for key in outcome.asset_keys:
        try:
            storage.delete_file(key)
        except StorageError as exc:
            logger.warning(f"Could not delete asset {key}: {exc}")
    return DeleteResponse(deleted=outcome.deleted)


@router.post("/{photo_id}/views", response_model=ViewsResponse)
async def increment_views(photo_id: str, store: Store) -> ViewsResponse:
    views = await store.increment_views(photo_id)
    return ViewsResponse(id=photo_id, views=views)


@router.post("/{photo_id}/like", response_model=PhotoResponse)
@limiter.limit(settings.RATE_LIMIT_INTERACTIONS)
async def like_photo(request: Request, photo_id: str, store: Store, actor_id: ActorId) -> PhotoResponse:
    """Like a photo; a finite photo gains one base lifespan."""
    photo = await store.like(photo_id, actor_id)
    return PhotoResponse.from_photo(photo, store.storage)


@router.post("/{photo_id}/dislike", response_model=PhotoResponse)
@limiter.limit(settings.RATE_LIMIT_INTERACTIONS)
async def dislike_photo(request: Request, photo_id: str, store: Store, actor_id: ActorId) -> PhotoResponse:
    """Dislike a photo; a finite photo loses one base lifespan.

    Raises:
        403: The actor has not liked more photos than they disliked.
        409: The actor already voted on this photo.
    """
    photo = await store.dislike(photo_id, actor_id)
    return PhotoResponse.from_photo(photo, store.storage)
