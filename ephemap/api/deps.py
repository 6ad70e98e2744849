"""Dependency injection utilities for API endpoints.

This module provides the dependencies shared across routes: the
database session, the photo store, asset storage, the change feed,
the clock and the acting user's label.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ephemap.models.base import utcnow
from ephemap.services.change_feed import ChangeFeed, change_feed
from ephemap.services.database import AsyncSessionLocal, get_db
from ephemap.services.lifecycle import Clock
from ephemap.services.photo_store import PhotoStore
from ephemap.services.reaper import Reaper
from ephemap.services.storage_manager import StorageManager

# Type alias for database session dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]


@lru_cache
def get_storage() -> StorageManager:
    """Shared storage manager built from settings."""
    return StorageManager()


def get_change_feed() -> ChangeFeed:
    return change_feed


def get_clock() -> Clock:
    return utcnow


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return AsyncSessionLocal


def get_actor_id(
    x_actor_id: Annotated[str, Header(max_length=64)] = "Anonymous",
) -> str:
    """Actor label sent by the client; unverified, defaults to "Anonymous"."""
    return x_actor_id.strip() or "Anonymous"


def get_store(
    db: DBSession,
    storage: Annotated[StorageManager, Depends(get_storage)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> PhotoStore:
    return PhotoStore(db, feed=feed, storage=storage, clock=clock)


def get_reaper(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    storage: Annotated[StorageManager, Depends(get_storage)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> Reaper:
    return Reaper(session_factory, storage, feed=feed, clock=clock)


Store = Annotated[PhotoStore, Depends(get_store)]
Storage = Annotated[StorageManager, Depends(get_storage)]
ActorId = Annotated[str, Depends(get_actor_id)]
