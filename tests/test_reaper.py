"""
Tests for the Reaper
====================

The reaper deletes photos whose expiry has passed, removes their files,
and lets the zone they leave behind fall back to infinite life.
"""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from ephemap.core.exceptions import ReaperError
from ephemap.services.change_feed import DELETE, PHOTOS, UPDATE
from ephemap.services.photo_store import PhotoStore
from ephemap.services.storage_manager import StorageError
from tests.conftest import ZONE_CENTER


async def test_sweep_with_nothing_expired_returns_zero(reaper, store):
    await store.create_photo(*ZONE_CENTER)

    result = await reaper.sweep()

    assert result.deleted == 0
    assert result.to_dict() == {"deleted": 0}
    assert len(await store.get_photos()) == 1


async def test_sweep_on_empty_store(reaper):
    result = await reaper.sweep()
    assert result.to_dict() == {"deleted": 0}


async def test_sweep_ignores_finite_photos_not_yet_expired(fill_zone, reaper, store, clock):
    photos = await fill_zone(8)
    clock.now = photos[0].expires_at - clock.now.resolution

    result = await reaper.sweep()

    assert result.deleted == 0
    assert len(await store.get_photos()) == 8


async def test_survivors_revert_with_counters_preserved(fill_zone, reaper, store, clock, recorder):
    """Eight finite photos, two expire: the six left go infinite and keep their votes."""
    photos = await fill_zone(8)
    start = clock.now

    # Each critic earns a dislike with one like, then spends it.
    await store.like(photos[2].id, "critic-1")
    await store.dislike(photos[0].id, "critic-1")
    await store.like(photos[3].id, "critic-2")
    await store.dislike(photos[1].id, "critic-2")
    await store.like(photos[4].id, "fan")
    assert photos[0].expires_at == start
    recorder.clear()

    result = await reaper.sweep()

    assert result.deleted == 2
    remaining = {p.id: p for p in await store.get_photos()}
    assert set(remaining) == {p.id for p in photos[2:]}
    assert all(p.expires_at is None for p in remaining.values())
    assert remaining[photos[2].id].likes == 1
    assert remaining[photos[3].id].likes == 1
    assert remaining[photos[4].id].likes == 1
    assert remaining[photos[5].id].likes == 0

    deletes = recorder.of(PHOTOS, DELETE)
    assert sorted(e.old["id"] for e in deletes) == sorted([photos[0].id, photos[1].id])
    assert len(recorder.of(PHOTOS, UPDATE)) == 6


async def test_sweep_deletes_files_of_expired_photos(fill_zone, reaper, store, storage, clock, jpeg_bytes):
    await fill_zone(7)
    photo_key, thumb_key = storage.store_upload("with-files", jpeg_bytes)
    photo = await store.create_photo(
        *ZONE_CENTER, photo_key=photo_key, thumbnail_key=thumb_key, photo_id="with-files"
    )
    clock.now = photo.expires_at

    result = await reaper.sweep()

    assert result.deleted == 8
    assert result.asset_failures == 0
    assert not storage.path_for(photo_key).exists()
    assert not storage.path_for(thumb_key).exists()
    assert await store.get_photos() == []


async def test_sweep_is_idempotent(fill_zone, reaper, clock):
    photos = await fill_zone(8)
    clock.now = photos[0].expires_at

    first = await reaper.sweep()
    second = await reaper.sweep()

    assert first.deleted == 8
    assert second.deleted == 0


async def test_asset_failure_does_not_stop_sweep(fill_zone, reaper, store, storage, clock, monkeypatch):
    await fill_zone(7)
    photo = await store.create_photo(*ZONE_CENTER, photo_key="photos/locked.jpg")
    clock.now = photo.expires_at

    def failing_delete(key):
        raise StorageError(f"Permission denied: cannot delete {key}")

    monkeypatch.setattr(storage, "delete_file", failing_delete)

    result = await reaper.sweep()

    assert result.deleted == 8
    assert result.asset_failures == 1


async def test_store_failure_raises_reaper_error(fill_zone, reaper, store, clock, monkeypatch):
    photos = await fill_zone(8)
    clock.now = photos[0].expires_at

    async def failing_delete(self, ids, *, expired_before=None):
        raise OperationalError("DELETE FROM photos", {}, Exception("database is locked"))

    monkeypatch.setattr(PhotoStore, "delete_photos", failing_delete)

    with pytest.raises(ReaperError) as exc_info:
        await reaper.sweep()
    assert exc_info.value.status_code == 500


async def test_conditional_delete_skips_photos_that_are_no_longer_expired(fill_zone, store, clock):
    """A like that lands between read and delete keeps the photo alive."""
    photos = await fill_zone(8)
    now = photos[0].expires_at
    await store.like(photos[0].id, "fan")

    outcome = await store.delete_photos([photos[0].id, photos[1].id], expired_before=now)

    assert outcome.deleted == 1
    assert outcome.deleted_ids == [photos[1].id]


async def test_photo_liked_during_sweep_keeps_its_files(
    fill_zone, reaper, session_factory, feed, store, storage, clock, jpeg_bytes, monkeypatch
):
    """A like that commits between read and delete saves the photo and its files."""
    await fill_zone(7)
    photo_key, thumb_key = storage.store_upload("survivor", jpeg_bytes)
    survivor = await store.create_photo(
        *ZONE_CENTER, photo_key=photo_key, thumbnail_key=thumb_key, photo_id="survivor"
    )
    deadline = survivor.expires_at
    clock.now = deadline

    original_delete = PhotoStore.delete_photos

    async def like_then_delete(self, ids, *, expired_before=None):
        async with session_factory() as other_session:
            earlier = PhotoStore(
                other_session,
                feed=feed,
                storage=storage,
                clock=lambda: deadline - timedelta(seconds=1),
            )
            await earlier.like("survivor", "fan")
        return await original_delete(self, ids, expired_before=expired_before)

    monkeypatch.setattr(PhotoStore, "delete_photos", like_then_delete)

    result = await reaper.sweep()

    assert result.deleted == 7
    assert storage.path_for(photo_key).exists()
    assert storage.path_for(thumb_key).exists()
    kept = await store.get_photo("survivor")
    assert kept.likes == 1
    assert kept.expires_at is None
