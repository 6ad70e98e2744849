"""
Tests for the photo lifecycle rules
===================================

Covers zone population transitions (infinite <-> finite), the
rebalance on reaching the threshold, and like/dislike effects on
expiry, including the global dislike gate.
"""

import pytest

from ephemap.core.exceptions import (
    AlreadyInteractedException,
    DislikeNotAllowedException,
    NotFoundException,
    PhotoExpiredException,
    ValidationException,
)
from ephemap.models import Photo
from ephemap.services.change_feed import INSERT, PHOTOS, UPDATE
from ephemap.services.lifecycle import LifeState, life_state
from tests.conftest import FAR_AWAY, LIFESPAN, ZONE_CENTER


# =============================================================================
# ZONE TRANSITIONS
# =============================================================================

async def test_first_photo_in_zone_is_infinite(store):
    photo = await store.create_photo(*ZONE_CENTER, created_by="ann")

    assert photo.expires_at is None
    assert photo.likes == 0 and photo.dislikes == 0 and photo.views == 0
    assert photo.created_by == "ann"
    assert photo.version == 1


async def test_blank_author_defaults_to_anonymous(store):
    photo = await store.create_photo(*ZONE_CENTER, created_by="   ")
    assert photo.created_by == "Anonymous"


async def test_invalid_coordinates_create_nothing(store):
    with pytest.raises(ValidationException):
        await store.create_photo(123.0, 0.0)
    assert await store.get_photos() == []


async def test_seven_photos_stay_infinite(fill_zone, store):
    photos = await fill_zone(7)

    assert all(p.expires_at is None for p in photos)
    summary = await store.zone_summary(photos[0].zone_id)
    assert summary["population"] == 7
    assert summary["finite"] is False


async def test_eighth_photo_rebalances_zone(fill_zone, store, clock):
    """Seven infinite photos plus one more: all eight share one deadline, counters reset."""
    photos = await fill_zone(7)
    await store.like(photos[0].id, "fan")
    await store.like(photos[1].id, "fan-2")
    assert photos[0].likes == 1

    clock.advance(hours=1)
    eighth = await store.create_photo(*ZONE_CENTER)

    expected = clock.now + LIFESPAN
    zone_photos = await store.get_photos()
    assert len(zone_photos) == 8
    for photo in zone_photos:
        assert photo.expires_at == expected
        assert photo.likes == 0
        assert photo.dislikes == 0
    assert eighth.expires_at == expected


async def test_rebalance_publishes_insert_and_updates(fill_zone, store, recorder):
    await fill_zone(7)
    recorder.clear()

    eighth = await store.create_photo(*ZONE_CENTER)

    inserts = recorder.of(PHOTOS, INSERT)
    updates = recorder.of(PHOTOS, UPDATE)
    assert [e.new["id"] for e in inserts] == [eighth.id]
    assert len(updates) == 7
    assert all(e.new["infinite"] is False for e in updates)


async def test_photo_joining_finite_zone_gets_fresh_baseline(fill_zone, store, clock):
    photos = await fill_zone(8)
    first_deadline = photos[0].expires_at
    await store.like(photos[0].id, "fan")

    clock.advance(hours=5)
    ninth = await store.create_photo(*ZONE_CENTER)

    assert ninth.expires_at == clock.now + LIFESPAN
    refreshed = await store.get_photo(photos[0].id)
    assert refreshed.likes == 1
    assert refreshed.expires_at == first_deadline + LIFESPAN
    other = await store.get_photo(photos[1].id)
    assert other.expires_at == first_deadline


async def test_other_zones_are_untouched(fill_zone, store):
    elsewhere = await store.create_photo(*FAR_AWAY)
    crowded = await fill_zone(8)

    refreshed = await store.get_photo(elsewhere.id)
    assert refreshed.zone_id != crowded[0].zone_id
    assert refreshed.expires_at is None


async def test_zone_summary_reports_finite_zone(fill_zone, store):
    photos = await fill_zone(8)
    summary = await store.zone_summary(photos[0].zone_id)
    assert summary == {
        "zone_id": photos[0].zone_id,
        "population": 8,
        "threshold": 8,
        "finite": True,
    }


async def test_expired_photos_do_not_count_toward_population(fill_zone, store, clock):
    photos = await fill_zone(8)
    clock.now = photos[0].expires_at

    summary = await store.zone_summary(photos[0].zone_id)
    assert summary["population"] == 0

    newcomer = await store.create_photo(*ZONE_CENTER)
    assert newcomer.expires_at is None


async def test_recrossing_threshold_resets_counters_again(fill_zone, store, clock):
    """Eight, down to seven, likes while infinite, back to eight: counters reset."""
    photos = await fill_zone(8)
    await store.delete_photos([photos[-1].id])
    survivor = await store.get_photo(photos[0].id)
    assert survivor.expires_at is None

    await store.like(survivor.id, "fan")
    assert survivor.likes == 1

    clock.advance(days=1)
    await store.create_photo(*ZONE_CENTER)

    survivor = await store.get_photo(photos[0].id)
    assert survivor.likes == 0
    assert survivor.expires_at == clock.now + LIFESPAN


# =============================================================================
# LIKES AND DISLIKES
# =============================================================================

async def test_like_extends_finite_photo(fill_zone, store):
    photos = await fill_zone(8)
    deadline = photos[0].expires_at

    liked = await store.like(photos[0].id, "fan")

    assert liked.likes == 1
    assert liked.expires_at == deadline + LIFESPAN


async def test_like_on_infinite_photo_only_counts(store, clock):
    photo = await store.create_photo(*ZONE_CENTER)
    clock.advance(minutes=3)

    liked = await store.like(photo.id, "fan")

    assert liked.likes == 1
    assert liked.expires_at is None
    assert liked.last_interaction == clock.now


async def test_dislike_shortens_finite_photo(fill_zone, store):
    photos = await fill_zone(8)
    deadline = photos[1].expires_at
    await store.like(photos[0].id, "critic")

    disliked = await store.dislike(photos[1].id, "critic")

    assert disliked.dislikes == 1
    assert disliked.expires_at == deadline - LIFESPAN
    assert life_state(disliked, deadline - LIFESPAN) is LifeState.EXPIRED


async def test_actor_without_likes_cannot_dislike(store):
    """A brand-new actor is rejected and nothing changes."""
    photo = await store.create_photo(*ZONE_CENTER)

    with pytest.raises(DislikeNotAllowedException) as exc_info:
        await store.dislike(photo.id, "newcomer")

    assert exc_info.value.status_code == 403
    assert exc_info.value.message == "You must like a photo before disliking"
    refreshed = await store.get_photo(photo.id)
    assert refreshed.dislikes == 0 and refreshed.likes == 0
    tally = await store.get_tally("newcomer")
    assert tally.likes == 0 and tally.dislikes == 0


async def test_dislike_gate_uses_global_tally(fill_zone, store):
    photos = await fill_zone(3)
    await store.like(photos[0].id, "critic")
    await store.dislike(photos[1].id, "critic")

    tally = await store.get_tally("critic")
    assert (tally.likes, tally.dislikes) == (1, 1)
    assert tally.can_dislike is False

    with pytest.raises(DislikeNotAllowedException):
        await store.dislike(photos[2].id, "critic")


async def test_second_vote_on_same_photo_is_rejected(store):
    photo = await store.create_photo(*ZONE_CENTER)
    await store.like(photo.id, "fan")

    with pytest.raises(AlreadyInteractedException) as exc_info:
        await store.like(photo.id, "fan")
    assert exc_info.value.status_code == 409

    with pytest.raises(AlreadyInteractedException):
        await store.dislike(photo.id, "fan")

    refreshed = await store.get_photo(photo.id)
    assert refreshed.likes == 1


async def test_vote_on_missing_photo(store):
    with pytest.raises(NotFoundException):
        await store.like("no-such-photo", "fan")


async def test_expired_photo_cannot_be_revived(fill_zone, store, clock):
    photos = await fill_zone(8)
    clock.now = photos[0].expires_at

    with pytest.raises(PhotoExpiredException) as exc_info:
        await store.like(photos[0].id, "fan")
    assert exc_info.value.status_code == 410


async def test_vote_publishes_update(store, recorder):
    photo = await store.create_photo(*ZONE_CENTER)
    recorder.clear()

    await store.like(photo.id, "fan")

    updates = recorder.of(PHOTOS, UPDATE)
    assert len(updates) == 1
    assert updates[0].new["likes"] == 1


# =============================================================================
# PLAIN STORE OPERATIONS
# =============================================================================

async def test_get_photos_newest_first_with_limit(store, clock):
    ids = []
    for _ in range(3):
        ids.append((await store.create_photo(*FAR_AWAY)).id)
        clock.advance(minutes=1)

    photos = await store.get_photos(limit=2)
    assert [p.id for p in photos] == [ids[2], ids[1]]


async def test_increment_views(store):
    photo = await store.create_photo(*ZONE_CENTER)
    assert await store.increment_views(photo.id) == 1
    assert await store.increment_views(photo.id) == 2


async def test_increment_views_on_missing_photo(store):
    with pytest.raises(NotFoundException):
        await store.increment_views("missing")


async def test_update_photo_with_stale_version_conflicts(store):
    from ephemap.core.exceptions import ConflictException

    photo = await store.create_photo(*ZONE_CENTER)
    updated = await store.update_photo(photo.id, {"created_by": "renamed", "version": 1})
    assert updated.created_by == "renamed"
    assert updated.version == 2

    with pytest.raises(ConflictException):
        await store.update_photo(photo.id, {"created_by": "again", "version": 1})


async def test_comments_newest_first(store, clock, recorder):
    photo = await store.create_photo(*ZONE_CENTER)
    await store.add_comment(photo.id, "AB", "first")
    clock.advance(seconds=30)
    await store.add_comment(photo.id, "CD", "second")

    comments = await store.get_comments(photo.id)
    assert [c.content for c in comments] == ["second", "first"]
    assert len(recorder.of("comments", INSERT)) == 2


async def test_delete_photos_removes_comments_and_ignores_unknown_ids(store, session):
    from sqlalchemy import func, select

    from ephemap.models import Comment

    photo = await store.create_photo(*ZONE_CENTER)
    await store.add_comment(photo.id, "AB", "hello")

    outcome = await store.delete_photos([photo.id, "unknown"])

    assert outcome.deleted == 1
    assert await session.scalar(select(func.count()).select_from(Comment)) == 0
    assert await session.scalar(select(func.count()).select_from(Photo)) == 0
