"""Tests for the in-process change feed."""

import asyncio

from ephemap.services.change_feed import COMMENTS, DELETE, INSERT, PHOTOS, ChangeEvent, ChangeFeed


async def test_subscriber_receives_published_events():
    feed = ChangeFeed()
    received = []
    feed.subscribe(received.append)

    event = ChangeEvent(PHOTOS, INSERT, new={"id": "p1"})
    await feed.publish(event)

    assert received == [event]


async def test_entity_filter():
    feed = ChangeFeed()
    photos, comments = [], []
    feed.subscribe(photos.append, entity=PHOTOS)
    feed.subscribe(comments.append, entity=COMMENTS)

    await feed.publish(ChangeEvent(COMMENTS, INSERT, new={"id": "c1"}))

    assert photos == []
    assert [e.new["id"] for e in comments] == ["c1"]


async def test_async_callbacks_are_awaited():
    feed = ChangeFeed()
    queue: asyncio.Queue = asyncio.Queue()
    feed.subscribe(queue.put)

    await feed.publish(ChangeEvent(PHOTOS, DELETE, old={"id": "p1"}))

    assert queue.get_nowait().old == {"id": "p1"}


async def test_unsubscribe_releases_subscription():
    feed = ChangeFeed()
    received = []
    subscription = feed.subscribe(received.append)
    assert feed.subscriber_count == 1

    subscription.unsubscribe()
    subscription.unsubscribe()
    await feed.publish(ChangeEvent(PHOTOS, INSERT, new={"id": "p1"}))

    assert feed.subscriber_count == 0
    assert received == []


async def test_failing_subscriber_does_not_block_others():
    feed = ChangeFeed()
    received = []

    def broken(event):
        raise RuntimeError("client went away")

    feed.subscribe(broken)
    feed.subscribe(received.append)

    await feed.publish(ChangeEvent(PHOTOS, INSERT, new={"id": "p1"}))

    assert len(received) == 1


def test_message_shape():
    update = ChangeEvent(PHOTOS, "UPDATE", new={"id": "p1"}).to_message()
    delete = ChangeEvent(PHOTOS, DELETE, old={"id": "p1"}).to_message()

    assert update == {"entity": "photos", "eventType": "UPDATE", "new": {"id": "p1"}}
    assert delete == {"entity": "photos", "eventType": "DELETE", "old": {"id": "p1"}}
