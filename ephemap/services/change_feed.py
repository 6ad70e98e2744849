"""Realtime change feed for photo and comment rows.

A small in-process publish/subscribe channel keyed by entity type.
Subscribers receive insert/update/delete events in publish order;
``Subscription.unsubscribe()`` detaches them immediately.
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"

PHOTOS = "photos"
COMMENTS = "comments"


@dataclass(frozen=True)
class ChangeEvent:
    """One row-level change.

    Attributes:
        entity: Entity type (``photos`` or ``comments``).
        event_type: INSERT, UPDATE or DELETE.
        new: Row after the change (absent for deletes).
        old: Row identity before a delete.
    """

    entity: str
    event_type: str
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None

    def to_message(self) -> Dict[str, Any]:
        message: Dict[str, Any] = {"entity": self.entity, "eventType": self.event_type}
        if self.new is not None:
            message["new"] = self.new
        if self.old is not None:
            message["old"] = self.old
        return message


ChangeCallback = Callable[[ChangeEvent], Union[None, Awaitable[None]]]


@dataclass(eq=False)
class Subscription:
    """Handle returned by ``ChangeFeed.subscribe``."""

    feed: "ChangeFeed"
    callback: ChangeCallback
    entity: Optional[str] = None
    active: bool = field(default=True)

    def unsubscribe(self) -> None:
        if self.active:
            self.feed._remove(self)
            self.active = False


class ChangeFeed:
    """Fan-out of change events to registered callbacks.

    Callbacks may be plain functions or coroutines. A failing
    subscriber is logged and skipped; it never blocks the publisher
    or the other subscribers.
    """

    def __init__(self) -> None:
        self._subscriptions: List[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, callback: ChangeCallback, entity: Optional[str] = None) -> Subscription:
        """Register a callback for one entity type, or all when ``entity`` is None."""
        subscription = Subscription(feed=self, callback=callback, entity=entity)
        self._subscriptions.append(subscription)
        logger.debug("Change feed subscriber added (entity=%s)", entity or "*")
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            return
        logger.debug("Change feed subscriber removed (entity=%s)", subscription.entity or "*")

    async def publish(self, event: ChangeEvent) -> None:
        for subscription in list(self._subscriptions):
            if subscription.entity is not None and subscription.entity != event.entity:
                continue
            try:
                result = subscription.callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Change feed subscriber failed on %s %s", event.entity, event.event_type
                )

    async def publish_many(self, events: List[ChangeEvent]) -> None:
        for event in events:
            await self.publish(event)


change_feed = ChangeFeed()
