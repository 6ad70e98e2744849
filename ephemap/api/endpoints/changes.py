"""Realtime change feed over a WebSocket.

Each connection gets its own bounded queue. Events are pushed as JSON:
``{"entity": "photos", "eventType": "UPDATE", "new": {...}}``. A client
that falls behind by more than ``CHANGE_FEED_QUEUE_SIZE`` events is
disconnected rather than slowing down publishers.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from ephemap.core.config import settings
from ephemap.services.change_feed import COMMENTS, PHOTOS, ChangeEvent, change_feed

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Changes"])

_OVERFLOW = object()


@router.websocket("/changes")
async def changes(
    websocket: WebSocket,
    entity: Optional[str] = Query(None, description="Only 'photos' or 'comments' events"),
) -> None:
    if entity is not None and entity not in (PHOTOS, COMMENTS):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    queue: asyncio.Queue = asyncio.Queue(maxsize=settings.CHANGE_FEED_QUEUE_SIZE)

    def enqueue(event: ChangeEvent) -> None:
        try:
            queue.put_nowait(event)
        except asyncio.QueueFull:
            subscription.unsubscribe()
            # Make room for the sentinel so the sender loop wakes up.
            queue.get_nowait()
            queue.put_nowait(_OVERFLOW)

    # Subscribed before the handshake completes, so nothing published after
    # the client sees the accept is missed.
    subscription = change_feed.subscribe(enqueue, entity=entity)
    receiver: Optional[asyncio.Task] = None
    try:
        await websocket.accept()
        logger.info(f"Change feed client connected (entity={entity or 'all'})")
        receiver = asyncio.create_task(_drain_client(websocket))
        while True:
            getter = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait(
                {getter, receiver}, return_when=asyncio.FIRST_COMPLETED
            )
            if receiver in done:
                getter.cancel()
                break
            event = getter.result()
            if event is _OVERFLOW:
                logger.warning("Change feed client fell behind, disconnecting")
                await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
                break
            await websocket.send_json(event.to_message())
    except WebSocketDisconnect:
        pass
    finally:
        subscription.unsubscribe()
        if receiver is not None:
            receiver.cancel()
        logger.info("Change feed client disconnected")


async def _drain_client(websocket: WebSocket) -> None:
    """Read (and ignore) client frames until the socket closes."""
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return
