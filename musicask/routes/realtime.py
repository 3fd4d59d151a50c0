"""Realtime routes: WebSocket and Server-Sent Events transports.

Both transports register the connection with the ``Broadcaster`` on the global
channel and drain the connection's queue until the client goes away; the
subscription is always removed in a ``finally`` block.

WebSocket protocol (``/ws``):
    client → ``{"action": "join_event", "eventId": "<id>"}``
    client → ``{"action": "leave_event"}``
    server → ``{"type": "<notification>", "data": {...}}``
A ``subscribed`` frame acknowledges each join through the same queue, so it
is ordered before any notification of the joined channel.

SSE (``GET /api/events/{event_id}/stream``) joins one event channel for the
lifetime of the stream.
"""
from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sse_starlette.sse import EventSourceResponse
from starlette.requests import Request

from musicask.config import settings
from musicask.models import NotificationType
from musicask.realtime.broadcaster import GLOBAL_CHANNEL, Broadcaster, Notification, Subscriber
from musicask.services.event_service import EventService, get_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


async def _receive_commands(
    websocket: WebSocket,
    broadcaster: Broadcaster,
    subscriber: Subscriber,
) -> None:
    """Apply join/leave commands until the client disconnects."""
    while True:
        try:
            message = await websocket.receive_json()
        except (json.JSONDecodeError, KeyError):
            logger.debug("Ignoring malformed frame from %s", subscriber.connection_id[:8])
            continue
        if not isinstance(message, dict):
            continue

        action = message.get("action")
        event_id = message.get("eventId")
        if action == "join_event" and isinstance(event_id, str) and event_id and event_id != GLOBAL_CHANNEL:
            broadcaster.subscribe(subscriber.connection_id, event_id)
            broadcaster.deliver(
                subscriber,
                Notification(
                    type=NotificationType.SUBSCRIBED.value,
                    channel=event_id,
                    data={"eventId": event_id},
                ),
            )
        elif action == "leave_event":
            broadcaster.leave_event(subscriber.connection_id)
        else:
            logger.debug("Unknown action %r from %s", action, subscriber.connection_id[:8])


async def _forward_notifications(websocket: WebSocket, subscriber: Subscriber) -> None:
    """Send queued notifications to the client in order."""
    while True:
        notification = await subscriber.queue.get()
        await websocket.send_json(notification.to_wire())


@router.websocket("/ws")
async def websocket_stream(
    websocket: WebSocket,
    service: EventService = Depends(get_service),
) -> None:
    """Bidirectional realtime channel for dashboards and attendee pages."""
    broadcaster = service.broadcaster
    # Registered before the handshake completes so no global frame is missed.
    subscriber = broadcaster.connect()
    tasks: list[asyncio.Task[None]] = []
    try:
        await websocket.accept()
        logger.info("Client connected (%s)", subscriber.connection_id[:8])
        tasks = [
            asyncio.create_task(_receive_commands(websocket, broadcaster, subscriber)),
            asyncio.create_task(_forward_notifications(websocket, subscriber)),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning("⚠️  WebSocket %s closed with error: %s", subscriber.connection_id[:8], exc)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        broadcaster.unsubscribe(subscriber.connection_id)
        logger.info("Client disconnected (%s)", subscriber.connection_id[:8])


async def stream_frames(
    request: Request,
    broadcaster: Broadcaster,
    event_id: str,
) -> AsyncIterator[dict[str, str]]:
    """Yield SSE frames for *event_id* (plus global ones) until the client leaves.

    The connection is registered on first iteration and removed when the
    generator finishes or is closed.
    """
    subscriber = broadcaster.connect()
    if event_id != GLOBAL_CHANNEL:
        broadcaster.subscribe(subscriber.connection_id, event_id)
    try:
        while True:
            if await request.is_disconnected():
                break
            try:
                notification = await asyncio.wait_for(
                    subscriber.queue.get(), timeout=settings.stream_keepalive_seconds
                )
            except asyncio.TimeoutError:
                yield {"comment": "ping"}
                continue
            yield {"event": notification.type, "data": json.dumps(notification.data)}
    finally:
        broadcaster.unsubscribe(subscriber.connection_id)


@router.get("/api/events/{event_id}/stream")
async def event_stream(
    event_id: str,
    request: Request,
    service: EventService = Depends(get_service),
) -> EventSourceResponse:
    """Stream one event's notifications (plus global ones) as Server-Sent Events.

    A keep-alive comment is sent every ``stream_keepalive_seconds`` so proxies
    do not close idle streams.
    """
    return EventSourceResponse(stream_frames(request, service.broadcaster, event_id))
