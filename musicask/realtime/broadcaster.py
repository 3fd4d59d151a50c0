"""
Realtime broadcaster for event channels.

Keeps a table of connected subscribers and the event channel each one has
joined, and fans notifications out to them.

Architecture:
    EventService → publish(channel, type, payload) → Broadcaster → queues
    WebSocket / SSE handlers drain one queue per connection.

Channels:
    - one per event, keyed by the event id
    - ``GLOBAL_CHANNEL`` for cross-event announcements; a subscriber receives
      it only when it was connected with ``listen_global=True``

A connection is on at most one event channel; joining another switches.

Delivery is best-effort: ``publish`` is synchronous, never awaits, and uses
``put_nowait`` on bounded queues.  A subscriber whose queue is full loses that
notification; nobody else is affected.  Because every publish enqueues on all
recipients before returning, notifications on one channel reach every
subscriber in publish order.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

GLOBAL_CHANNEL = "global"
DEFAULT_QUEUE_SIZE = 256


@dataclass(frozen=True)
class Notification:
    """One frame pushed to subscribers.

    ``data`` is already JSON-safe; it is serialised once at publish time so
    later mutations of the source entity cannot leak into queued frames.
    """

    type: str
    channel: str
    data: dict[str, object]

    def to_wire(self) -> dict[str, object]:
        return {"type": self.type, "data": self.data}


@dataclass
class Subscriber:
    """A connected client and its outbound queue."""

    connection_id: str
    queue: asyncio.Queue[Notification]
    listen_global: bool = True
    event_id: str | None = None
    dropped: int = field(default=0)


class Broadcaster:
    """
    Manages channel membership and fan-out for connected clients.

    All methods must be called from the event loop thread.
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        # connection_id -> subscriber
        self._subscribers: dict[str, Subscriber] = {}
        # event_id -> connection_ids (insertion ordered)
        self._channels: dict[str, dict[str, None]] = {}

    def connect(
        self,
        connection_id: str | None = None,
        *,
        listen_global: bool = True,
    ) -> Subscriber:
        """Register a connection and return its subscriber handle.

        Connecting an id that is already registered replaces the old handle.
        """
        connection_id = connection_id or str(uuid.uuid4())
        if connection_id in self._subscribers:
            self.unsubscribe(connection_id)

        subscriber = Subscriber(
            connection_id=connection_id,
            queue=asyncio.Queue(maxsize=self._queue_size),
            listen_global=listen_global,
        )
        self._subscribers[connection_id] = subscriber
        logger.debug("✅ Subscriber %s connected (total=%d)", connection_id[:8], len(self._subscribers))
        return subscriber

    def subscribe(self, connection_id: str, event_id: str) -> Subscriber:
        """Join *event_id*'s channel, leaving any channel joined before.

        Raises KeyError if the connection is not registered.
        """
        if event_id == GLOBAL_CHANNEL:
            raise ValueError("The global channel is joined at connect time")
        subscriber = self._subscribers.get(connection_id)
        if subscriber is None:
            raise KeyError(f"Connection {connection_id} is not connected")

        if subscriber.event_id is not None and subscriber.event_id != event_id:
            self._leave(subscriber)
        subscriber.event_id = event_id
        self._channels.setdefault(event_id, {})[connection_id] = None
        logger.debug("Subscriber %s joined event %s", connection_id[:8], event_id[:8])
        return subscriber

    def leave_event(self, connection_id: str) -> None:
        """Leave the current event channel but stay connected."""
        subscriber = self._subscribers.get(connection_id)
        if subscriber is not None:
            self._leave(subscriber)

    def unsubscribe(self, connection_id: str) -> None:
        """Drop every association of a connection (called on disconnect).

        Idempotent; unknown connection ids are ignored.
        """
        subscriber = self._subscribers.pop(connection_id, None)
        if subscriber is None:
            return
        self._leave(subscriber)
        logger.debug("✅ Subscriber %s removed (total=%d)", connection_id[:8], len(self._subscribers))

    def _leave(self, subscriber: Subscriber) -> None:
        event_id = subscriber.event_id
        if event_id is None:
            return
        members = self._channels.get(event_id)
        if members is not None:
            members.pop(subscriber.connection_id, None)
            if not members:
                del self._channels[event_id]
        subscriber.event_id = None

    def _recipients(self, channel: str) -> list[Subscriber]:
        if channel == GLOBAL_CHANNEL:
            return [s for s in self._subscribers.values() if s.listen_global]
        members = self._channels.get(channel, {})
        return [self._subscribers[cid] for cid in members if cid in self._subscribers]

    def publish(self, channel: str, event_name: str, payload: dict[str, object]) -> int:
        """Deliver a notification to every current subscriber of *channel*.

        Returns the number of subscribers that received it.
        """
        notification = Notification(type=event_name, channel=channel, data=payload)
        recipients = self._recipients(channel)
        delivered = 0
        for subscriber in recipients:
            if self.deliver(subscriber, notification):
                delivered += 1

        logger.debug(
            "📡 %s on %s delivered to %d/%d subscriber(s)",
            event_name, channel[:8], delivered, len(recipients),
        )
        return delivered

    def deliver(self, subscriber: Subscriber, notification: Notification) -> bool:
        """Queue a notification for one subscriber; False if it was dropped."""
        try:
            subscriber.queue.put_nowait(notification)
        except asyncio.QueueFull:
            subscriber.dropped += 1
            logger.warning(
                "⚠️  Queue full for subscriber %s, dropping %s", subscriber.connection_id[:8], notification.type
            )
            return False
        return True

    def subscriber_count(self, channel: str | None = None) -> int:
        """Subscribers on *channel*, or every connected subscriber when None."""
        if channel is None:
            return len(self._subscribers)
        return len(self._recipients(channel))

    def channel_of(self, connection_id: str) -> str | None:
        subscriber = self._subscribers.get(connection_id)
        return subscriber.event_id if subscriber is not None else None

    def clear(self) -> None:
        """Clear all state (for testing)."""
        self._subscribers.clear()
        self._channels.clear()


# Singleton instance
_broadcaster: Broadcaster | None = None


def get_broadcaster() -> Broadcaster:
    """Get the singleton Broadcaster instance."""
    global _broadcaster
    if _broadcaster is None:
        from musicask.config import settings

        _broadcaster = Broadcaster(queue_size=settings.subscriber_queue_size)
    return _broadcaster


def reset_broadcaster() -> None:
    """Reset the singleton (for testing)."""
    global _broadcaster
    if _broadcaster is not None:
        _broadcaster.clear()
    _broadcaster = None
