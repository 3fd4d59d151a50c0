"""Event service: orchestration over stores, persistence and broadcast.

Every mutating call follows the same path:

    validate → mutate the store → schedule a snapshot → publish → return

A rejected call raises a ``MusicAskError`` from the store before anything is
touched, so nothing is persisted or broadcast.  Reads never persist and never
publish.  All methods run on the event loop; the only awaits are the catalog
search and the snapshot drain on shutdown.

Public surface used by API routes:
- event lifecycle: ``create_event`` / ``update_event`` / ``end_event``
- requests: ``submit_request`` / ``update_request_status``
- reads: ``get_*`` / ``list_*`` / ``event_stats`` / ``top_tracks``
- ``search_tracks`` delegates to ``TrackSearchClient``

Public surface used by ``app.py`` lifespan:
- ``load()`` / ``save()`` / ``drain()`` / ``close()``
"""
from __future__ import annotations

import logging

from musicask.config import settings
from musicask.models import (
    CodeValidation,
    Event,
    EventStats,
    NotificationType,
    SongRequest,
    TrackCount,
    TrackDescriptor,
)
from musicask.persistence import JsonFileGateway, PersistenceGateway, SnapshotFlusher
from musicask.realtime.broadcaster import GLOBAL_CHANNEL, Broadcaster, get_broadcaster
from musicask.services.search import TrackSearchClient
from musicask.state import AppState
from musicask.stores.events import Clock, EventStore, now_ms
from musicask.stores.requests import GLOBAL_TOP_TRACKS_LIMIT, RequestStore

logger = logging.getLogger(__name__)


class EventService:
    """Single owner of the in-memory state and its collaborators."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        broadcaster: Broadcaster,
        search_client: TrackSearchClient | None = None,
        clock: Clock = now_ms,
        anonymous_name: str | None = None,
    ) -> None:
        self.state = AppState()
        self.events = EventStore(self.state, clock=clock)
        self.requests = RequestStore(
            self.state,
            self.events,
            clock=clock,
            anonymous_name=anonymous_name or settings.anonymous_requester_name,
        )
        self.broadcaster = broadcaster
        self.search_client = search_client or TrackSearchClient()
        self._flusher = SnapshotFlusher(gateway)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Replace the in-memory state with the stored snapshot (if any)."""
        self.state.replace(AppState.from_snapshot(self._flusher.gateway.load()))
        logger.info(
            "✅ State loaded: %d event(s), %d request(s)",
            len(self.state.events), len(self.state.requests),
        )

    def save(self) -> None:
        """Capture the current state and schedule it for writing."""
        self._flusher.schedule(self.state.to_snapshot())

    async def drain(self) -> None:
        """Wait for pending snapshot writes."""
        await self._flusher.drain()

    async def close(self) -> None:
        await self.drain()
        await self.search_client.close()

    def _publish(self, channel: str, kind: NotificationType, entity: Event | SongRequest) -> None:
        self.broadcaster.publish(channel, kind.value, entity.to_wire())

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def create_event(self, name: str | None = None, code: str | None = None) -> Event:
        event = self.events.create(name=name, code=code)
        self.save()
        self._publish(GLOBAL_CHANNEL, NotificationType.EVENT_CREATED, event)
        return event

    async def update_event(
        self,
        event_id: str,
        *,
        name: str | None = None,
        accepted_styles: list[str] | None = None,
        active: bool | None = None,
    ) -> Event:
        event = self.events.update(
            event_id, name=name, accepted_styles=accepted_styles, active=active
        )
        self.save()
        self._publish(event.id, NotificationType.EVENT_UPDATED, event)
        return event

    async def end_event(self, event_id: str) -> Event:
        event = self.events.end(event_id)
        self.save()
        self._publish(event.id, NotificationType.EVENT_ENDED, event)
        return event

    def validate_code(self, code: str) -> CodeValidation:
        return self.events.validate_code(code)

    def get_active_event(self) -> Event | None:
        return self.events.get_active()

    def get_event(self, event_id: str) -> Event:
        return self.events.get_or_raise(event_id)

    def list_events(self) -> list[Event]:
        return self.events.list_all()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def submit_request(
        self,
        event_id: str,
        track_name: str,
        artist_name: str,
        album_image: str | None = None,
        spotify_uri: str | None = None,
        requester_name: str | None = None,
    ) -> SongRequest:
        request = self.requests.submit(
            event_id,
            track_name,
            artist_name,
            album_image=album_image,
            spotify_uri=spotify_uri,
            requester_name=requester_name,
        )
        self.save()
        self._publish(request.event_id, NotificationType.NEW_REQUEST, request)
        return request

    async def update_request_status(self, request_id: str, status: str) -> SongRequest:
        request = self.requests.update_status(request_id, status)
        self.save()
        self._publish(request.event_id, NotificationType.REQUEST_UPDATED, request)
        return request

    def get_request(self, request_id: str) -> SongRequest:
        return self.requests.get_or_raise(request_id)

    def list_requests(self, event_id: str, status: str | None = None) -> list[SongRequest]:
        return self.requests.list_for_event(event_id, status)

    def event_stats(self, event_id: str) -> EventStats:
        return self.requests.stats_for_event(event_id)

    def top_tracks(self, limit: int = GLOBAL_TOP_TRACKS_LIMIT) -> list[TrackCount]:
        return self.requests.global_top_tracks(limit)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def search_tracks(self, query: str) -> list[TrackDescriptor]:
        return await self.search_client.search(query)


# Singleton instance
_service: EventService | None = None


def get_service() -> EventService:
    """Get the singleton EventService, wired from settings on first use."""
    global _service
    if _service is None:
        _service = EventService(
            gateway=JsonFileGateway(settings.data_file),
            broadcaster=get_broadcaster(),
        )
    return _service


def reset_service() -> None:
    """Reset the singleton (for testing)."""
    global _service
    _service = None
