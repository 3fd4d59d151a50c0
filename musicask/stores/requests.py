"""Request store: owns SongRequest records and their aggregate statistics.

Status updates are deliberately permissive: any label may follow any other,
any number of times, and labels outside ``RequestStatus`` are stored as-is
(they are only logged).  Operators use this to revert decisions.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable

from musicask.errors import EventUnavailableError, RequestNotFoundError
from musicask.models import (
    KNOWN_STATUSES,
    LATER_BUCKET,
    LATER_STATUSES,
    EventStats,
    RequestStatus,
    SongRequest,
    TrackCount,
)
from musicask.state import AppState
from musicask.stores.events import Clock, EventStore, now_ms

logger = logging.getLogger(__name__)

EVENT_TOP_TRACKS_LIMIT = 10
GLOBAL_TOP_TRACKS_LIMIT = 20
DEFAULT_REQUESTER_NAME = "Anonymous"


def rank_tracks(requests: Iterable[SongRequest], limit: int) -> list[TrackCount]:
    """Count requests per case-sensitive (track, artist) pair.

    Sorted by count descending; equal counts keep the order in which each
    pair was first seen, since ``sorted`` is stable under ``reverse=True``.
    """
    counts: dict[tuple[str, str], TrackCount] = {}
    for r in requests:
        key = (r.track_name, r.artist_name)
        entry = counts.get(key)
        if entry is None:
            counts[key] = TrackCount(track_name=r.track_name, artist_name=r.artist_name, count=1)
        else:
            entry.count += 1
    ranked = sorted(counts.values(), key=lambda t: t.count, reverse=True)
    return ranked[:max(limit, 0)]


def status_matches(status: str, status_filter: str | None) -> bool:
    """True if *status* passes *status_filter* (``"later"`` is the later bucket)."""
    if not status_filter:
        return True
    if status_filter == LATER_BUCKET:
        return status in LATER_STATUSES
    return status == status_filter


class RequestStore:
    """Request records backed by the shared ``AppState``.

    Requests reference their event by id only; the event store is consulted
    at submit time to check the event exists and is active.
    """

    def __init__(
        self,
        state: AppState,
        events: EventStore,
        clock: Clock = now_ms,
        anonymous_name: str = DEFAULT_REQUESTER_NAME,
    ) -> None:
        self._state = state
        self._events = events
        self._clock = clock
        self._anonymous_name = anonymous_name

    def _for_event(self, event_id: str) -> list[SongRequest]:
        return [r for r in self._state.requests.values() if r.event_id == event_id]

    def submit(
        self,
        event_id: str,
        track_name: str,
        artist_name: str,
        album_image: str | None = None,
        spotify_uri: str | None = None,
        requester_name: str | None = None,
    ) -> SongRequest:
        """Create a pending request against the active event.

        Raises EventUnavailableError (nothing created) when the event is
        unknown or no longer active.
        """
        if not self._events.is_active(event_id):
            raise EventUnavailableError(event_id)

        request = SongRequest(
            id=str(uuid.uuid4()),
            event_id=event_id,
            track_name=track_name,
            artist_name=artist_name,
            album_image=album_image or None,
            spotify_uri=spotify_uri or None,
            requester_name=requester_name or self._anonymous_name,
            status=RequestStatus.PENDING.value,
            requested_at=self._clock(),
        )
        self._state.requests[request.id] = request
        logger.info(
            "✅ Request %s submitted for event %s: %s by %s",
            request.id[:8], event_id[:8], track_name, artist_name,
        )
        return request.model_copy()

    def get(self, request_id: str) -> SongRequest | None:
        """Get a request by ID. Returns None if not found."""
        request = self._state.requests.get(request_id)
        return request.model_copy() if request is not None else None

    def get_or_raise(self, request_id: str) -> SongRequest:
        """Get a request by ID. Raises RequestNotFoundError if not found."""
        request = self.get(request_id)
        if request is None:
            raise RequestNotFoundError(request_id)
        return request

    def list_for_event(self, event_id: str, status_filter: str | None = None) -> list[SongRequest]:
        """Requests of one event, most recent first, optionally filtered by status."""
        matching = [r for r in reversed(self._for_event(event_id)) if status_matches(r.status, status_filter)]
        ordered = sorted(matching, key=lambda r: r.requested_at, reverse=True)
        return [r.model_copy() for r in ordered]

    def update_status(self, request_id: str, status: str) -> SongRequest:
        """Overwrite the status and stamp ``responded_at``.

        Raises RequestNotFoundError if the request does not exist.
        """
        request = self._state.requests.get(request_id)
        if request is None:
            raise RequestNotFoundError(request_id)
        if status not in KNOWN_STATUSES:
            logger.warning("⚠️  Request %s set to unknown status %r", request_id[:8], status)

        previous = request.status
        request.status = status
        request.responded_at = self._clock()
        logger.info("Request %s: %s → %s", request_id[:8], previous, status)
        return request.model_copy()

    def stats_for_event(self, event_id: str) -> EventStats:
        requests = self._for_event(event_id)
        return EventStats(
            total_requests=len(requests),
            accepted_requests=sum(1 for r in requests if r.status == RequestStatus.ACCEPTED.value),
            rejected_requests=sum(1 for r in requests if r.status == RequestStatus.REJECTED.value),
            later_requests=sum(1 for r in requests if r.status in LATER_STATUSES),
            top_tracks=rank_tracks(requests, EVENT_TOP_TRACKS_LIMIT),
        )

    def global_top_tracks(self, limit: int = GLOBAL_TOP_TRACKS_LIMIT) -> list[TrackCount]:
        """Most requested tracks across every event."""
        return rank_tracks(self._state.requests.values(), limit)
