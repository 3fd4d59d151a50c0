"""In-memory state shared by the event and request stores.

One ``AppState`` per process holds every event and request, keyed by id in
insertion order.  It is owned by the service layer and handed to both stores;
nothing else mutates it.  ``to_snapshot()`` / ``from_snapshot()`` are the
only bridge to the persistence gateway.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pydantic import ValidationError

from musicask.models import Event, Snapshot, SongRequest
from musicask.persistence import SnapshotDict

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    """All events and requests known to this process."""

    events: dict[str, Event] = field(default_factory=dict)
    requests: dict[str, SongRequest] = field(default_factory=dict)

    def to_snapshot(self) -> SnapshotDict:
        """Serialise the full state to the camelCase snapshot layout.

        Derived counters are left out so a stale value can never be read back.
        """
        snapshot = Snapshot(
            events=list(self.events.values()),
            requests=list(self.requests.values()),
        )
        return snapshot.model_dump(
            mode="json",
            by_alias=True,
            exclude={"events": {"__all__": {"total_requests"}}},
        )

    @classmethod
    def from_snapshot(cls, data: SnapshotDict | None) -> AppState:
        """Rebuild state from a stored snapshot; ``None`` means cold start."""
        if data is None:
            return cls()
        try:
            snapshot = Snapshot.model_validate(data)
        except ValidationError as exc:
            logger.warning("⚠️  Snapshot failed validation, starting fresh: %s", exc)
            return cls()
        return cls(
            events={e.id: e for e in snapshot.events},
            requests={r.id: r for r in snapshot.requests},
        )

    def replace(self, other: AppState) -> None:
        """Swap in *other*'s contents while keeping this object's identity."""
        self.events = other.events
        self.requests = other.requests

    def request_count(self, event_id: str) -> int:
        return sum(1 for r in self.requests.values() if r.event_id == event_id)
