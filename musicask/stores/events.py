"""Event store: owns Event records and the single-active-event invariant.

At most one event is active at any time.  Both the creation path and the
generic update path refuse to activate an event while a different one is
active; ending an event is always allowed and may be repeated.
"""
from __future__ import annotations

import logging
import random
import time
import uuid
from collections.abc import Callable

from musicask.errors import ActiveEventExistsError, EventNotFoundError, InvalidEventCodeError
from musicask.models import CodeValidation, Event
from musicask.state import AppState

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in UNIX epoch milliseconds."""
    return int(time.time() * 1000)


def generate_code() -> str:
    """Random 4-digit join code (1000–9999)."""
    return str(random.randint(1000, 9999))


class EventStore:
    """Event records backed by the shared ``AppState``.

    Every Event returned is a copy carrying a freshly computed
    ``total_requests``; callers never hold a reference into the state.
    """

    def __init__(self, state: AppState, clock: Clock = now_ms) -> None:
        self._state = state
        self._clock = clock

    def _view(self, event: Event) -> Event:
        return event.model_copy(
            update={"total_requests": self._state.request_count(event.id)},
            deep=True,
        )

    def _active_record(self) -> Event | None:
        for event in self._state.events.values():
            if event.active:
                return event
        return None

    def _record_or_raise(self, event_id: str) -> Event:
        event = self._state.events.get(event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    def create(self, name: str | None = None, code: str | None = None) -> Event:
        """Create and activate a new event.

        Raises ActiveEventExistsError (state untouched) if one is already active.
        """
        active = self._active_record()
        if active is not None:
            raise ActiveEventExistsError(active.id)

        code = code or generate_code()
        event = Event(
            id=str(uuid.uuid4()),
            name=name or f"Event {code}",
            code=code,
            active=True,
            created_at=self._clock(),
        )
        self._state.events[event.id] = event
        logger.info("✅ Event %s created (code=%s)", event.id[:8], event.code)
        return self._view(event)

    def get_active(self) -> Event | None:
        active = self._active_record()
        return self._view(active) if active is not None else None

    def get(self, event_id: str) -> Event | None:
        """Get an event by ID. Returns None if not found."""
        event = self._state.events.get(event_id)
        return self._view(event) if event is not None else None

    def get_or_raise(self, event_id: str) -> Event:
        """Get an event by ID. Raises EventNotFoundError if not found."""
        return self._view(self._record_or_raise(event_id))

    def list_all(self) -> list[Event]:
        """All events, most recently created first.

        Iterating newest-inserted first keeps same-millisecond creations in
        reverse insertion order under the stable sort.
        """
        records = reversed(list(self._state.events.values()))
        ordered = sorted(records, key=lambda e: e.created_at, reverse=True)
        return [self._view(e) for e in ordered]

    def is_active(self, event_id: str) -> bool:
        event = self._state.events.get(event_id)
        return event is not None and event.active

    def update(
        self,
        event_id: str,
        *,
        name: str | None = None,
        accepted_styles: list[str] | None = None,
        active: bool | None = None,
    ) -> Event:
        """Apply the fields that are not None.

        Reactivating an event is refused while another event is active, and
        clears its ``ended_at``.
        """
        event = self._record_or_raise(event_id)

        if active and not event.active:
            other = self._active_record()
            if other is not None:
                raise ActiveEventExistsError(other.id)

        if name is not None:
            event.name = name
        if accepted_styles is not None:
            event.accepted_styles = list(accepted_styles)
        if active is not None:
            if active and not event.active:
                event.ended_at = None
            event.active = active

        logger.info("✅ Event %s updated", event.id[:8])
        return self._view(event)

    def end(self, event_id: str) -> Event:
        """Deactivate an event and stamp ``ended_at``, whatever its prior state."""
        event = self._record_or_raise(event_id)
        event.active = False
        event.ended_at = self._clock()
        logger.info("✅ Event %s ended", event.id[:8])
        return self._view(event)

    def validate_code(self, code: str) -> CodeValidation:
        """Match *code* against the active event only.

        Raises InvalidEventCodeError when no active event carries the code.
        """
        active = self._active_record()
        if active is None or active.code != code:
            raise InvalidEventCodeError(code)
        return CodeValidation(event_id=active.id, event_name=active.name)
