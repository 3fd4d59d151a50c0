"""Domain and wire models for MusicAsk.

These types are the shared contract between the stores, the service layer,
the HTTP routes and the realtime channels.  Python code uses snake_case; the
wire (HTTP bodies, realtime frames and the persisted snapshot) uses camelCase.
Timestamps are UNIX epoch milliseconds.
"""
from __future__ import annotations

from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator


def to_camel(name: str) -> str:
    """Convert snake_case to camelCase for JSON serialization."""
    parts = name.split("_")
    return parts[0] + "".join(w.capitalize() for w in parts[1:])


class CamelModel(BaseModel):
    """Base model that serializes to camelCase on the wire.

    - ``model_dump()`` returns snake_case (internal use)
    - ``model_dump(by_alias=True)`` returns camelCase (wire use)
    - Either spelling is accepted on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict[str, object]:
        """JSON-safe camelCase dict, as sent to clients and written to disk."""
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Status labels
# ---------------------------------------------------------------------------


class RequestStatus(str, Enum):
    """Known request status labels.

    The set is open: the store accepts any label an operator sends, these are
    the ones the clients know how to render.
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    LATER_5_15 = "later_5_15"
    LATER_15_30 = "later_15_30"
    LATER_30_PLUS = "later_30_plus"


KNOWN_STATUSES: frozenset[str] = frozenset(s.value for s in RequestStatus)

# Filter value that expands to every "play it later" label.
LATER_BUCKET = "later"
LATER_STATUSES: frozenset[str] = frozenset(
    {
        RequestStatus.LATER_5_15.value,
        RequestStatus.LATER_15_30.value,
        RequestStatus.LATER_30_PLUS.value,
    }
)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


class Event(CamelModel):
    """A live session during which attendees may submit requests.

    ``total_requests`` is derived by the event store on every read; the
    stored value is never trusted.
    """

    id: str
    name: str
    code: str
    active: bool = True
    created_at: int
    ended_at: int | None = None
    accepted_styles: list[str] = []
    total_requests: int = 0


class SongRequest(CamelModel):
    """An attendee's ask for one track, scoped to one event."""

    id: str
    event_id: str
    track_name: str
    artist_name: str
    album_image: str | None = None
    spotify_uri: str | None = None
    requester_name: str
    status: str = RequestStatus.PENDING.value
    requested_at: int
    responded_at: int | None = None


class TrackCount(CamelModel):
    """How many requests named one (track, artist) pair."""

    track_name: str
    artist_name: str
    count: int


class EventStats(CamelModel):
    """Aggregate counters for a single event."""

    total_requests: int
    accepted_requests: int
    rejected_requests: int
    later_requests: int
    top_tracks: list[TrackCount]


class CodeValidation(CamelModel):
    """Result of a successful join-code check."""

    event_id: str
    event_name: str


class TrackDescriptor(BaseModel):
    """A normalised catalog search hit.

    ``placeholder`` marks synthetic results returned when the catalog is not
    reachable or not configured; clients should not treat them as real tracks.
    """

    name: str
    artist: str
    image: str | None = None
    uri: str | None = None
    placeholder: bool = False


class Snapshot(CamelModel):
    """The complete persisted copy of all events and requests."""

    model_config = ConfigDict(extra="ignore")

    events: list[Event] = []
    requests: list[SongRequest] = []

    @field_validator("events", mode="before")
    @classmethod
    def inactive_unless_stored(cls, value: object) -> object:
        """A stored event without an ``active`` flag is loaded as ended."""
        if not isinstance(value, list):
            return value
        return [
            {**item, "active": False} if isinstance(item, dict) and "active" not in item else item
            for item in value
        ]


# ---------------------------------------------------------------------------
# Realtime
# ---------------------------------------------------------------------------


class NotificationType(str, Enum):
    """Names of the frames pushed to realtime subscribers."""

    EVENT_CREATED = "event_created"
    EVENT_UPDATED = "event_updated"
    EVENT_ENDED = "event_ended"
    NEW_REQUEST = "new_request"
    REQUEST_UPDATED = "request_updated"
    SUBSCRIBED = "subscribed"


# ---------------------------------------------------------------------------
# Response envelope
# ---------------------------------------------------------------------------

DataT = TypeVar("DataT")


class ApiResponse(CamelModel, Generic[DataT]):
    """Uniform response envelope.

    Callers must branch on ``success``; ``data`` may be present on failures
    (e.g. an empty search list) and absent on successes with nothing to say.
    """

    success: bool
    message: str
    data: DataT | None = None
    code: str | None = None


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


def _coerce_code(value: object) -> object:
    """Join codes are typed on numeric keypads; accept JSON numbers too."""
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class CreateEventBody(CamelModel):
    name: str | None = Field(default=None, max_length=200)
    code: str | None = Field(default=None, pattern=r"^\d{1,12}$")

    @field_validator("code", mode="before")
    @classmethod
    def normalise_code(cls, value: object) -> object:
        return _coerce_code(value)


class UpdateEventBody(CamelModel):
    """Partial update: only the fields present in the body are applied."""

    name: str | None = Field(default=None, max_length=200)
    accepted_styles: list[str] | None = None
    active: bool | None = None


class ValidateCodeBody(CamelModel):
    code: str = Field(min_length=1, max_length=12)

    @field_validator("code", mode="before")
    @classmethod
    def normalise_code(cls, value: object) -> object:
        return _coerce_code(value)


class SubmitRequestBody(CamelModel):
    event_id: str = Field(min_length=1)
    track_name: str = Field(min_length=1, max_length=300)
    artist_name: str = Field(min_length=1, max_length=300)
    album_image: str | None = None
    spotify_uri: str | None = None
    requester_name: str | None = Field(default=None, max_length=100)


class UpdateStatusBody(CamelModel):
    status: str = Field(min_length=1, max_length=64)
