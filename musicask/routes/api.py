"""JSON API routes for MusicAsk.

Routes are thin: parse the body, call ``EventService``, wrap the result in the
``ApiResponse`` envelope.  Domain rejections raised by the service are turned
into failure envelopes by the exception handlers registered in ``app.py``.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from musicask.models import (
    ApiResponse,
    CodeValidation,
    CreateEventBody,
    Event,
    EventStats,
    SongRequest,
    SubmitRequestBody,
    TrackCount,
    TrackDescriptor,
    UpdateEventBody,
    UpdateStatusBody,
    ValidateCodeBody,
)
from musicask.services.event_service import EventService, get_service
from musicask.services.search import MIN_QUERY_LENGTH
from musicask.stores.requests import GLOBAL_TOP_TRACKS_LIMIT

router = APIRouter(prefix="/api", tags=["api"])


# ── Events ────────────────────────────────────────────────────────────────────


@router.post("/events")
async def create_event(
    body: CreateEventBody,
    service: EventService = Depends(get_service),
) -> ApiResponse[Event]:
    """Create and activate a new event; rejected while another one is active."""
    event = await service.create_event(name=body.name, code=body.code)
    return ApiResponse(success=True, message="Event created", data=event)


@router.get("/events")
async def list_events(service: EventService = Depends(get_service)) -> ApiResponse[list[Event]]:
    return ApiResponse(success=True, message="Events loaded", data=service.list_events())


@router.get("/events/active")
async def active_event(service: EventService = Depends(get_service)) -> ApiResponse[Event]:
    """Return the active event, or a failure envelope when none is running."""
    event = service.get_active_event()
    if event is None:
        return ApiResponse(success=False, message="No active event")
    return ApiResponse(success=True, message="Active event found", data=event)


@router.post("/events/validate")
async def validate_code(
    body: ValidateCodeBody,
    service: EventService = Depends(get_service),
) -> ApiResponse[CodeValidation]:
    """Check an attendee's join code against the active event."""
    result = service.validate_code(body.code)
    return ApiResponse(success=True, message="Valid code", data=result)


@router.get("/events/{event_id}")
async def get_event(event_id: str, service: EventService = Depends(get_service)) -> ApiResponse[Event]:
    return ApiResponse(success=True, message="Event found", data=service.get_event(event_id))


@router.patch("/events/{event_id}")
async def update_event(
    event_id: str,
    body: UpdateEventBody,
    service: EventService = Depends(get_service),
) -> ApiResponse[Event]:
    """Partially update an event; fields absent from the body are left alone."""
    event = await service.update_event(
        event_id,
        name=body.name,
        accepted_styles=body.accepted_styles,
        active=body.active,
    )
    return ApiResponse(success=True, message="Event updated", data=event)


@router.post("/events/{event_id}/end")
async def end_event(event_id: str, service: EventService = Depends(get_service)) -> ApiResponse[Event]:
    event = await service.end_event(event_id)
    return ApiResponse(success=True, message="Event ended", data=event)


@router.get("/events/{event_id}/requests")
async def list_event_requests(
    event_id: str,
    status: str | None = Query(default=None, description='A status label, or "later" for every later_* label'),
    service: EventService = Depends(get_service),
) -> ApiResponse[list[SongRequest]]:
    requests = service.list_requests(event_id, status)
    return ApiResponse(success=True, message="Requests loaded", data=requests)


@router.get("/events/{event_id}/stats")
async def event_stats(event_id: str, service: EventService = Depends(get_service)) -> ApiResponse[EventStats]:
    return ApiResponse(success=True, message="Stats loaded", data=service.event_stats(event_id))


# ── Requests ──────────────────────────────────────────────────────────────────


@router.post("/requests")
async def submit_request(
    body: SubmitRequestBody,
    service: EventService = Depends(get_service),
) -> ApiResponse[SongRequest]:
    """Submit a song request against the active event."""
    request = await service.submit_request(
        body.event_id,
        body.track_name,
        body.artist_name,
        album_image=body.album_image,
        spotify_uri=body.spotify_uri,
        requester_name=body.requester_name,
    )
    return ApiResponse(success=True, message="Request sent", data=request)


@router.get("/requests/{request_id}")
async def get_request(request_id: str, service: EventService = Depends(get_service)) -> ApiResponse[SongRequest]:
    return ApiResponse(success=True, message="Request found", data=service.get_request(request_id))


@router.patch("/requests/{request_id}")
async def update_request_status(
    request_id: str,
    body: UpdateStatusBody,
    service: EventService = Depends(get_service),
) -> ApiResponse[SongRequest]:
    """Set a request's status. Any label may follow any other."""
    request = await service.update_request_status(request_id, body.status)
    return ApiResponse(success=True, message="Status updated", data=request)


# ── Stats & search ────────────────────────────────────────────────────────────


@router.get("/stats/top-tracks")
async def top_tracks(
    limit: int = Query(default=GLOBAL_TOP_TRACKS_LIMIT, ge=1, le=100),
    service: EventService = Depends(get_service),
) -> ApiResponse[list[TrackCount]]:
    return ApiResponse(success=True, message="Top tracks loaded", data=service.top_tracks(limit))


@router.get("/search/tracks")
async def search_tracks(
    q: str = "",
    service: EventService = Depends(get_service),
) -> ApiResponse[list[TrackDescriptor]]:
    """Search the catalog. Short queries return an empty list, not an error."""
    if len(q.strip()) < MIN_QUERY_LENGTH:
        return ApiResponse(success=True, message="Query too short", data=[])
    tracks = await service.search_tracks(q)
    return ApiResponse(success=True, message="Tracks found", data=tracks)
