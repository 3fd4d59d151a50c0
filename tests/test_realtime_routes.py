"""Tests for the WebSocket and SSE transports in musicask/routes/realtime.py.

WebSocket tests use Starlette's ``TestClient`` as a context manager so HTTP
calls and the WebSocket session share one event loop (and the app lifespan
runs).  The SSE frame generator is driven directly, since test transports
buffer the whole response body and never end on an open stream.

Run targeted:
    pytest tests/test_realtime_routes.py -v
"""
from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient
from sse_starlette.sse import EventSourceResponse

from musicask.realtime.broadcaster import GLOBAL_CHANNEL
from musicask.routes import realtime
from musicask.routes.realtime import event_stream, stream_frames
from musicask.services.event_service import EventService


@pytest.fixture
def sync_client(installed_service: EventService) -> Iterator[TestClient]:
    from musicask.app import app

    with TestClient(app) as tc:
        yield tc


def _create_event(tc: TestClient, code: str = "1234") -> dict:
    response = tc.post("/api/events", json={"name": "Friday", "code": code})
    assert response.status_code == 200
    return response.json()["data"]


class TestWebSocket:
    def test_join_is_acknowledged(self, sync_client: TestClient) -> None:
        event = _create_event(sync_client)
        with sync_client.websocket_connect("/ws") as ws:
            ws.send_json({"action": "join_event", "eventId": event["id"]})
            frame = ws.receive_json()
        assert frame == {"type": "subscribed", "data": {"eventId": event["id"]}}

    def test_request_flow_over_event_channel(self, sync_client: TestClient) -> None:
        """The DJ dashboard sees new requests and status changes live."""
        event = _create_event(sync_client)
        with sync_client.websocket_connect("/ws") as ws:
            ws.send_json({"action": "join_event", "eventId": event["id"]})
            assert ws.receive_json()["type"] == "subscribed"

            submitted = sync_client.post(
                "/api/requests",
                json={"eventId": event["id"], "trackName": "Song", "artistName": "Artist"},
            ).json()["data"]
            new_request = ws.receive_json()

            sync_client.patch(f"/api/requests/{submitted['id']}", json={"status": "accepted"})
            updated = ws.receive_json()

        assert new_request["type"] == "new_request"
        assert new_request["data"]["id"] == submitted["id"]
        assert new_request["data"]["trackName"] == "Song"
        assert updated["type"] == "request_updated"
        assert updated["data"]["status"] == "accepted"

    def test_event_created_reaches_connected_clients(self, sync_client: TestClient) -> None:
        with sync_client.websocket_connect("/ws") as ws:
            event = _create_event(sync_client, code="5555")
            frame = ws.receive_json()
        assert frame["type"] == "event_created"
        assert frame["data"]["id"] == event["id"]
        assert frame["data"]["code"] == "5555"

    def test_end_event_reaches_members(self, sync_client: TestClient) -> None:
        event = _create_event(sync_client)
        with sync_client.websocket_connect("/ws") as ws:
            ws.send_json({"action": "join_event", "eventId": event["id"]})
            ws.receive_json()
            sync_client.post(f"/api/events/{event['id']}/end")
            frame = ws.receive_json()
        assert frame["type"] == "event_ended"
        assert frame["data"]["active"] is False

    def test_unknown_action_is_ignored(self, sync_client: TestClient) -> None:
        event = _create_event(sync_client)
        with sync_client.websocket_connect("/ws") as ws:
            ws.send_json({"action": "dance"})
            ws.send_json({"action": "join_event", "eventId": event["id"]})
            frame = ws.receive_json()
        assert frame["type"] == "subscribed"

    def test_switching_events(self, sync_client: TestClient, installed_service: EventService) -> None:
        """Joining a second event leaves the first one's channel."""
        event = _create_event(sync_client)
        with sync_client.websocket_connect("/ws") as ws:
            ws.send_json({"action": "join_event", "eventId": "elsewhere"})
            ws.receive_json()
            ws.send_json({"action": "join_event", "eventId": event["id"]})
            ws.receive_json()

            broadcaster = installed_service.broadcaster
            assert broadcaster.subscriber_count("elsewhere") == 0
            assert broadcaster.subscriber_count(event["id"]) == 1


class _Request:
    """Stand-in for the Starlette request; only disconnect polling is used."""

    def __init__(self, disconnected: bool = False) -> None:
        self.disconnected = disconnected

    async def is_disconnected(self) -> bool:
        return self.disconnected


async def _wait_until(predicate, attempts: int = 100) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


class TestEventStream:
    async def test_event_channel_frame_is_streamed(self, service: EventService) -> None:
        """A request submitted to the event shows up as an SSE frame."""
        event = await service.create_event(name="Friday")
        broadcaster = service.broadcaster
        frames = stream_frames(_Request(), broadcaster, event.id)

        pending = asyncio.create_task(frames.__anext__())
        await _wait_until(lambda: broadcaster.subscriber_count(event.id) == 1)
        request = await service.submit_request(event.id, "Song", "Artist")

        frame = await asyncio.wait_for(pending, timeout=1)
        assert frame["event"] == "new_request"
        assert json.loads(frame["data"])["id"] == request.id

        await frames.aclose()
        assert broadcaster.subscriber_count() == 0

    async def test_other_event_frames_are_not_streamed(
        self, service: EventService, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(realtime.settings, "stream_keepalive_seconds", 0.05)
        event = await service.create_event(name="Friday")
        broadcaster = service.broadcaster
        frames = stream_frames(_Request(), broadcaster, "another-event")

        pending = asyncio.create_task(frames.__anext__())
        await _wait_until(lambda: broadcaster.subscriber_count("another-event") == 1)
        await service.submit_request(event.id, "Song", "Artist")

        assert await asyncio.wait_for(pending, timeout=1) == {"comment": "ping"}
        await frames.aclose()

    async def test_keepalive_when_idle(
        self, service: EventService, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(realtime.settings, "stream_keepalive_seconds", 0.01)
        frames = stream_frames(_Request(), service.broadcaster, "event-1")

        assert await asyncio.wait_for(frames.__anext__(), timeout=1) == {"comment": "ping"}
        await frames.aclose()
        assert service.broadcaster.subscriber_count() == 0

    async def test_disconnected_client_ends_stream(self, service: EventService) -> None:
        """The stream stops and unsubscribes once the client has gone away."""
        frames = stream_frames(_Request(disconnected=True), service.broadcaster, "event-1")

        assert [frame async for frame in frames] == []
        assert service.broadcaster.subscriber_count() == 0
        assert service.broadcaster.subscriber_count("event-1") == 0

    async def test_global_stream_receives_event_created(self, service: EventService) -> None:
        broadcaster = service.broadcaster
        frames = stream_frames(_Request(), broadcaster, GLOBAL_CHANNEL)

        pending = asyncio.create_task(frames.__anext__())
        await _wait_until(lambda: broadcaster.subscriber_count() == 1)
        event = await service.create_event(name="Friday")

        frame = await asyncio.wait_for(pending, timeout=1)
        assert frame["event"] == "event_created"
        assert json.loads(frame["data"])["id"] == event.id
        await frames.aclose()

    async def test_route_returns_event_source(self, service: EventService) -> None:
        response = await event_stream("event-1", _Request(), service)
        assert isinstance(response, EventSourceResponse)
