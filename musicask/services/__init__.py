"""Service layer: orchestration over the stores and the catalog adapter."""
from __future__ import annotations

from musicask.services.event_service import EventService, get_service, reset_service
from musicask.services.search import TrackSearchClient

__all__ = ["EventService", "TrackSearchClient", "get_service", "reset_service"]
