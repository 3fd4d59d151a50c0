"""Stores over the shared in-memory state.

- ``EventStore``   events and the single-active-event invariant
- ``RequestStore`` song requests, status updates and statistics
"""
from __future__ import annotations

from musicask.stores.events import EventStore
from musicask.stores.requests import RequestStore

__all__ = ["EventStore", "RequestStore"]
