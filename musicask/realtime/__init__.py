"""Realtime fan-out of event and request changes."""
from __future__ import annotations

from musicask.realtime.broadcaster import (
    GLOBAL_CHANNEL,
    Broadcaster,
    Notification,
    Subscriber,
    get_broadcaster,
    reset_broadcaster,
)

__all__ = [
    "GLOBAL_CHANNEL",
    "Broadcaster",
    "Notification",
    "Subscriber",
    "get_broadcaster",
    "reset_broadcaster",
]
