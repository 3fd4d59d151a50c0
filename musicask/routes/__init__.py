"""Routes sub-package for MusicAsk.

Split into two routers:
- ``api``:      JSON endpoints under ``/api`` returning the response envelope.
- ``realtime``: WebSocket and SSE transports fed by the broadcaster.

Both are registered in ``app.py`` via ``app.include_router()``.
"""
from __future__ import annotations
