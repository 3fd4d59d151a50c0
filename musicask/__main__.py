"""Run the MusicAsk server: ``python -m musicask``."""
from __future__ import annotations

import uvicorn

from musicask.config import settings

if __name__ == "__main__":
    uvicorn.run("musicask.app:app", host=settings.host, port=settings.port, reload=settings.debug)
