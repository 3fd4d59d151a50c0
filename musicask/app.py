"""MusicAsk FastAPI application.

Entry point: ``uvicorn musicask.app:app --port 5000`` (or ``python -m musicask``).

Architecture:
- ``lifespan`` loads the stored snapshot into the ``EventService`` on startup
  and, on shutdown, waits for pending snapshot writes and closes the catalog
  client.
- JSON API routes live in ``musicask/routes/api.py``; WebSocket and SSE
  transports in ``musicask/routes/realtime.py``.
- Domain rejections and body validation errors are rendered as failure
  envelopes by the exception handlers below.
"""
from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from musicask.config import settings
from musicask.errors import ErrorCode, MusicAskError
from musicask.models import ApiResponse
from musicask.routes import api, realtime
from musicask.services.event_service import get_service

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Load persisted state on startup; flush and release clients on shutdown."""
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)
    service = get_service()
    service.load()
    try:
        yield
    finally:
        logger.info("Shutting down...")
        await service.close()


app = FastAPI(
    title="MusicAsk",
    description="Live song requests with realtime status updates",
    version=settings.app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["*"],
)


@app.exception_handler(MusicAskError)
async def _handle_domain_error(request: Request, exc: MusicAskError) -> JSONResponse:
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc)
    body = ApiResponse[None](success=False, message=exc.message, code=exc.code.value)
    return JSONResponse(status_code=exc.status_code, content=body.to_wire())


@app.exception_handler(RequestValidationError)
async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    body = ApiResponse[None](
        success=False,
        message="Invalid request",
        code=ErrorCode.VALIDATION_ERROR.value,
    )
    content = body.to_wire()
    content["errors"] = jsonable_encoder(exc.errors())
    return JSONResponse(status_code=422, content=content)


app.include_router(api.router)
app.include_router(realtime.router)


@app.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    """Liveness probe; returns ``{"status": "ok"}`` when the service is up."""
    return {"status": "ok", "service": settings.app_name, "version": settings.app_version}
