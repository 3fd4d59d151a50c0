"""MusicAsk service configuration.

All settings are prefixed with ``MUSICASK_``. Defaults work for local
development without any env vars set; Spotify credentials are optional and the
search adapter falls back to placeholder results without them.
"""
from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MusicAskSettings(BaseSettings):
    """Runtime configuration for the MusicAsk request service."""

    app_name: str = "MusicAsk"
    app_version: str = "1.0.0"
    debug: bool = False

    host: str = "0.0.0.0"
    port: int = 5000

    # Snapshot of every event and request, rewritten after each mutation.
    data_file: Path = Path("data.json")

    cors_origins: list[str] = ["*"]

    # Spotify catalog (client-credentials flow). The bare SPOTIFY_* names are
    # still honoured for deployments configured before the prefix existed.
    spotify_client_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MUSICASK_SPOTIFY_CLIENT_ID", "SPOTIFY_CLIENT_ID"),
    )
    spotify_client_secret: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MUSICASK_SPOTIFY_CLIENT_SECRET", "SPOTIFY_CLIENT_SECRET"),
    )
    spotify_token_url: str = "https://accounts.spotify.com/api/token"
    spotify_api_url: str = "https://api.spotify.com/v1"
    search_timeout_seconds: float = 5.0
    search_limit: int = 10

    # Realtime fan-out
    subscriber_queue_size: int = 256
    stream_keepalive_seconds: float = 30.0

    anonymous_requester_name: str = "Anonymous"

    model_config = SettingsConfigDict(
        env_prefix="MUSICASK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def _warn_cors_wildcard_in_production(self) -> "MusicAskSettings":
        """Warn when CORS allows all origins in non-debug (production) mode."""
        if not self.debug and "*" in self.cors_origins:
            logging.getLogger(__name__).warning(
                "CORS allows all origins (*) with MUSICASK_DEBUG=false. "
                "Set MUSICASK_CORS_ORIGINS to exact origins in production."
            )
        return self

    @property
    def spotify_configured(self) -> bool:
        """True when both halves of the Spotify client credential are set."""
        return bool(self.spotify_client_id and self.spotify_client_secret)


@lru_cache()
def get_settings() -> MusicAskSettings:
    """Get cached settings instance."""
    return MusicAskSettings()


settings = get_settings()
