"""Spotify track search adapter.

Wraps the catalog's client-credentials flow and ``/search`` endpoint behind a
single ``search(query)`` coroutine that never raises:

- queries shorter than ``MIN_QUERY_LENGTH`` (after trimming) → ``[]``
- credentials not configured, or the token exchange fails → placeholder
  results derived from the query, each marked ``placeholder=True``
- search call fails or times out → ``[]``

The access token is cached together with its expiry and only exchanged again
once it is missing or expired.  There is no lock around the check-then-refresh:
the client is only used from the event loop.

Usage::

    client = TrackSearchClient()
    tracks = await client.search("daft punk")
    await client.close()
"""
from __future__ import annotations

import logging
import time

import httpx

from musicask.config import MusicAskSettings, settings as default_settings
from musicask.models import TrackDescriptor

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2


def placeholder_tracks(query: str) -> list[TrackDescriptor]:
    """Synthetic results shown when the catalog cannot be asked."""
    return [
        TrackDescriptor(name=query, artist="Artist 1", placeholder=True),
        TrackDescriptor(name=f"{query} (Remix)", artist="Artist 2", placeholder=True),
        TrackDescriptor(name=f"Another {query}", artist="Artist 3", placeholder=True),
    ]


def parse_tracks(body: object) -> list[TrackDescriptor]:
    """Normalise a Spotify ``/search?type=track`` response body.

    Items missing a name are skipped; every other field is optional.
    """
    if not isinstance(body, dict):
        return []
    tracks = body.get("tracks")
    items = tracks.get("items") if isinstance(tracks, dict) else None
    if not isinstance(items, list):
        return []

    results: list[TrackDescriptor] = []
    for item in items:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            continue
        artists = item.get("artists")
        if not isinstance(artists, list):
            artists = []
        artist = ", ".join(
            str(a["name"]) for a in artists if isinstance(a, dict) and a.get("name")
        )
        album = item.get("album") if isinstance(item.get("album"), dict) else {}
        images = album.get("images")
        if not isinstance(images, list):
            images = []
        url = images[0].get("url") if images and isinstance(images[0], dict) else None
        image = url if isinstance(url, str) else None
        uri = item.get("uri")
        results.append(
            TrackDescriptor(
                name=item["name"],
                artist=artist,
                image=image,
                uri=uri if isinstance(uri, str) else None,
            )
        )
    return results


class TrackSearchClient:
    """Stateful Spotify client owning the cached access token."""

    def __init__(
        self,
        config: MusicAskSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or default_settings
        self._client = client
        self._token: str | None = None
        self._token_expires_at: float = 0.0

    @property
    def client(self) -> httpx.AsyncClient:
        """Return the shared ``httpx.AsyncClient``, creating it lazily on first access."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.search_timeout_seconds)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _token_valid(self) -> bool:
        return self._token is not None and time.monotonic() < self._token_expires_at

    async def get_token(self) -> str | None:
        """Return a usable access token, exchanging credentials only when needed.

        Returns None when credentials are not configured or the exchange fails;
        the next call tries again.
        """
        if not self.config.spotify_configured:
            return None
        if self._token_valid():
            return self._token

        try:
            response = await self.client.post(
                self.config.spotify_token_url,
                data={"grant_type": "client_credentials"},
                auth=(self.config.spotify_client_id or "", self.config.spotify_client_secret or ""),
            )
            response.raise_for_status()
            body = response.json()
            token = body["access_token"]
            expires_in = float(body.get("expires_in", 3600))
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            logger.error("❌ Spotify token exchange failed: %s", exc)
            self._token = None
            self._token_expires_at = 0.0
            return None

        self._token = str(token)
        self._token_expires_at = time.monotonic() + expires_in
        logger.debug("✅ Spotify token refreshed (expires in %.0fs)", expires_in)
        return self._token

    async def search(self, query: str) -> list[TrackDescriptor]:
        """Search the catalog for tracks matching *query*."""
        query = query.strip()
        if len(query) < MIN_QUERY_LENGTH:
            return []

        token = await self.get_token()
        if token is None:
            if not self.config.spotify_configured:
                logger.warning("⚠️  Spotify credentials not configured, returning placeholder results")
            return placeholder_tracks(query)

        try:
            response = await self.client.get(
                f"{self.config.spotify_api_url}/search",
                params={"q": query, "type": "track", "limit": self.config.search_limit},
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException:
            logger.warning("⚠️  Spotify search timed out for %r", query)
            return []
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 401:
                # Revoked before its advertised expiry; exchange again next time.
                self._token = None
                self._token_expires_at = 0.0
            logger.error("❌ Spotify search failed for %r: %s", query, exc)
            return []
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("❌ Spotify search failed for %r: %s", query, exc)
            return []

        return parse_tracks(body)
