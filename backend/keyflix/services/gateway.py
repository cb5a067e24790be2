"""
gateway.py

Remote data gateway contract plus the proxy-backed implementation that talks
to the /api/movies routes served by keyflix.main.
"""
import logging
from typing import Any, Optional, Protocol

import httpx

from keyflix.core.config import Settings, settings as default_settings
from keyflix.core.errors import GatewayError, GatewayTimeoutError
from keyflix.core.models import MovieDetails, PagedMovies, SearchResults
from keyflix.core.store import AIRING_NOW, POPULAR

logger = logging.getLogger(__name__)

PROXY_CATEGORY_PATHS = {
    POPULAR: "/api/movies/popular",
    AIRING_NOW: "/api/movies/airing-now",
}


class MovieGateway(Protocol):
    async def fetch_category_page(self, category: str, page: int) -> PagedMovies: ...

    async def search_movies(self, query: str) -> SearchResults: ...

    async def fetch_movie_details(self, movie_id: int) -> MovieDetails: ...


class ProxyGateway:
    """Gateway over the keyflix HTTP proxy. Errors carry the proxy's message."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or default_settings.proxy_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else default_settings.api_timeout_seconds
        self._transport = transport

    async def _request_json(self, path: str, params: Optional[dict] = None) -> Any:
        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(path, params=params, headers={"Cache-Control": "no-store"})
        except httpx.TimeoutException:
            raise GatewayTimeoutError("Request timed out.")
        except httpx.RequestError as e:
            raise GatewayError(f"Request failed: {e}")

        try:
            payload = resp.json()
        except ValueError:
            payload = None

        if resp.is_error:
            message = payload.get("error") if isinstance(payload, dict) else None
            if not isinstance(message, str):
                message = f"Request failed with status {resp.status_code}"
            logger.debug(f"Proxy request {path} failed: {message}")
            raise GatewayError(message, status_code=resp.status_code)

        if payload is None:
            raise GatewayError("Proxy returned an invalid JSON payload.")
        return payload

    async def fetch_category_page(self, category: str, page: int) -> PagedMovies:
        path = PROXY_CATEGORY_PATHS.get(category)
        if path is None:
            raise GatewayError(f"Unknown category: {category!r}")
        payload = await self._request_json(path, {"page": page})
        return PagedMovies.model_validate(payload)

    async def search_movies(self, query: str) -> SearchResults:
        payload = await self._request_json("/api/movies/search", {"query": query})
        return SearchResults.model_validate(payload)

    async def fetch_movie_details(self, movie_id: int) -> MovieDetails:
        payload = await self._request_json(f"/api/movies/{movie_id}")
        return MovieDetails.model_validate(payload)


def create_gateway(config: Optional[Settings] = None) -> MovieGateway:
    """Build the gateway selected by settings.gateway_mode."""
    config = config or default_settings
    if config.gateway_mode == "proxy":
        return ProxyGateway(base_url=config.proxy_base_url, timeout=config.api_timeout_seconds)
    if config.gateway_mode != "tmdb":
        raise ValueError(f"Unknown gateway mode: {config.gateway_mode!r}")

    from keyflix.services.tmdb_client import TMDBClient

    return TMDBClient(
        api_key=config.tmdb_api_key,
        read_token=config.tmdb_api_read_token,
        base_url=config.tmdb_base_url,
        timeout=config.api_timeout_seconds,
    )
