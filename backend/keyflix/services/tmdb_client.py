"""
TMDB client for keyflix.
- Async httpx client, one short-lived AsyncClient per request.
- Bearer read token preferred; falls back to the api_key query parameter.
- Maps raw TMDB payloads into MovieSummary / MovieDetails and drops
  malformed entries (missing or non-positive id).
- No in-module caching; the store is the cache.
"""
import logging
import math
from typing import Any, Dict, Optional

import httpx

from keyflix.core.config import settings
from keyflix.core.errors import GatewayError, GatewayTimeoutError, ValidationError
from keyflix.core.models import MovieDetails, MovieSummary, PagedMovies, SearchResults
from keyflix.core.store import AIRING_NOW, POPULAR

logger = logging.getLogger(__name__)

CATEGORY_ENDPOINTS = {
    POPULAR: "/movie/popular",
    AIRING_NOW: "/movie/now_playing",
}


def to_number_or_none(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value if math.isfinite(value) else None


def to_string_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value.strip() else None


def _image_url(base: str, path: Any) -> Optional[str]:
    path = to_string_or_none(path)
    return f"{base}{path}" if path else None


def sanitize_page(raw_page: Any) -> int:
    """Coerce a page parameter to an int >= 1; anything unparseable is page 1."""
    try:
        parsed = float(raw_page)
    except (TypeError, ValueError):
        return 1
    if not math.isfinite(parsed):
        return 1
    return max(1, math.floor(parsed))


def map_movie_summary(raw: Any) -> Optional[MovieSummary]:
    """Map one TMDB result. Returns None for entries without a positive id."""
    source = raw if isinstance(raw, dict) else {}
    movie_id = source.get("id")
    if isinstance(movie_id, bool) or not isinstance(movie_id, int) or movie_id <= 0:
        return None

    return MovieSummary(
        id=movie_id,
        title=to_string_or_none(source.get("title")) or to_string_or_none(source.get("name")) or "Untitled movie",
        overview=to_string_or_none(source.get("overview")) or "No overview available.",
        poster_url=_image_url(settings.tmdb_poster_base_url, source.get("poster_path")),
        release_date=to_string_or_none(source.get("release_date")) or to_string_or_none(source.get("first_air_date")),
        vote_average=to_number_or_none(source.get("vote_average")),
    )


def map_movie_details(raw: Any) -> MovieDetails:
    summary = map_movie_summary(raw)
    if summary is None:
        raise GatewayError("Movie details response is missing a valid id.")

    source = raw if isinstance(raw, dict) else {}
    genres_raw = source.get("genres") if isinstance(source.get("genres"), list) else []
    genres = [
        name for name in (to_string_or_none(g.get("name")) if isinstance(g, dict) else None for g in genres_raw)
        if name
    ]
    runtime = to_number_or_none(source.get("runtime"))

    return MovieDetails(
        **summary.model_dump(),
        backdrop_url=_image_url(settings.tmdb_backdrop_base_url, source.get("backdrop_path")),
        runtime=int(runtime) if runtime is not None else None,
        genres=genres,
        tagline=to_string_or_none(source.get("tagline")),
    )


def map_paged_movies(payload: Any, page_fallback: int) -> PagedMovies:
    source = payload if isinstance(payload, dict) else {}
    raw_results = source.get("results") if isinstance(source.get("results"), list) else []
    results = [movie for movie in (map_movie_summary(item) for item in raw_results) if movie is not None]

    total_pages = to_number_or_none(source.get("total_pages"))
    page = to_number_or_none(source.get("page"))
    return PagedMovies(
        page=max(1, math.floor(page)) if page is not None else page_fallback,
        total_pages=max(1, math.floor(total_pages)) if total_pages is not None else 1,
        results=results,
    )


def parse_movie_id(raw_id: Any) -> int:
    try:
        parsed = float(raw_id)
    except (TypeError, ValueError):
        raise ValidationError("Invalid movie id.")
    if not math.isfinite(parsed) or parsed <= 0 or math.floor(parsed) <= 0:
        raise ValidationError("Invalid movie id.")
    return math.floor(parsed)


class TMDBClient:
    """Remote data gateway talking to TMDB directly."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        read_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = settings.tmdb_api_key if api_key is None else api_key
        self.read_token = settings.tmdb_api_read_token if read_token is None else read_token
        self.base_url = (base_url or settings.tmdb_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.api_timeout_seconds
        self._transport = transport

    def _credentials(self) -> Dict[str, Dict[str, str]]:
        if not self.read_token and not self.api_key:
            raise GatewayError("Missing TMDB credentials. Set TMDB_API_READ_TOKEN or TMDB_API_KEY.")
        headers = {"Content-Type": "application/json"}
        params: Dict[str, str] = {}
        if self.read_token:
            headers["Authorization"] = f"Bearer {self.read_token}"
        else:
            params["api_key"] = self.api_key
        return {"headers": headers, "params": params}

    async def _request(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        credentials = self._credentials()
        query = {**(params or {}), **credentials["params"]}
        url = f"{self.base_url}{path}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(url, params=query, headers=credentials["headers"])
                resp.raise_for_status()
                logger.debug(f"TMDB request successful: {path}")
                return resp.json()
        except httpx.TimeoutException:
            logger.warning(f"TMDB request timed out: {path}")
            raise GatewayTimeoutError("TMDB request timed out.")
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning(f"TMDB API error for {path}: status {status}")
            raise GatewayError(f"TMDB request failed with status {status}", status_code=status)
        except httpx.RequestError as e:
            logger.warning(f"TMDB transport error for {path}: {e}")
            raise GatewayError(f"TMDB request failed: {e}")
        except ValueError:
            raise GatewayError("TMDB returned an invalid JSON payload.")

    async def fetch_category_page(self, category: str, page: Any) -> PagedMovies:
        endpoint = CATEGORY_ENDPOINTS.get(category)
        if endpoint is None:
            raise ValidationError(f"Unknown category: {category!r}")
        page = sanitize_page(page)
        payload = await self._request(endpoint, {"page": page})
        return map_paged_movies(payload, page)

    async def search_movies(self, query: Any) -> SearchResults:
        query = query.strip() if isinstance(query, str) else ""
        if len(query) < settings.search_min_chars:
            return SearchResults(query=query, results=[])

        payload = await self._request("/search/movie", {"query": query, "include_adult": "false"})
        return SearchResults(query=query, results=map_paged_movies(payload, 1).results)

    async def fetch_movie_details(self, movie_id: Any) -> MovieDetails:
        movie_id = parse_movie_id(movie_id)
        payload = await self._request(f"/movie/{movie_id}")
        return map_movie_details(payload)

