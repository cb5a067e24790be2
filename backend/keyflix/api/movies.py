"""
movies.py - Movie metadata proxy endpoints

Thin HTTP surface over the TMDB gateway so browser sessions never need TMDB
credentials. Every failure body is {"error": message}.
"""
import logging
import re

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from keyflix.core.errors import KeyflixError
from keyflix.core.store import AIRING_NOW, POPULAR
from keyflix.services.tmdb_client import TMDBClient

logger = logging.getLogger(__name__)
router = APIRouter()

_STATUS_PATTERN = re.compile(r"status (\d{3})")


def get_tmdb_client() -> TMDBClient:
    return TMDBClient()


def _error_message(error: Exception) -> str:
    if isinstance(error, KeyflixError):
        return str(error)
    return "Unexpected server error."


def infer_http_status(message: str) -> int:
    """Map a gateway error message onto the status returned to the caller."""
    if message == "Invalid movie id.":
        return 400
    match = _STATUS_PATTERN.search(message)
    if match:
        status = int(match.group(1))
        if 400 <= status <= 599:
            return status
    if "timed out" in message:
        return 504
    return 500


def _error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.get("/movies/popular")
async def popular_movies(page: str = Query("1"), client: TMDBClient = Depends(get_tmdb_client)):
    """Popular movies, one TMDB page at a time."""
    try:
        result = await client.fetch_category_page(POPULAR, page)
        return result.to_wire()
    except Exception as e:
        logger.error(f"Failed to fetch popular movies page {page}: {e}")
        return _error_response(_error_message(e), 500)


@router.get("/movies/airing-now")
async def airing_now_movies(page: str = Query("1"), client: TMDBClient = Depends(get_tmdb_client)):
    """Movies currently in theaters (TMDB now_playing)."""
    try:
        result = await client.fetch_category_page(AIRING_NOW, page)
        return result.to_wire()
    except Exception as e:
        logger.error(f"Failed to fetch airing-now movies page {page}: {e}")
        return _error_response(_error_message(e), 500)


@router.get("/movies/search")
async def search_movies(query: str = Query(""), client: TMDBClient = Depends(get_tmdb_client)):
    try:
        result = await client.search_movies(query)
        return result.to_wire()
    except Exception as e:
        logger.error(f"Search failed for '{query}': {e}")
        return _error_response(_error_message(e), 500)


@router.get("/movies/{movie_id}")
async def movie_details(movie_id: str, client: TMDBClient = Depends(get_tmdb_client)):
    try:
        result = await client.fetch_movie_details(movie_id)
        return result.to_wire()
    except Exception as e:
        message = _error_message(e)
        status_code = infer_http_status(message)
        logger.warning(f"Movie details {movie_id} failed ({status_code}): {message}")
        return _error_response(message, status_code)
