import os
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Upstream metadata API
    tmdb_api_key: str = os.getenv("TMDB_API_KEY", "")
    tmdb_api_read_token: str = os.getenv("TMDB_API_READ_TOKEN", "")
    tmdb_base_url: str = os.getenv("TMDB_BASE_URL", "https://api.themoviedb.org/3")
    tmdb_poster_base_url: str = "https://image.tmdb.org/t/p/w500"
    tmdb_backdrop_base_url: str = "https://image.tmdb.org/t/p/w1280"
    api_timeout_seconds: float = float(os.getenv("API_TIMEOUT_SECONDS", "8"))

    # Gateway used by the browser session: "tmdb" talks to TMDB directly,
    # "proxy" goes through the /api/movies routes served by main.py
    gateway_mode: str = os.getenv("KEYFLIX_GATEWAY_MODE", "tmdb")
    proxy_base_url: str = os.getenv("KEYFLIX_PROXY_BASE_URL", "http://localhost:8000")

    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    favorites_storage_key: str = "fs-movie-favorites"
    favorites_movies_storage_key: str = "fs-movie-favorite-movies"

    # Browse view
    grid_columns: int = int(os.getenv("KEYFLIX_GRID_COLUMNS", "4"))
    category_focus_delay_seconds: float = float(os.getenv("KEYFLIX_CATEGORY_FOCUS_DELAY", "2.0"))
    detail_scroll_step: int = 220

    # Search orchestration
    search_min_chars: int = 2
    search_debounce_seconds: float = float(os.getenv("KEYFLIX_SEARCH_DEBOUNCE", "0.5"))
    search_max_requests: int = int(os.getenv("KEYFLIX_SEARCH_MAX_REQUESTS", "5"))
    search_window_seconds: float = float(os.getenv("KEYFLIX_SEARCH_WINDOW", "10.0"))

    # Latest-wins scope for category fetches: "category" keys cancellation per
    # category, "global" cancels any in-flight category fetch on a new request
    category_cancel_scope: str = os.getenv("KEYFLIX_CATEGORY_CANCEL_SCOPE", "category")

    transition_log_size: int = int(os.getenv("KEYFLIX_TRANSITION_LOG_SIZE", "500"))
    log_level: str = os.getenv("KEYFLIX_LOG_LEVEL", "INFO")

settings = Settings()
