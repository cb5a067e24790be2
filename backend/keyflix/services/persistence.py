"""
persistence.py

Favorites persistence bridge over a key-value store (Redis by default).

Two records are kept:
- favorites_storage_key: JSON list of favorite movie ids
- favorites_movies_storage_key: JSON list of cached favorite movie summaries

Reads and writes are best-effort. Storage failures are logged and dropped;
they never reach the user and never stop the session.
"""
import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

from pydantic import ValidationError as ModelValidationError

from keyflix.core.config import Settings, settings as default_settings
from keyflix.core.errors import PersistenceError
from keyflix.core.models import MovieSummary
from keyflix.core.store import Action, AppState, Store, hydrate_favorites, hydrate_movie_entities, select_favorite_movies

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[Union[str, bytes]]: ...

    async def set(self, key: str, value: str) -> Any: ...


def normalize_favorite_ids(raw: Any) -> List[int]:
    if not isinstance(raw, list):
        return []
    ids = [value for value in raw if isinstance(value, int) and not isinstance(value, bool) and value > 0]
    return list(dict.fromkeys(ids))


def normalize_favorite_movies(raw: Any) -> List[MovieSummary]:
    if not isinstance(raw, list):
        return []
    movies_by_id = {}
    for item in raw:
        if not isinstance(item, dict):
            continue
        try:
            movie = MovieSummary.model_validate(item, strict=True)
        except ModelValidationError:
            continue
        if movie.id > 0:
            movies_by_id[movie.id] = movie
    return list(movies_by_id.values())


class FavoritesPersistence:
    def __init__(self, store: Store, kv: Optional[KeyValueStore] = None, config: Optional[Settings] = None):
        self.store = store
        self.config = config or default_settings
        if kv is None:
            from keyflix.core.redis_client import get_redis

            kv = get_redis()
        self.kv = kv
        self.hydrated = False
        self._last_ids_payload: Optional[str] = None
        self._last_movies_payload: Optional[str] = None
        self._pending: Dict[str, str] = {}
        self._writers: Dict[str, asyncio.Task] = {}
        self._unsubscribe: Optional[Callable[[], None]] = None

    async def _read_json(self, key: str) -> Any:
        try:
            raw = await self.kv.get(key)
            if raw is None:
                return None
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            return json.loads(raw)
        except Exception as e:
            raise PersistenceError(f"Failed to read {key}: {e}") from e

    async def _load(self, key: str) -> Any:
        try:
            return await self._read_json(key)
        except PersistenceError as e:
            logger.warning(f"{e}; starting without it")
            return None

    async def hydrate(self) -> None:
        """Load persisted favorites into the store, then start saving changes."""
        ids = normalize_favorite_ids(await self._load(self.config.favorites_storage_key))
        movies = normalize_favorite_movies(await self._load(self.config.favorites_movies_storage_key))

        if ids and movies:
            id_set = set(ids)
            movies = [movie for movie in movies if movie.id in id_set]
            if movies:
                self.store.dispatch(hydrate_movie_entities(movies))
        if ids:
            self.store.dispatch(hydrate_favorites(ids))
            logger.info(f"Restored {len(ids)} favorites")

        self.hydrated = True
        self._unsubscribe = self.store.subscribe(self._on_transition)
        self.reconcile(self.store.state)

    def _on_transition(self, _action: Action, state: AppState) -> None:
        self.reconcile(state)

    def reconcile(self, state: AppState) -> None:
        """Single write point: persist whichever record changed since the last write."""
        if not self.hydrated:
            return

        ids_payload = json.dumps(list(state.favorites.ids))
        if ids_payload != self._last_ids_payload:
            self._last_ids_payload = ids_payload
            self._spawn_write(self.config.favorites_storage_key, ids_payload)

        movies_payload = json.dumps([movie.to_wire() for movie in select_favorite_movies(state)])
        if movies_payload != self._last_movies_payload:
            self._last_movies_payload = movies_payload
            self._spawn_write(self.config.favorites_movies_storage_key, movies_payload)

    def _spawn_write(self, key: str, payload: str) -> None:
        self._pending[key] = payload
        if key not in self._writers:
            self._writers[key] = asyncio.get_running_loop().create_task(self._drain(key))

    async def _drain(self, key: str) -> None:
        """One writer per key: writes land in commit order, newest payload last."""
        try:
            while key in self._pending:
                await self._write(key, self._pending.pop(key))
        finally:
            self._writers.pop(key, None)

    async def _write(self, key: str, payload: str) -> None:
        try:
            await self.kv.set(key, payload)
        except Exception as e:
            logger.warning(f"{PersistenceError(f'Failed to write {key}: {e}')}")

    async def flush(self) -> None:
        """Wait for pending writes."""
        while self._writers:
            await asyncio.gather(*list(self._writers.values()), return_exceptions=True)

    async def close(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        await self.flush()
