"""
orchestrator.py

Background routines bridging store transition requests to the remote data
gateway:

- category routine: latest-wins per scope key (generation counter plus
  task-handle table), scope "category" or "global" from settings
- search routine: 500 ms debounce, sliding-window rate limit, stale-result
  rejection against the live query
- details routine: cache short-circuit, latest-wins per movie id

Every failure is turned into a store error at this boundary; routines keep
running after errors.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, Hashable, List, Optional, Set

from keyflix.core.config import Settings, settings as default_settings
from keyflix.core.errors import GatewayError
from keyflix.core.store import (
    REQUEST_CATEGORY_PAGE,
    REQUEST_MOVIE_DETAILS,
    SET_SEARCH_QUERY,
    Action,
    AppState,
    Store,
    clear_search_results,
    receive_category_page_failure,
    receive_category_page_success,
    receive_movie_details_failure,
    receive_movie_details_success,
    receive_search_failure,
    receive_search_success,
    request_search,
    select_details,
)
from keyflix.services.gateway import MovieGateway
from keyflix.services.rate_limit import SlidingWindowLimiter
from keyflix.services.timers import TimerRegistry

logger = logging.getLogger(__name__)

CATEGORY_ROUTINE = "category"
SEARCH_ROUTINE = "search"
DETAILS_ROUTINE = "details"

ROUTINE_TRIGGERS = {
    REQUEST_CATEGORY_PAGE: CATEGORY_ROUTINE,
    SET_SEARCH_QUERY: SEARCH_ROUTINE,
    REQUEST_MOVIE_DETAILS: DETAILS_ROUTINE,
}


class Orchestrator:
    def __init__(
        self,
        store: Store,
        gateway: MovieGateway,
        config: Optional[Settings] = None,
        limiter: Optional[SlidingWindowLimiter] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.config = config or default_settings
        if self.config.category_cancel_scope not in ("category", "global"):
            raise ValueError(f"Unknown category cancel scope: {self.config.category_cancel_scope!r}")
        self.limiter = limiter or SlidingWindowLimiter(
            self.config.search_max_requests, self.config.search_window_seconds, name="search"
        )
        self.timers = TimerRegistry()
        self._queues: Dict[str, asyncio.Queue] = {name: asyncio.Queue() for name in ROUTINE_TRIGGERS.values()}
        self._routines: List[asyncio.Task] = []
        self._inflight: Dict[Hashable, asyncio.Task] = {}
        self._generations: Dict[Hashable, int] = {}
        self._search_tasks: Set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return bool(self._routines)

    def start(self) -> None:
        if self._routines:
            return
        self._unsubscribe = self.store.subscribe(self._on_transition)
        self._routines = [
            asyncio.create_task(self._category_routine(), name="keyflix-category-routine"),
            asyncio.create_task(self._search_routine(), name="keyflix-search-routine"),
            asyncio.create_task(self._details_routine(), name="keyflix-details-routine"),
        ]
        logger.info(f"Orchestrator started (category cancel scope: {self.config.category_cancel_scope})")

    async def stop(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        self.timers.cancel_all()
        tasks = [*self._routines, *self._inflight.values(), *self._search_tasks]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._routines = []
        self._inflight.clear()
        self._search_tasks.clear()
        logger.info("Orchestrator stopped")

    async def wait_idle(self, timeout: Optional[float] = None) -> None:
        """Wait until no request is queued, debounced or in flight."""

        async def _wait():
            while True:
                await asyncio.sleep(0)
                tasks = [t for t in (*self._inflight.values(), *self._search_tasks) if not t.done()]
                queued = any(not queue.empty() for queue in self._queues.values())
                if not tasks and not queued and not len(self.timers):
                    return
                if tasks:
                    await asyncio.wait(tasks)
                else:
                    await asyncio.sleep(0.005)

        await asyncio.wait_for(_wait(), timeout)

    def _on_transition(self, action: Action, _state: AppState) -> None:
        routine = ROUTINE_TRIGGERS.get(action.type)
        if routine is not None:
            self._queues[routine].put_nowait(action)

    # ------------------------------------------------------------------
    # Latest-wins bookkeeping
    # ------------------------------------------------------------------

    def _spawn_latest(self, key: Hashable, factory: Callable[[int], Awaitable[None]]) -> asyncio.Task:
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation

        previous = self._inflight.pop(key, None)
        if previous is not None and not previous.done():
            logger.debug(f"Abandoning in-flight request for {key!r}")
            previous.cancel()

        task = asyncio.create_task(factory(generation))
        self._inflight[key] = task

        def _forget(finished: asyncio.Task, key=key):
            if self._inflight.get(key) is finished:
                del self._inflight[key]

        task.add_done_callback(_forget)
        return task

    def _is_current(self, key: Hashable, generation: int) -> bool:
        return self._generations.get(key) == generation

    def _category_key(self, category: str) -> Hashable:
        if self.config.category_cancel_scope == "global":
            return CATEGORY_ROUTINE
        return (CATEGORY_ROUTINE, category)

    @staticmethod
    def _error_message(error: Exception, fallback: str) -> str:
        if isinstance(error, GatewayError):
            return error.message
        logger.error(f"Unexpected gateway failure: {error}", exc_info=error)
        return fallback

    # ------------------------------------------------------------------
    # Category routine
    # ------------------------------------------------------------------

    async def _category_routine(self) -> None:
        queue = self._queues[CATEGORY_ROUTINE]
        while True:
            action = await queue.get()
            category = action.payload["category"]
            page = action.payload["page"]
            key = self._category_key(category)
            self._spawn_latest(key, lambda generation, key=key, category=category, page=page: self._fetch_category(
                key, generation, category, page
            ))

    async def _fetch_category(self, key: Hashable, generation: int, category: str, page: int) -> None:
        try:
            response = await self.gateway.fetch_category_page(category, page)
        except asyncio.CancelledError:
            logger.debug(f"Category fetch {category} page {page} cancelled")
            raise
        except Exception as e:
            message = self._error_message(e, "Failed to load movies.")
            if self._is_current(key, generation):
                logger.warning(f"Category fetch {category} page {page} failed: {message}")
                self.store.dispatch(receive_category_page_failure(category, message))
            return

        if not self._is_current(key, generation):
            logger.debug(f"Discarding superseded {category} page {page} response")
            return
        self.store.dispatch(
            receive_category_page_success(category, response.page, response.total_pages, response.results)
        )

    # ------------------------------------------------------------------
    # Search routine
    # ------------------------------------------------------------------

    async def _search_routine(self) -> None:
        queue = self._queues[SEARCH_ROUTINE]
        while True:
            action = await queue.get()
            self.timers.schedule(SEARCH_ROUTINE, self.config.search_debounce_seconds, self._start_search, action.payload)

    def _start_search(self, raw_query: str) -> None:
        task = asyncio.create_task(self._run_search(raw_query))
        self._search_tasks.add(task)
        task.add_done_callback(self._search_tasks.discard)

    def _query_is_live(self, query: str) -> bool:
        return self.store.state.search.query.strip() == query.strip()

    async def _run_search(self, raw_query: str) -> None:
        query = raw_query.strip()
        if len(query) < self.store.state.search.min_chars:
            self.store.dispatch(clear_search_results())
            return

        self.store.dispatch(request_search())
        try:
            await self.limiter.acquire()
            logger.debug(f"Searching for '{query}'")
            response = await self.gateway.search_movies(query)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = self._error_message(e, "Search failed.")
            if self._query_is_live(query):
                self.store.dispatch(receive_search_failure(message))
            return

        if not self._query_is_live(response.query):
            logger.debug(f"Discarding stale search results for '{response.query}'")
            return
        self.store.dispatch(receive_search_success(response.query, response.results))

    # ------------------------------------------------------------------
    # Details routine
    # ------------------------------------------------------------------

    async def _details_routine(self) -> None:
        queue = self._queues[DETAILS_ROUTINE]
        while True:
            action = await queue.get()
            movie_id = action.payload
            key = (DETAILS_ROUTINE, movie_id)
            self._spawn_latest(key, lambda generation, key=key, movie_id=movie_id: self._fetch_details(
                key, generation, movie_id
            ))

    async def _fetch_details(self, key: Hashable, generation: int, movie_id: int) -> None:
        cached = select_details(self.store.state, movie_id)
        if cached is not None and cached.data is not None:
            self.store.dispatch(receive_movie_details_success(cached.data))
            return

        try:
            details = await self.gateway.fetch_movie_details(movie_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = self._error_message(e, "Failed to load movie details.")
            if self._is_current(key, generation):
                self.store.dispatch(receive_movie_details_failure(movie_id, message))
            return

        if self._is_current(key, generation):
            self.store.dispatch(receive_movie_details_success(details))
