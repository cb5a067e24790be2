"""
store.py

Single application state tree for the browser session.

- State is a tree of frozen dataclasses; every transition builds a new tree.
- Transitions are plain actions dispatched through Store.dispatch and reduced
  by pure functions registered in REDUCERS. No reducer performs I/O.
- Listeners (orchestrator, persistence bridge, controllers) observe every
  committed transition as (action, state).
"""
import logging
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Deque, Dict, Iterable, List, Mapping, Optional, Tuple

from keyflix.core.config import settings
from keyflix.core.errors import ValidationError
from keyflix.core.models import MovieDetails, MovieSummary

logger = logging.getLogger(__name__)

POPULAR = "popular"
AIRING_NOW = "airingNow"
FAVORITES = "favorites"
CATEGORIES = (POPULAR, AIRING_NOW)
FILTERS = CATEGORIES + (FAVORITES,)

# Action types
SET_ACTIVE_FILTER = "movies/setActiveFilter"
SET_FOCUSED_FILTER = "movies/setFocusedFilter"
SET_LAST_FOCUSED_MOVIE_ID = "movies/setLastFocusedMovieId"
SET_CATEGORY_PAGE = "movies/setCategoryPage"
REQUEST_CATEGORY_PAGE = "movies/requestCategoryPage"
RECEIVE_CATEGORY_PAGE_SUCCESS = "movies/receiveCategoryPageSuccess"
RECEIVE_CATEGORY_PAGE_FAILURE = "movies/receiveCategoryPageFailure"
HYDRATE_MOVIE_ENTITIES = "movies/hydrateMovieEntities"
SET_SEARCH_QUERY = "movies/setSearchQuery"
CLEAR_SEARCH_RESULTS = "movies/clearSearchResults"
REQUEST_SEARCH = "movies/requestSearch"
RECEIVE_SEARCH_SUCCESS = "movies/receiveSearchSuccess"
RECEIVE_SEARCH_FAILURE = "movies/receiveSearchFailure"
REQUEST_MOVIE_DETAILS = "movies/requestMovieDetails"
RECEIVE_MOVIE_DETAILS_SUCCESS = "movies/receiveMovieDetailsSuccess"
RECEIVE_MOVIE_DETAILS_FAILURE = "movies/receiveMovieDetailsFailure"
HYDRATE_FAVORITES = "favorites/hydrateFavorites"
TOGGLE_FAVORITE = "favorites/toggleFavorite"


@dataclass(frozen=True)
class Action:
    type: str
    payload: Any = None


@dataclass(frozen=True)
class CategoryState:
    page: int = 1
    total_pages: int = 1
    loading: bool = False
    error: Optional[str] = None
    page_to_movie_ids: Mapping[int, Tuple[int, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchState:
    query: str = ""
    loading: bool = False
    error: Optional[str] = None
    result_ids: Tuple[int, ...] = ()
    # Queries shorter than this are not searched
    min_chars: int = field(default_factory=lambda: settings.search_min_chars)


@dataclass(frozen=True)
class DetailsState:
    data: Optional[MovieDetails] = None
    loading: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class FavoritesState:
    ids: Tuple[int, ...] = ()
    _members: frozenset = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_members", frozenset(self.ids))

    def __contains__(self, movie_id: int) -> bool:
        return movie_id in self._members

    def __len__(self) -> int:
        return len(self.ids)


def _initial_categories() -> Dict[str, CategoryState]:
    return {category: CategoryState() for category in CATEGORIES}


@dataclass(frozen=True)
class AppState:
    entities: Mapping[int, MovieSummary] = field(default_factory=dict)
    categories: Mapping[str, CategoryState] = field(default_factory=_initial_categories)
    active_filter: str = POPULAR
    focused_filter: str = POPULAR
    last_focused_movie_id: Optional[int] = None
    search: SearchState = field(default_factory=SearchState)
    details_by_id: Mapping[int, DetailsState] = field(default_factory=dict)
    favorites: FavoritesState = field(default_factory=FavoritesState)


# ---------------------------------------------------------------------------
# Payload validation helpers
# ---------------------------------------------------------------------------

def _is_movie_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _require_category(category: str) -> str:
    if category not in CATEGORIES:
        raise ValidationError(f"Unknown category: {category!r}")
    return category


def _require_filter(option: str) -> str:
    if option not in FILTERS:
        raise ValidationError(f"Unknown filter: {option!r}")
    return option


def _require_movie_id(movie_id: Any) -> int:
    if not _is_movie_id(movie_id):
        raise ValidationError("Invalid movie id.")
    return movie_id


def _page_at_least_one(page: Any) -> int:
    try:
        return max(1, int(page))
    except (TypeError, ValueError, OverflowError):
        return 1


# ---------------------------------------------------------------------------
# Action creators
# ---------------------------------------------------------------------------

def set_active_filter(option: str) -> Action:
    return Action(SET_ACTIVE_FILTER, _require_filter(option))


def set_focused_filter(option: str) -> Action:
    return Action(SET_FOCUSED_FILTER, _require_filter(option))


def set_last_focused_movie_id(movie_id: Optional[int]) -> Action:
    if movie_id is not None:
        _require_movie_id(movie_id)
    return Action(SET_LAST_FOCUSED_MOVIE_ID, movie_id)


def set_category_page(category: str, page: int) -> Action:
    return Action(SET_CATEGORY_PAGE, {"category": _require_category(category), "page": page})


def request_category_page(category: str, page: int, force: bool = False) -> Action:
    return Action(REQUEST_CATEGORY_PAGE, {
        "category": _require_category(category),
        "page": _page_at_least_one(page),
        "force": force,
    })


def receive_category_page_success(category: str, page: int, total_pages: int, results: Iterable[MovieSummary]) -> Action:
    return Action(RECEIVE_CATEGORY_PAGE_SUCCESS, {
        "category": _require_category(category),
        "page": page,
        "total_pages": total_pages,
        "results": tuple(results),
    })


def receive_category_page_failure(category: str, error: str) -> Action:
    return Action(RECEIVE_CATEGORY_PAGE_FAILURE, {"category": _require_category(category), "error": error})


def hydrate_movie_entities(movies: Iterable[MovieSummary]) -> Action:
    return Action(HYDRATE_MOVIE_ENTITIES, tuple(movies))


def set_search_query(text: str) -> Action:
    return Action(SET_SEARCH_QUERY, text if isinstance(text, str) else "")


def clear_search_results() -> Action:
    return Action(CLEAR_SEARCH_RESULTS)


def request_search() -> Action:
    return Action(REQUEST_SEARCH)


def receive_search_success(query: str, results: Iterable[MovieSummary]) -> Action:
    return Action(RECEIVE_SEARCH_SUCCESS, {"query": query, "results": tuple(results)})


def receive_search_failure(error: str) -> Action:
    return Action(RECEIVE_SEARCH_FAILURE, error)


def request_movie_details(movie_id: int) -> Action:
    return Action(REQUEST_MOVIE_DETAILS, _require_movie_id(movie_id))


def receive_movie_details_success(details: MovieDetails) -> Action:
    return Action(RECEIVE_MOVIE_DETAILS_SUCCESS, details)


def receive_movie_details_failure(movie_id: int, error: str) -> Action:
    return Action(RECEIVE_MOVIE_DETAILS_FAILURE, {"movie_id": _require_movie_id(movie_id), "error": error})


def hydrate_favorites(ids: Iterable[Any]) -> Action:
    return Action(HYDRATE_FAVORITES, tuple(ids))


def toggle_favorite(movie_id: int) -> Action:
    return Action(TOGGLE_FAVORITE, _require_movie_id(movie_id))


# ---------------------------------------------------------------------------
# Reducers
# ---------------------------------------------------------------------------

def _index_movies(entities: Mapping[int, MovieSummary], movies: Iterable[MovieSummary]) -> Dict[int, MovieSummary]:
    merged = dict(entities)
    for movie in movies:
        merged[movie.id] = movie
    return merged


def _with_category(state: AppState, category: str, **changes) -> AppState:
    categories = dict(state.categories)
    categories[category] = replace(categories[category], **changes)
    return replace(state, categories=categories)


def _reduce_set_active_filter(state: AppState, option: str) -> AppState:
    return replace(state, active_filter=option)


def _reduce_set_focused_filter(state: AppState, option: str) -> AppState:
    return replace(state, focused_filter=option)


def _reduce_set_last_focused_movie_id(state: AppState, movie_id: Optional[int]) -> AppState:
    return replace(state, last_focused_movie_id=movie_id)


def _reduce_set_category_page(state: AppState, payload: dict) -> AppState:
    return _with_category(state, payload["category"], page=_page_at_least_one(payload["page"]))


def _reduce_request_category_page(state: AppState, payload: dict) -> AppState:
    return _with_category(state, payload["category"], loading=True, error=None)


def _reduce_receive_category_page_success(state: AppState, payload: dict) -> AppState:
    category = payload["category"]
    page = _page_at_least_one(payload["page"])
    results = payload["results"]
    pages = dict(state.categories[category].page_to_movie_ids)
    pages[page] = tuple(movie.id for movie in results)
    state = _with_category(
        state,
        category,
        loading=False,
        error=None,
        page=page,
        total_pages=_page_at_least_one(payload["total_pages"]),
        page_to_movie_ids=pages,
    )
    return replace(state, entities=_index_movies(state.entities, results))


def _reduce_receive_category_page_failure(state: AppState, payload: dict) -> AppState:
    return _with_category(state, payload["category"], loading=False, error=payload["error"])


def _reduce_hydrate_movie_entities(state: AppState, movies: Tuple[MovieSummary, ...]) -> AppState:
    valid = [movie for movie in movies if _is_movie_id(movie.id)]
    return replace(state, entities=_index_movies(state.entities, valid))


def _reduce_set_search_query(state: AppState, text: str) -> AppState:
    if len(text.strip()) < state.search.min_chars:
        return replace(state, search=SearchState(query=text, min_chars=state.search.min_chars))
    return replace(state, search=replace(state.search, query=text))


def _reduce_clear_search_results(state: AppState, _payload: Any) -> AppState:
    return replace(state, search=replace(state.search, loading=False, error=None, result_ids=()))


def _reduce_request_search(state: AppState, _payload: Any) -> AppState:
    return replace(state, search=replace(state.search, loading=True, error=None))


def _reduce_receive_search_success(state: AppState, payload: dict) -> AppState:
    # Out-of-order delivery: only the answer to the live query is accepted
    if state.search.query.strip() != payload["query"].strip():
        return state
    results = payload["results"]
    search = replace(state.search, loading=False, error=None, result_ids=tuple(movie.id for movie in results))
    return replace(state, search=search, entities=_index_movies(state.entities, results))


def _reduce_receive_search_failure(state: AppState, error: str) -> AppState:
    return replace(state, search=replace(state.search, loading=False, error=error))


def _reduce_request_movie_details(state: AppState, movie_id: int) -> AppState:
    existing = state.details_by_id.get(movie_id)
    details_by_id = dict(state.details_by_id)
    details_by_id[movie_id] = DetailsState(data=existing.data if existing else None, loading=True, error=None)
    return replace(state, details_by_id=details_by_id)


def _reduce_receive_movie_details_success(state: AppState, details: MovieDetails) -> AppState:
    details_by_id = dict(state.details_by_id)
    details_by_id[details.id] = DetailsState(data=details, loading=False, error=None)
    entities = _index_movies(state.entities, [details.to_summary()])
    return replace(state, details_by_id=details_by_id, entities=entities)


def _reduce_receive_movie_details_failure(state: AppState, payload: dict) -> AppState:
    movie_id = payload["movie_id"]
    existing = state.details_by_id.get(movie_id)
    details_by_id = dict(state.details_by_id)
    details_by_id[movie_id] = DetailsState(data=existing.data if existing else None, loading=False, error=payload["error"])
    return replace(state, details_by_id=details_by_id)


def _reduce_hydrate_favorites(state: AppState, ids: Tuple[Any, ...]) -> AppState:
    unique = tuple(dict.fromkeys(movie_id for movie_id in ids if _is_movie_id(movie_id)))
    return replace(state, favorites=FavoritesState(ids=unique))


def _reduce_toggle_favorite(state: AppState, movie_id: int) -> AppState:
    ids = state.favorites.ids
    if movie_id in state.favorites:
        ids = tuple(existing for existing in ids if existing != movie_id)
    else:
        ids = ids + (movie_id,)
    return replace(state, favorites=FavoritesState(ids=ids))


REDUCERS: Dict[str, Callable[[AppState, Any], AppState]] = {
    SET_ACTIVE_FILTER: _reduce_set_active_filter,
    SET_FOCUSED_FILTER: _reduce_set_focused_filter,
    SET_LAST_FOCUSED_MOVIE_ID: _reduce_set_last_focused_movie_id,
    SET_CATEGORY_PAGE: _reduce_set_category_page,
    REQUEST_CATEGORY_PAGE: _reduce_request_category_page,
    RECEIVE_CATEGORY_PAGE_SUCCESS: _reduce_receive_category_page_success,
    RECEIVE_CATEGORY_PAGE_FAILURE: _reduce_receive_category_page_failure,
    HYDRATE_MOVIE_ENTITIES: _reduce_hydrate_movie_entities,
    SET_SEARCH_QUERY: _reduce_set_search_query,
    CLEAR_SEARCH_RESULTS: _reduce_clear_search_results,
    REQUEST_SEARCH: _reduce_request_search,
    RECEIVE_SEARCH_SUCCESS: _reduce_receive_search_success,
    RECEIVE_SEARCH_FAILURE: _reduce_receive_search_failure,
    REQUEST_MOVIE_DETAILS: _reduce_request_movie_details,
    RECEIVE_MOVIE_DETAILS_SUCCESS: _reduce_receive_movie_details_success,
    RECEIVE_MOVIE_DETAILS_FAILURE: _reduce_receive_movie_details_failure,
    HYDRATE_FAVORITES: _reduce_hydrate_favorites,
    TOGGLE_FAVORITE: _reduce_toggle_favorite,
}


def reduce(state: AppState, action: Action) -> AppState:
    reducer = REDUCERS.get(action.type)
    if reducer is None:
        raise ValidationError(f"Unknown transition: {action.type}")
    return reducer(state, action.payload)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

Listener = Callable[[Action, AppState], None]


class Store:
    """Versioned state container. The only way to change state is dispatch()."""

    def __init__(
        self,
        initial_state: Optional[AppState] = None,
        log_size: Optional[int] = None,
        search_min_chars: Optional[int] = None,
    ):
        self._state = initial_state or AppState()
        if search_min_chars is not None:
            self._state = replace(self._state, search=replace(self._state.search, min_chars=search_min_chars))
        self._version = 0
        self._listeners: List[Listener] = []
        self._pending: Deque[Action] = deque()
        self._dispatching = False
        self._log: Deque[Tuple[int, Action]] = deque(maxlen=log_size or settings.transition_log_size)

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def version(self) -> int:
        return self._version

    @property
    def log(self) -> Tuple[Tuple[int, Action], ...]:
        return tuple(self._log)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: Action) -> AppState:
        """Apply a transition and notify listeners.

        Dispatches issued from inside a listener are queued and applied after
        the current transition has been delivered to every listener, so
        listeners always observe transitions in commit order.
        """
        if action.type not in REDUCERS:
            raise ValidationError(f"Unknown transition: {action.type}")
        self._pending.append(action)
        if self._dispatching:
            return self._state

        self._dispatching = True
        try:
            while self._pending:
                self._apply(self._pending.popleft())
        finally:
            self._dispatching = False
        return self._state

    def _apply(self, action: Action) -> None:
        self._state = reduce(self._state, action)
        self._version += 1
        self._log.append((self._version, action))
        logger.debug(f"v{self._version} {action.type}")
        for listener in list(self._listeners):
            try:
                listener(action, self._state)
            except Exception as e:
                logger.error(f"Store listener failed on {action.type}: {e}", exc_info=True)


# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------

def search_is_active(state: AppState) -> bool:
    return len(state.search.query.strip()) >= state.search.min_chars


def select_active_category(state: AppState) -> Optional[str]:
    return state.active_filter if state.active_filter in CATEGORIES else None


def has_cached_page(state: AppState, category: str) -> bool:
    category_state = state.categories[category]
    return len(category_state.page_to_movie_ids.get(category_state.page, ())) > 0


def select_visible_movie_ids(state: AppState) -> Tuple[int, ...]:
    if search_is_active(state):
        return state.search.result_ids
    if state.active_filter == FAVORITES:
        return state.favorites.ids
    category_state = state.categories[state.active_filter]
    return tuple(category_state.page_to_movie_ids.get(category_state.page, ()))


def _placeholder_summary(movie_id: int) -> MovieSummary:
    return MovieSummary(
        id=movie_id,
        title=f"Movie #{movie_id}",
        overview="No cached data. Open details to load this movie.",
    )


def select_visible_movies(state: AppState) -> List[MovieSummary]:
    movies = []
    for movie_id in select_visible_movie_ids(state):
        if movie_id <= 0:
            continue
        movies.append(state.entities.get(movie_id) or _placeholder_summary(movie_id))
    return movies


def select_pagination_visible(state: AppState) -> bool:
    return select_active_category(state) is not None and not search_is_active(state)


def select_loading(state: AppState) -> bool:
    if search_is_active(state):
        return state.search.loading
    category = select_active_category(state)
    return state.categories[category].loading if category else False


def select_error(state: AppState) -> Optional[str]:
    if search_is_active(state):
        return state.search.error
    category = select_active_category(state)
    return state.categories[category].error if category else None


def select_heading(state: AppState) -> str:
    if search_is_active(state):
        return f'Search results for "{state.search.query.strip()}"'
    if state.active_filter == FAVORITES:
        return "My Favorites"
    if state.active_filter == POPULAR:
        return "Popular Movies"
    return "Airing Now"


def select_details(state: AppState, movie_id: int) -> Optional[DetailsState]:
    return state.details_by_id.get(movie_id)


def select_favorite_movies(state: AppState) -> List[MovieSummary]:
    return [state.entities[movie_id] for movie_id in state.favorites.ids if movie_id in state.entities]


def is_favorite(state: AppState, movie_id: int) -> bool:
    return movie_id in state.favorites
