"""
browser.py

Browse view controller. Feeds key events through the focus state machine,
applies the resulting effects to the store and owns the deferred category
activation timer. Rendering is left to whoever consumes view() and the
on_effect callback.
"""
import logging
from dataclasses import dataclass, replace
from typing import Callable, Optional, Tuple, Union

from keyflix.core.config import Settings, settings as default_settings
from keyflix.core.models import MovieSummary
from keyflix.core.store import (
    CATEGORIES,
    FAVORITES,
    POPULAR,
    Store,
    has_cached_page,
    request_category_page,
    select_active_category,
    select_error,
    select_heading,
    select_loading,
    select_pagination_visible,
    select_visible_movies,
    set_active_filter,
    set_category_page,
    set_focused_filter,
    set_last_focused_movie_id,
    set_search_query,
)
from keyflix.services.focus import (
    CONTROL_ORDER,
    ActivateControl,
    ApplyPageDelta,
    ClearSearch,
    FocusCard,
    FocusControl,
    FocusPagination,
    FocusState,
    Key,
    NavigationContext,
    OpenDetails,
    Zone,
    clamp_card_index,
    navigate,
    restore_focus,
)
from keyflix.services.timers import TimerRegistry

logger = logging.getLogger(__name__)

CATEGORY_FOCUS_TIMER = "category-focus"


@dataclass(frozen=True)
class BrowseView:
    heading: str
    movies: Tuple[MovieSummary, ...]
    favorite_ids: Tuple[int, ...]
    focus: FocusState
    active_filter: str
    query: str
    loading: bool
    error: Optional[str]
    pagination_visible: bool
    page: int
    total_pages: int

    @property
    def previous_disabled(self) -> bool:
        return self.page <= 1

    @property
    def next_disabled(self) -> bool:
        return self.page >= self.total_pages

    @property
    def empty(self) -> bool:
        return not self.loading and not self.movies


class BrowseController:
    def __init__(
        self,
        store: Store,
        config: Optional[Settings] = None,
        navigate_to: Optional[Callable[[str], None]] = None,
        on_effect: Optional[Callable[[object], None]] = None,
    ):
        self.store = store
        self.config = config or default_settings
        self.navigate_to = navigate_to or (lambda path: None)
        self.on_effect = on_effect
        self.focus = FocusState()
        self.timers = TimerRegistry()
        self._initialized_focus = False

    def start(self) -> None:
        self.store.dispatch(request_category_page(POPULAR, 1))

    def close(self) -> None:
        self.timers.cancel_all()

    def context(self) -> NavigationContext:
        state = self.store.state
        return NavigationContext(
            visible_ids=tuple(movie.id for movie in select_visible_movies(state)),
            pagination_visible=select_pagination_visible(state),
            columns=self.config.grid_columns,
            query=state.search.query,
        )

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def handle_key(self, key: Union[Key, str]) -> bool:
        """Process one key press. Returns False for keys the view ignores."""
        transition = navigate(self.focus, key, self.context())
        if not transition.handled:
            return False

        previous_zone = self.focus.zone
        self.focus = transition.focus
        if self.focus.zone != previous_zone:
            self.timers.cancel(CATEGORY_FOCUS_TIMER)
        for effect in transition.effects:
            self._apply(effect)
        return True

    def type_text(self, text: str) -> None:
        """Replace the search box contents. Only valid while the search box has focus."""
        if self.focus.zone is not Zone.SEARCH:
            return
        self.store.dispatch(set_search_query(text))

    def _apply(self, effect: object) -> None:
        if isinstance(effect, FocusControl):
            self._control_focused(effect.index)
        elif isinstance(effect, (FocusCard, FocusPagination)):
            self.timers.cancel(CATEGORY_FOCUS_TIMER)
        elif isinstance(effect, ActivateControl):
            self.activate_filter(effect.name)
        elif isinstance(effect, OpenDetails):
            self.open_details(effect.movie_id)
        elif isinstance(effect, ApplyPageDelta):
            self.apply_page_delta(effect.delta)
        elif isinstance(effect, ClearSearch):
            self.store.dispatch(set_search_query(""))

        if self.on_effect is not None:
            self.on_effect(effect)

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def _control_focused(self, index: int) -> None:
        self.timers.cancel(CATEGORY_FOCUS_TIMER)
        control = CONTROL_ORDER[index]
        if control not in (*CATEGORIES, FAVORITES):
            return
        self.store.dispatch(set_focused_filter(control))
        if control in CATEGORIES and control != self.store.state.active_filter:
            self.timers.schedule(CATEGORY_FOCUS_TIMER, self.config.category_focus_delay_seconds, self._activate_from_focus, control)

    def _activate_from_focus(self, category: str) -> None:
        logger.debug(f"Deferred activation of {category}")
        self.store.dispatch(set_active_filter(category))
        self.store.dispatch(request_category_page(category, self.store.state.categories[category].page))

    def activate_filter(self, option: str) -> None:
        self.timers.cancel(CATEGORY_FOCUS_TIMER)
        was_active = self.store.state.active_filter == option
        self.store.dispatch(set_focused_filter(option))
        self.store.dispatch(set_active_filter(option))

        if option in CATEGORIES:
            state = self.store.state
            if not was_active or not has_cached_page(state, option):
                self.store.dispatch(request_category_page(option, state.categories[option].page))

    # ------------------------------------------------------------------
    # Pagination / details
    # ------------------------------------------------------------------

    def apply_page_delta(self, delta: int) -> bool:
        state = self.store.state
        category = select_active_category(state)
        if category is None:
            return False

        category_state = state.categories[category]
        next_page = max(1, min(category_state.page + delta, category_state.total_pages))
        if next_page == category_state.page:
            return False

        self.store.dispatch(set_category_page(category, next_page))
        self.store.dispatch(request_category_page(category, next_page))
        self.focus = replace(self.focus, card_index=0)
        return True

    def open_details(self, movie_id: int) -> None:
        self.store.dispatch(set_last_focused_movie_id(movie_id))
        self.navigate_to(f"/movie/{movie_id}")

    # ------------------------------------------------------------------
    # Paint
    # ------------------------------------------------------------------

    def paint(self) -> BrowseView:
        """Reconcile focus with what is visible and return the view model."""
        ctx = self.context()
        self.focus = clamp_card_index(self.focus, ctx.visible_count)

        if not self._initialized_focus:
            last_focused = self.store.state.last_focused_movie_id
            # A recorded card can only be restored once cards are on screen
            if last_focused is None or ctx.visible_count > 0:
                transition = restore_focus(self.focus, last_focused, ctx.visible_ids)
                self.focus = transition.focus
                for effect in transition.effects:
                    self._apply(effect)
                self._initialized_focus = True

        return self.view()

    def view(self) -> BrowseView:
        state = self.store.state
        category = select_active_category(state)
        category_state = state.categories[category] if category else None
        return BrowseView(
            heading=select_heading(state),
            movies=tuple(select_visible_movies(state)),
            favorite_ids=state.favorites.ids,
            focus=self.focus,
            active_filter=state.active_filter,
            query=state.search.query,
            loading=select_loading(state),
            error=select_error(state),
            pagination_visible=select_pagination_visible(state),
            page=category_state.page if category_state else 1,
            total_pages=category_state.total_pages if category_state else 1,
        )

