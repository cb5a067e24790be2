"""
focus.py

Keyboard focus state machine for the browse and detail views.

navigate() is a pure function of (focus, key, context). It never touches the
store; it returns the next FocusState plus a tuple of effects that a
controller applies (move input focus, activate a control, open details,
change page, clear the search box).
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Sequence, Tuple, Union

from keyflix.core.store import AIRING_NOW, FAVORITES, POPULAR


class Key(str, Enum):
    ARROW_UP = "ArrowUp"
    ARROW_DOWN = "ArrowDown"
    ARROW_LEFT = "ArrowLeft"
    ARROW_RIGHT = "ArrowRight"
    ENTER = "Enter"
    ESCAPE = "Escape"
    TAB = "Tab"


_KEY_ALIASES = {
    "up": Key.ARROW_UP,
    "down": Key.ARROW_DOWN,
    "left": Key.ARROW_LEFT,
    "right": Key.ARROW_RIGHT,
    "enter": Key.ENTER,
    "return": Key.ENTER,
    "escape": Key.ESCAPE,
    "esc": Key.ESCAPE,
    "tab": Key.TAB,
}


def parse_key(name: Union[str, Key, None]) -> Optional[Key]:
    """Normalize a key name ("ArrowUp", "up", "Esc", ...). Unknown keys -> None."""
    if name is None or isinstance(name, Key):
        return name
    try:
        return Key(name)
    except ValueError:
        return _KEY_ALIASES.get(name.strip().lower())


class Zone(str, Enum):
    FILTERS = "filters"
    SEARCH = "search"
    GRID = "grid"
    PAGINATION = "pagination"


SEARCH_CONTROL = "search"
CONTROL_ORDER = (POPULAR, AIRING_NOW, FAVORITES, SEARCH_CONTROL)
PREVIOUS_PAGE, NEXT_PAGE = 0, 1


@dataclass(frozen=True)
class FocusState:
    zone: Zone = Zone.FILTERS
    control_index: int = 0
    card_index: int = 0
    pagination_index: int = PREVIOUS_PAGE

    @property
    def control(self) -> str:
        return CONTROL_ORDER[self.control_index]


@dataclass(frozen=True)
class NavigationContext:
    visible_ids: Tuple[int, ...] = ()
    pagination_visible: bool = False
    columns: int = 4
    query: str = ""

    @property
    def visible_count(self) -> int:
        return len(self.visible_ids)


# Effects

@dataclass(frozen=True)
class FocusControl:
    index: int


@dataclass(frozen=True)
class FocusCard:
    index: int
    scroll_into_view: bool = True


@dataclass(frozen=True)
class FocusPagination:
    index: int


@dataclass(frozen=True)
class ActivateControl:
    name: str


@dataclass(frozen=True)
class OpenDetails:
    movie_id: int


@dataclass(frozen=True)
class ApplyPageDelta:
    delta: int


@dataclass(frozen=True)
class ClearSearch:
    pass


@dataclass(frozen=True)
class Transition:
    focus: FocusState
    effects: Tuple[object, ...] = ()
    handled: bool = True


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def focus_control(focus: FocusState, index: int) -> Transition:
    index = clamp(index, 0, len(CONTROL_ORDER) - 1)
    zone = Zone.SEARCH if CONTROL_ORDER[index] == SEARCH_CONTROL else Zone.FILTERS
    return Transition(replace(focus, zone=zone, control_index=index), (FocusControl(index),))


def focus_card(focus: FocusState, index: int, ctx: NavigationContext) -> Transition:
    if ctx.visible_count == 0:
        return Transition(focus)
    index = clamp(index, 0, ctx.visible_count - 1)
    return Transition(replace(focus, zone=Zone.GRID, card_index=index), (FocusCard(index),))


def focus_pagination(focus: FocusState, index: int, ctx: NavigationContext) -> Transition:
    if not ctx.pagination_visible:
        return Transition(focus)
    index = PREVIOUS_PAGE if index <= 0 else NEXT_PAGE
    return Transition(replace(focus, zone=Zone.PAGINATION, pagination_index=index), (FocusPagination(index),))


def _navigate_controls(focus: FocusState, key: Key, ctx: NavigationContext) -> Transition:
    if key is Key.ARROW_RIGHT:
        return focus_control(focus, focus.control_index + 1)
    if key is Key.ARROW_LEFT:
        return focus_control(focus, focus.control_index - 1)
    if key is Key.ARROW_DOWN:
        if ctx.visible_count > 0:
            return focus_card(focus, 0, ctx)
        return focus_pagination(focus, PREVIOUS_PAGE, ctx)
    if key is Key.ENTER and focus.control != SEARCH_CONTROL:
        return Transition(focus, (ActivateControl(focus.control),))
    return Transition(focus)


def _navigate_grid(focus: FocusState, key: Key, ctx: NavigationContext) -> Transition:
    count = ctx.visible_count
    if count == 0:
        return focus_control(focus, 0)

    index = min(focus.card_index, count - 1)
    if key is Key.ARROW_RIGHT:
        return focus_card(focus, index + 1, ctx)
    if key is Key.ARROW_LEFT:
        return focus_card(focus, index - 1, ctx)
    if key is Key.ARROW_DOWN:
        below = index + ctx.columns
        if below < count:
            return focus_card(focus, below, ctx)
        return focus_pagination(focus, PREVIOUS_PAGE, ctx)
    if key is Key.ARROW_UP:
        above = index - ctx.columns
        if above >= 0:
            return focus_card(focus, above, ctx)
        return focus_control(focus, focus.control_index)
    if key is Key.ENTER:
        return Transition(focus, (OpenDetails(ctx.visible_ids[index]),))
    return Transition(focus)


def _navigate_pagination(focus: FocusState, key: Key, ctx: NavigationContext) -> Transition:
    if key is Key.ARROW_LEFT:
        return focus_pagination(focus, PREVIOUS_PAGE, ctx)
    if key is Key.ARROW_RIGHT:
        return focus_pagination(focus, NEXT_PAGE, ctx)
    if key is Key.ARROW_UP:
        if ctx.visible_count > 0:
            return focus_card(focus, min(focus.card_index, ctx.visible_count - 1), ctx)
        return focus_control(focus, 0)
    if key is Key.ENTER:
        return Transition(focus, (ApplyPageDelta(-1 if focus.pagination_index == PREVIOUS_PAGE else 1),))
    return Transition(focus)


def navigate(focus: FocusState, key: Union[Key, str, None], ctx: NavigationContext) -> Transition:
    """Compute the next focus for a key press in the browse view."""
    key = parse_key(key)
    if key is None:
        return Transition(focus, handled=False)

    # Native tab traversal is never allowed to move focus
    if key is Key.TAB:
        return Transition(focus)

    if key is Key.ESCAPE:
        cleared = (ClearSearch(),) if ctx.query else ()
        moved = focus_control(focus, 0)
        return Transition(moved.focus, cleared + moved.effects)

    if focus.zone in (Zone.FILTERS, Zone.SEARCH):
        return _navigate_controls(focus, key, ctx)
    if focus.zone is Zone.GRID:
        return _navigate_grid(focus, key, ctx)
    return _navigate_pagination(focus, key, ctx)


def clamp_card_index(focus: FocusState, visible_count: int) -> FocusState:
    """Pull the card index back inside the grid after the visible set shrank."""
    if visible_count == 0:
        return replace(focus, card_index=0) if focus.card_index else focus
    if focus.card_index >= visible_count:
        return replace(focus, card_index=visible_count - 1)
    return focus


def restore_focus(focus: FocusState, last_focused_movie_id: Optional[int], visible_ids: Sequence[int]) -> Transition:
    """First-paint focus: the previously viewed card if visible, else the first control."""
    if last_focused_movie_id is not None and last_focused_movie_id in visible_ids:
        index = list(visible_ids).index(last_focused_movie_id)
        return Transition(replace(focus, zone=Zone.GRID, card_index=index), (FocusCard(index),))
    return focus_control(focus, 0)


# ---------------------------------------------------------------------------
# Detail view
# ---------------------------------------------------------------------------

BACK_ACTION, FAVORITE_ACTION = 0, 1


@dataclass(frozen=True)
class DetailFocus:
    action_index: int = BACK_ACTION


@dataclass(frozen=True)
class FocusAction:
    index: int


@dataclass(frozen=True)
class ScrollDetails:
    delta: int


@dataclass(frozen=True)
class NavigateHome:
    pass


@dataclass(frozen=True)
class ToggleFavorite:
    movie_id: int


@dataclass(frozen=True)
class DetailTransition:
    focus: DetailFocus
    effects: Tuple[object, ...] = ()
    handled: bool = True


def navigate_details(focus: DetailFocus, key: Union[Key, str, None], movie_id: int, scroll_step: int = 220) -> DetailTransition:
    key = parse_key(key)
    if key is None:
        return DetailTransition(focus, handled=False)
    if key is Key.TAB:
        return DetailTransition(focus)
    if key is Key.ARROW_DOWN:
        return DetailTransition(focus, (ScrollDetails(scroll_step),))
    if key is Key.ARROW_UP:
        return DetailTransition(focus, (ScrollDetails(-scroll_step),))
    if key in (Key.ESCAPE, Key.ARROW_LEFT):
        return DetailTransition(focus, (NavigateHome(),))
    if key is Key.ARROW_RIGHT:
        index = FAVORITE_ACTION if focus.action_index == BACK_ACTION else BACK_ACTION
        return DetailTransition(DetailFocus(index), (FocusAction(index),))
    if focus.action_index == BACK_ACTION:
        return DetailTransition(focus, (NavigateHome(),))
    return DetailTransition(focus, (ToggleFavorite(movie_id),))
