"""
detail.py

Detail view controller: requests the movie's details on open and maps the
Back / Favorite action row plus scrolling onto the keyboard.
"""
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Union

from keyflix.core.config import Settings, settings as default_settings
from keyflix.core.store import Store, is_favorite, request_movie_details, select_details, toggle_favorite
from keyflix.services.focus import (
    DetailFocus,
    Key,
    NavigateHome,
    ScrollDetails,
    ToggleFavorite,
    navigate_details,
)


@dataclass(frozen=True)
class DetailView:
    movie_id: int
    title: str
    overview: str
    poster_url: Optional[str]
    backdrop_url: Optional[str]
    tagline: Optional[str]
    genres: Tuple[str, ...]
    meta: str
    is_favorite: bool
    loading: bool
    error: Optional[str]
    focus: DetailFocus

    @property
    def favorite_label(self) -> str:
        return "Remove From Favorites" if self.is_favorite else "Add To Favorites"


class DetailController:
    def __init__(
        self,
        store: Store,
        movie_id: int,
        config: Optional[Settings] = None,
        navigate_to: Optional[Callable[[str], None]] = None,
        on_effect: Optional[Callable[[object], None]] = None,
    ):
        self.store = store
        self.movie_id = movie_id
        self.config = config or default_settings
        self.navigate_to = navigate_to or (lambda path: None)
        self.on_effect = on_effect
        self.focus = DetailFocus()
        self.scroll_offset = 0

    def open(self) -> None:
        self.store.dispatch(request_movie_details(self.movie_id))

    def close(self) -> None:
        """Nothing to release: the detail view owns no timers."""

    def handle_key(self, key: Union[Key, str]) -> bool:
        transition = navigate_details(self.focus, key, self.movie_id, self.config.detail_scroll_step)
        if not transition.handled:
            return False

        self.focus = transition.focus
        for effect in transition.effects:
            if isinstance(effect, ScrollDetails):
                self.scroll_offset = max(0, self.scroll_offset + effect.delta)
            elif isinstance(effect, NavigateHome):
                self.navigate_to("/")
            elif isinstance(effect, ToggleFavorite):
                self.store.dispatch(toggle_favorite(effect.movie_id))
            if self.on_effect is not None:
                self.on_effect(effect)
        return True

    def view(self) -> DetailView:
        state = self.store.state
        details_state = select_details(state, self.movie_id)
        details = details_state.data if details_state else None
        source = details or state.entities.get(self.movie_id)

        release_date = source.release_date if source else None
        vote_average = source.vote_average if source else None
        runtime = details.runtime if details else None

        meta = []
        if release_date:
            meta.append(release_date)
        if runtime:
            meta.append(f"{runtime} min")
        if vote_average is not None:
            meta.append(f"Rating {vote_average:.1f}")

        return DetailView(
            movie_id=self.movie_id,
            title=source.title if source else f"Movie #{self.movie_id}",
            overview=source.overview if source else "No overview available.",
            poster_url=source.poster_url if source else None,
            backdrop_url=details.backdrop_url if details else None,
            tagline=details.tagline if details else None,
            genres=tuple(details.genres) if details else (),
            meta=" • ".join(meta),
            is_favorite=is_favorite(state, self.movie_id),
            loading=details_state.loading if details_state else False,
            error=details_state.error if details_state else None,
            focus=self.focus,
        )
