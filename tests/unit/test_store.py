import unittest

import pytest

from fakes import movie
from keyflix.core.errors import ValidationError
from keyflix.core.models import MovieDetails
from keyflix.core.store import (
    AIRING_NOW,
    FAVORITES,
    POPULAR,
    Action,
    AppState,
    Store,
    clear_search_results,
    hydrate_favorites,
    hydrate_movie_entities,
    is_favorite,
    receive_category_page_failure,
    receive_category_page_success,
    receive_movie_details_failure,
    receive_movie_details_success,
    receive_search_failure,
    receive_search_success,
    reduce,
    request_category_page,
    request_movie_details,
    request_search,
    select_error,
    select_favorite_movies,
    select_heading,
    select_loading,
    select_pagination_visible,
    select_visible_movie_ids,
    select_visible_movies,
    set_active_filter,
    set_category_page,
    search_is_active,
    set_search_query,
    toggle_favorite,
)


class TestCategoryReducers(unittest.TestCase):
    def test_request_marks_loading_and_clears_error(self):
        state = reduce(AppState(), receive_category_page_failure(POPULAR, "boom"))
        state = reduce(state, request_category_page(POPULAR, 1))
        self.assertTrue(state.categories[POPULAR].loading)
        self.assertIsNone(state.categories[POPULAR].error)
        self.assertFalse(state.categories[AIRING_NOW].loading)

    def test_success_indexes_page_and_entities(self):
        results = [movie(10), movie(11)]
        state = reduce(AppState(), request_category_page(POPULAR, 2))
        state = reduce(state, receive_category_page_success(POPULAR, 2, 7, results))

        category = state.categories[POPULAR]
        self.assertFalse(category.loading)
        self.assertEqual(category.page, 2)
        self.assertEqual(category.total_pages, 7)
        self.assertEqual(category.page_to_movie_ids[2], (10, 11))
        self.assertEqual(state.entities[11].title, "Movie 11")

    def test_success_normalizes_page_numbers(self):
        state = reduce(AppState(), receive_category_page_success(POPULAR, 0, 0, [movie(1)]))
        self.assertEqual(state.categories[POPULAR].page, 1)
        self.assertEqual(state.categories[POPULAR].total_pages, 1)

    def test_failure_clears_loading(self):
        state = reduce(AppState(), request_category_page(AIRING_NOW, 1))
        state = reduce(state, receive_category_page_failure(AIRING_NOW, "TMDB request failed with status 500"))
        self.assertFalse(state.categories[AIRING_NOW].loading)
        self.assertEqual(state.categories[AIRING_NOW].error, "TMDB request failed with status 500")

    def test_request_clamps_page(self):
        self.assertEqual(request_category_page(POPULAR, -3).payload["page"], 1)
        self.assertEqual(set_category_page(POPULAR, 4).payload["page"], 4)

    def test_unknown_category_rejected(self):
        with self.assertRaises(ValidationError):
            request_category_page(FAVORITES, 1)

    def test_hydrate_entities_skips_invalid_ids(self):
        state = reduce(AppState(), hydrate_movie_entities([movie(5), movie(0), movie(-2)]))
        self.assertEqual(list(state.entities), [5])


class TestSearchReducers(unittest.TestCase):
    def test_short_query_resets_search(self):
        state = reduce(AppState(), set_search_query("batman"))
        state = reduce(state, request_search())
        state = reduce(state, set_search_query("b"))
        self.assertEqual(state.search.query, "b")
        self.assertFalse(state.search.loading)
        self.assertEqual(state.search.result_ids, ())

    def test_success_for_live_query_commits(self):
        state = reduce(AppState(), set_search_query(" dog "))
        state = reduce(state, request_search())
        state = reduce(state, receive_search_success("dog", [movie(3), movie(4)]))
        self.assertEqual(state.search.result_ids, (3, 4))
        self.assertFalse(state.search.loading)
        self.assertIn(3, state.entities)

    def test_stale_success_is_ignored(self):
        state = reduce(AppState(), set_search_query("dog"))
        state = reduce(state, request_search())
        stale = reduce(state, receive_search_success("cat", [movie(1)]))
        self.assertIs(stale, state)
        self.assertEqual(stale.search.result_ids, ())

    def test_failure_and_clear(self):
        state = reduce(AppState(), set_search_query("dune"))
        state = reduce(state, request_search())
        state = reduce(state, receive_search_failure("Search failed."))
        self.assertEqual(state.search.error, "Search failed.")
        self.assertFalse(state.search.loading)

        state = reduce(state, clear_search_results())
        self.assertIsNone(state.search.error)
        self.assertEqual(state.search.query, "dune")


class TestDetailsReducers(unittest.TestCase):
    def _details(self, movie_id=42):
        return MovieDetails(id=movie_id, title="Arrival", overview="Linguist", runtime=116, genres=["Drama"])

    def test_request_keeps_cached_data(self):
        state = reduce(AppState(), receive_movie_details_success(self._details()))
        state = reduce(state, request_movie_details(42))
        self.assertTrue(state.details_by_id[42].loading)
        self.assertEqual(state.details_by_id[42].data.title, "Arrival")

    def test_success_updates_entity_cache(self):
        state = reduce(AppState(), receive_movie_details_success(self._details()))
        self.assertEqual(state.entities[42].title, "Arrival")
        self.assertNotIn("runtime", state.entities[42].model_dump())

    def test_failure(self):
        state = reduce(AppState(), request_movie_details(7))
        state = reduce(state, receive_movie_details_failure(7, "TMDB request failed with status 404"))
        self.assertFalse(state.details_by_id[7].loading)
        self.assertEqual(state.details_by_id[7].error, "TMDB request failed with status 404")
        self.assertIsNone(state.details_by_id[7].data)

    def test_invalid_movie_id(self):
        for bad in (0, -1, True, "42", None):
            with self.assertRaises(ValidationError):
                request_movie_details(bad)


class TestFavoritesReducers(unittest.TestCase):
    def test_toggle_pair_is_identity(self):
        state = reduce(AppState(), hydrate_favorites([3, 1]))
        toggled = reduce(reduce(state, toggle_favorite(9)), toggle_favorite(9))
        self.assertEqual(toggled.favorites.ids, (3, 1))

    def test_toggle_appends_and_removes(self):
        state = reduce(AppState(), toggle_favorite(5))
        state = reduce(state, toggle_favorite(6))
        self.assertEqual(state.favorites.ids, (5, 6))
        state = reduce(state, toggle_favorite(5))
        self.assertEqual(state.favorites.ids, (6,))
        self.assertFalse(is_favorite(state, 5))

    def test_hydrate_dedupes_and_drops_invalid(self):
        state = reduce(AppState(), hydrate_favorites([4, 4, -1, 0, "x", 2, True]))
        self.assertEqual(state.favorites.ids, (4, 2))


class TestStore(unittest.TestCase):
    def test_dispatch_bumps_version_and_logs(self):
        store = Store(log_size=2)
        store.dispatch(set_active_filter(AIRING_NOW))
        store.dispatch(set_active_filter(FAVORITES))
        store.dispatch(set_active_filter(POPULAR))
        self.assertEqual(store.version, 3)
        self.assertEqual([version for version, _ in store.log], [2, 3])
        self.assertEqual(store.state.active_filter, POPULAR)

    def test_search_min_chars_configures_store(self):
        store = Store(search_min_chars=4)
        store.dispatch(set_search_query("abc"))
        self.assertFalse(search_is_active(store.state))
        self.assertEqual(store.state.search.min_chars, 4)
        store.dispatch(set_search_query("abcd"))
        self.assertTrue(search_is_active(store.state))

    def test_unknown_action_rejected(self):
        store = Store()
        with self.assertRaises(ValidationError):
            store.dispatch(Action("movies/doesNotExist"))
        self.assertEqual(store.version, 0)

    def test_listeners_see_transitions_in_commit_order(self):
        store = Store()
        seen = []

        def chain(action, state):
            seen.append((action.type, state.active_filter))
            if action.payload == AIRING_NOW:
                store.dispatch(set_active_filter(FAVORITES))

        def observer(action, state):
            seen.append(("observer", state.active_filter))

        store.subscribe(chain)
        store.subscribe(observer)
        store.dispatch(set_active_filter(AIRING_NOW))

        self.assertEqual(seen, [
            ("movies/setActiveFilter", AIRING_NOW),
            ("observer", AIRING_NOW),
            ("movies/setActiveFilter", FAVORITES),
            ("observer", FAVORITES),
        ])

    def test_failing_listener_does_not_block_others(self):
        store = Store()
        seen = []

        def broken(action, state):
            raise RuntimeError("listener bug")

        store.subscribe(broken)
        store.subscribe(lambda action, state: seen.append(action.type))
        store.dispatch(toggle_favorite(1))
        self.assertEqual(seen, ["favorites/toggleFavorite"])

    def test_unsubscribe(self):
        store = Store()
        seen = []
        unsubscribe = store.subscribe(lambda action, state: seen.append(action))
        unsubscribe()
        unsubscribe()
        store.dispatch(toggle_favorite(1))
        self.assertEqual(seen, [])


@pytest.fixture
def loaded_state():
    state = reduce(AppState(), receive_category_page_success(POPULAR, 1, 3, [movie(1), movie(2)]))
    return reduce(state, hydrate_favorites([2, 99]))


def test_visible_movies_follow_active_filter(loaded_state):
    assert select_visible_movie_ids(loaded_state) == (1, 2)
    assert select_heading(loaded_state) == "Popular Movies"
    assert select_pagination_visible(loaded_state)

    favorites = reduce(loaded_state, set_active_filter(FAVORITES))
    assert select_heading(favorites) == "My Favorites"
    assert not select_pagination_visible(favorites)
    movies = select_visible_movies(favorites)
    assert [m.id for m in movies] == [2, 99]
    assert movies[1].title == "Movie #99"
    assert movies[1].overview == "No cached data. Open details to load this movie."


def test_search_takes_precedence_over_filter(loaded_state):
    state = reduce(loaded_state, set_search_query("  alien "))
    state = reduce(state, request_search())
    assert select_heading(state) == 'Search results for "alien"'
    assert select_loading(state)
    assert not select_pagination_visible(state)

    state = reduce(state, receive_search_failure("Search failed."))
    assert select_error(state) == "Search failed."


def test_one_character_query_keeps_category_view(loaded_state):
    state = reduce(loaded_state, set_search_query("a"))
    assert select_visible_movie_ids(state) == (1, 2)
    assert select_heading(state) == "Popular Movies"


def test_airing_now_heading_and_empty_page(loaded_state):
    state = reduce(loaded_state, set_active_filter(AIRING_NOW))
    assert select_heading(state) == "Airing Now"
    assert select_visible_movie_ids(state) == ()


def test_favorite_movies_only_include_cached_entities(loaded_state):
    assert [m.id for m in select_favorite_movies(loaded_state)] == [2]
