import unittest

from fakes import movie
from keyflix.core.config import Settings
from keyflix.core.models import MovieDetails
from keyflix.core.store import (
    REQUEST_MOVIE_DETAILS,
    Store,
    hydrate_movie_entities,
    receive_movie_details_failure,
    receive_movie_details_success,
)
from keyflix.services.detail import DetailController
from keyflix.services.focus import Key

SETTINGS = Settings(detail_scroll_step=100)


class TestDetailController(unittest.TestCase):
    def setUp(self):
        self.store = Store()
        self.paths = []
        self.controller = DetailController(self.store, 42, SETTINGS, navigate_to=self.paths.append)

    def test_open_requests_details(self):
        self.controller.open()
        self.assertEqual(self.store.log[-1][1].type, REQUEST_MOVIE_DETAILS)
        self.assertTrue(self.controller.view().loading)

    def test_close_leaves_store_untouched(self):
        self.controller.open()
        version = self.store.version
        self.controller.close()
        self.assertEqual(self.store.version, version)
        self.assertTrue(self.controller.handle_key("Escape"))
        self.assertEqual(self.paths, ["/"])

    def test_view_without_any_data(self):
        view = self.controller.view()
        self.assertEqual(view.title, "Movie #42")
        self.assertEqual(view.meta, "")
        self.assertEqual(view.favorite_label, "Add To Favorites")

    def test_view_falls_back_to_cached_summary(self):
        self.store.dispatch(hydrate_movie_entities([movie(42, "Arrival")]))
        self.store.dispatch(receive_movie_details_failure(42, "TMDB request failed with status 500"))
        view = self.controller.view()
        self.assertEqual(view.title, "Arrival")
        self.assertEqual(view.error, "TMDB request failed with status 500")
        self.assertEqual(view.genres, ())

    def test_view_with_details(self):
        details = MovieDetails(
            id=42,
            title="Arrival",
            overview="Linguist meets visitors",
            release_date="2016-11-11",
            vote_average=7.9,
            runtime=116,
            genres=["Drama", "Science Fiction"],
            tagline="Why are they here?",
        )
        self.store.dispatch(receive_movie_details_success(details))
        view = self.controller.view()
        self.assertEqual(view.meta, "2016-11-11 • 116 min • Rating 7.9")
        self.assertEqual(view.genres, ("Drama", "Science Fiction"))
        self.assertFalse(view.loading)

    def test_favorite_action_toggles(self):
        self.controller.handle_key(Key.ARROW_RIGHT)
        self.controller.handle_key(Key.ENTER)
        self.assertTrue(self.controller.view().is_favorite)
        self.assertEqual(self.controller.view().favorite_label, "Remove From Favorites")
        self.controller.handle_key(Key.ENTER)
        self.assertFalse(self.controller.view().is_favorite)

    def test_back_and_escape_navigate_home(self):
        self.controller.handle_key(Key.ENTER)
        self.controller.handle_key(Key.ESCAPE)
        self.assertEqual(self.paths, ["/", "/"])

    def test_scroll_never_goes_negative(self):
        self.controller.handle_key(Key.ARROW_DOWN)
        self.controller.handle_key(Key.ARROW_DOWN)
        self.assertEqual(self.controller.scroll_offset, 200)
        for _ in range(3):
            self.controller.handle_key(Key.ARROW_UP)
        self.assertEqual(self.controller.scroll_offset, 0)

    def test_unknown_key_not_handled(self):
        self.assertFalse(self.controller.handle_key("Home"))


if __name__ == "__main__":
    unittest.main()
