import asyncio
import json

from fakes import FakeKV, movie
from keyflix.core.config import Settings
from keyflix.core.store import Store, hydrate_movie_entities, toggle_favorite
from keyflix.services.persistence import FavoritesPersistence, normalize_favorite_ids, normalize_favorite_movies

SETTINGS = Settings()
IDS_KEY = SETTINGS.favorites_storage_key
MOVIES_KEY = SETTINGS.favorites_movies_storage_key


def stored_movie(movie_id, title="Stored"):
    return {"id": movie_id, "title": title, "overview": "o", "posterUrl": None, "releaseDate": "2020-01-01", "voteAverage": 6.5}


def test_storage_keys():
    assert IDS_KEY == "fs-movie-favorites"
    assert MOVIES_KEY == "fs-movie-favorite-movies"


def test_normalize_ids():
    assert normalize_favorite_ids([3, 3, 0, -4, "7", 2.5, True, 9]) == [3, 9]
    assert normalize_favorite_ids({"ids": [1]}) == []
    assert normalize_favorite_ids(None) == []


def test_normalize_movies_drops_invalid_entries():
    raw = [
        stored_movie(1),
        {"id": "2", "title": "bad id", "overview": "o"},
        {"id": 3, "overview": "missing title"},
        stored_movie(-5),
        "junk",
        stored_movie(1, "Newer"),
    ]
    movies = normalize_favorite_movies(raw)
    assert [(m.id, m.title) for m in movies] == [(1, "Newer")]
    assert movies[0].release_date == "2020-01-01"


def test_hydrate_restores_ids_and_cached_movies():
    kv = FakeKV({
        IDS_KEY: json.dumps([5, 7]),
        MOVIES_KEY: json.dumps([stored_movie(5, "Five"), stored_movie(8, "Not a favorite")]),
    })

    async def run():
        store = Store()
        persistence = FavoritesPersistence(store, kv, SETTINGS)
        await persistence.hydrate()
        await persistence.close()
        return store.state

    state = asyncio.run(run())
    assert state.favorites.ids == (5, 7)
    assert state.entities[5].title == "Five"
    assert 8 not in state.entities


def test_hydrate_with_ids_only():
    kv = FakeKV({IDS_KEY: json.dumps([4]), MOVIES_KEY: "not json"})

    async def run():
        store = Store()
        persistence = FavoritesPersistence(store, kv, SETTINGS)
        await persistence.hydrate()
        await persistence.close()
        return store.state

    state = asyncio.run(run())
    assert state.favorites.ids == (4,)
    assert state.entities == {}


def test_read_failure_starts_empty():
    kv = FakeKV(fail_reads=True)

    async def run():
        store = Store()
        persistence = FavoritesPersistence(store, kv, SETTINGS)
        await persistence.hydrate()
        await persistence.close()
        return store.state, persistence

    state, persistence = asyncio.run(run())
    assert state.favorites.ids == ()
    assert persistence.hydrated


def test_toggle_writes_both_records():
    kv = FakeKV()

    async def run():
        store = Store()
        store.dispatch(hydrate_movie_entities([movie(11, "Heat")]))
        persistence = FavoritesPersistence(store, kv, SETTINGS)
        await persistence.hydrate()
        await persistence.flush()
        kv.writes.clear()

        store.dispatch(toggle_favorite(11))
        await persistence.flush()
        await persistence.close()

    asyncio.run(run())
    assert json.loads(kv.data[IDS_KEY]) == [11]
    saved = json.loads(kv.data[MOVIES_KEY])
    assert saved[0]["id"] == 11
    assert saved[0]["title"] == "Heat"
    assert "posterUrl" in saved[0]
    assert sorted(key for key, _ in kv.writes) == [MOVIES_KEY, IDS_KEY]


def test_unrelated_transitions_do_not_rewrite():
    kv = FakeKV()

    async def run():
        store = Store()
        persistence = FavoritesPersistence(store, kv, SETTINGS)
        await persistence.hydrate()
        await persistence.flush()
        writes_after_hydrate = len(kv.writes)

        store.dispatch(hydrate_movie_entities([movie(1)]))
        await persistence.flush()
        await persistence.close()
        return writes_after_hydrate

    writes_after_hydrate = asyncio.run(run())
    assert writes_after_hydrate == 2
    assert len(kv.writes) == 2


def test_write_failures_are_swallowed():
    kv = FakeKV(fail_writes=True)

    async def run():
        store = Store()
        persistence = FavoritesPersistence(store, kv, SETTINGS)
        await persistence.hydrate()
        store.dispatch(toggle_favorite(3))
        await persistence.close()
        return store.state

    state = asyncio.run(run())
    assert state.favorites.ids == (3,)
    assert kv.data == {}


def test_no_writes_after_close():
    kv = FakeKV()

    async def run():
        store = Store()
        persistence = FavoritesPersistence(store, kv, SETTINGS)
        await persistence.hydrate()
        await persistence.close()
        kv.writes.clear()
        store.dispatch(toggle_favorite(3))
        await asyncio.sleep(0)

    asyncio.run(run())
    assert kv.writes == []


class SlowFirstWriteKV(FakeKV):
    """Holds the first SET of `slow_value` long enough for a newer write to be issued."""

    def __init__(self, slow_value):
        super().__init__()
        self.slow_value = slow_value
        self.slowed = False

    async def set(self, key, value):
        if value == self.slow_value and not self.slowed:
            self.slowed = True
            await asyncio.sleep(0.05)
        return await super().set(key, value)


def test_quick_toggles_persist_latest_state():
    kv = SlowFirstWriteKV("[7]")

    async def run():
        store = Store()
        persistence = FavoritesPersistence(store, kv, SETTINGS)
        await persistence.hydrate()
        await persistence.flush()

        store.dispatch(toggle_favorite(7))
        await asyncio.sleep(0)
        store.dispatch(toggle_favorite(7))
        await persistence.close()
        return store.state

    state = asyncio.run(run())
    assert state.favorites.ids == ()
    assert json.loads(kv.data[IDS_KEY]) == []
    assert [value for key, value in kv.writes if key == IDS_KEY] == ["[]", "[7]", "[]"]
