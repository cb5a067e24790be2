"""
runtime.py

Composition root for one browsing session: store, gateway, orchestrator,
favorites persistence and the controller for the current route.

    async with BrowserSession() as session:
        session.handle_key("ArrowRight")
        view = session.view()
"""
import logging
import re
from typing import Optional, Union

from keyflix.core.config import Settings, settings as default_settings
from keyflix.core.store import Store
from keyflix.services.browser import BrowseController, BrowseView
from keyflix.services.detail import DetailController, DetailView
from keyflix.services.focus import Key
from keyflix.services.gateway import MovieGateway, create_gateway
from keyflix.services.orchestrator import Orchestrator
from keyflix.services.persistence import FavoritesPersistence, KeyValueStore

logger = logging.getLogger(__name__)

HOME_PATH = "/"
_DETAIL_PATH = re.compile(r"^/movie/([^/]+)/?$")


def parse_route(path: str) -> Optional[int]:
    """Movie id for a detail path, None for the browse view."""
    match = _DETAIL_PATH.match(path or "")
    if not match:
        return None
    raw_id = match.group(1)
    if not raw_id.isdigit() or int(raw_id) <= 0:
        return None
    return int(raw_id)


class BrowserSession:
    def __init__(
        self,
        config: Optional[Settings] = None,
        gateway: Optional[MovieGateway] = None,
        kv: Optional[KeyValueStore] = None,
        store: Optional[Store] = None,
    ):
        self.config = config or default_settings
        self.store = store or Store(
            log_size=self.config.transition_log_size, search_min_chars=self.config.search_min_chars
        )
        self.gateway = gateway or create_gateway(self.config)
        self._owns_kv = kv is None
        self.kv = kv
        self.orchestrator = Orchestrator(self.store, self.gateway, self.config)
        self.persistence: Optional[FavoritesPersistence] = None
        self.controller: Optional[Union[BrowseController, DetailController]] = None
        self.path: Optional[str] = None

    async def __aenter__(self) -> "BrowserSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start(self) -> None:
        if self.kv is None:
            from keyflix.core.redis_client import get_redis

            self.kv = get_redis()
        self.persistence = FavoritesPersistence(self.store, self.kv, self.config)
        self.orchestrator.start()
        await self.persistence.hydrate()
        self.navigate_to(HOME_PATH)

    def navigate_to(self, path: str) -> None:
        movie_id = parse_route(path)
        if movie_id is None and path != HOME_PATH:
            logger.info(f"Unknown route {path!r}, showing the browse view")
            path = HOME_PATH

        if self.controller is not None:
            self.controller.close()

        self.path = path
        if movie_id is None:
            controller = BrowseController(self.store, self.config, navigate_to=self.navigate_to)
            self.controller = controller
            controller.start()
            controller.paint()
        else:
            controller = DetailController(self.store, movie_id, self.config, navigate_to=self.navigate_to)
            self.controller = controller
            controller.open()
        logger.debug(f"Navigated to {path}")

    def handle_key(self, key: Union[Key, str]) -> bool:
        if self.controller is None:
            return False
        handled = self.controller.handle_key(key)
        # The key may have switched routes; repaint whichever view is current
        if isinstance(self.controller, BrowseController):
            self.controller.paint()
        return handled

    def type_text(self, text: str) -> None:
        if isinstance(self.controller, BrowseController):
            self.controller.type_text(text)
            self.controller.paint()

    def view(self) -> Optional[Union[BrowseView, DetailView]]:
        if isinstance(self.controller, BrowseController):
            return self.controller.paint()
        if isinstance(self.controller, DetailController):
            return self.controller.view()
        return None

    async def wait_idle(self, timeout: Optional[float] = None) -> None:
        await self.orchestrator.wait_idle(timeout)
        if self.persistence is not None:
            await self.persistence.flush()

    async def close(self) -> None:
        if self.controller is not None:
            self.controller.close()
            self.controller = None
        await self.orchestrator.stop()
        if self.persistence is not None:
            await self.persistence.close()
        if self._owns_kv and self.kv is not None:
            from keyflix.core.redis_client import close_redis

            await close_redis()
        logger.info("Browser session closed")
