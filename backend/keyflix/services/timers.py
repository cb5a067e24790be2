"""
timers.py

Cancellable timer handles keyed by owner identity. Scheduling under a key
always cancels whatever was pending for that key first.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Hashable

logger = logging.getLogger(__name__)


class TimerRegistry:
    def __init__(self):
        self._handles: Dict[Hashable, asyncio.TimerHandle] = {}

    def schedule(self, key: Hashable, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        self.cancel(key)
        loop = asyncio.get_running_loop()
        handle = loop.call_later(max(0.0, delay), self._fire, key, callback, args)
        self._handles[key] = handle
        return handle

    def _fire(self, key: Hashable, callback: Callable[..., Any], args: tuple) -> None:
        self._handles.pop(key, None)
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Timer callback for {key!r} failed: {e}", exc_info=True)

    def cancel(self, key: Hashable) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def pending(self, key: Hashable) -> bool:
        return key in self._handles

    def __len__(self) -> int:
        return len(self._handles)
