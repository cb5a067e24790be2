from redis import asyncio as aioredis  # Async client
from redis.asyncio.connection import ConnectionPool as AsyncConnectionPool
from ..core.config import settings
import asyncio
import threading
from typing import Dict

# Per-event-loop async Redis clients and pools to avoid cross-loop issues
_redis_async_by_loop: Dict[str, aioredis.Redis] = {}
_async_pool_by_loop: Dict[str, AsyncConnectionPool] = {}

def _current_loop_key() -> str:
	"""Generate a stable key for the current async context.

	Prefer the running event loop identity; if none, fall back to thread id.
	"""
	try:
		loop = asyncio.get_running_loop()
		return f"loop-{id(loop)}"
	except RuntimeError:
		# No running loop (likely called from sync context)
		return f"thread-{threading.get_ident()}"

def get_redis() -> aioredis.Redis:
	"""Get an async Redis client bound to the current event loop.

	Favorites are the only thing keyflix keeps in Redis; the client is created
	lazily and does not connect until the first command.
	"""
	key = _current_loop_key()
	client = _redis_async_by_loop.get(key)
	if client is not None:
		return client

	pool = AsyncConnectionPool.from_url(
		settings.redis_url,
		decode_responses=True,
		max_connections=10,
		socket_connect_timeout=5,
		socket_timeout=5,
		retry_on_timeout=True,
	)
	client = aioredis.Redis(connection_pool=pool)
	_async_pool_by_loop[key] = pool
	_redis_async_by_loop[key] = client
	return client

async def close_redis() -> None:
	"""Close the client bound to the current event loop, if any."""
	key = _current_loop_key()
	client = _redis_async_by_loop.pop(key, None)
	pool = _async_pool_by_loop.pop(key, None)
	if client is not None:
		await client.aclose()
	if pool is not None:
		await pool.disconnect()
