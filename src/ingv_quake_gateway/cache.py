"""Response cache for upstream event queries.

Provides:
    * :class:`ResponseCache`, the cache-or-compute wrapper used by the resolver.
    * Store backends behind the small :class:`KeyValueStore` protocol: a
      ``redis.asyncio`` client, ``fakeredis`` for development and tests, and an
      in-process :class:`LocalTTLStore` fallback.

Behavior of :meth:`ResponseCache.fetch_with_cache`:
    1. A stored value is JSON-decoded and returned without computing.
    2. Absent keys, store read errors and undecodable or wrong-shaped values
       count as a miss: the computation runs and its result is returned right
       away.
    3. The JSON snapshot is written in the background with ``SET key value EX
       ttl``. A failed write is logged and dropped; the caller never sees it.
    4. Errors raised by the computation propagate and nothing is stored.

There is no single-flight protection. Concurrent misses for one key each run
the computation and each overwrite the entry.

Quick example::

    from ingv_quake_gateway.cache import LocalTTLStore, ResponseCache

    cache = ResponseCache(LocalTTLStore(), default_ttl=10)
    value = await cache.fetch_with_cache("quake:2023-01-01", compute)
    await cache.flush_pending()  # wait for the background write
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Optional,
    Protocol,
    Set,
    Tuple,
    TypeVar,
    Union,
)

import fakeredis
import redis.asyncio as redis

from .config import DEFAULT_CACHE_TTL, GatewayConfig
from .monitoring import get_monitor

logger = logging.getLogger(__name__)

V = TypeVar("V")

# Raised by json.loads or by a decode callable handed a wrong-shaped snapshot
_SNAPSHOT_ERRORS = (ValueError, TypeError, AttributeError, KeyError, IndexError)


class KeyValueStore(Protocol):
    """Subset of the ``redis.asyncio.Redis`` API the cache relies on."""

    async def get(self, name: str) -> Optional[Union[str, bytes]]: ...

    async def set(self, name: str, value: str, ex: Optional[int] = None) -> Any: ...

    async def aclose(self) -> None: ...


@dataclass
class CacheEntry:
    """Value held by :class:`LocalTTLStore` with its expiry bookkeeping."""

    data: str
    timestamp: float = field(default_factory=time.monotonic)
    ttl: Optional[float] = None

    def is_expired(self) -> bool:
        """Check if the entry outlived its TTL (entries without TTL never expire)."""
        if self.ttl is None:
            return False
        return time.monotonic() - self.timestamp > self.ttl


class LocalTTLStore:
    """In-process key-value store with per-entry expiry.

    Used when Redis cannot be reached at startup. Entries are only visible to
    the current process.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, CacheEntry] = {}

    async def get(self, name: str) -> Optional[str]:
        entry = self._entries.get(name)
        if entry is None:
            return None
        if entry.is_expired():
            del self._entries[name]
            return None
        return entry.data

    async def set(self, name: str, value: str, ex: Optional[int] = None) -> bool:
        self._evict_expired()
        self._entries[name] = CacheEntry(data=value, ttl=ex)
        return True

    def _evict_expired(self) -> None:
        """Drop every expired entry so unread keys do not accumulate."""
        expired = [key for key, entry in self._entries.items() if entry.is_expired()]
        for key in expired:
            del self._entries[key]

    async def aclose(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


async def open_store(config: GatewayConfig) -> KeyValueStore:
    """Open the store selected by configuration.

    Order of backend selection:
        1. ``fakeredis`` when ``config.force_fakeredis`` is set.
        2. Real Redis at ``config.redis_url``, health-probed with ``PING``.
        3. :class:`LocalTTLStore` when the probe fails.
    """
    if config.force_fakeredis:
        logger.info("Using fakeredis response cache store")
        return fakeredis.FakeAsyncRedis(decode_responses=True)

    client = redis.from_url(config.redis_url, decode_responses=True)
    try:
        await client.ping()
    except Exception as e:
        logger.warning(
            f"Redis unavailable at {config.redis_url} ({e}); using local cache store"
        )
        await client.aclose()
        return LocalTTLStore()
    logger.info(f"Connected to Redis response cache store at {config.redis_url}")
    return client


class ResponseCache:
    """Cache-or-compute wrapper over a :class:`KeyValueStore`.

    Args:
        store: Backend holding JSON snapshots.
        default_ttl: Entry lifetime in seconds when ``fetch_with_cache`` gets none.
        enable_monitoring: Report hits, misses and store failures to the monitor.
    """

    def __init__(
        self,
        store: KeyValueStore,
        default_ttl: int = DEFAULT_CACHE_TTL,
        enable_monitoring: bool = True,
    ) -> None:
        self.store = store
        self.default_ttl = default_ttl
        self.enable_monitoring = enable_monitoring
        self._monitor = get_monitor() if enable_monitoring else None
        self._pending: Set[asyncio.Task] = set()

    async def fetch_with_cache(
        self,
        key: str,
        compute: Callable[[], Awaitable[V]],
        ttl: Optional[int] = None,
        decode: Optional[Callable[[V], Any]] = None,
    ) -> Any:
        """Return the cached value for ``key`` or compute, store and return it.

        Args:
            key: Cache key.
            compute: Zero-argument coroutine function producing a JSON-serializable value.
            ttl: Entry lifetime in seconds (defaults to ``default_ttl``). A
                non-positive value disables storing the result.
            decode: Optional rebuild of the caller's value from the JSON
                snapshot. Applied to hits and fresh results alike; a stored
                snapshot it rejects counts as a miss.
        Returns:
            The cached value on a hit, otherwise the freshly computed one.
        Raises:
            Whatever ``compute`` raises; nothing is cached in that case.
        """
        start = time.perf_counter()
        hit, value = await self._read(key, decode)
        if hit:
            if self._monitor:
                self._monitor.record_cache_hit(time.perf_counter() - start)
            logger.debug(f"Cache hit for {key}")
            return value

        if self._monitor:
            self._monitor.record_cache_miss(time.perf_counter() - start)
        logger.debug(f"Cache miss for {key}")

        result = await compute()
        ttl = self.default_ttl if ttl is None else ttl
        if ttl > 0:
            self._schedule_write(key, result, ttl)
        else:
            logger.debug(f"Not storing {key}: ttl={ttl}")
        return decode(result) if decode else result

    async def _read(
        self, key: str, decode: Optional[Callable[[Any], Any]] = None
    ) -> Tuple[bool, Any]:
        try:
            raw = await self.store.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            if self._monitor:
                self._monitor.record_cache_store_error()
            return False, None
        if raw is None:
            return False, None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            value = json.loads(raw)
            return True, decode(value) if decode else value
        except _SNAPSHOT_ERRORS as e:
            logger.warning(f"Discarding undecodable cache entry for {key}: {e}")
            return False, None

    def _schedule_write(self, key: str, value: Any, ttl: int) -> None:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.warning(f"Result for {key} is not JSON serializable, not caching: {e}")
            if self._monitor:
                self._monitor.record_cache_write_failure()
            return
        task = asyncio.create_task(self._write(key, payload, ttl))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, key: str, payload: str, ttl: int) -> None:
        try:
            await self.store.set(key, payload, ex=int(ttl))
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")
            if self._monitor:
                self._monitor.record_cache_write_failure()

    async def flush_pending(self) -> None:
        """Wait for background writes started so far."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def aclose(self) -> None:
        """Flush pending writes, then close the store."""
        await self.flush_pending()
        await self.store.aclose()

    def get_cache_stats(self) -> Dict[str, Any]:
        """Describe the configured backend."""
        return {
            "backend": type(self.store).__name__,
            "default_ttl": self.default_ttl,
            "pending_writes": len(self._pending),
            "monitoring_enabled": self.enable_monitoring,
        }
