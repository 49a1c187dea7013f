import asyncio
import functools
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

from .config import Settings, settings
from .core.recovery.errors import InvalidConfigurationError

T = TypeVar("T")


@dataclass(frozen=True)
class CacheTTL:
    """TTL tiers in milliseconds."""

    ACCOUNT_INFO: float = 10_000
    BALANCES: float = 30_000
    SUPPLY: float = 30_000
    METADATA: float = 300_000
    PROJECT_CONFIG: float = 3_600_000

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "CacheTTL":
        return cls(**(config or settings).cache_tiers())


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class CacheEntry(Generic[T]):
    data: T
    timestamp: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl


class TTLCache(Generic[T]):
    """
    In-memory cache with per-entry TTL (milliseconds).

    Expired entries are evicted lazily on `get`/`has`; there is no sweeper.
    A lock guards the map, so one instance may be shared between threads.
    """

    def __init__(
        self,
        default_ttl: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        default_ttl = settings.cache_default_ttl_ms if default_ttl is None else default_ttl
        if default_ttl < 0:
            raise InvalidConfigurationError(f"Cache TTL must be non-negative, got {default_ttl}", setting="default_ttl")
        self.default_ttl = default_ttl
        self._clock = clock or _now_ms
        self._cache: Dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: T, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        if ttl < 0:
            raise InvalidConfigurationError(f"Cache TTL must be non-negative, got {ttl}", setting="ttl")
        with self._lock:
            self._cache[key] = CacheEntry(data=value, timestamp=self._clock(), ttl=ttl)

    def _live_entry(self, key: str) -> Optional[CacheEntry[T]]:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            if entry.expired(self._clock()):
                del self._cache[key]
                return None
            return entry

    def get(self, key: str) -> Optional[T]:
        entry = self._live_entry(key)
        return entry.data if entry is not None else None

    def has(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def delete(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def size(self) -> int:
        """Number of stored entries, including expired ones not yet evicted."""
        with self._lock:
            return len(self._cache)


def create_cache_key(*parts: Any) -> str:
    """Join key parts with ':'; addresses render via to_base58() when available."""
    rendered = []
    for part in parts:
        if isinstance(part, str):
            rendered.append(part)
        elif isinstance(part, (int, float)) and not isinstance(part, bool):
            rendered.append(str(part))
        elif hasattr(part, "to_base58"):
            rendered.append(part.to_base58())
        else:
            rendered.append(json.dumps(part, sort_keys=True, default=str))
    return ":".join(rendered)


async def get_cached(
    cache: TTLCache,
    key: str,
    fetcher: Callable[[], Awaitable[T]],
    ttl: Optional[float] = None,
) -> T:
    """Read-through lookup. `None` results are returned but never cached."""
    cached = cache.get(key)
    if cached is not None:
        return cached

    data = await fetcher()
    if data is not None:
        cache.set(key, data, ttl)
    return data


def memoize_async(ttl: Optional[float] = None, cache: Optional[TTLCache] = None):
    """
    Cache an async function's results by argument.

    Concurrent calls with the same arguments share one in-flight task.
    Failures are not cached.
    """

    def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        store: TTLCache = cache if cache is not None else TTLCache(default_ttl=ttl)
        pending: Dict[str, "asyncio.Future[T]"] = {}

        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            key = create_cache_key(fn.__qualname__, *args, *sorted(kwargs.items()))

            cached = store.get(key)
            if cached is not None:
                return cached

            task = pending.get(key)
            if task is None:
                task = asyncio.ensure_future(fn(*args, **kwargs))
                pending[key] = task

                def _settle(done: "asyncio.Future[T]", key: str = key) -> None:
                    pending.pop(key, None)
                    if not done.cancelled() and done.exception() is None and done.result() is not None:
                        store.set(key, done.result(), ttl)

                task.add_done_callback(_settle)

            return await asyncio.shield(task)

        wrapper.cache = store  # type: ignore[attr-defined]
        return wrapper

    return decorator
