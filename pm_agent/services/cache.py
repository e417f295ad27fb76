import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar


T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    value: T
    expires_at: float


class ResponseCache:
    """In-process TTL store for AI responses.

    Expired entries are evicted lazily on read; `purge_expired` is available
    for an explicit sweep. There is no size bound. Single event loop only:
    threaded callers need their own lock.
    """

    def __init__(
        self,
        default_ttl_sec: float = 600,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl_sec = default_ttl_sec
        self._clock = clock
        self._entries: dict[str, CacheEntry[Any]] = {}

    def set(self, key: str, value: Any, ttl_sec: float | None = None) -> None:
        ttl = self.default_ttl_sec if ttl_sec is None else ttl_sec
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() > entry.expires_at:
            del self._entries[key]
            return None
        return entry.value

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def flush(self) -> None:
        self._entries.clear()

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
