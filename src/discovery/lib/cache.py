"""In-memory TTL cache with LRU eviction.

Used for composed search results, suggestions and the short-lived cache of
related candidates.  Expiry is checked lazily on read and eagerly by a
periodic sweep task (:meth:`SearchCache.start`).  Entries are written only by
the request that experienced the miss; concurrent writers for the same key
simply overwrite each other.
"""

import asyncio
import base64
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from pydantic import BaseModel

from ..models import SearchRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    value: T
    created_at: float
    expires_at: float
    last_accessed_at: float
    hit_count: int = 0


class CacheStats(BaseModel):
    size: int
    hits: int
    misses: int
    hit_rate: float
    evictions: int
    memory_bytes: int


class SearchCache(Generic[T]):
    """TTL-bound key/value cache.  Times are in seconds."""

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: float = 300.0,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._sweeper: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> T | None:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        now = self._clock()
        if now > entry.expires_at:
            del self._entries[key]
            self._misses += 1
            self._evictions += 1
            return None

        entry.hit_count += 1
        entry.last_accessed_at = now
        self._hits += 1
        return entry.value

    def set(self, key: str, value: T, ttl: float | None = None) -> None:
        now = self._clock()
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_least_recently_used()

        self._entries[key] = CacheEntry(
            value=value,
            created_at=now,
            expires_at=now + (ttl if ttl is not None else self.default_ttl),
            last_accessed_at=now,
        )

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def exists(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        if self._clock() > entry.expires_at:
            del self._entries[key]
            self._evictions += 1
            return False
        return True

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def purge_expired(self) -> int:
        """Remove every expired entry and return how many were dropped."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
        for key in expired:
            del self._entries[key]
        self._evictions += len(expired)
        return len(expired)

    def stats(self) -> CacheStats:
        total = self._hits + self._misses
        return CacheStats(
            size=len(self._entries),
            hits=self._hits,
            misses=self._misses,
            hit_rate=(self._hits / total * 100) if total else 0.0,
            evictions=self._evictions,
            memory_bytes=self._estimate_memory(),
        )

    def _evict_least_recently_used(self) -> None:
        if not self._entries:
            return
        oldest_key = min(self._entries, key=lambda k: self._entries[k].last_accessed_at)
        del self._entries[oldest_key]
        self._evictions += 1

    def _estimate_memory(self) -> int:
        # Rough UTF-16 sized estimate of keys plus serialized values.
        total = 0
        for key, entry in self._entries.items():
            total += len(key) * 2
            value = entry.value
            if isinstance(value, BaseModel):
                serialized = value.model_dump_json()
            else:
                serialized = json.dumps(value, default=_json_default)
            total += len(serialized) * 2
        return total

    # -- periodic sweep --------------------------------------------------

    def start(self) -> None:
        """Start the background sweep task on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def aclose(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            removed = self.purge_expired()
            if removed:
                logger.debug("Cache sweep removed %d expired entries", removed)


def _json_default(obj: Any):
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    return str(obj)


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------

def sanitize_key(term: str) -> str:
    """Lowercase and collapse anything outside ``[a-z0-9_-]`` into ``_``."""
    key = re.sub(r"[^a-z0-9_-]", "_", term.lower())
    key = re.sub(r"_+", "_", key)
    return key.strip("_")


def _hash_object(obj: dict) -> str:
    blob = json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)
    return base64.urlsafe_b64encode(blob.encode("utf-8")).decode("ascii").rstrip("=")


def search_cache_key(request: SearchRequest, limit: int) -> str:
    """Deterministic key for a composed search result.

    Filter fields are serialized with sorted keys and list-valued filters are
    sorted, so two requests differing only in filter order share a key.  The
    raw term is part of the key next to its sanitized form because related
    filtering is case-sensitive.
    """
    filters = request.filters.model_dump()
    filters["exclude_user_ids"] = sorted(set(filters["exclude_user_ids"]))
    paging = {
        "limit": limit,
        "offset": request.pagination.offset,
        "sort": request.sorting.field,
        "dir": request.sorting.direction,
    }
    return ":".join([
        "search",
        request.searcher_user_id,
        sanitize_key(request.term),
        _hash_object({"term": request.term}),
        request.search_type,
        _hash_object(filters),
        _hash_object(paging),
    ])


def suggestion_cache_key(user_id: str, normalized_term: str, limit: int) -> str:
    return f"suggestions:{user_id}:{sanitize_key(normalized_term)}:{limit}"


def related_cache_key(user_id: str) -> str:
    return f"related_candidates:{user_id}"
