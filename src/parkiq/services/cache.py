"""Geodata cache with stale reads."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from parkiq.domain.geo import (
    Coordinate,
    GeoCacheEntry,
    GeoCacheKey,
    GeoItem,
    GeoQuery,
)

DEFAULT_TTL_SECONDS = 10.0


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class GeoCache:
    """In-memory cache of geodata result sets.

    Unlike a plain TTL cache, expired entries are kept and still returned by
    ``get``; callers decide with ``is_fresh`` whether an entry may suppress an
    error. Keys are quantized, so the number of entries stays bounded by the
    area the user has browsed.
    """

    ttl_seconds: float = DEFAULT_TTL_SECONDS
    clock: Callable[[], datetime] = _utc_now
    _entries: dict[GeoCacheKey, GeoCacheEntry] = field(default_factory=dict)

    def key_for(self, coordinate: Coordinate, query: GeoQuery) -> GeoCacheKey:
        return GeoCacheKey.for_coordinate(coordinate, query)

    def get(self, key: GeoCacheKey) -> GeoCacheEntry | None:
        """Return the entry for a key, fresh or not."""
        return self._entries.get(key)

    def get_fresh(self, key: GeoCacheKey) -> GeoCacheEntry | None:
        """Return the entry for a key only if it has not expired."""
        entry = self._entries.get(key)
        if entry is None or not self.is_fresh(entry):
            return None
        return entry

    def is_fresh(self, entry: GeoCacheEntry) -> bool:
        age = self.clock() - entry.fetched_at
        return age < timedelta(seconds=self.ttl_seconds)

    def put(self, key: GeoCacheKey, payload: tuple[GeoItem, ...]) -> GeoCacheEntry:
        """Store a result set, overwriting any previous entry."""
        entry = GeoCacheEntry(key=key, payload=payload, fetched_at=self.clock())
        self._entries[key] = entry
        return entry

    def __len__(self) -> int:
        return len(self._entries)
