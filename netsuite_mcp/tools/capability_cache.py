"""Time-bounded cache for the remote tool list."""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

TOOLS_CACHE_TTL_SECONDS = 5 * 60


@dataclass(frozen=True)
class CacheEntry:
    """A fetched tool list and when it was fetched."""

    items: list[dict[str, Any]]
    fetched_at: float
    ttl: float

    def age(self, now: float) -> float:
        """Seconds since the entry was fetched."""
        return now - self.fetched_at

    def is_fresh(self, now: float) -> bool:
        """Whether the entry is younger than its TTL."""
        return self.age(now) < self.ttl


class CapabilityCache:
    """Holds at most one tool list, never serving it once it is stale."""

    def __init__(
        self,
        ttl: float = TOOLS_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self._clock = clock
        self._entry: CacheEntry | None = None

    def get(self) -> list[dict[str, Any]] | None:
        """Get the cached items, or None if missing or stale."""
        if self._entry is None or not self._entry.is_fresh(self._clock()):
            return None
        return self._entry.items

    def age(self) -> float | None:
        """Seconds since the current entry was fetched."""
        if self._entry is None:
            return None
        return self._entry.age(self._clock())

    def store(self, items: list[dict[str, Any]]) -> None:
        """Replace the cached entry."""
        self._entry = CacheEntry(items=list(items), fetched_at=self._clock(), ttl=self.ttl)

    def invalidate(self) -> None:
        """Drop the cached entry."""
        self._entry = None

    def status(self) -> dict[str, Any]:
        """Describe the cache for diagnostics."""
        if self._entry is None:
            return {"cached": False}

        age = self._entry.age(self._clock())
        return {
            "cached": True,
            "fresh": age < self.ttl,
            "tool_count": len(self._entry.items),
            "age_seconds": round(age),
            "expires_in": round(self.ttl - age),
        }
