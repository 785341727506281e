"""Bounded, time-boxed cache of precomputed turn packages.

Entries expire after a TTL and the cache holds at most `capacity`
games, evicting the least recently accessed entry when full. A set of
in-flight markers keeps two background precompute tasks for the same
game from running at once.

One instance is created per service and handed to the components that
use it.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from chess_mentor.models import TurnPackage

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_CAPACITY = 100


@dataclass
class CachedTurnEntry:
    turn: TurnPackage
    inserted_at: float
    last_accessed_at: float


class TurnCache:
    """TTL + LRU cache keyed by game id."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        capacity: int = DEFAULT_CAPACITY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Create an empty cache.

        Args:
            ttl_seconds: Entry lifetime measured from insertion.
            capacity: Maximum number of entries.
            clock: Monotonic time source (injectable for tests).
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._ttl = ttl_seconds
        self._capacity = capacity
        self._clock = clock
        self._entries: dict[str, CachedTurnEntry] = {}
        self._in_flight: set[str] = set()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, game_id: str) -> bool:
        return game_id in self._entries

    def _expired(self, entry: CachedTurnEntry, now: float) -> bool:
        return now - entry.inserted_at > self._ttl

    def get(self, game_id: str) -> TurnPackage | None:
        """Return the cached package, or None if absent or expired.

        Expired entries are purged on read. A hit refreshes the entry's
        access time but not its expiry.
        """
        entry = self._entries.get(game_id)
        if entry is None:
            return None
        now = self._clock()
        if self._expired(entry, now):
            del self._entries[game_id]
            return None
        entry.last_accessed_at = now
        return entry.turn

    def set(self, game_id: str, turn: TurnPackage) -> None:
        """Insert or replace the package for a game.

        At capacity, expired entries are purged first; if the cache is
        still full the least recently accessed entry is evicted.
        """
        now = self._clock()
        if game_id not in self._entries and len(self._entries) >= self._capacity:
            for key in [k for k, e in self._entries.items() if self._expired(e, now)]:
                del self._entries[key]
            if len(self._entries) >= self._capacity:
                lru_key = min(
                    self._entries, key=lambda k: self._entries[k].last_accessed_at
                )
                del self._entries[lru_key]
        self._entries[game_id] = CachedTurnEntry(
            turn=turn, inserted_at=now, last_accessed_at=now
        )

    def delete(self, game_id: str) -> None:
        self._entries.pop(game_id, None)

    def clear(self) -> None:
        self._entries.clear()
        self._in_flight.clear()

    # -- in-flight markers ------------------------------------------------

    def mark_in_flight(self, game_id: str) -> bool:
        """Claim the precompute slot for a game.

        Returns:
            True if claimed, False if a precompute is already running.
        """
        if game_id in self._in_flight:
            return False
        self._in_flight.add(game_id)
        return True

    def clear_in_flight(self, game_id: str) -> None:
        self._in_flight.discard(game_id)

    def is_in_flight(self, game_id: str) -> bool:
        return game_id in self._in_flight
