"""
Intent Response Cache

Short-lived cache of remote responses keyed by intent. Expired entries are
evicted lazily, on lookup.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import structlog

from aria_core.conversation.intents import Intent


logger = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 300.0


@dataclass
class CacheEntry:
    response: str
    cached_at: float
    sequence: Optional[int] = None

    def is_expired(self, now: float, ttl: float) -> bool:
        return now - self.cached_at >= ttl


class ResponseCache:
    """
    Intent-keyed response cache with a fixed TTL.

    Writes may carry the turn sequence number that produced them; a write
    from an older turn never replaces an entry written by a newer one.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, intent: Intent) -> Optional[str]:
        """Return the live response for an intent, evicting it if expired."""
        key = intent.value
        entry = self._entries.get(key)
        if entry is None:
            return None

        if entry.is_expired(self._clock(), self.ttl_seconds):
            del self._entries[key]
            logger.debug("cache_entry_expired", intent=key)
            return None

        return entry.response

    def put(self, intent: Intent, response: str, sequence: Optional[int] = None) -> bool:
        """Store a response. Returns False if a newer turn already wrote this intent."""
        key = intent.value
        existing = self._entries.get(key)
        if (
            existing is not None
            and sequence is not None
            and existing.sequence is not None
            and sequence < existing.sequence
            and not existing.is_expired(self._clock(), self.ttl_seconds)
        ):
            logger.debug(
                "cache_write_rejected",
                intent=key,
                sequence=sequence,
                stored_sequence=existing.sequence,
            )
            return False

        self._entries[key] = CacheEntry(
            response=response,
            cached_at=self._clock(),
            sequence=sequence,
        )
        return True

    def invalidate(self, intent: Intent) -> None:
        self._entries.pop(intent.value, None)

    def invalidate_all(self) -> None:
        self._entries.clear()


__all__ = ["DEFAULT_TTL_SECONDS", "CacheEntry", "ResponseCache"]
