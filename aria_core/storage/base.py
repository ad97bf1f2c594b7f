"""
Storage Base Module

The persistent storage interface consumed by the orchestrator and the
attention sources, plus an in-memory implementation.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Tuple,
)


Record = Dict[str, Any]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StorageError(Exception):
    """Base exception for storage operations."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "STORAGE_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class StorageBackend(ABC):
    """
    Abstract key/value store of JSON-like records grouped by entity type.

    Implementations must be safe to call from concurrent tasks.
    """

    @abstractmethod
    async def get(self, entity_type: str, entity_id: str) -> Optional[Record]:
        """Get one record, or None."""
        pass

    @abstractmethod
    async def put(self, entity_type: str, entity_id: str, data: Record) -> None:
        """Insert or replace a record."""
        pass

    @abstractmethod
    async def delete(self, entity_type: str, entity_id: str) -> bool:
        """Delete a record. Returns True if it existed."""
        pass

    @abstractmethod
    async def list(self, entity_type: str) -> List[Record]:
        """All records of an entity type."""
        pass

    @abstractmethod
    async def modified_since(self, entity_type: str, since: datetime) -> List[Record]:
        """Records of an entity type written at or after ``since``."""
        pass

    async def close(self) -> None:
        pass


class InMemoryStorage(StorageBackend):
    """Dict-backed storage for tests and local runs."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._records: Dict[str, Dict[str, Tuple[Record, datetime]]] = {}
        self._lock = asyncio.Lock()

    async def get(self, entity_type: str, entity_id: str) -> Optional[Record]:
        async with self._lock:
            entry = self._records.get(entity_type, {}).get(entity_id)
            return copy.deepcopy(entry[0]) if entry else None

    async def put(self, entity_type: str, entity_id: str, data: Record) -> None:
        async with self._lock:
            self._records.setdefault(entity_type, {})[entity_id] = (
                copy.deepcopy(data),
                self._clock(),
            )

    async def delete(self, entity_type: str, entity_id: str) -> bool:
        async with self._lock:
            return self._records.get(entity_type, {}).pop(entity_id, None) is not None

    async def list(self, entity_type: str) -> List[Record]:
        async with self._lock:
            return [
                copy.deepcopy(data)
                for data, _ in self._records.get(entity_type, {}).values()
            ]

    async def modified_since(self, entity_type: str, since: datetime) -> List[Record]:
        async with self._lock:
            return [
                copy.deepcopy(data)
                for data, updated_at in self._records.get(entity_type, {}).values()
                if updated_at >= since
            ]


__all__ = [
    "Record",
    "utcnow",
    "StorageError",
    "StorageBackend",
    "InMemoryStorage",
]
