"""
Storage Package

Record storage used by the orchestrator and attention sources.
"""

from aria_core.storage.base import (
    InMemoryStorage,
    Record,
    StorageBackend,
    StorageError,
    utcnow,
)
from aria_core.storage.sql import SQLStorage


__all__ = [
    "InMemoryStorage",
    "Record",
    "StorageBackend",
    "StorageError",
    "utcnow",
    "SQLStorage",
]
