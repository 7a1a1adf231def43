"""Durable key-value storage for anonymous carts."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from threading import Lock
from typing import Protocol

from src.core.config import get_settings
from src.core.supabase import get_supabase_client

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the underlying store cannot be read or written."""


class KeyValueStore(Protocol):
    """Minimal string key-value interface, modelled on browser localStorage."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """Thread-safe in-process store. Used in development and tests."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}
        self._lock = Lock()

    def get_item(self, key: str) -> str | None:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class SupabaseKeyValueStore:
    """Store backed by the `cart_storage` table (key text primary key, value text)."""

    TABLE = "cart_storage"

    def __init__(self) -> None:
        self.client = get_supabase_client()

    def get_item(self, key: str) -> str | None:
        try:
            response = (
                self.client.table(self.TABLE)
                .select("value")
                .eq("key", key)
                .maybe_single()
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to read {key}: {e}") from e

        if not response or not response.data:
            return None
        return response.data.get("value")

    def set_item(self, key: str, value: str) -> None:
        try:
            self.client.table(self.TABLE).upsert(
                {
                    "key": key,
                    "value": value,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                }
            ).execute()
        except Exception as e:
            raise StorageError(f"Failed to write {key}: {e}") from e

    def remove_item(self, key: str) -> None:
        try:
            self.client.table(self.TABLE).delete().eq("key", key).execute()
        except Exception as e:
            raise StorageError(f"Failed to remove {key}: {e}") from e


# Global singleton instance
_store: KeyValueStore | None = None


def get_key_value_store() -> KeyValueStore:
    """Get or create the global anonymous cart store."""
    global _store
    if _store is None:
        backend = get_settings().cart_storage_backend
        _store = MemoryKeyValueStore() if backend == "memory" else SupabaseKeyValueStore()
        logger.info("Cart storage backend: %s", backend)
    return _store


def reset_key_value_store() -> None:
    """Drop the global store so the next call re-reads settings."""
    global _store
    _store = None
