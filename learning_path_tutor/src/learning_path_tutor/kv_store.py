"""
Key/Value Persistence Substrate

String-valued key/value stores used by SessionStore. Each store supports a
single writer; concurrent writers race and the last write wins.

Every failure of the underlying medium is raised as PersistenceError.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional

from learning_path_tutor.errors import PersistenceError

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Interface for string key/value persistence."""

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store. Used in tests and when STORAGE_BACKEND=memory."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileKeyValueStore(KeyValueStore):
    """
    Store backed by a single JSON document on disk.

    The file is re-read on every access and rewritten atomically (temp file +
    rename) on every write.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Could not read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"{self.path} does not hold a JSON object")
        return data

    def _dump(self, items: Dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(items, f)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PersistenceError(f"Could not write {self.path}: {e}") from e

    def get_item(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        items = self._load()
        items[key] = value
        self._dump(items)

    def remove_item(self, key: str) -> None:
        items = self._load()
        if key in items:
            del items[key]
            self._dump(items)


class SupabaseKeyValueStore(KeyValueStore):
    """
    Store backed by a Supabase table with columns (key text primary key, value text).

    Args:
        supabase_client: Supabase client instance
        table: Table name
    """

    def __init__(self, supabase_client, table: str = "kv_store"):
        self.supabase = supabase_client
        self.table = table

    def get_item(self, key: str) -> Optional[str]:
        try:
            result = self.supabase.table(self.table).select("value").eq("key", key).execute()
        except Exception as e:
            raise PersistenceError(f"Supabase read of {key!r} failed: {e}") from e
        if result.data and len(result.data) > 0:
            return result.data[0].get("value")
        return None

    def set_item(self, key: str, value: str) -> None:
        try:
            self.supabase.table(self.table).upsert({"key": key, "value": value}).execute()
        except Exception as e:
            raise PersistenceError(f"Supabase write of {key!r} failed: {e}") from e

    def remove_item(self, key: str) -> None:
        try:
            self.supabase.table(self.table).delete().eq("key", key).execute()
        except Exception as e:
            raise PersistenceError(f"Supabase delete of {key!r} failed: {e}") from e
