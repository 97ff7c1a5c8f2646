"""
Key-value stores backing the cache and the sync queue.

Mirrors the browser's Web Storage contract: string keys, string values,
synchronous calls, and an implementation-defined quota. Two backends:

- MemoryStore: process lifetime (session storage, tests)
- JsonFileStore: durable, one JSON object on disk, rewritten on every
  mutation so it survives a restart

Default location for the durable store: ~/.angkor-offline/storage.json
"""

import json
import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024


class StorageError(Exception):
    """Storage is unavailable or a write could not be completed."""


class QuotaExceededError(StorageError):
    """A write would push the store over its quota."""


def _entry_bytes(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class KeyValueStore:
    """
    Base class for string key-value stores.

    Subclasses provide `_data` loading and `_commit()`; quota accounting and
    the public API live here.
    """

    def __init__(self, quota_bytes: Optional[int] = None) -> None:
        self._data: Dict[str, str] = {}
        self._quota_bytes = quota_bytes

    @property
    def quota_bytes(self) -> Optional[int]:
        return self._quota_bytes

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        """
        Store a value.

        Raises:
            QuotaExceededError: If the write would exceed the quota.
            StorageError: If the backend cannot persist the change.
        """
        if not isinstance(value, str):
            value = str(value)
        if self._quota_bytes is not None:
            current = self.size_bytes()
            previous = self._data.get(key)
            if previous is not None:
                current -= _entry_bytes(key, previous)
            if current + _entry_bytes(key, value) > self._quota_bytes:
                raise QuotaExceededError(
                    f"Writing {key!r} would exceed storage quota of {self._quota_bytes} bytes"
                )
        previous = self._data.get(key)
        self._data[key] = value
        try:
            self._commit()
        except StorageError:
            if previous is None:
                self._data.pop(key, None)
            else:
                self._data[key] = previous
            raise

    def remove_item(self, key: str) -> None:
        if key not in self._data:
            return
        previous = self._data.pop(key)
        try:
            self._commit()
        except StorageError:
            self._data[key] = previous
            raise

    def clear(self) -> None:
        snapshot = dict(self._data)
        self._data.clear()
        try:
            self._commit()
        except StorageError:
            self._data.update(snapshot)
            raise

    def keys(self) -> List[str]:
        return list(self._data.keys())

    def items(self) -> Iterator[tuple]:
        return iter(list(self._data.items()))

    def size_bytes(self) -> int:
        """UTF-8 size of every key and value."""
        return sum(_entry_bytes(k, v) for k, v in self._data.items())

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def _commit(self) -> None:
        """Persist the current state. No-op for in-memory stores."""


class MemoryStore(KeyValueStore):
    """In-memory store; contents vanish with the process."""


class JsonFileStore(KeyValueStore):
    """Durable store persisted as a single JSON object."""

    def __init__(self, path: Optional[Path] = None, quota_bytes: Optional[int] = None) -> None:
        super().__init__(quota_bytes=quota_bytes)
        self._path = Path(path) if path else Path.home() / ".angkor-offline" / "storage.json"
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning(f"Ignoring unreadable storage file {self._path}: {exc}")
            return
        if isinstance(data, dict):
            self._data = {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in data.items()}

    def _commit(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp.write_text(json.dumps(self._data, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp.replace(self._path)
        except OSError as exc:
            raise StorageError(f"Failed to write {self._path}: {exc}") from exc
