"""Key-value storage backends for the persisted event collection.

The app keeps its state as string values under string keys (the whole event
collection is one JSON blob under a single key). ``KeyValueStore`` is that
contract; two backends are provided:

- ``JsonFileKeyValueStore``: all keys in one JSON document on disk, written
  atomically (temp file + replace).
- ``InMemoryKeyValueStore``: dict-backed, for tests and ephemeral use.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol

from .exceptions import StorageError

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Async string key-value store."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def list_keys(self) -> list[str]: ...


class InMemoryKeyValueStore:
    """Dict-backed store."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"value for {key!r} must be a string")
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_keys(self) -> list[str]:
        return list(self._data)

    def snapshot(self) -> dict[str, str]:
        """Return a copy of the current contents."""
        return dict(self._data)


class JsonFileKeyValueStore:
    """Persistent store keeping every key in a single JSON object on disk.

    The on-disk format is a JSON object mapping key -> string value. Writes go
    to a temporary file in the same directory and are moved into place with
    ``Path.replace`` so a crash never leaves a half-written document.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()
        self._data: Optional[dict[str, str]] = None

    async def _ensure_loaded(self) -> dict[str, str]:
        if self._data is None:
            self._data = await asyncio.to_thread(self._read)
        return self._data

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            logger.debug("Store file not found; starting empty: %s", self._path)
            return {}

        try:
            with self._path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            raise StorageError(f"Failed to read store {self._path}: {exc}") from exc

        if not isinstance(data, dict):
            raise StorageError(f"Store {self._path} root must be a JSON object")

        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _persist(self, data: dict[str, str]) -> None:
        """Persist the mapping to disk atomically."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path: Optional[Path] = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=self._path.parent, delete=False, encoding="utf-8"
            ) as tf:
                tmp_path = Path(tf.name)
                json.dump(data, tf, ensure_ascii=False)
                tf.flush()
                with contextlib.suppress(OSError):
                    os.fsync(tf.fileno())

            tmp_path.replace(self._path)
        except OSError as exc:
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    tmp_path.unlink()
            raise StorageError(f"Failed to persist store to {self._path}: {exc}") from exc

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            data = await self._ensure_loaded()
            return data.get(key)

    async def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"value for {key!r} must be a string")
        async with self._lock:
            data = await self._ensure_loaded()
            updated = {**data, key: value}
            await asyncio.to_thread(self._persist, updated)
            self._data = updated

    async def remove(self, key: str) -> None:
        async with self._lock:
            data = await self._ensure_loaded()
            if key not in data:
                return
            updated = {k: v for k, v in data.items() if k != key}
            await asyncio.to_thread(self._persist, updated)
            self._data = updated

    async def list_keys(self) -> list[str]:
        async with self._lock:
            data = await self._ensure_loaded()
            return list(data)
