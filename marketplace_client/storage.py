from __future__ import annotations

import asyncio
import json
import logging
import os
import threading
from typing import Any, Protocol

from msal_extensions import FilePersistence, build_encrypted_persistence
from msal_extensions.persistence import PersistenceNotFound

from marketplace_client.config import AppSettings
from marketplace_client.errors import PersistenceError

logger = logging.getLogger(__name__)


class StorageBackend(Protocol):
    name: str

    def read(self, key: str) -> str | None: ...

    def write(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStorageBackend:
    name = "memory"

    def __init__(self, initial: dict[str, str] | None = None):
        self._values: dict[str, str] = dict(initial or {})

    def read(self, key: str) -> str | None:
        return self._values.get(key)

    def write(self, key: str, value: str) -> None:
        self._values[key] = value

    def remove(self, key: str) -> None:
        self._values.pop(key, None)


class _PersistenceBackend:
    """Keeps every key in one JSON object inside a single msal-extensions persistence."""

    name = "persistence"

    def __init__(self, persistence: Any):
        self._persistence = persistence
        self._lock = threading.Lock()

    @property
    def location(self) -> str:
        return self._persistence.get_location()

    def read(self, key: str) -> str | None:
        with self._lock:
            return self._load_values().get(key)

    def write(self, key: str, value: str) -> None:
        with self._lock:
            values = self._load_values()
            values[key] = value
            self._save_values(values)

    def remove(self, key: str) -> None:
        with self._lock:
            values = self._load_values()
            if key not in values:
                return
            del values[key]
            self._save_values(values)

    def _load_values(self) -> dict[str, str]:
        try:
            raw = self._persistence.load()
        except PersistenceNotFound:
            return {}
        except Exception as exc:
            raise PersistenceError(f"Could not read {self.location}: {exc}") from exc

        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except ValueError as exc:
            raise PersistenceError(f"Corrupted storage at {self.location}") from exc
        if not isinstance(parsed, dict):
            raise PersistenceError(f"Unexpected storage layout at {self.location}")
        return {str(k): str(v) for k, v in parsed.items()}

    def _save_values(self, values: dict[str, str]) -> None:
        try:
            self._persistence.save(json.dumps(values))
        except Exception as exc:
            raise PersistenceError(f"Could not write {self.location}: {exc}") from exc


class SecureStorageBackend(_PersistenceBackend):
    name = "secure"

    def __init__(self, location: str):
        super().__init__(build_encrypted_persistence(location))


class FileStorageBackend(_PersistenceBackend):
    name = "file"

    def __init__(self, location: str):
        super().__init__(FilePersistence(location))


def select_backend(settings: AppSettings) -> StorageBackend:
    choice = settings.storage_backend
    if choice == "memory":
        return MemoryStorageBackend()

    location = settings.storage_path
    candidates: list[type[_PersistenceBackend]]
    if choice == "secure":
        candidates = [SecureStorageBackend]
    elif choice == "file":
        candidates = [FileStorageBackend]
    else:
        candidates = [SecureStorageBackend, FileStorageBackend]

    for backend_type in candidates:
        try:
            backend = backend_type(location)
            _probe(backend)
        except Exception:
            logger.warning("Storage backend %r unavailable at %s", backend_type.name, location, exc_info=True)
            continue
        logger.info("Using %s storage backend at %s", backend.name, location)
        return backend

    logger.warning("Falling back to in-memory storage; session will not survive restarts")
    return MemoryStorageBackend()


def _probe(backend: _PersistenceBackend) -> None:
    directory = os.path.dirname(backend.location)
    if directory:
        os.makedirs(directory, exist_ok=True)
    if not os.access(directory or ".", os.W_OK):
        raise PersistenceError(f"{directory} is not writable")
    backend._load_values()


class SecureKeyValueStore:
    """Persistent string storage that never raises.

    Every failure of the underlying backend is logged and turned into a safe
    default: ``get`` returns ``None`` and ``save``/``delete`` return ``False``.
    """

    def __init__(self, backend: StorageBackend):
        self._backend = backend

    @property
    def backend_name(self) -> str:
        return self._backend.name

    async def save(self, key: str, value: str) -> bool:
        try:
            if not isinstance(value, str):
                raise PersistenceError(f"Value for {key!r} must be a string, got {type(value).__name__}")
            await asyncio.to_thread(self._backend.write, key, value)
        except Exception:
            logger.exception("Failed to save key %s", key)
            return False
        return True

    async def get(self, key: str) -> str | None:
        try:
            return await asyncio.to_thread(self._backend.read, key)
        except Exception:
            logger.exception("Failed to get key %s", key)
            return None

    async def delete(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self._backend.remove, key)
        except Exception:
            logger.exception("Failed to delete key %s", key)
            return False
        return True
