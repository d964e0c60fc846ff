"""Key/value storage port for credentials, tenant and impersonation state."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Literal

logger = logging.getLogger(__name__)

# Which of the two stores a value was read from
StorageScope = Literal["storage", "session"]


class Storage(ABC):
    """
    Base class for client-side string storage.

    The client keeps two of these: a persistent store (survives restarts)
    and a session store (cleared independently, holds impersonation
    snapshots).
    """

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value, or None if the key is absent."""
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove a key. Missing keys are ignored."""
        ...

    @abstractmethod
    def keys(self) -> list[str]:
        ...

    def clear(self) -> None:
        for key in self.keys():
            self.remove(key)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class MemoryStorage(Storage):
    """Dict-backed storage."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)

    def __repr__(self) -> str:
        return f"MemoryStorage({sorted(self._data)!r})"


class FileStorage(Storage):
    """
    JSON file-backed storage.

    The file is read on first access and rewritten on every mutation.
    A missing file is an empty store; an unreadable one is logged and
    treated as empty.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._data: dict[str, str] | None = None

    def _load(self) -> dict[str, str]:
        if self._data is None:
            self._data = {}
            if self.path.exists():
                try:
                    with open(self.path, "r") as f:
                        raw = json.load(f)
                    if isinstance(raw, dict):
                        self._data = {str(k): str(v) for k, v in raw.items()}
                except (OSError, ValueError) as e:
                    logger.warning(f"Ignoring unreadable storage file {self.path}: {e}")
        return self._data

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(self._load(), f, indent=2, sort_keys=True)

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        self._load()[key] = str(value)
        self._flush()

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._flush()

    def keys(self) -> list[str]:
        return list(self._load())


def scoped(storage: Storage, session: Storage | None) -> list[tuple[StorageScope, Storage]]:
    """Both stores in lookup order (persistent first), tagged by scope."""
    stores: list[tuple[StorageScope, Storage]] = [("storage", storage)]
    if session is not None:
        stores.append(("session", session))
    return stores
