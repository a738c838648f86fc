"""Flat key-value persistence for the entity list and last session.

The store holds strings; :class:`FleetPersistence` owns the JSON encoding
and is forgiving on the way in: anything it cannot parse is discarded with
a warning and the caller gets defaults.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from fleetsync import _constants as c
from fleetsync.exceptions import PersistenceError
from fleetsync.models.entity import Entity
from fleetsync.models.session import SessionIdentity

_logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """In-process store; state is lost with the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileKeyValueStore:
    """Store backed by a single JSON object on disk.

    Every write rewrites the whole file through a temporary file and an
    atomic rename, so a crash never leaves a half-written blob behind.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, str]:
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise PersistenceError(f"Cannot read {self._path}: {exc}") from exc
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            _logger.warning("State file %s is not valid UTF-8 JSON; starting empty", self._path)
            return {}
        if not isinstance(data, dict):
            _logger.warning("State file %s does not hold an object; starting empty", self._path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise PersistenceError(f"Cannot write {self._path}: {exc}") from exc

    def get(self, key: str) -> str | None:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)


class FleetPersistence:
    """Load and save tracker state through a :class:`KeyValueStore`.

    Loads never raise: a missing key, unreadable store or malformed value
    yields an empty entity list or ``None`` session.
    """

    def __init__(
        self,
        store: KeyValueStore | None = None,
        *,
        entities_key: str = c.ENTITIES_KEY,
        session_key: str = c.SESSION_KEY,
    ) -> None:
        self._store: KeyValueStore = store if store is not None else MemoryKeyValueStore()
        self._entities_key = entities_key
        self._session_key = session_key

    @property
    def store(self) -> KeyValueStore:
        return self._store

    def _load_json(self, key: str) -> Any:
        try:
            raw = self._store.get(key)
        except PersistenceError:
            _logger.warning("Persisted state %s unreadable; using defaults", key, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            _logger.warning("Persisted state %s is not valid JSON; discarded", key)
            return None

    def load_entities(self) -> list[Entity]:
        data = self._load_json(self._entities_key)
        if data is None:
            return []
        if not isinstance(data, list):
            _logger.warning("Persisted entities have type %s, expected list; discarded", type(data).__name__)
            return []
        try:
            entities = [Entity.model_validate(item) for item in data]
        except ValidationError as exc:
            _logger.warning("Persisted entities failed validation; discarded: %s", exc.errors()[:3])
            return []
        _logger.debug("Loaded %d persisted entities", len(entities))
        return entities

    def save_entities(self, entities: Iterable[Entity]) -> None:
        payload = [entity.model_dump(mode="json", by_alias=True) for entity in entities]
        self._store.set(self._entities_key, json.dumps(payload))

    def load_session(self) -> SessionIdentity | None:
        data = self._load_json(self._session_key)
        if data is None:
            return None
        try:
            return SessionIdentity.model_validate(data)
        except ValidationError:
            _logger.warning("Persisted session is malformed; discarded")
            return None

    def save_session(self, session: SessionIdentity) -> None:
        self._store.set(self._session_key, session.model_dump_json(by_alias=True))

    def clear_session(self) -> None:
        self._store.delete(self._session_key)
