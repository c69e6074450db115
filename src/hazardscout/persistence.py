"""Durable state contract and backends.

A backend only has to implement ``load()`` / ``save()`` for a
:class:`PersistedState`.  Two backends ship with the package: an
in-memory one for tests and a JSON file one for real deployments.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic import Field, ValidationError

from hazardscout.exceptions import PersistenceError
from hazardscout.models._base import HazardBaseModel, UtcDatetime
from hazardscout.models.hazard import HazardRecord
from hazardscout.models.settings import NotificationSettings, ServiceSettings
from hazardscout.models.votes import ConfirmationEntry

_logger = logging.getLogger(__name__)

#: Bumped when the persisted layout changes incompatibly.
SCHEMA_VERSION = 1


class PersistedState(HazardBaseModel):
    """Everything needed to rebuild a service after a restart."""

    schema_version: int = SCHEMA_VERSION
    saved_at: UtcDatetime | None = None
    hazards: list[HazardRecord] = Field(default_factory=list)
    ledger: dict[str, list[ConfirmationEntry]] = Field(default_factory=dict)
    purged_ids: list[str] = Field(default_factory=list)
    settings: ServiceSettings = Field(default_factory=ServiceSettings)
    notification_settings: NotificationSettings = Field(default_factory=NotificationSettings)


@runtime_checkable
class StateBackend(Protocol):
    def load(self) -> PersistedState | None:
        """Return the saved state, ``None`` if nothing was saved yet.

        Raises :class:`PersistenceError` on unreadable or corrupt state.
        """
        ...

    def save(self, state: PersistedState) -> None:
        """Persist *state*; raises :class:`PersistenceError` on failure."""
        ...


def _parse_state(data: Any, *, origin: str) -> PersistedState:
    if not isinstance(data, dict):
        raise PersistenceError(f"State in {origin} is not an object", path=origin)
    version = data.get("schemaVersion", data.get("schema_version", SCHEMA_VERSION))
    if version != SCHEMA_VERSION:
        raise PersistenceError(f"Unsupported state schema version {version!r} in {origin}", path=origin)
    try:
        return PersistedState.model_validate(data)
    except ValidationError as exc:
        raise PersistenceError(f"Corrupt state in {origin}: {exc.error_count()} error(s)", path=origin) from exc


class MemoryStateBackend:
    """Keeps the serialized state in memory.

    The state goes through the same dict round trip as the file backend,
    so tests exercise real serialization.
    """

    def __init__(self, initial: PersistedState | None = None) -> None:
        self._data: dict[str, Any] | None = initial.to_dict() if initial is not None else None
        self.save_count = 0

    def load(self) -> PersistedState | None:
        if self._data is None:
            return None
        return _parse_state(json.loads(json.dumps(self._data)), origin="memory")

    def save(self, state: PersistedState) -> None:
        self._data = state.to_dict()
        self.save_count += 1


class JsonFileStateBackend:
    """Stores state as a single JSON document.

    Writes go to a temporary file in the same directory which then
    atomically replaces the target, so a crash never leaves a torn file.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def corrupt_path(self) -> Path:
        """Where an undecodable state file is moved before the next save replaces it."""
        return self._path.with_name(f"{self._path.name}.corrupt")

    def load(self) -> PersistedState | None:
        if not self._path.exists():
            return None
        try:
            raw = self._path.read_bytes()
        except OSError as exc:
            raise PersistenceError(f"Cannot read {self._path}: {exc}", path=str(self._path)) from exc
        try:
            # UnicodeDecodeError and JSONDecodeError are both ValueErrors.
            data = json.loads(raw.decode("utf-8"))
        except (ValueError, RecursionError) as exc:
            self._quarantine()
            raise PersistenceError(f"Invalid JSON in {self._path}: {exc}", path=str(self._path)) from exc
        try:
            return _parse_state(data, origin=str(self._path))
        except PersistenceError:
            self._quarantine()
            raise

    def _quarantine(self) -> None:
        target = self.corrupt_path
        try:
            os.replace(self._path, target)
        except OSError:
            _logger.warning("Could not move unreadable state file %s aside", self._path, exc_info=True)
        else:
            _logger.warning("Moved unreadable state file %s to %s", self._path, target)

    def save(self, state: PersistedState) -> None:
        payload = json.dumps(state.to_dict(), indent=2, sort_keys=True)
        tmp_name: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
            tmp_name = None
        except OSError as exc:
            raise PersistenceError(f"Cannot write {self._path}: {exc}", path=str(self._path)) from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    _logger.debug("Could not remove temp file %s", tmp_name, exc_info=True)
        _logger.debug("State saved path=%s hazards=%d", self._path, len(state.hazards))
