"""Thread-safe in-memory hazard store.

This is the only component allowed to mutate hazard records.  Every
mutation of a single record runs under that record's re-entrant lock;
different records never share a lock, so callers working on different
hazards proceed in parallel and locks are never nested across records.

Change notifications are delivered to subscribers after the record lock
has been released.
"""

from __future__ import annotations

import contextlib
import logging
import secrets
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from hazardscout.exceptions import (
    HazardNotFoundError,
    InvalidHazardInputError,
    InvalidTransitionError,
    TransitionConflictError,
)
from hazardscout.models._base import utcnow
from hazardscout.models.hazard import HazardInput, HazardRecord, HazardStatus, PolicySnapshot, StatusReason
from hazardscout.models.votes import VoteType
from hazardscout.state.events import ChangeKind, HazardChange
from hazardscout.state.policy import is_transition_allowed

_logger = logging.getLogger(__name__)

ChangeListener = Callable[[HazardChange], None]


def _new_hazard_id(now: datetime) -> str:
    return f"hazard-{int(now.timestamp() * 1000)}-{secrets.token_hex(5)}"


def format_validation_errors(exc: ValidationError) -> list[str]:
    errors: list[str] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        errors.append(f"{location}: {message}" if location else message)
    return errors


class HazardStore:
    """Canonical mapping from hazard id to :class:`HazardRecord`.

    Records handed out by the store are deep copies; mutating them has no
    effect on the canonical state.
    """

    def __init__(self, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._records: dict[str, HazardRecord] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._purged: set[str] = set()
        # Guards the structure of _records/_locks/_purged, never held while a record lock is acquired.
        self._registry_lock = threading.Lock()
        self._listeners: list[ChangeListener] = []
        self._listeners_lock = threading.Lock()
        self._local = threading.local()

    # ------------------------------------------------------------------
    # Locking and change delivery
    # ------------------------------------------------------------------

    def now(self) -> datetime:
        return self._clock()

    def _lock_for(self, hazard_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(hazard_id)
            if lock is None:
                lock = threading.RLock()
                # Unknown ids get a throwaway lock; the caller will find no record under it.
                if hazard_id in self._records:
                    self._locks[hazard_id] = lock
            return lock

    @contextlib.contextmanager
    def _locked(self, hazard_id: str) -> Iterator[None]:
        lock = self._lock_for(hazard_id)
        depth = getattr(self._local, "depth", 0)
        try:
            with lock:
                self._local.depth = depth + 1
                try:
                    yield
                finally:
                    self._local.depth = depth
        finally:
            if depth == 0:
                self._deliver_pending()

    def _queue(self, change: HazardChange) -> None:
        pending: list[HazardChange] | None = getattr(self._local, "pending", None)
        if pending is None:
            pending = []
            self._local.pending = pending
        pending.append(change)

    def _deliver_pending(self) -> None:
        pending: list[HazardChange] | None = getattr(self._local, "pending", None)
        if not pending:
            return
        self._local.pending = []
        with self._listeners_lock:
            listeners = list(self._listeners)
        for change in pending:
            for listener in listeners:
                try:
                    listener(change)
                except Exception:
                    _logger.exception("Hazard change listener failed kind=%s id=%s", change.kind, change.hazard_id)

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener; returns a callable that unsubscribes it."""
        with self._listeners_lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._listeners_lock:
                with contextlib.suppress(ValueError):
                    self._listeners.remove(listener)

        return _unsubscribe

    def _require_locked(self, hazard_id: str) -> HazardRecord:
        record = self._records.get(hazard_id)
        if record is None:
            raise HazardNotFoundError(hazard_id)
        return record

    @contextlib.contextmanager
    def transaction(self, hazard_id: str) -> Iterator[HazardRecord]:
        """Hold *hazard_id*'s lock for a multi-step update.

        Yields a copy of the record as it was when the lock was taken.
        Store methods called on the same hazard inside the block re-enter
        the lock, so check-then-write sequences are atomic.
        """
        with self._locked(hazard_id):
            yield self._require_locked(hazard_id).model_copy(deep=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, hazard_id: str) -> HazardRecord | None:
        with self._registry_lock:
            known = hazard_id in self._records
        if not known:
            return None
        with self._locked(hazard_id):
            record = self._records.get(hazard_id)
            return record.model_copy(deep=True) if record is not None else None

    def require(self, hazard_id: str) -> HazardRecord:
        record = self.get(hazard_id)
        if record is None:
            raise HazardNotFoundError(hazard_id)
        return record

    def was_purged(self, hazard_id: str) -> bool:
        with self._registry_lock:
            return hazard_id in self._purged

    def _snapshot(self, predicate: Callable[[HazardRecord], bool]) -> list[HazardRecord]:
        with self._registry_lock:
            ids = list(self._records)
        result: list[HazardRecord] = []
        for hazard_id in ids:
            record = self.get(hazard_id)
            if record is not None and predicate(record):
                result.append(record)
        return result

    def list_all(self) -> list[HazardRecord]:
        return self._snapshot(lambda _record: True)

    def list_active(self) -> list[HazardRecord]:
        """All hazards that are Active or Resolving."""
        return self._snapshot(lambda record: record.is_open)

    def list_resolved(self) -> list[HazardRecord]:
        return self._snapshot(lambda record: record.status is HazardStatus.RESOLVED)

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._records)

    def __contains__(self, hazard_id: object) -> bool:
        with self._registry_lock:
            return hazard_id in self._records

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_hazard(self, data: HazardInput | Mapping[str, Any]) -> HazardRecord:
        """Create a new Active hazard.

        Raises
        ------
        InvalidHazardInputError
            If *data* is not a valid :class:`HazardInput`.
        """
        if isinstance(data, HazardInput):
            payload = data
        else:
            try:
                payload = HazardInput.model_validate(data)
            except ValidationError as exc:
                errors = format_validation_errors(exc)
                raise InvalidHazardInputError("Invalid hazard input", errors=errors) from exc

        now = self._clock()
        with self._registry_lock:
            hazard_id = _new_hazard_id(now)
            while hazard_id in self._records or hazard_id in self._purged:
                hazard_id = _new_hazard_id(now)
            record = HazardRecord(
                id=hazard_id,
                type=payload.type,
                severity=payload.severity,
                location=payload.location,
                location_label=payload.location_label,
                source=payload.source,
                status=HazardStatus.ACTIVE,
                first_detected_at=now,
                last_confirmed_at=now,
                last_updated_at=now,
                detection_count=1,
                confirmation_count=0,
                dispute_count=0,
                policy=payload.policy,
            )
            self._records[hazard_id] = record
            self._locks[hazard_id] = threading.RLock()

        _logger.debug("Hazard created id=%s type=%s severity=%s", hazard_id, record.type, record.severity)
        with self._locked(hazard_id):
            self._queue(HazardChange(ChangeKind.CREATED, hazard_id, record.model_copy(deep=True)))
            return record.model_copy(deep=True)

    def _set_status_locked(
        self,
        record: HazardRecord,
        new_status: HazardStatus,
        reason: StatusReason,
        now: datetime,
    ) -> None:
        previous = record.status
        record.status = new_status
        record.status_reason = reason
        record.last_updated_at = now
        if new_status is HazardStatus.RESOLVED:
            record.resolved_at = now
        self._queue(
            HazardChange(
                ChangeKind.TRANSITIONED,
                record.id,
                record.model_copy(deep=True),
                previous_status=previous,
                reason=reason,
            )
        )
        _logger.debug("Hazard %s %s -> %s reason=%s", record.id, previous, new_status, reason)

    def increment_detection(self, hazard_id: str) -> bool:
        """Record a sensor re-detection.

        Returns ``False`` for unknown, purged or Resolved hazards.
        """
        if hazard_id not in self:
            return False
        with self._locked(hazard_id):
            record = self._records.get(hazard_id)
            if record is None or record.status is HazardStatus.RESOLVED:
                return False
            now = self._clock()
            record.detection_count += 1
            record.last_confirmed_at = now
            record.last_updated_at = now
            if record.status is HazardStatus.RESOLVING:
                self._set_status_locked(record, HazardStatus.ACTIVE, StatusReason.REDETECTED, now)
            record.version += 1
            self._queue(HazardChange(ChangeKind.REDETECTED, hazard_id, record.model_copy(deep=True)))
            return True

    def apply_vote(
        self,
        hazard_id: str,
        vote_type: VoteType,
        *,
        confirmation_count: int,
        dispute_count: int,
    ) -> HazardRecord:
        """Write ledger-derived counters and the side effects of one vote.

        Only the confirmation ledger calls this, inside its transaction on
        *hazard_id*.  A still-present vote refreshes ``last_confirmed_at``
        and reactivates a Resolving hazard; a disputed-gone vote moves an
        Active hazard to Resolving.
        """
        with self._locked(hazard_id):
            record = self._require_locked(hazard_id)
            if record.status is HazardStatus.RESOLVED:
                raise InvalidTransitionError(f"Hazard {hazard_id} is resolved", hazard_id=hazard_id)
            now = self._clock()
            record.confirmation_count = confirmation_count
            record.dispute_count = dispute_count
            record.last_updated_at = now
            if vote_type is VoteType.STILL_PRESENT:
                record.last_confirmed_at = now
                if record.status is HazardStatus.RESOLVING:
                    self._set_status_locked(record, HazardStatus.ACTIVE, StatusReason.RECONFIRMED, now)
            elif record.status is HazardStatus.ACTIVE:
                self._set_status_locked(record, HazardStatus.RESOLVING, StatusReason.DISPUTED, now)
            record.version += 1
            self._queue(HazardChange(ChangeKind.VOTED, hazard_id, record.model_copy(deep=True)))
            return record.model_copy(deep=True)

    def sync_vote_counts(self, hazard_id: str, *, confirmation_count: int, dispute_count: int) -> None:
        """Overwrite derived counters without vote side effects (ledger restore)."""
        with self._locked(hazard_id):
            record = self._require_locked(hazard_id)
            if record.confirmation_count == confirmation_count and record.dispute_count == dispute_count:
                return
            _logger.debug(
                "Hazard %s counters resynced from ledger confirmations=%s disputes=%s",
                hazard_id,
                confirmation_count,
                dispute_count,
            )
            record.confirmation_count = confirmation_count
            record.dispute_count = dispute_count
            record.version += 1

    def apply_transition(
        self,
        hazard_id: str,
        new_status: HazardStatus,
        reason: StatusReason,
        *,
        expected_version: int | None = None,
    ) -> HazardRecord:
        """Move a hazard to *new_status*.

        Called by the policy engine's appliers (scheduler, ledger, manual
        resolution).  Resolving an Active hazard passes through Resolving.
        Moving to the current status is a no-op.

        Raises
        ------
        HazardNotFoundError
            Unknown id.
        TransitionConflictError
            ``expected_version`` was given and the record changed since.
        InvalidTransitionError
            The lifecycle does not allow the move (e.g. out of Resolved).
        """
        with self._locked(hazard_id):
            record = self._require_locked(hazard_id)
            if expected_version is not None and record.version != expected_version:
                raise TransitionConflictError(
                    hazard_id,
                    expected_version=expected_version,
                    actual_version=record.version,
                )
            if record.status is new_status:
                return record.model_copy(deep=True)

            now = self._clock()
            if record.status is HazardStatus.ACTIVE and new_status is HazardStatus.RESOLVED:
                self._set_status_locked(record, HazardStatus.RESOLVING, reason, now)
            if not is_transition_allowed(record.status, new_status):
                raise InvalidTransitionError(
                    f"Cannot move hazard {hazard_id} from {record.status} to {new_status}",
                    hazard_id=hazard_id,
                )
            self._set_status_locked(record, new_status, reason, now)
            record.version += 1
            return record.model_copy(deep=True)

    def reapply_policy(self, hazard_id: str, policy: PolicySnapshot) -> HazardRecord:
        """Explicitly replace the policy snapshot of an open hazard."""
        with self._locked(hazard_id):
            record = self._require_locked(hazard_id)
            if record.status is HazardStatus.RESOLVED:
                raise InvalidTransitionError(f"Hazard {hazard_id} is resolved", hazard_id=hazard_id)
            record.policy = policy
            record.last_updated_at = self._clock()
            record.version += 1
            self._queue(HazardChange(ChangeKind.POLICY_REAPPLIED, hazard_id, record.model_copy(deep=True)))
            return record.model_copy(deep=True)

    def purge(self, hazard_id: str) -> bool:
        """Permanently remove a Resolved hazard.

        Returns ``False`` if the id is unknown.  Purged ids are remembered
        so they can never be re-detected.
        """
        if hazard_id not in self:
            return False
        with self._locked(hazard_id):
            record = self._records.get(hazard_id)
            if record is None:
                return False
            if record.status is not HazardStatus.RESOLVED:
                raise InvalidTransitionError(f"Cannot purge open hazard {hazard_id}", hazard_id=hazard_id)
            with self._registry_lock:
                del self._records[hazard_id]
                self._purged.add(hazard_id)
            self._queue(HazardChange(ChangeKind.PURGED, hazard_id, previous_status=record.status))
        with self._registry_lock:
            if hazard_id not in self._records:
                self._locks.pop(hazard_id, None)
        _logger.debug("Hazard purged id=%s", hazard_id)
        return True

    # ------------------------------------------------------------------
    # Persistence support
    # ------------------------------------------------------------------

    def restore(self, records: Iterable[HazardRecord], *, purged_ids: Iterable[str] = ()) -> None:
        """Replace the store contents with previously persisted records.

        No change notifications are emitted.
        """
        restored = {record.id: record.model_copy(deep=True) for record in records}
        with self._registry_lock:
            self._records = restored
            self._locks = {hazard_id: threading.RLock() for hazard_id in restored}
            self._purged = set(purged_ids) - set(restored)
        _logger.debug("Store restored records=%d", len(restored))

    def purged_ids(self) -> list[str]:
        with self._registry_lock:
            return sorted(self._purged)
