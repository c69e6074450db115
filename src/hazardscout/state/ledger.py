"""Append-only confirmation ledger.

The ledger owns every reporter vote.  Hazard counters in the store are
recomputed from it on each accepted vote, so they cannot drift.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from datetime import timedelta

from hazardscout._redact import mask_identity
from hazardscout.exceptions import HazardNotFoundError, PolicyEvaluationError
from hazardscout.models.hazard import HazardStatus
from hazardscout.models.votes import ConfirmationEntry, VoteOutcome, VoteResult, VoteType
from hazardscout.state.events import ChangeKind, HazardChange
from hazardscout.state.policy import evaluate
from hazardscout.state.store import HazardStore

_logger = logging.getLogger(__name__)

DEFAULT_VOTE_COOLDOWN = timedelta(hours=1)


class ConfirmationLedger:
    """Per-hazard vote history with per-reporter, per-vote-type cooldown.

    Cooldown is enforced at write time inside the hazard's store
    transaction, so two concurrent identical votes cannot both be accepted.
    """

    def __init__(self, store: HazardStore, *, cooldown: timedelta = DEFAULT_VOTE_COOLDOWN) -> None:
        self._store = store
        self._cooldown = cooldown
        self._entries: dict[str, list[ConfirmationEntry]] = {}
        self._index_lock = threading.Lock()
        self._unsubscribe: Callable[[], None] | None = store.subscribe(self._on_store_change)

    @property
    def cooldown(self) -> timedelta:
        return self._cooldown

    @cooldown.setter
    def cooldown(self, value: timedelta) -> None:
        if value < timedelta(0):
            raise ValueError("cooldown must not be negative")
        self._cooldown = value

    def close(self) -> None:
        """Stop following store purges."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_store_change(self, change: HazardChange) -> None:
        if change.kind is ChangeKind.PURGED:
            with self._index_lock:
                dropped = self._entries.pop(change.hazard_id, None)
            if dropped:
                _logger.debug("Ledger dropped %d entries of purged hazard %s", len(dropped), change.hazard_id)

    def _append(self, hazard_id: str, entry: ConfirmationEntry) -> None:
        with self._index_lock:
            self._entries.setdefault(hazard_id, []).append(entry)

    def _has_recent(self, hazard_id: str, reporter_id: str, vote_type: VoteType) -> bool:
        now = self._store.now()
        with self._index_lock:
            entries = list(self._entries.get(hazard_id, ()))
        return any(
            entry.reporter_id == reporter_id and entry.vote_type is vote_type and now - entry.timestamp < self._cooldown
            for entry in entries
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def entries(self, hazard_id: str) -> list[ConfirmationEntry]:
        with self._index_lock:
            return list(self._entries.get(hazard_id, ()))

    def count(self, hazard_id: str, vote_type: VoteType) -> int:
        return sum(1 for entry in self.entries(hazard_id) if entry.vote_type is vote_type)

    def counts(self, hazard_id: str) -> tuple[int, int]:
        """``(confirmations, disputes)`` for *hazard_id*."""
        return self.count(hazard_id, VoteType.STILL_PRESENT), self.count(hazard_id, VoteType.DISPUTED_GONE)

    def has_recent_vote(self, hazard_id: str, reporter_id: str, vote_type: VoteType | str) -> bool:
        """Whether *reporter_id* already cast *vote_type* within the cooldown window."""
        try:
            kind = VoteType(vote_type)
        except ValueError:
            return False
        if not isinstance(reporter_id, str) or not reporter_id.strip():
            return False
        return self._has_recent(hazard_id, reporter_id.strip(), kind)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_vote(self, hazard_id: str, reporter_id: str, vote_type: VoteType | str) -> VoteResult:
        """Append a vote unless the reporter is still in cooldown.

        Never raises for expected outcomes: unknown hazards, resolved
        hazards, duplicates and malformed input come back as rejected
        :class:`VoteResult` values.
        """
        reporter = reporter_id.strip() if isinstance(reporter_id, str) else ""
        try:
            kind = VoteType(vote_type)
        except ValueError:
            kind = None
        if not reporter or kind is None:
            return VoteResult(hazard_id=hazard_id, accepted=False, reason=VoteOutcome.INVALID_INPUT)

        try:
            with self._store.transaction(hazard_id) as record:
                confirmations, disputes = self.counts(hazard_id)
                if record.status is HazardStatus.RESOLVED:
                    return VoteResult(
                        hazard_id=hazard_id,
                        accepted=False,
                        reason=VoteOutcome.RESOLVED,
                        confirmation_count=confirmations,
                        dispute_count=disputes,
                        status=record.status,
                        status_reason=record.status_reason,
                    )
                if self._has_recent(hazard_id, reporter, kind):
                    _logger.debug(
                        "Vote rejected (cooldown) hazard=%s reporter=%s type=%s",
                        hazard_id,
                        mask_identity(reporter),
                        kind,
                    )
                    return VoteResult(
                        hazard_id=hazard_id,
                        accepted=False,
                        reason=VoteOutcome.DUPLICATE,
                        confirmation_count=confirmations,
                        dispute_count=disputes,
                        status=record.status,
                        status_reason=record.status_reason,
                    )

                entry = ConfirmationEntry(reporter_id=reporter, timestamp=self._store.now(), vote_type=kind)
                self._append(hazard_id, entry)
                confirmations, disputes = self.counts(hazard_id)
                updated = self._store.apply_vote(
                    hazard_id,
                    kind,
                    confirmation_count=confirmations,
                    dispute_count=disputes,
                )
                if kind is VoteType.DISPUTED_GONE:
                    try:
                        decision = evaluate(updated, self._store.now())
                    except PolicyEvaluationError:
                        _logger.warning("Policy re-check failed for hazard %s", hazard_id, exc_info=True)
                    else:
                        if decision.is_transition and decision.new_status is not None and decision.reason is not None:
                            updated = self._store.apply_transition(hazard_id, decision.new_status, decision.reason)
        except HazardNotFoundError:
            return VoteResult(hazard_id=hazard_id, accepted=False, reason=VoteOutcome.NOT_FOUND)

        _logger.debug(
            "Vote accepted hazard=%s reporter=%s type=%s confirmations=%d disputes=%d status=%s",
            hazard_id,
            mask_identity(reporter),
            kind,
            confirmations,
            disputes,
            updated.status,
        )
        return VoteResult(
            hazard_id=hazard_id,
            accepted=True,
            reason=VoteOutcome.ACCEPTED,
            confirmation_count=updated.confirmation_count,
            dispute_count=updated.dispute_count,
            status=updated.status,
            status_reason=updated.status_reason,
        )

    # ------------------------------------------------------------------
    # Persistence support
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, list[ConfirmationEntry]]:
        with self._index_lock:
            return {hazard_id: list(entries) for hazard_id, entries in self._entries.items() if entries}

    def restore(self, entries: Mapping[str, list[ConfirmationEntry]]) -> None:
        """Replace the ledger and resync store counters from it.

        Entries of hazards the store does not know are discarded.
        """
        kept: dict[str, list[ConfirmationEntry]] = {}
        for hazard_id, bucket in entries.items():
            if hazard_id not in self._store:
                _logger.debug("Ledger restore skipped orphan entries for %s", hazard_id)
                continue
            kept[hazard_id] = sorted(bucket, key=lambda entry: entry.timestamp)
        with self._index_lock:
            self._entries = kept
        for record in self._store.list_all():
            confirmations, disputes = self.counts(record.id)
            self._store.sync_vote_counts(record.id, confirmation_count=confirmations, dispute_count=disputes)
