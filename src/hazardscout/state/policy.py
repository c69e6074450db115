"""Deterministic hazard resolution policy.

Everything here is a pure function of a hazard record and the current
time.  Nothing in this module mutates state; the scheduler and the
confirmation ledger apply the returned decisions.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from hazardscout.exceptions import PolicyEvaluationError
from hazardscout.models.hazard import HazardRecord, HazardStatus, PolicySnapshot, StatusReason


@dataclass(frozen=True)
class Decision:
    """Next lifecycle step for a hazard; ``new_status=None`` means stay put."""

    new_status: HazardStatus | None = None
    reason: StatusReason | None = None

    @property
    def is_transition(self) -> bool:
        return self.new_status is not None


NO_TRANSITION = Decision()


def auto_resolve_window(policy: PolicySnapshot) -> timedelta:
    """Return the confirmation timeout of *policy*.

    Snapshots are validated at creation, but records restored from disk or
    built with ``model_construct`` may still carry garbage.
    """
    hours = policy.auto_resolve_after_hours
    if not isinstance(hours, (int, float)) or not math.isfinite(hours) or hours <= 0:
        raise PolicyEvaluationError(f"Invalid autoResolveAfterHours: {hours!r}")
    return timedelta(hours=hours)


def _quorum(policy: PolicySnapshot) -> int:
    required = policy.required_disputes_to_resolve
    if not isinstance(required, int) or required < 1:
        raise PolicyEvaluationError(f"Invalid requiredDisputesToResolve: {required!r}")
    return required


def has_quorum(record: HazardRecord) -> bool:
    return record.dispute_count >= _quorum(record.policy)


def evaluate(record: HazardRecord, now: datetime) -> Decision:
    """Compute the next status of *record* at *now*.

    Policy:
    - Dispute quorum resolves immediately ("quorum"), regardless of age.
    - Past the confirmation timeout: resolve if quorum holds
      ("timeout+quorum"), otherwise mark Resolving ("awaiting-confirmation").
    - Timeout alone never resolves a hazard.
    """
    if record.status is HazardStatus.RESOLVED:
        return NO_TRANSITION

    if has_quorum(record):
        return Decision(HazardStatus.RESOLVED, StatusReason.QUORUM)

    window = auto_resolve_window(record.policy)
    if now - record.last_confirmed_at > window:
        if has_quorum(record):
            return Decision(HazardStatus.RESOLVED, StatusReason.TIMEOUT_QUORUM)
        if record.status is HazardStatus.RESOLVING:
            return NO_TRANSITION
        return Decision(HazardStatus.RESOLVING, StatusReason.AWAITING_CONFIRMATION)

    return NO_TRANSITION


def time_until_auto_resolve(record: HazardRecord, now: datetime) -> timedelta | None:
    """Time left before the confirmation timeout; zero once elapsed, ``None`` if resolved."""
    if record.status is HazardStatus.RESOLVED:
        return None
    remaining = auto_resolve_window(record.policy) - (now - record.last_confirmed_at)
    return remaining if remaining > timedelta(0) else timedelta(0)


def resolution_percentage(record: HazardRecord) -> float:
    return min(100.0, record.dispute_count / _quorum(record.policy) * 100.0)


def is_past_retention(record: HazardRecord, now: datetime, retention: timedelta) -> bool:
    """Whether a Resolved record is old enough to be purged."""
    if record.status is not HazardStatus.RESOLVED:
        return False
    return record.last_updated_at < now - retention


def is_transition_allowed(current: HazardStatus, target: HazardStatus) -> bool:
    """Allowed single-step lifecycle moves.

    Active -> Resolved is not a single step; callers route it through
    Resolving.
    """
    allowed: dict[HazardStatus, frozenset[HazardStatus]] = {
        HazardStatus.ACTIVE: frozenset({HazardStatus.RESOLVING}),
        HazardStatus.RESOLVING: frozenset({HazardStatus.ACTIVE, HazardStatus.RESOLVED}),
        HazardStatus.RESOLVED: frozenset(),
    }
    return target in allowed[current]
