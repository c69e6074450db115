"""Confirmation ledger entries and vote outcomes."""

from __future__ import annotations

from enum import StrEnum

from pydantic import ConfigDict, Field

from hazardscout.models._base import HazardBaseModel, UtcDatetime
from hazardscout.models.hazard import HazardStatus, StatusReason


class VoteType(StrEnum):
    STILL_PRESENT = "still-present"
    DISPUTED_GONE = "disputed-gone"


class VoteOutcome(StrEnum):
    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"
    NOT_FOUND = "not-found"
    RESOLVED = "resolved"
    INVALID_INPUT = "invalid-input"


class ConfirmationEntry(HazardBaseModel):
    """A single reporter vote, owned by the confirmation ledger."""

    model_config = ConfigDict(frozen=True)

    reporter_id: str = Field(..., min_length=1)
    timestamp: UtcDatetime
    vote_type: VoteType


class VoteResult(HazardBaseModel):
    """Typed outcome of a vote.

    Rejections (``accepted=False``) are normal results, not errors: a UI
    renders ``reason=duplicate`` as "already voted".
    """

    model_config = ConfigDict(frozen=True)

    hazard_id: str
    accepted: bool
    reason: VoteOutcome
    confirmation_count: int = 0
    dispute_count: int = 0
    status: HazardStatus | None = None
    status_reason: StatusReason | None = None
