"""Typed results returned across the service boundary."""

from __future__ import annotations

from datetime import timedelta

from pydantic import ConfigDict, Field

from hazardscout.models._base import HazardBaseModel
from hazardscout.models.hazard import HazardRecord
from hazardscout.models.settings import NotificationSettings, ServiceSettings


class DetectionResult(HazardBaseModel):
    """Outcome of a detection event.

    ``created`` distinguishes a new hazard from a re-detection of an
    existing one.  Invalid payloads yield ``accepted=False`` with the
    validation messages in ``errors``.
    """

    model_config = ConfigDict(frozen=True)

    accepted: bool
    created: bool = False
    hazard: HazardRecord | None = None
    reason: str = ""
    errors: list[str] = Field(default_factory=list)


class PolicyUpdateResult(HazardBaseModel):
    model_config = ConfigDict(frozen=True)

    accepted: bool
    settings: ServiceSettings
    notification_settings: NotificationSettings
    errors: list[str] = Field(default_factory=list)


class ResolutionProgress(HazardBaseModel):
    """How close a hazard is to resolving.

    Parameters
    ----------
    disputes_needed : int
        Dispute quorum from the hazard's policy snapshot.
    current_disputes : int
        Disputes recorded so far.
    current_confirmations : int
        Confirmations recorded so far.
    percentage : float
        Progress towards the dispute quorum, capped at 100.
    time_remaining : timedelta or None
        Time left before the auto-resolve timeout (zero once elapsed),
        ``None`` for resolved hazards.
    """

    model_config = ConfigDict(frozen=True)

    disputes_needed: int
    current_disputes: int
    current_confirmations: int
    percentage: float = Field(..., ge=0, le=100)
    time_remaining: timedelta | None = None
