"""Runtime-tunable service and notification settings.

Both models are part of the persisted state, so a policy update survives
restarts.  Hazards carry their own :class:`PolicySnapshot`; editing these
settings only affects hazards created afterwards.
"""

from __future__ import annotations

from datetime import timedelta

from pydantic import ConfigDict, Field

from hazardscout.models._base import HazardBaseModel
from hazardscout.models.hazard import PolicySnapshot

_HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class ServiceSettings(HazardBaseModel):
    """Global resolution policy.

    Parameters
    ----------
    auto_resolution_enabled : bool
        When ``False`` the scheduler skips policy transitions (retention
        purging still runs).
    default_auto_resolve_hours : float
        Hours without a confirmation before a hazard is marked Resolving.
    required_disputes_to_resolve : int
        Dispute quorum.
    resolved_retention_days : float
        How long Resolved hazards are kept before being purged.
    vote_cooldown_minutes : float
        Per-reporter, per-vote-type cooldown window.
    sweep_interval_seconds : float
        Scheduler period.
    detection_match_radius_meters : float
        Detections of the same type within this radius of an open hazard
        count as re-detections.  ``0`` disables matching.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    auto_resolution_enabled: bool = True
    default_auto_resolve_hours: float = Field(default=24.0, gt=0)
    required_disputes_to_resolve: int = Field(default=3, ge=1)
    resolved_retention_days: float = Field(default=7.0, gt=0)
    vote_cooldown_minutes: float = Field(default=60.0, ge=0)
    sweep_interval_seconds: float = Field(default=300.0, gt=0)
    detection_match_radius_meters: float = Field(default=25.0, ge=0)

    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.resolved_retention_days)

    @property
    def vote_cooldown(self) -> timedelta:
        return timedelta(minutes=self.vote_cooldown_minutes)

    def policy_snapshot(self) -> PolicySnapshot:
        """Policy captured on hazards created under these settings."""
        return PolicySnapshot(
            auto_resolve_after_hours=self.default_auto_resolve_hours,
            required_disputes_to_resolve=self.required_disputes_to_resolve,
        )


class DoNotDisturbWindow(HazardBaseModel):
    """Daily quiet window in local ``HH:MM`` time.

    A window whose start is later than its end wraps midnight
    (``22:00``-``07:00``).
    """

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    start_time: str = Field(default="22:00", pattern=_HHMM_PATTERN)
    end_time: str = Field(default="07:00", pattern=_HHMM_PATTERN)


class NotificationSettings(HazardBaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    proximity_threshold_meters: float = Field(default=1000.0, gt=0)
    # High and medium severity only.
    critical_only: bool = True
    do_not_disturb: DoNotDisturbWindow = Field(default_factory=DoNotDisturbWindow)
