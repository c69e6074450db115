"""Boundary events and store change notifications.

Detector, reporter and settings collaborators convert their inputs into
the pydantic events below.  The store publishes :class:`HazardChange`
notifications to subscribers after every committed mutation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from hazardscout.models.hazard import GeoPoint, HazardRecord, HazardSeverity, HazardSource, HazardStatus, StatusReason
from hazardscout.models.votes import VoteType


class _BoundaryEvent(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )


class DetectionEvent(_BoundaryEvent):
    """A detector observed a hazard.

    With ``hazard_id`` the event is a re-detection of that hazard.
    """

    type: str = Field(..., min_length=1)
    severity: HazardSeverity
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)
    source: HazardSource
    location_label: str | None = None
    hazard_id: str | None = None

    @field_validator("hazard_id")
    @classmethod
    def _blank_id_is_none(cls, value: str | None) -> str | None:
        return value or None

    @property
    def location(self) -> GeoPoint:
        return GeoPoint(latitude=self.lat, longitude=self.lng)


class ConfirmationEvent(_BoundaryEvent):
    """A reporter voted on a hazard."""

    hazard_id: str = Field(..., min_length=1)
    reporter_id: str = Field(..., min_length=1)
    vote_type: VoteType


class PolicyUpdate(_BoundaryEvent):
    """Partial settings update, applied prospectively.

    ``notifier_settings`` is a partial mapping merged onto the current
    notification settings (nested ``doNotDisturb`` keys included).
    """

    auto_resolve_after_hours: float | None = Field(default=None, gt=0)
    required_disputes_to_resolve: int | None = Field(default=None, ge=1)
    retention_days: float | None = Field(default=None, gt=0)
    vote_cooldown_minutes: float | None = Field(default=None, ge=0)
    auto_resolution_enabled: bool | None = None
    detection_match_radius_meters: float | None = Field(default=None, ge=0)
    sweep_interval_seconds: float | None = Field(default=None, gt=0)
    notifier_settings: dict[str, Any] | None = None


class ChangeKind(StrEnum):
    CREATED = "created"
    REDETECTED = "redetected"
    VOTED = "voted"
    TRANSITIONED = "transitioned"
    POLICY_REAPPLIED = "policy-reapplied"
    PURGED = "purged"


@dataclass(frozen=True)
class HazardChange:
    """Committed store mutation.

    ``record`` is a private copy of the hazard after the change (``None``
    for purges).
    """

    kind: ChangeKind
    hazard_id: str
    record: HazardRecord | None = None
    previous_status: HazardStatus | None = None
    reason: StatusReason | None = None
