"""Hazard record model and its classification enums."""

from __future__ import annotations

from enum import StrEnum

from pydantic import AliasChoices, ConfigDict, Field

from hazardscout.models._base import HazardBaseModel, UtcDatetime


class HazardSeverity(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class HazardSource(StrEnum):
    SENSOR_OWN_VEHICLE = "sensor-own-vehicle"
    PEER_NETWORK = "peer-network"
    INFRASTRUCTURE = "infrastructure"
    MANUAL_REPORT = "manual-report"


class HazardStatus(StrEnum):
    ACTIVE = "Active"
    RESOLVING = "Resolving"
    RESOLVED = "Resolved"

    @property
    def is_open(self) -> bool:
        return self is not HazardStatus.RESOLVED


class StatusReason(StrEnum):
    """Why a hazard last changed status."""

    QUORUM = "quorum"
    TIMEOUT_QUORUM = "timeout+quorum"
    AWAITING_CONFIRMATION = "awaiting-confirmation"
    DISPUTED = "disputed"
    RECONFIRMED = "reconfirmed"
    REDETECTED = "redetected"
    MANUAL = "manual"


class GeoPoint(HazardBaseModel):
    """WGS84 coordinate pair.

    Accepts ``latitude``/``longitude`` as well as the short ``lat``/``lng``
    (or ``lon``) spellings used by detector payloads.
    """

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90.0, le=90.0, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float = Field(
        ...,
        ge=-180.0,
        le=180.0,
        validation_alias=AliasChoices("longitude", "lng", "lon"),
    )


class PolicySnapshot(HazardBaseModel):
    """Resolution policy captured on a hazard at creation time."""

    model_config = ConfigDict(frozen=True)

    auto_resolve_after_hours: float = Field(default=24.0, gt=0)
    required_disputes_to_resolve: int = Field(default=3, ge=1)


class HazardInput(HazardBaseModel):
    """Validated input for :meth:`hazardscout.state.store.HazardStore.create_hazard`."""

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    type: str = Field(..., min_length=1)
    severity: HazardSeverity
    location: GeoPoint
    source: HazardSource
    policy: PolicySnapshot
    location_label: str = ""


class HazardRecord(HazardBaseModel):
    """Canonical state of one detected hazard.

    ``confirmation_count`` and ``dispute_count`` mirror the confirmation
    ledger and are only ever written by it.  ``version`` increases on every
    mutation and backs compare-and-retry transitions.
    """

    id: str = Field(..., min_length=1)
    type: str
    severity: HazardSeverity
    location: GeoPoint
    location_label: str = ""
    source: HazardSource
    status: HazardStatus = HazardStatus.ACTIVE
    status_reason: StatusReason | None = None
    first_detected_at: UtcDatetime
    last_confirmed_at: UtcDatetime
    last_updated_at: UtcDatetime
    resolved_at: UtcDatetime | None = None
    detection_count: int = Field(default=1, ge=1)
    confirmation_count: int = Field(default=0, ge=0)
    dispute_count: int = Field(default=0, ge=0)
    policy: PolicySnapshot = Field(default_factory=PolicySnapshot)
    version: int = Field(default=0, ge=0)

    @property
    def is_open(self) -> bool:
        """Whether the hazard is still Active or Resolving."""
        return self.status.is_open
