"""Data models for hazard records, votes, settings and results."""

from hazardscout.models._base import HazardBaseModel, UtcDatetime, ensure_utc, parse_timestamp, utcnow
from hazardscout.models.alerts import ProximityAlert
from hazardscout.models.hazard import (
    GeoPoint,
    HazardInput,
    HazardRecord,
    HazardSeverity,
    HazardSource,
    HazardStatus,
    PolicySnapshot,
    StatusReason,
)
from hazardscout.models.results import DetectionResult, PolicyUpdateResult, ResolutionProgress
from hazardscout.models.settings import DoNotDisturbWindow, NotificationSettings, ServiceSettings
from hazardscout.models.votes import ConfirmationEntry, VoteOutcome, VoteResult, VoteType

__all__ = [
    "ConfirmationEntry",
    "DetectionResult",
    "DoNotDisturbWindow",
    "GeoPoint",
    "HazardBaseModel",
    "HazardInput",
    "HazardRecord",
    "HazardSeverity",
    "HazardSource",
    "HazardStatus",
    "NotificationSettings",
    "PolicySnapshot",
    "PolicyUpdateResult",
    "ProximityAlert",
    "ResolutionProgress",
    "ServiceSettings",
    "StatusReason",
    "UtcDatetime",
    "VoteOutcome",
    "VoteResult",
    "VoteType",
    "ensure_utc",
    "parse_timestamp",
    "utcnow",
]
