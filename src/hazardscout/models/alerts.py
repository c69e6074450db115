"""Proximity alert emitted by the notifier."""

from __future__ import annotations

from pydantic import ConfigDict, Field

from hazardscout.models._base import HazardBaseModel, UtcDatetime
from hazardscout.models.hazard import HazardSeverity


class ProximityAlert(HazardBaseModel):
    model_config = ConfigDict(frozen=True)

    hazard_id: str
    type: str
    severity: HazardSeverity
    distance_meters: float = Field(..., ge=0)
    location_label: str = ""
    title: str
    body: str
    # High severity alerts stay on screen until dismissed.
    requires_interaction: bool = False
    is_test: bool = False
    emitted_at: UtcDatetime
