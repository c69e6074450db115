from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from hazardscout.models import GeoPoint, HazardSeverity, HazardSource, PolicySnapshot
from hazardscout.state.store import HazardStore

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


def hazard_input(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "type": "pothole",
        "severity": HazardSeverity.HIGH,
        "location": GeoPoint(latitude=52.3702, longitude=4.8952),
        "source": HazardSource.SENSOR_OWN_VEHICLE,
        "policy": PolicySnapshot(auto_resolve_after_hours=24, required_disputes_to_resolve=3),
        "location_label": "Damrak",
    }
    data.update(overrides)
    return data


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> HazardStore:
    return HazardStore(clock=clock)
