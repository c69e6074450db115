"""Tests for pydantic model parsing with HazardBaseModel."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from hazardscout.models import (
    GeoPoint,
    HazardRecord,
    HazardStatus,
    NotificationSettings,
    ServiceSettings,
    parse_timestamp,
)

# ------------------------------------------------------------------
# Timestamps
# ------------------------------------------------------------------


class TestTimestamps:
    def test_epoch_seconds(self) -> None:
        assert parse_timestamp(1_767_268_800) == datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def test_epoch_milliseconds(self) -> None:
        assert parse_timestamp(1_767_268_800_000) == datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def test_strings_pass_through(self) -> None:
        assert parse_timestamp("2026-01-01T12:00:00Z") == "2026-01-01T12:00:00Z"

    def test_record_timestamps_are_utc(self) -> None:
        record = HazardRecord.model_validate(
            {
                "id": "hazard-1",
                "type": "pothole",
                "severity": "high",
                "location": {"lat": 52.0, "lng": 4.0},
                "source": "peer-network",
                "firstDetectedAt": "2026-01-01T13:00:00+01:00",
                "lastConfirmedAt": datetime(2026, 1, 1, 12, 0),
                "lastUpdatedAt": 1_767_268_800_000,
            }
        )

        expected = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
        assert record.first_detected_at == expected
        assert record.first_detected_at.utcoffset() == timedelta(0)
        assert record.last_confirmed_at == expected
        assert record.last_updated_at == expected
        assert record.status is HazardStatus.ACTIVE


# ------------------------------------------------------------------
# Records and settings
# ------------------------------------------------------------------


def test_record_serializes_camel_case() -> None:
    record = HazardRecord(
        id="hazard-1",
        type="pothole",
        severity="medium",
        location=GeoPoint(latitude=1.5, longitude=2.5),
        source="manual-report",
        first_detected_at=datetime(2026, 1, 1, tzinfo=UTC),
        last_confirmed_at=datetime(2026, 1, 1, tzinfo=UTC),
        last_updated_at=datetime(2026, 1, 1, tzinfo=UTC),
    )

    data = record.to_dict()

    assert data["location"] == {"latitude": 1.5, "longitude": 2.5}
    assert data["detectionCount"] == 1
    assert data["statusReason"] is None
    assert data["policy"] == {"autoResolveAfterHours": 24.0, "requiredDisputesToResolve": 3}


def test_geo_point_bounds() -> None:
    with pytest.raises(ValidationError):
        GeoPoint(latitude=91, longitude=0)
    assert GeoPoint.model_validate({"lat": 1, "lon": 2}).longitude == 2.0


def test_service_settings_defaults() -> None:
    settings = ServiceSettings()

    assert settings.auto_resolution_enabled is True
    assert settings.default_auto_resolve_hours == 24
    assert settings.required_disputes_to_resolve == 3
    assert settings.retention == timedelta(days=7)
    assert settings.vote_cooldown == timedelta(hours=1)
    assert settings.sweep_interval_seconds == 300
    assert settings.policy_snapshot().auto_resolve_after_hours == 24


def test_notification_settings_defaults_and_validation() -> None:
    settings = NotificationSettings()

    assert settings.enabled is True
    assert settings.proximity_threshold_meters == 1000
    assert settings.critical_only is True
    assert settings.do_not_disturb.enabled is False
    assert (settings.do_not_disturb.start_time, settings.do_not_disturb.end_time) == ("22:00", "07:00")

    with pytest.raises(ValidationError):
        NotificationSettings.model_validate({"doNotDisturb": {"startTime": "7pm"}})
