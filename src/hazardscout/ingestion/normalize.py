"""Normalization helpers.

Centralizes defensive parsing of raw detector and reporter payloads,
which arrive from UIs, peer vehicles and roadside units with slightly
different spellings.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from hazardscout.models.hazard import HazardSeverity, HazardSource
from hazardscout.models.votes import VoteType

_SEVERITY_ALIASES: dict[str, HazardSeverity] = {
    "critical": HazardSeverity.HIGH,
    "high": HazardSeverity.HIGH,
    "medium": HazardSeverity.MEDIUM,
    "moderate": HazardSeverity.MEDIUM,
    "low": HazardSeverity.LOW,
    "minor": HazardSeverity.LOW,
}

_SOURCE_ALIASES: dict[str, HazardSource] = {
    "sensor-own-vehicle": HazardSource.SENSOR_OWN_VEHICLE,
    "your-car": HazardSource.SENSOR_OWN_VEHICLE,
    "own-vehicle": HazardSource.SENSOR_OWN_VEHICLE,
    "sensor": HazardSource.SENSOR_OWN_VEHICLE,
    "peer-network": HazardSource.PEER_NETWORK,
    "network": HazardSource.PEER_NETWORK,
    "v2v": HazardSource.PEER_NETWORK,
    "v2x": HazardSource.PEER_NETWORK,
    "infrastructure": HazardSource.INFRASTRUCTURE,
    "roadside-unit": HazardSource.INFRASTRUCTURE,
    "rsu": HazardSource.INFRASTRUCTURE,
    "manual-report": HazardSource.MANUAL_REPORT,
    "user-report": HazardSource.MANUAL_REPORT,
    "manual": HazardSource.MANUAL_REPORT,
}

_VOTE_ALIASES: dict[str, VoteType] = {
    "still-present": VoteType.STILL_PRESENT,
    "still-there": VoteType.STILL_PRESENT,
    "confirm": VoteType.STILL_PRESENT,
    "disputed-gone": VoteType.DISPUTED_GONE,
    "gone": VoteType.DISPUTED_GONE,
    "dispute": VoteType.DISPUTED_GONE,
}


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _alias_key(value: Any) -> str | None:
    text = safe_str(value)
    if text is None:
        return None
    return text.lower().replace("_", "-").replace(" ", "-")


def normalize_severity(value: Any) -> HazardSeverity | None:
    key = _alias_key(value)
    return _SEVERITY_ALIASES.get(key) if key is not None else None


def normalize_source(value: Any) -> HazardSource | None:
    key = _alias_key(value)
    return _SOURCE_ALIASES.get(key) if key is not None else None


def normalize_vote_type(value: Any) -> VoteType | None:
    key = _alias_key(value)
    return _VOTE_ALIASES.get(key) if key is not None else None


def first_present(data: Mapping[str, Any], *keys: str) -> Any:
    """Value of the first key present with a non-empty value."""
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None


def extract_coordinates(data: Mapping[str, Any]) -> tuple[float | None, float | None]:
    """Pull ``(lat, lng)`` from flat or nested ``location`` payload shapes."""
    nested = data.get("location")
    candidate: Mapping[str, Any] = nested if isinstance(nested, Mapping) else data
    lat = safe_float(first_present(candidate, "lat", "latitude"))
    lng = safe_float(first_present(candidate, "lng", "lon", "longitude"))
    return lat, lng
