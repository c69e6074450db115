"""Raw payload to boundary event conversion.

Collaborators (UI forms, peer-vehicle alerts, MQTT messages) hand the
service plain dicts.  These builders normalize the known spellings and
then let the pydantic event models do the strict validation.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from hazardscout.exceptions import InvalidHazardInputError
from hazardscout.ingestion.normalize import (
    extract_coordinates,
    first_present,
    normalize_severity,
    normalize_source,
    normalize_vote_type,
    safe_str,
)
from hazardscout.state.events import ConfirmationEvent, DetectionEvent, PolicyUpdate
from hazardscout.state.store import format_validation_errors


def _invalid(kind: str, exc: ValidationError) -> InvalidHazardInputError:
    return InvalidHazardInputError(f"Invalid {kind} payload", errors=format_validation_errors(exc))


def build_detection_event(payload: Mapping[str, Any]) -> DetectionEvent:
    """Build a :class:`DetectionEvent` from a raw detector payload.

    Accepts ``lat``/``lng`` or a nested ``location`` object, severity
    ``critical`` (mapped to high), and the source spellings used by the
    app and peer network (``your-car``, ``network``, ``v2x``, ...).

    Raises
    ------
    InvalidHazardInputError
        If required fields are missing or invalid after normalization.
    """
    lat, lng = extract_coordinates(payload)
    raw_severity = payload.get("severity")
    raw_source = first_present(payload, "source", "detectionSource")
    data: dict[str, Any] = {
        "type": safe_str(first_present(payload, "type", "hazardType")),
        "severity": normalize_severity(raw_severity) or raw_severity,
        "lat": lat,
        "lng": lng,
        "source": normalize_source(raw_source) or raw_source,
        "location_label": safe_str(first_present(payload, "locationLabel", "locationName", "description")),
        "hazard_id": safe_str(first_present(payload, "hazardId", "hazard_id")),
    }
    try:
        return DetectionEvent.model_validate(data)
    except ValidationError as exc:
        raise _invalid("detection", exc) from exc


def build_confirmation_event(payload: Mapping[str, Any]) -> ConfirmationEvent:
    """Build a :class:`ConfirmationEvent` (``still-there``/``gone`` accepted)."""
    raw_vote = first_present(payload, "voteType", "vote_type", "type")
    data = {
        "hazard_id": safe_str(first_present(payload, "hazardId", "hazard_id")),
        "reporter_id": safe_str(first_present(payload, "reporterId", "reporter_id", "deviceId", "userId")),
        "vote_type": normalize_vote_type(raw_vote) or raw_vote,
    }
    try:
        return ConfirmationEvent.model_validate(data)
    except ValidationError as exc:
        raise _invalid("confirmation", exc) from exc


def build_policy_update(payload: Mapping[str, Any]) -> PolicyUpdate:
    try:
        return PolicyUpdate.model_validate(dict(payload))
    except ValidationError as exc:
        raise _invalid("policy update", exc) from exc
