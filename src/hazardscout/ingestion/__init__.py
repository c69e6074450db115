"""Ingestion layer.

This package contains adapters that receive raw hazard payloads from
detectors and reporters and emit normalized boundary events.
"""

from hazardscout.ingestion.events import build_confirmation_event, build_detection_event, build_policy_update

__all__: list[str] = ["build_confirmation_event", "build_detection_event", "build_policy_update"]
