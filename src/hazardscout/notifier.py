"""Proximity alerts for open hazards.

The notifier never owns hazard state: it is handed hazard snapshots and
the caller's position and decides which hazards deserve an alert.  Each
hazard alerts at most once until it is cleared (normally on resolution).
"""

from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime, tzinfo

from hazardscout._geo import format_distance, haversine_meters
from hazardscout.models._base import utcnow
from hazardscout.models.alerts import ProximityAlert
from hazardscout.models.hazard import GeoPoint, HazardRecord, HazardSeverity
from hazardscout.models.settings import DoNotDisturbWindow, NotificationSettings

_logger = logging.getLogger(__name__)

AlertSink = Callable[[ProximityAlert], None]

_CRITICAL_SEVERITIES = frozenset({HazardSeverity.HIGH, HazardSeverity.MEDIUM})


def is_in_quiet_hours(window: DoNotDisturbWindow, local_time: datetime) -> bool:
    """Whether *local_time* falls inside the Do-Not-Disturb window.

    ``HH:MM`` strings compare lexicographically in chronological order,
    and a start later than the end wraps midnight.
    """
    if not window.enabled:
        return False
    current = local_time.strftime("%H:%M")
    if window.start_time > window.end_time:
        return current >= window.start_time or current < window.end_time
    return window.start_time <= current < window.end_time


def alert_title(hazard_type: str, severity: HazardSeverity) -> str:
    label = hazard_type.replace("-", " ").replace("_", " ").strip().title() or "Hazard"
    prefix = "CRITICAL: " if severity is HazardSeverity.HIGH else ""
    return f"{prefix}{label} Ahead"


def alert_body(distance_meters: float, location_label: str) -> str:
    where = location_label or "your route"
    return f"{format_distance(distance_meters)} ahead on {where}. Drive with caution."


class ProximityNotifier:
    """Emit one alert per nearby hazard.

    Parameters
    ----------
    settings : NotificationSettings, optional
        Initial settings; defaults to :class:`NotificationSettings`.
    clock : callable
        Time source used for Do-Not-Disturb checks and alert timestamps.
    tz : tzinfo, optional
        Time zone the Do-Not-Disturb window is expressed in.  ``None``
        uses the system local time zone.
    """

    def __init__(
        self,
        settings: NotificationSettings | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
        tz: tzinfo | None = None,
    ) -> None:
        self._settings = settings or NotificationSettings()
        self._clock = clock
        self._tz = tz
        self._notified: set[str] = set()
        self._lock = threading.Lock()
        self._sinks: list[AlertSink] = []

    @property
    def settings(self) -> NotificationSettings:
        return self._settings

    @settings.setter
    def settings(self, value: NotificationSettings) -> None:
        self._settings = value

    def subscribe(self, sink: AlertSink) -> Callable[[], None]:
        """Deliver alerts to *sink*; returns a callable that unsubscribes it."""
        with self._lock:
            self._sinks.append(sink)

        def _unsubscribe() -> None:
            with self._lock:
                with contextlib.suppress(ValueError):
                    self._sinks.remove(sink)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def is_in_do_not_disturb(self, now: datetime | None = None) -> bool:
        moment = now or self._clock()
        return is_in_quiet_hours(self._settings.do_not_disturb, moment.astimezone(self._tz))

    def _meets_severity(self, severity: HazardSeverity) -> bool:
        return not self._settings.critical_only or severity in _CRITICAL_SEVERITIES

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def _emit(self, alert: ProximityAlert) -> None:
        with self._lock:
            sinks = list(self._sinks)
        for sink in sinks:
            try:
                sink(alert)
            except Exception:
                _logger.exception("Alert sink failed for hazard %s", alert.hazard_id)

    def _build_alert(self, hazard: HazardRecord, distance: float) -> ProximityAlert:
        return ProximityAlert(
            hazard_id=hazard.id,
            type=hazard.type,
            severity=hazard.severity,
            distance_meters=distance,
            location_label=hazard.location_label,
            title=alert_title(hazard.type, hazard.severity),
            body=alert_body(distance, hazard.location_label),
            requires_interaction=hazard.severity is HazardSeverity.HIGH,
            emitted_at=self._clock(),
        )

    def notify(self, hazard: HazardRecord, position: GeoPoint) -> ProximityAlert | None:
        """Alert for *hazard* if every filter passes; ``None`` otherwise."""
        settings = self._settings
        if not settings.enabled or not hazard.is_open:
            return None
        if not self._meets_severity(hazard.severity):
            return None
        distance = haversine_meters(position, hazard.location)
        if distance > settings.proximity_threshold_meters:
            return None
        if self.is_in_do_not_disturb():
            return None

        with self._lock:
            if hazard.id in self._notified:
                return None
            self._notified.add(hazard.id)

        alert = self._build_alert(hazard, distance)
        _logger.debug("Proximity alert hazard=%s distance=%.0fm", hazard.id, distance)
        self._emit(alert)
        return alert

    def check(self, hazards: Iterable[HazardRecord], position: GeoPoint) -> list[ProximityAlert]:
        """Run :meth:`notify` for every hazard; returns the alerts emitted."""
        if not self._settings.enabled or self.is_in_do_not_disturb():
            return []
        alerts: list[ProximityAlert] = []
        for hazard in hazards:
            alert = self.notify(hazard, position)
            if alert is not None:
                alerts.append(alert)
        return alerts

    def send_test_alert(self) -> ProximityAlert:
        """Diagnostics: emit a sample alert, bypassing every filter and the dedup set."""
        now = self._clock()
        sample = ProximityAlert(
            hazard_id=f"test-{int(now.timestamp() * 1000)}",
            type="pothole",
            severity=HazardSeverity.HIGH,
            distance_meters=500.0,
            location_label="Test Road, Downtown",
            title=alert_title("pothole", HazardSeverity.HIGH),
            body=alert_body(500.0, "Test Road, Downtown"),
            requires_interaction=True,
            is_test=True,
            emitted_at=now,
        )
        self._emit(sample)
        return sample

    # ------------------------------------------------------------------
    # Dedup bookkeeping
    # ------------------------------------------------------------------

    def was_notified(self, hazard_id: str) -> bool:
        with self._lock:
            return hazard_id in self._notified

    def clear(self, hazard_id: str) -> None:
        with self._lock:
            self._notified.discard(hazard_id)

    def clear_all(self) -> None:
        with self._lock:
            self._notified.clear()
