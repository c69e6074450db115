"""Hazard lifecycle service.

:class:`HazardService` is the explicitly constructed entry point that
wires the store, confirmation ledger, scheduler, proximity notifier and a
persistence backend together.  Boundary events go in as pydantic events
or raw mappings; outcomes come back as typed results.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from datetime import datetime, tzinfo
from typing import Any
from zoneinfo import ZoneInfo

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from hazardscout._geo import haversine_meters
from hazardscout._redact import redact_for_log
from hazardscout.config import HazardScoutConfig
from hazardscout.exceptions import InvalidHazardInputError, PersistenceError
from hazardscout.ingestion import build_confirmation_event, build_detection_event, build_policy_update
from hazardscout.models._base import utcnow
from hazardscout.models.alerts import ProximityAlert
from hazardscout.models.hazard import GeoPoint, HazardInput, HazardRecord, HazardStatus, StatusReason
from hazardscout.models.results import DetectionResult, PolicyUpdateResult, ResolutionProgress
from hazardscout.models.settings import NotificationSettings, ServiceSettings
from hazardscout.models.votes import VoteOutcome, VoteResult, VoteType
from hazardscout.notifier import AlertSink, ProximityNotifier
from hazardscout.persistence import JsonFileStateBackend, MemoryStateBackend, PersistedState, StateBackend
from hazardscout.scheduler import Scheduler, SweepReport
from hazardscout.state.events import ChangeKind, ConfirmationEvent, DetectionEvent, HazardChange, PolicyUpdate
from hazardscout.state.ledger import ConfirmationLedger
from hazardscout.state.policy import resolution_percentage, time_until_auto_resolve
from hazardscout.state.store import ChangeListener, HazardStore, format_validation_errors

_logger = logging.getLogger(__name__)

# PolicyUpdate field -> ServiceSettings field
_POLICY_FIELD_MAP: dict[str, str] = {
    "auto_resolve_after_hours": "default_auto_resolve_hours",
    "required_disputes_to_resolve": "required_disputes_to_resolve",
    "retention_days": "resolved_retention_days",
    "vote_cooldown_minutes": "vote_cooldown_minutes",
    "auto_resolution_enabled": "auto_resolution_enabled",
    "detection_match_radius_meters": "detection_match_radius_meters",
    "sweep_interval_seconds": "sweep_interval_seconds",
}


def _camel_keys(data: Mapping[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in data.items():
        name = to_camel(key) if "_" in key else key
        result[name] = _camel_keys(value) if isinstance(value, Mapping) else value
    return result


def _deep_merge(base: Mapping[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in patch.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


class HazardService:
    """Hazard lifecycle facade.

    Parameters
    ----------
    backend : StateBackend, optional
        Persistence backend; defaults to :class:`MemoryStateBackend`.
        State is loaded from it on construction.
    settings : ServiceSettings, optional
        Resolution policy.  When omitted the persisted settings (or the
        defaults) are used.
    notification_settings : NotificationSettings, optional
        Notifier preferences, same precedence as ``settings``.
    clock : callable
        Time source shared by every component.
    tz : tzinfo, optional
        Time zone of the Do-Not-Disturb window.
    """

    def __init__(
        self,
        backend: StateBackend | None = None,
        *,
        settings: ServiceSettings | None = None,
        notification_settings: NotificationSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
        tz: tzinfo | None = None,
    ) -> None:
        self._backend: StateBackend = backend if backend is not None else MemoryStateBackend()
        self._clock = clock
        self._settings_lock = threading.Lock()
        self._dirty_lock = threading.Lock()
        self._dirty = False
        self._position: GeoPoint | None = None

        state = self._load_state()
        if settings is None:
            settings = state.settings if state is not None else ServiceSettings()
        if notification_settings is None and state is not None:
            notification_settings = state.notification_settings
        self._settings = settings

        self.store = HazardStore(clock=clock)
        if state is not None:
            self.store.restore(state.hazards, purged_ids=state.purged_ids)
        self.ledger = ConfirmationLedger(self.store, cooldown=settings.vote_cooldown)
        if state is not None:
            self.ledger.restore(state.ledger)
        self.notifier = ProximityNotifier(notification_settings, clock=clock, tz=tz)
        self.scheduler = Scheduler(self.store, settings=lambda: self._settings, clock=clock, logger=_logger)

        self._unsubscribe_store = self.store.subscribe(self._on_store_change)
        self._remove_tick_listener = self.scheduler.add_tick_listener(self._on_tick)

    @classmethod
    def from_config(cls, config: HazardScoutConfig, **kwargs: Any) -> HazardService:
        """Build a service from deployment configuration.

        ``config.sweep_interval_seconds`` overrides the persisted scheduler
        period.  Extra keyword arguments are passed to the constructor.
        """
        backend: StateBackend = (
            JsonFileStateBackend(config.state_path) if config.state_path else MemoryStateBackend()
        )
        if config.time_zone and "tz" not in kwargs:
            kwargs["tz"] = ZoneInfo(config.time_zone)
        service = cls(backend, **kwargs)
        if config.sweep_interval_seconds is not None:
            service.apply_policy_update(PolicyUpdate(sweep_interval_seconds=config.sweep_interval_seconds))
        return service

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic sweep."""
        self.scheduler.start()

    def stop(self) -> None:
        """Stop the sweep and flush pending state."""
        self.scheduler.stop()
        self._flush()

    def __enter__(self) -> HazardService:
        self.start()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.stop()

    @property
    def settings(self) -> ServiceSettings:
        return self._settings

    @property
    def notification_settings(self) -> NotificationSettings:
        return self.notifier.settings

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load_state(self) -> PersistedState | None:
        try:
            state = self._backend.load()
        except PersistenceError:
            _logger.warning("Could not load persisted hazard state; starting empty", exc_info=True)
            return None
        if state is not None:
            _logger.debug("Loaded persisted state hazards=%d", len(state.hazards))
        return state

    def snapshot(self) -> PersistedState:
        """Serializable view of the complete service state."""
        return PersistedState(
            saved_at=self._clock(),
            hazards=self.store.list_all(),
            ledger=self.ledger.snapshot(),
            purged_ids=self.store.purged_ids(),
            settings=self._settings,
            notification_settings=self.notifier.settings,
        )

    def save(self) -> None:
        """Persist the current state; raises :class:`PersistenceError` on failure."""
        with self._dirty_lock:
            self._dirty = False
        try:
            self._backend.save(self.snapshot())
        except PersistenceError:
            self._mark_dirty()
            raise

    def _mark_dirty(self) -> None:
        with self._dirty_lock:
            self._dirty = True

    def _flush(self) -> bool:
        with self._dirty_lock:
            dirty = self._dirty
        if not dirty:
            return True
        try:
            self.save()
        except PersistenceError:
            _logger.warning("Saving hazard state failed; will retry on next tick", exc_info=True)
            return False
        return True

    # ------------------------------------------------------------------
    # Internal callbacks
    # ------------------------------------------------------------------

    def _on_store_change(self, change: HazardChange) -> None:
        self._mark_dirty()
        if change.kind is ChangeKind.PURGED:
            self.notifier.clear(change.hazard_id)
        elif change.record is not None and change.record.status is HazardStatus.RESOLVED:
            self.notifier.clear(change.hazard_id)

    def _on_tick(self, report: SweepReport) -> None:
        if self._position is not None:
            self.check_proximity()
        self._flush()

    # ------------------------------------------------------------------
    # Detection events
    # ------------------------------------------------------------------

    def _find_nearby(self, event: DetectionEvent) -> HazardRecord | None:
        radius = self._settings.detection_match_radius_meters
        if radius <= 0:
            return None
        point = event.location
        kind = event.type.lower()
        best: tuple[float, HazardRecord] | None = None
        for record in self.store.list_active():
            if record.type.lower() != kind:
                continue
            distance = haversine_meters(point, record.location)
            if distance <= radius and (best is None or distance < best[0]):
                best = (distance, record)
        return best[1] if best is not None else None

    def handle_detection(self, event: DetectionEvent | Mapping[str, Any]) -> DetectionResult:
        """Create a hazard or re-detect an existing one.

        Never raises for bad input: invalid payloads come back as
        ``accepted=False`` with ``reason="invalid-input"``.
        """
        if not isinstance(event, DetectionEvent):
            _logger.debug("Detection payload=%s", redact_for_log(event))
            try:
                event = build_detection_event(event)
            except InvalidHazardInputError as exc:
                return DetectionResult(accepted=False, reason="invalid-input", errors=exc.errors)

        if event.hazard_id is not None:
            if self.store.increment_detection(event.hazard_id):
                return DetectionResult(
                    accepted=True,
                    hazard=self.store.get(event.hazard_id),
                    reason="redetected",
                )
            if self.store.was_purged(event.hazard_id):
                reason = "purged"
            elif event.hazard_id in self.store:
                reason = "resolved"
            else:
                reason = "not-found"
            _logger.debug("Re-detection ignored hazard=%s reason=%s", event.hazard_id, reason)
            return DetectionResult(accepted=False, reason=reason)

        match = self._find_nearby(event)
        if match is not None and self.store.increment_detection(match.id):
            _logger.debug("Detection matched existing hazard %s", match.id)
            return DetectionResult(accepted=True, hazard=self.store.get(match.id), reason="redetected")

        try:
            hazard_input = HazardInput(
                type=event.type,
                severity=event.severity,
                location=event.location,
                source=event.source,
                policy=self._settings.policy_snapshot(),
                location_label=event.location_label or "",
            )
        except ValidationError as exc:
            return DetectionResult(accepted=False, reason="invalid-input", errors=format_validation_errors(exc))
        record = self.store.create_hazard(hazard_input)

        position = self._position
        if position is not None:
            self.notifier.notify(record, position)
        return DetectionResult(accepted=True, created=True, hazard=record, reason="created")

    # ------------------------------------------------------------------
    # Votes
    # ------------------------------------------------------------------

    def handle_confirmation(self, event: ConfirmationEvent | Mapping[str, Any]) -> VoteResult:
        """Record a reporter vote; rejections are returned, not raised."""
        if not isinstance(event, ConfirmationEvent):
            _logger.debug("Confirmation payload=%s", redact_for_log(event))
            try:
                event = build_confirmation_event(event)
            except InvalidHazardInputError:
                raw_id = event.get("hazardId", event.get("hazard_id", ""))
                return VoteResult(
                    hazard_id=str(raw_id or ""),
                    accepted=False,
                    reason=VoteOutcome.INVALID_INPUT,
                )
        return self.ledger.record_vote(event.hazard_id, event.reporter_id, event.vote_type)

    def confirm_still_present(self, hazard_id: str, reporter_id: str) -> VoteResult:
        return self.ledger.record_vote(hazard_id, reporter_id, VoteType.STILL_PRESENT)

    def report_gone(self, hazard_id: str, reporter_id: str) -> VoteResult:
        return self.ledger.record_vote(hazard_id, reporter_id, VoteType.DISPUTED_GONE)

    def has_recent_vote(self, hazard_id: str, reporter_id: str, vote_type: VoteType | str) -> bool:
        return self.ledger.has_recent_vote(hazard_id, reporter_id, vote_type)

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    def apply_policy_update(self, update: PolicyUpdate | Mapping[str, Any]) -> PolicyUpdateResult:
        """Apply a partial settings update to hazards created from now on.

        Existing hazards keep their policy snapshot; use
        :meth:`reapply_policy` to move one onto the current policy.
        """
        if not isinstance(update, PolicyUpdate):
            try:
                update = build_policy_update(update)
            except InvalidHazardInputError as exc:
                return PolicyUpdateResult(
                    accepted=False,
                    settings=self._settings,
                    notification_settings=self.notifier.settings,
                    errors=exc.errors,
                )

        with self._settings_lock:
            changes = {
                target: getattr(update, source)
                for source, target in _POLICY_FIELD_MAP.items()
                if getattr(update, source) is not None
            }
            try:
                new_settings = ServiceSettings.model_validate({**self._settings.model_dump(), **changes})
                new_notifications = self.notifier.settings
                if update.notifier_settings:
                    merged = _deep_merge(self.notifier.settings.to_dict(), _camel_keys(update.notifier_settings))
                    new_notifications = NotificationSettings.model_validate(merged)
            except ValidationError as exc:
                return PolicyUpdateResult(
                    accepted=False,
                    settings=self._settings,
                    notification_settings=self.notifier.settings,
                    errors=format_validation_errors(exc),
                )

            self._settings = new_settings
            self.ledger.cooldown = new_settings.vote_cooldown
            self.notifier.settings = new_notifications

        self._mark_dirty()
        _logger.debug("Policy updated settings=%s", new_settings.to_dict())
        return PolicyUpdateResult(
            accepted=True,
            settings=new_settings,
            notification_settings=new_notifications,
        )

    def reapply_policy(self, hazard_id: str) -> HazardRecord:
        """Replace an open hazard's policy snapshot with the current policy."""
        return self.store.reapply_policy(hazard_id, self._settings.policy_snapshot())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_active_hazards(self) -> list[HazardRecord]:
        """Open hazards, most recently detected first."""
        return sorted(self.store.list_active(), key=lambda record: record.first_detected_at, reverse=True)

    def get_all_hazards(self) -> list[HazardRecord]:
        return sorted(self.store.list_all(), key=lambda record: record.first_detected_at, reverse=True)

    def get_hazard(self, hazard_id: str) -> HazardRecord | None:
        return self.store.get(hazard_id)

    def get_resolution_progress(self, hazard_id: str) -> ResolutionProgress | None:
        record = self.store.get(hazard_id)
        if record is None:
            return None
        return ResolutionProgress(
            disputes_needed=record.policy.required_disputes_to_resolve,
            current_disputes=record.dispute_count,
            current_confirmations=record.confirmation_count,
            percentage=resolution_percentage(record),
            time_remaining=time_until_auto_resolve(record, self._clock()),
        )

    # ------------------------------------------------------------------
    # Manual actions
    # ------------------------------------------------------------------

    def manually_resolve(self, hazard_id: str) -> HazardRecord:
        """Resolve a hazard by hand.

        Raises
        ------
        HazardNotFoundError
            Unknown or purged id.
        """
        record = self.store.apply_transition(hazard_id, HazardStatus.RESOLVED, StatusReason.MANUAL)
        _logger.debug("Hazard %s manually resolved", hazard_id)
        return record

    def run_sweep(self, now: datetime | None = None) -> SweepReport:
        """Run one scheduler tick synchronously (policy sweep, alerts, save)."""
        return self.scheduler.tick(now)

    # ------------------------------------------------------------------
    # Proximity
    # ------------------------------------------------------------------

    def update_position(self, position: GeoPoint | Mapping[str, Any]) -> list[ProximityAlert]:
        """Record the current position and alert on nearby hazards.

        A malformed position is logged and ignored; the previous position
        is kept and no alerts are raised.
        """
        if isinstance(position, GeoPoint):
            point = position
        else:
            try:
                point = GeoPoint.model_validate(position)
            except ValidationError as exc:
                _logger.warning("Ignoring invalid position update: %s", format_validation_errors(exc))
                return []
        self._position = point
        return self.notifier.check(self.store.list_active(), point)

    def check_proximity(self) -> list[ProximityAlert]:
        position = self._position
        if position is None:
            return []
        return self.notifier.check(self.store.list_active(), position)

    def send_test_alert(self) -> ProximityAlert:
        return self.notifier.send_test_alert()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Receive :class:`HazardChange` notifications; returns an unsubscribe callable."""
        return self.store.subscribe(listener)

    def subscribe_alerts(self, sink: AlertSink) -> Callable[[], None]:
        return self.notifier.subscribe(sink)
