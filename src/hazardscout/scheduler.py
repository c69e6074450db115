"""Periodic policy sweep and retention purge.

The scheduler owns a single background thread.  :meth:`Scheduler.stop`
joins it, so once ``stop()`` returns no further sweep can start.  A sweep
that is already running finishes the record it is working on and then
exits; it never abandons a record mid-update.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from hazardscout.exceptions import HazardScoutError, TransitionConflictError
from hazardscout.models.hazard import HazardStatus, StatusReason
from hazardscout.models.settings import ServiceSettings
from hazardscout.state.policy import evaluate, is_past_retention
from hazardscout.state.store import HazardStore

_logger = logging.getLogger(__name__)

_MAX_CONFLICT_RETRIES = 3


@dataclass
class SweepReport:
    """What a single sweep did."""

    started_at: datetime
    transitions: list[tuple[str, HazardStatus, StatusReason]] = field(default_factory=list)
    purged: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped_transitions: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.transitions or self.purged)


TickListener = Callable[[SweepReport], None]


class Scheduler:
    """Applies the resolution policy to every open hazard on a fixed period.

    Parameters
    ----------
    store : HazardStore
        Store to sweep.
    settings : callable
        Returns the current :class:`ServiceSettings`; read at every sweep
        so interval/retention edits take effect without a restart.
    clock : callable
        Time source; defaults to the store's clock.
    """

    def __init__(
        self,
        store: HazardStore,
        *,
        settings: Callable[[], ServiceSettings] = ServiceSettings,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._clock = clock or store.now
        self._logger = logger or _logger
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._state_lock = threading.Lock()
        self._listeners: list[TickListener] = []

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def add_tick_listener(self, listener: TickListener) -> Callable[[], None]:
        """Run *listener* after every scheduled sweep; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _remove() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _remove

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the sweep thread; the first sweep runs immediately."""
        with self._state_lock:
            if self.is_running:
                return
            self._stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name="hazardscout-scheduler",
                daemon=True,
            )
            self._thread = thread
            thread.start()
        self._logger.debug("Scheduler started interval=%ss", self._settings().sweep_interval_seconds)

    def stop(self, timeout: float | None = None) -> None:
        """Stop the sweep thread and wait for it to exit."""
        with self._state_lock:
            thread = self._thread
            self._thread = None
            self._stop_event.set()
        if thread is None:
            return
        if thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                self._logger.warning("Scheduler thread did not stop within %ss", timeout)
                return
        self._logger.debug("Scheduler stopped")

    def __enter__(self) -> Scheduler:
        self.start()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.stop()

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            self.tick(stop_event=stop_event)
            stop_event.wait(self._settings().sweep_interval_seconds)

    def tick(self, now: datetime | None = None, *, stop_event: threading.Event | None = None) -> SweepReport:
        """Run one sweep and notify tick listeners."""
        try:
            report = self.run_sweep(now, stop_event=stop_event)
        except Exception:
            self._logger.exception("Scheduler sweep failed")
            report = SweepReport(started_at=now or self._clock())
        for listener in list(self._listeners):
            try:
                listener(report)
            except Exception:
                self._logger.exception("Scheduler tick listener failed")
        return report

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def run_sweep(self, now: datetime | None = None, *, stop_event: threading.Event | None = None) -> SweepReport:
        """Evaluate every open hazard, then purge Resolved hazards past retention."""
        settings = self._settings()
        started = now or self._clock()
        report = SweepReport(started_at=started)

        if settings.auto_resolution_enabled:
            for record in self._store.list_active():
                if stop_event is not None and stop_event.is_set():
                    return report
                try:
                    self._evaluate_one(record.id, now, report)
                except Exception:
                    report.failed.append(record.id)
                    self._logger.exception("Policy evaluation failed for hazard %s; skipping", record.id)
        else:
            report.skipped_transitions = True

        retention = settings.retention
        purge_now = now or self._clock()
        for record in self._store.list_resolved():
            if stop_event is not None and stop_event.is_set():
                return report
            if not is_past_retention(record, purge_now, retention):
                continue
            try:
                if self._store.purge(record.id):
                    report.purged.append(record.id)
            except HazardScoutError:
                report.failed.append(record.id)
                self._logger.exception("Purge failed for hazard %s; skipping", record.id)

        if report.changed or report.failed:
            self._logger.debug(
                "Sweep done transitions=%d purged=%d failed=%d",
                len(report.transitions),
                len(report.purged),
                len(report.failed),
            )
        return report

    def _evaluate_one(self, hazard_id: str, now: datetime | None, report: SweepReport) -> None:
        for _attempt in range(_MAX_CONFLICT_RETRIES):
            record = self._store.get(hazard_id)
            if record is None or not record.is_open:
                return
            decision = evaluate(record, now or self._clock())
            if decision.new_status is None or decision.reason is None:
                return
            try:
                self._store.apply_transition(
                    hazard_id,
                    decision.new_status,
                    decision.reason,
                    expected_version=record.version,
                )
            except TransitionConflictError:
                self._logger.debug("Hazard %s changed during evaluation; re-evaluating", hazard_id)
                continue
            report.transitions.append((hazard_id, decision.new_status, decision.reason))
            return
        self._logger.warning(
            "Hazard %s kept changing during evaluation; deferring to next sweep",
            hazard_id,
        )
