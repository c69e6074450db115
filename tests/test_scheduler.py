from __future__ import annotations

import threading
import time

import pytest
from conftest import FakeClock, hazard_input

from hazardscout.models import HazardStatus, PolicySnapshot, ServiceSettings, StatusReason, VoteType
from hazardscout.scheduler import Scheduler, SweepReport
from hazardscout.state.ledger import ConfirmationLedger
from hazardscout.state.store import HazardStore


def _scheduler(store: HazardStore, clock: FakeClock, **settings: object) -> Scheduler:
    current = ServiceSettings.model_validate(settings)
    return Scheduler(store, settings=lambda: current, clock=clock)


class TestLifecycleScenarios:
    def test_create_hazard(self, store: HazardStore) -> None:
        record = store.create_hazard(hazard_input())

        assert record.status is HazardStatus.ACTIVE
        assert (record.confirmation_count, record.dispute_count) == (0, 0)

    def test_three_disputes_resolve_by_quorum(self, store: HazardStore) -> None:
        ledger = ConfirmationLedger(store)
        record = store.create_hazard(hazard_input())

        first = ledger.record_vote(record.id, "reporter-1", VoteType.DISPUTED_GONE)
        assert (first.dispute_count, first.status) == (1, HazardStatus.RESOLVING)

        ledger.record_vote(record.id, "reporter-2", VoteType.DISPUTED_GONE)
        third = ledger.record_vote(record.id, "reporter-3", VoteType.DISPUTED_GONE)

        resolved = store.require(record.id)
        assert third.dispute_count == 3
        assert resolved.status is HazardStatus.RESOLVED
        assert resolved.status_reason is StatusReason.QUORUM

    def test_duplicate_confirmation_within_hour(self, store: HazardStore) -> None:
        ledger = ConfirmationLedger(store)
        record = store.create_hazard(hazard_input())

        first = ledger.record_vote(record.id, "reporter-1", VoteType.STILL_PRESENT)
        second = ledger.record_vote(record.id, "reporter-1", VoteType.STILL_PRESENT)

        assert (first.accepted, first.confirmation_count) == (True, 1)
        assert (second.accepted, second.confirmation_count) == (False, 1)

    def test_timeout_gives_resolving_then_confirmation_reactivates(
        self, store: HazardStore, clock: FakeClock
    ) -> None:
        ledger = ConfirmationLedger(store)
        scheduler = _scheduler(store, clock)
        record = store.create_hazard(hazard_input())
        ledger.record_vote(record.id, "reporter-1", VoteType.DISPUTED_GONE)

        clock.advance(hours=25)
        scheduler.run_sweep()

        swept = store.require(record.id)
        assert swept.status is HazardStatus.RESOLVING
        assert swept.dispute_count == 1

        result = ledger.record_vote(record.id, "reporter-2", VoteType.STILL_PRESENT)

        assert result.status is HazardStatus.ACTIVE
        assert store.require(record.id).dispute_count == 1

    def test_resolved_hazard_purged_after_retention(self, store: HazardStore, clock: FakeClock) -> None:
        scheduler = _scheduler(store, clock, resolved_retention_days=7)
        record = store.create_hazard(hazard_input())
        store.apply_transition(record.id, HazardStatus.RESOLVED, StatusReason.MANUAL)

        clock.advance(days=8)
        report = scheduler.run_sweep()

        assert report.purged == [record.id]
        assert store.get(record.id) is None
        assert record.id not in {r.id for r in store.list_active()}


def test_sweep_marks_stale_active_hazard_resolving(store: HazardStore, clock: FakeClock) -> None:
    scheduler = _scheduler(store, clock)
    record = store.create_hazard(hazard_input())
    clock.advance(hours=25)

    report = scheduler.run_sweep()

    assert report.transitions == [(record.id, HazardStatus.RESOLVING, StatusReason.AWAITING_CONFIRMATION)]
    assert store.require(record.id).status is HazardStatus.RESOLVING

    # Timeout alone never resolves.
    clock.advance(days=3)
    scheduler.run_sweep()
    assert store.require(record.id).status is HazardStatus.RESOLVING


def test_sweep_resolves_quorum_reached_under_reapplied_policy(store: HazardStore, clock: FakeClock) -> None:
    ledger = ConfirmationLedger(store)
    scheduler = _scheduler(store, clock)
    record = store.create_hazard(hazard_input())
    ledger.record_vote(record.id, "reporter-1", VoteType.DISPUTED_GONE)
    store.reapply_policy(record.id, PolicySnapshot(required_disputes_to_resolve=1))

    report = scheduler.run_sweep()

    assert report.transitions == [(record.id, HazardStatus.RESOLVED, StatusReason.QUORUM)]


def test_resolved_hazard_kept_within_retention(store: HazardStore, clock: FakeClock) -> None:
    scheduler = _scheduler(store, clock, resolved_retention_days=7)
    record = store.create_hazard(hazard_input())
    store.apply_transition(record.id, HazardStatus.RESOLVED, StatusReason.MANUAL)

    clock.advance(days=6)
    scheduler.run_sweep()

    assert store.get(record.id) is not None


def test_disabled_auto_resolution_still_purges(store: HazardStore, clock: FakeClock) -> None:
    scheduler = _scheduler(store, clock, auto_resolution_enabled=False)
    stale = store.create_hazard(hazard_input())
    old = store.create_hazard(hazard_input())
    store.apply_transition(old.id, HazardStatus.RESOLVED, StatusReason.MANUAL)

    clock.advance(days=8)
    report = scheduler.run_sweep()

    assert report.skipped_transitions is True
    assert store.require(stale.id).status is HazardStatus.ACTIVE
    assert report.purged == [old.id]


def test_failing_record_is_skipped(store: HazardStore, clock: FakeClock) -> None:
    scheduler = _scheduler(store, clock)
    broken = store.create_hazard(hazard_input())
    healthy = store.create_hazard(hazard_input())
    # Bypass validation to simulate a corrupt restored snapshot.
    corrupt = store.require(broken.id).model_copy(
        update={"policy": PolicySnapshot.model_construct(auto_resolve_after_hours=0, required_disputes_to_resolve=3)}
    )
    store.restore([corrupt, store.require(healthy.id)])
    clock.advance(hours=25)

    report = scheduler.run_sweep()

    assert report.failed == [broken.id]
    assert store.require(healthy.id).status is HazardStatus.RESOLVING


def test_tick_listeners_run_and_are_isolated(store: HazardStore, clock: FakeClock) -> None:
    scheduler = _scheduler(store, clock)
    reports: list[SweepReport] = []

    def _boom(_report: SweepReport) -> None:
        raise RuntimeError("listener failure")

    scheduler.add_tick_listener(_boom)
    remove = scheduler.add_tick_listener(reports.append)

    scheduler.tick()
    remove()
    scheduler.tick()

    assert len(reports) == 1


def test_version_conflict_is_retried(store: HazardStore, clock: FakeClock, monkeypatch: pytest.MonkeyPatch) -> None:
    scheduler = _scheduler(store, clock)
    record = store.create_hazard(hazard_input())
    clock.advance(hours=25)

    real_get = store.get
    calls = {"count": 0}

    def _get_with_interleaved_write(hazard_id: str):  # type: ignore[no-untyped-def]
        snapshot = real_get(hazard_id)
        calls["count"] += 1
        if calls["count"] == 2:
            # Another writer bumps the version between read and write.
            store.reapply_policy(hazard_id, PolicySnapshot(auto_resolve_after_hours=24))
        return snapshot

    monkeypatch.setattr(store, "get", _get_with_interleaved_write)

    report = scheduler.run_sweep()

    assert calls["count"] >= 3
    assert report.transitions == [(record.id, HazardStatus.RESOLVING, StatusReason.AWAITING_CONFIRMATION)]


def test_start_stop_joins_thread(store: HazardStore, clock: FakeClock) -> None:
    scheduler = _scheduler(store, clock, sweep_interval_seconds=0.01)
    ticked = threading.Event()
    scheduler.add_tick_listener(lambda _report: ticked.set())

    scheduler.start()
    assert ticked.wait(timeout=2)
    assert scheduler.is_running

    scheduler.stop(timeout=2)
    assert not scheduler.is_running

    ticks_after_stop: list[SweepReport] = []
    scheduler.add_tick_listener(ticks_after_stop.append)
    time.sleep(0.05)
    assert ticks_after_stop == []


def test_context_manager_stops_scheduler(store: HazardStore, clock: FakeClock) -> None:
    with _scheduler(store, clock, sweep_interval_seconds=60) as scheduler:
        assert scheduler.is_running
    assert not scheduler.is_running
