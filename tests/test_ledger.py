from __future__ import annotations

import threading
from datetime import timedelta

import pytest
from conftest import FakeClock, hazard_input

from hazardscout.models import HazardStatus, PolicySnapshot, StatusReason, VoteOutcome, VoteType
from hazardscout.state.ledger import ConfirmationLedger
from hazardscout.state.store import HazardStore


@pytest.fixture
def ledger(store: HazardStore) -> ConfirmationLedger:
    return ConfirmationLedger(store)


def _assert_counters_match(store: HazardStore, ledger: ConfirmationLedger, hazard_id: str) -> None:
    record = store.require(hazard_id)
    assert record.confirmation_count == ledger.count(hazard_id, VoteType.STILL_PRESENT)
    assert record.dispute_count == ledger.count(hazard_id, VoteType.DISPUTED_GONE)


def test_still_present_vote_refreshes_last_confirmed(
    store: HazardStore, ledger: ConfirmationLedger, clock: FakeClock
) -> None:
    record = store.create_hazard(hazard_input())
    clock.advance(hours=3)

    result = ledger.record_vote(record.id, "reporter-a", VoteType.STILL_PRESENT)

    assert result.accepted is True
    assert result.reason is VoteOutcome.ACCEPTED
    assert result.confirmation_count == 1
    assert store.require(record.id).last_confirmed_at == clock.now
    _assert_counters_match(store, ledger, record.id)


def test_same_reporter_cannot_confirm_twice_within_cooldown(
    store: HazardStore, ledger: ConfirmationLedger, clock: FakeClock
) -> None:
    record = store.create_hazard(hazard_input())

    first = ledger.record_vote(record.id, "reporter-a", "still-present")
    clock.advance(minutes=30)
    second = ledger.record_vote(record.id, "reporter-a", "still-present")

    assert first.accepted is True
    assert first.confirmation_count == 1
    assert second.accepted is False
    assert second.reason is VoteOutcome.DUPLICATE
    assert second.confirmation_count == 1
    assert ledger.has_recent_vote(record.id, "reporter-a", VoteType.STILL_PRESENT)
    _assert_counters_match(store, ledger, record.id)


def test_vote_allowed_again_after_cooldown(store: HazardStore, ledger: ConfirmationLedger, clock: FakeClock) -> None:
    record = store.create_hazard(hazard_input())
    ledger.record_vote(record.id, "reporter-a", VoteType.STILL_PRESENT)
    clock.advance(minutes=61)

    assert not ledger.has_recent_vote(record.id, "reporter-a", VoteType.STILL_PRESENT)
    result = ledger.record_vote(record.id, "reporter-a", VoteType.STILL_PRESENT)

    assert result.accepted is True
    assert result.confirmation_count == 2


@pytest.mark.parametrize("reporter", [None, 42, "", "   "])
def test_has_recent_vote_with_malformed_reporter(
    store: HazardStore, ledger: ConfirmationLedger, reporter: object
) -> None:
    record = store.create_hazard(hazard_input())
    ledger.record_vote(record.id, "reporter-a", VoteType.STILL_PRESENT)

    assert ledger.has_recent_vote(record.id, reporter, VoteType.STILL_PRESENT) is False  # type: ignore[arg-type]


def test_cooldown_is_per_vote_type(store: HazardStore, ledger: ConfirmationLedger) -> None:
    record = store.create_hazard(hazard_input())

    assert ledger.record_vote(record.id, "reporter-a", VoteType.STILL_PRESENT).accepted
    assert ledger.record_vote(record.id, "reporter-a", VoteType.DISPUTED_GONE).accepted
    assert ledger.counts(record.id) == (1, 1)


def test_dispute_quorum_resolves_immediately(store: HazardStore, ledger: ConfirmationLedger) -> None:
    record = store.create_hazard(hazard_input())

    first = ledger.record_vote(record.id, "reporter-a", VoteType.DISPUTED_GONE)
    assert first.dispute_count == 1
    assert first.status is HazardStatus.RESOLVING
    assert first.status_reason is StatusReason.DISPUTED

    ledger.record_vote(record.id, "reporter-b", VoteType.DISPUTED_GONE)
    third = ledger.record_vote(record.id, "reporter-c", VoteType.DISPUTED_GONE)

    assert third.dispute_count == 3
    assert third.status is HazardStatus.RESOLVED
    assert third.status_reason is StatusReason.QUORUM
    _assert_counters_match(store, ledger, record.id)


def test_still_present_reactivates_resolving_without_resetting_disputes(
    store: HazardStore, ledger: ConfirmationLedger
) -> None:
    record = store.create_hazard(hazard_input())
    ledger.record_vote(record.id, "reporter-a", VoteType.DISPUTED_GONE)

    result = ledger.record_vote(record.id, "reporter-b", VoteType.STILL_PRESENT)

    assert result.status is HazardStatus.ACTIVE
    assert result.status_reason is StatusReason.RECONFIRMED
    assert result.dispute_count == 1


def test_vote_on_unknown_hazard(ledger: ConfirmationLedger) -> None:
    result = ledger.record_vote("missing", "reporter-a", VoteType.STILL_PRESENT)
    assert result.accepted is False
    assert result.reason is VoteOutcome.NOT_FOUND


def test_vote_on_resolved_hazard_rejected(store: HazardStore, ledger: ConfirmationLedger) -> None:
    record = store.create_hazard(hazard_input())
    store.apply_transition(record.id, HazardStatus.RESOLVED, StatusReason.MANUAL)

    result = ledger.record_vote(record.id, "reporter-a", VoteType.STILL_PRESENT)

    assert result.accepted is False
    assert result.reason is VoteOutcome.RESOLVED
    assert ledger.entries(record.id) == []


@pytest.mark.parametrize(
    ("reporter", "vote_type"),
    [("", VoteType.STILL_PRESENT), ("   ", VoteType.DISPUTED_GONE), ("reporter-a", "maybe")],
)
def test_invalid_vote_input(store: HazardStore, ledger: ConfirmationLedger, reporter: str, vote_type: str) -> None:
    record = store.create_hazard(hazard_input())

    result = ledger.record_vote(record.id, reporter, vote_type)

    assert result.accepted is False
    assert result.reason is VoteOutcome.INVALID_INPUT


def test_concurrent_identical_votes_accept_exactly_one(store: HazardStore, ledger: ConfirmationLedger) -> None:
    record = store.create_hazard(hazard_input())
    barrier = threading.Barrier(10)
    accepted: list[bool] = []
    lock = threading.Lock()

    def _vote() -> None:
        barrier.wait()
        result = ledger.record_vote(record.id, "reporter-a", VoteType.STILL_PRESENT)
        with lock:
            accepted.append(result.accepted)

    threads = [threading.Thread(target=_vote) for _ in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert accepted.count(True) == 1
    _assert_counters_match(store, ledger, record.id)


def test_cooldown_can_be_changed(store: HazardStore, ledger: ConfirmationLedger, clock: FakeClock) -> None:
    record = store.create_hazard(hazard_input())
    ledger.record_vote(record.id, "reporter-a", VoteType.STILL_PRESENT)
    ledger.cooldown = timedelta(minutes=5)
    clock.advance(minutes=6)

    assert ledger.record_vote(record.id, "reporter-a", VoteType.STILL_PRESENT).accepted

    with pytest.raises(ValueError):
        ledger.cooldown = timedelta(minutes=-1)


def test_purge_discards_entries(store: HazardStore, ledger: ConfirmationLedger) -> None:
    record = store.create_hazard(hazard_input(policy=PolicySnapshot(required_disputes_to_resolve=1)))
    ledger.record_vote(record.id, "reporter-a", VoteType.DISPUTED_GONE)
    assert store.require(record.id).status is HazardStatus.RESOLVED

    store.purge(record.id)

    assert ledger.entries(record.id) == []
    assert record.id not in ledger.snapshot()


def test_restore_resyncs_counters(store: HazardStore, ledger: ConfirmationLedger) -> None:
    record = store.create_hazard(hazard_input())
    ledger.record_vote(record.id, "reporter-a", VoteType.STILL_PRESENT)
    ledger.record_vote(record.id, "reporter-b", VoteType.STILL_PRESENT)
    saved = ledger.snapshot()
    saved["ghost"] = saved[record.id][:1]

    fresh = ConfirmationLedger(store)
    fresh.restore({record.id: saved[record.id][:1], "ghost": saved["ghost"]})

    assert store.require(record.id).confirmation_count == 1
    assert "ghost" not in fresh.snapshot()
