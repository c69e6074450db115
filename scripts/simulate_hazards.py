#!/usr/bin/env python3
"""Drive a HazardService with simulated detections and reporter votes.

Hazards are generated at random inside a city bounding box, reporters
confirm or dispute them, and simulated time is advanced between rounds so
the timeout, quorum and retention rules can be watched in action.

Usage
-----
::

    python scripts/simulate_hazards.py --rounds 12 --step-hours 4
    python scripts/simulate_hazards.py --state /tmp/hazards.json --seed 7 -v

Options::

    --rounds N          Number of simulation rounds (default: 10)
    --step-hours H      Simulated hours between rounds (default: 3)
    --detections N      Max new detections per round (default: 3)
    --votes N           Max votes per round (default: 4)
    --state FILE        Persist state to FILE (default: in memory)
    --seed N            Random seed for reproducible runs
    --json              Print the final state as JSON
"""

from __future__ import annotations

import argparse
import json
import logging
import random
import sys
from datetime import datetime, timedelta
from pathlib import Path

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from hazardscout import (  # noqa: E402
    GeoPoint,
    HazardService,
    JsonFileStateBackend,
    MemoryStateBackend,
    ProximityAlert,
    VoteType,
)
from hazardscout.formatting import format_relative_time, format_time_remaining  # noqa: E402
from hazardscout.models import utcnow  # noqa: E402

# Chennai city bounds
_BOUNDS = {"north": 13.15, "south": 12.85, "east": 80.35, "west": 80.15}

_ROUTE = [
    GeoPoint(latitude=13.0827, longitude=80.2707),  # Anna Salai
    GeoPoint(latitude=13.0878, longitude=80.2785),  # Mount Road
    GeoPoint(latitude=13.0445, longitude=80.2299),  # OMR
    GeoPoint(latitude=13.0569, longitude=80.2425),  # ECR
    GeoPoint(latitude=13.0732, longitude=80.2609),  # Marina Beach
]

_DESCRIPTIONS = {
    "pothole": ["Large pothole on main road", "Deep road cavity", "Multiple potholes in construction zone"],
    "roadblock": ["Temporary road closure", "Police checkpoint", "Fallen tree blocking lane"],
    "accident": ["Minor collision on highway", "Multi-vehicle accident", "Motorcycle accident near signal"],
    "construction": ["Road widening work", "Cable installation", "Bridge repair work"],
    "weather": ["Waterlogging after heavy rain", "Dense fog", "Debris from strong winds"],
}

_SEVERITIES = ["low", "medium", "high", "critical"]
_SOURCES = ["your-car", "network", "infrastructure", "user-report"]


class SimulatedClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, hours: float) -> None:
        self.now += timedelta(hours=hours)


def _random_detection(rng: random.Random) -> dict[str, object]:
    hazard_type = rng.choice(sorted(_DESCRIPTIONS))
    return {
        "type": hazard_type,
        "severity": rng.choice(_SEVERITIES),
        "source": rng.choice(_SOURCES),
        "lat": rng.uniform(_BOUNDS["south"], _BOUNDS["north"]),
        "lng": rng.uniform(_BOUNDS["west"], _BOUNDS["east"]),
        "description": rng.choice(_DESCRIPTIONS[hazard_type]),
    }


def _print_alert(alert: ProximityAlert) -> None:
    print(f"[alert] {alert.title} - {alert.body}")


def _print_hazards(service: HazardService, now: datetime) -> None:
    hazards = service.get_all_hazards()
    if not hazards:
        print("  (no hazards)")
        return
    for hazard in hazards:
        progress = service.get_resolution_progress(hazard.id)
        remaining = format_time_remaining(progress.time_remaining) if progress else ""
        print(
            f"  {hazard.id}  {hazard.type:<12} {hazard.severity:<6} {hazard.status:<9}"
            f" disputes={hazard.dispute_count}/{hazard.policy.required_disputes_to_resolve}"
            f" confirmations={hazard.confirmation_count}"
            f" seen={format_relative_time(hazard.last_confirmed_at, now)}"
            + (f" auto-resolve-in={remaining}" if remaining else "")
        )


def main() -> int:
    parser = argparse.ArgumentParser(description="Simulate hazard detections and votes")
    parser.add_argument("--rounds", type=int, default=10, help="Number of simulation rounds")
    parser.add_argument("--step-hours", type=float, default=3.0, help="Simulated hours between rounds")
    parser.add_argument("--detections", type=int, default=3, help="Max new detections per round")
    parser.add_argument("--votes", type=int, default=4, help="Max votes per round")
    parser.add_argument("--state", help="Persist state to this JSON file")
    parser.add_argument("--seed", type=int, help="Random seed")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Print final state as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    rng = random.Random(args.seed)
    clock = SimulatedClock(utcnow())
    backend = JsonFileStateBackend(args.state) if args.state else MemoryStateBackend()
    service = HazardService(backend, clock=clock)
    service.subscribe_alerts(_print_alert)
    reporters = [f"reporter-{n:03d}" for n in range(12)]

    for round_no in range(1, args.rounds + 1):
        position = _ROUTE[round_no % len(_ROUTE)]
        service.update_position(position)

        for _ in range(rng.randint(0, args.detections)):
            result = service.handle_detection(_random_detection(rng))
            if result.created and result.hazard is not None:
                print(f"[detect] new {result.hazard.type} ({result.hazard.severity}) {result.hazard.id}")

        open_hazards = service.get_active_hazards()
        for _ in range(rng.randint(0, args.votes) if open_hazards else 0):
            hazard = rng.choice(open_hazards)
            vote_type = VoteType.DISPUTED_GONE if rng.random() < 0.6 else VoteType.STILL_PRESENT
            vote = service.handle_confirmation(
                {"hazardId": hazard.id, "reporterId": rng.choice(reporters), "voteType": vote_type}
            )
            print(f"[vote]   {vote_type} on {hazard.id}: {vote.reason} -> {vote.status}")

        report = service.run_sweep()
        for hazard_id, status, reason in report.transitions:
            print(f"[sweep]  {hazard_id} -> {status} ({reason})")
        for hazard_id in report.purged:
            print(f"[sweep]  {hazard_id} purged")

        print(f"-- round {round_no} at {clock.now:%Y-%m-%d %H:%M} UTC")
        _print_hazards(service, clock.now)
        clock.advance(args.step_hours)

    service.stop()
    if args.json_mode:
        print(json.dumps(service.snapshot().to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
