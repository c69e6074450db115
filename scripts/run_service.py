#!/usr/bin/env python3
"""Run a HazardService fed by the MQTT event bridge.

Configuration comes from ``HAZARDSCOUT_*`` environment variables (see
:class:`hazardscout.HazardScoutConfig`).  Publish JSON messages such as::

    {"event": "detection", "type": "pothole", "severity": "high",
     "lat": 52.37, "lng": 4.89, "source": "v2x"}

on the configured topic and watch the hazard lifecycle in the log.

Usage
-----
::

    export HAZARDSCOUT_STATE_PATH=/tmp/hazards.json
    export HAZARDSCOUT_MQTT_HOST=localhost
    python scripts/run_service.py --duration 600 -v
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from hazardscout import HazardChange, HazardScoutConfig, HazardService  # noqa: E402
from hazardscout._mqtt import HazardMqttBridge  # noqa: E402


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the hazard service with the MQTT bridge")
    parser.add_argument(
        "--duration",
        type=float,
        default=0,
        help="Stop after this many seconds (0 = run until interrupted)",
    )
    parser.add_argument(
        "--no-mqtt",
        action="store_true",
        help="Run the scheduler only, without connecting to a broker",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser.parse_args()


def _log_change(change: HazardChange) -> None:
    status = change.record.status if change.record is not None else "-"
    print(f"[change] {change.kind:<16} {change.hazard_id} status={status}")


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = HazardScoutConfig.from_env()
    service = HazardService.from_config(config)
    service.subscribe(_log_change)

    stop = threading.Event()

    def _on_signal(_signum: int, _frame: Any) -> None:
        stop.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    bridge: HazardMqttBridge | None = None
    with service:
        if config.mqtt_enabled and not args.no_mqtt:
            bridge = HazardMqttBridge.from_config(config, service)
            try:
                bridge.start()
            except OSError as exc:  # pragma: no cover - network/system interaction
                print(f"[service] MQTT connect failed: {exc}", file=sys.stderr)
                return 2
        try:
            stop.wait(args.duration if args.duration > 0 else None)
        finally:
            if bridge is not None:
                bridge.stop()

    print(f"[service] stopped with {len(service.get_active_hazards())} open hazard(s)")
    return 0


if __name__ == "__main__":
    sys.exit(_main())
