from __future__ import annotations

import json
from typing import Any

import pytest
from conftest import FakeClock

from hazardscout._mqtt import BridgeMessage, HazardMqttBridge, MqttSettings, decode_bridge_message
from hazardscout.config import HazardScoutConfig
from hazardscout.exceptions import HazardScoutError
from hazardscout.models import DetectionResult, HazardStatus, VoteResult
from hazardscout.service import HazardService


def _bridge(clock: FakeClock) -> tuple[HazardMqttBridge, HazardService]:
    service = HazardService(clock=clock)
    settings = MqttSettings(host="localhost", port=1883, topic="hazardscout/events/#", client_id="test")
    return HazardMqttBridge(service, settings), service


def _payload(data: dict[str, Any]) -> bytes:
    return json.dumps(data).encode("utf-8")


def test_decode_bridge_message() -> None:
    message = decode_bridge_message(_payload({"event": " Detection ", "type": "ice"}), "hazardscout/events/a")

    assert message == BridgeMessage(
        event="detection",
        topic="hazardscout/events/a",
        payload={"event": " Detection ", "type": "ice"},
    )


@pytest.mark.parametrize("raw", [b"\xff\xfe", b"not json", b"[1, 2]"])
def test_decode_bridge_message_rejects_garbage(raw: bytes) -> None:
    with pytest.raises(HazardScoutError):
        decode_bridge_message(raw)


def test_detection_and_confirmation_messages_reach_service(clock: FakeClock) -> None:
    bridge, service = _bridge(clock)

    detection = bridge.handle_payload(
        _payload(
            {
                "event": "detection",
                "type": "pothole",
                "severity": "high",
                "lat": 52.37,
                "lng": 4.89,
                "source": "network",
            }
        ),
        "hazardscout/events/peer",
    )
    assert isinstance(detection, DetectionResult)
    assert detection.hazard is not None

    vote = bridge.handle_payload(
        _payload(
            {
                "event": "confirmation",
                "hazardId": detection.hazard.id,
                "reporterId": "peer-vehicle-42",
                "voteType": "disputed-gone",
            }
        )
    )
    assert isinstance(vote, VoteResult)
    assert vote.accepted is True

    hazard = service.get_hazard(detection.hazard.id)
    assert hazard is not None
    assert hazard.status is HazardStatus.RESOLVING


def test_unknown_and_malformed_messages_are_ignored(clock: FakeClock) -> None:
    bridge, service = _bridge(clock)

    assert bridge.handle_payload(_payload({"event": "heartbeat"})) is None
    assert bridge.handle_payload(b"garbage") is None
    assert service.get_all_hazards() == []


def test_settings_from_config() -> None:
    config = HazardScoutConfig(mqtt_host="broker", mqtt_port=8883, mqtt_tls=True, mqtt_username="scout")

    settings = MqttSettings.from_config(config)

    assert settings.host == "broker"
    assert settings.port == 8883
    assert settings.tls is True
    assert settings.client_id.startswith("hazardscout_")


def test_start_configures_paho_client(clock: FakeClock, monkeypatch: pytest.MonkeyPatch) -> None:
    created: list[Any] = []

    class _FakeClient:
        def __init__(self, **kwargs: Any) -> None:
            self.kwargs = kwargs
            self.calls: list[str] = []
            created.append(self)

        def enable_logger(self, _logger: Any) -> None:
            self.calls.append("enable_logger")

        def username_pw_set(self, username: str, password: str | None) -> None:
            self.calls.append(f"auth:{username}")

        def tls_set(self) -> None:
            self.calls.append("tls")

        def connect(self, host: str, port: int, keepalive: int) -> None:
            self.calls.append(f"connect:{host}:{port}:{keepalive}")

        def loop_start(self) -> None:
            self.calls.append("loop_start")

        def disconnect(self) -> None:
            self.calls.append("disconnect")

        def loop_stop(self) -> None:
            self.calls.append("loop_stop")

    monkeypatch.setattr("hazardscout._mqtt.mqtt.Client", _FakeClient)
    service = HazardService(clock=clock)
    settings = MqttSettings(
        host="broker",
        port=8883,
        topic="hazardscout/events/#",
        client_id="scout-1",
        username="scout",
        password="secret",
        tls=True,
    )
    bridge = HazardMqttBridge(service, settings)

    with bridge:
        assert bridge.is_running
    assert not bridge.is_running

    client = created[0]
    assert client.kwargs["client_id"] == "scout-1"
    assert client.calls == [
        "enable_logger",
        "auth:scout",
        "tls",
        "connect:broker:8883:120",
        "loop_start",
        "disconnect",
        "loop_stop",
    ]
