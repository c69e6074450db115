"""Internal MQTT event bridge.

Feeds detection and confirmation messages published on a broker topic
into a :class:`~hazardscout.service.HazardService`.  Messages are JSON
objects with an ``event`` discriminator::

    {"event": "detection", "type": "pothole", "severity": "high", "lat": ..., "lng": ..., "source": "v2x"}
    {"event": "confirmation", "hazardId": "...", "reporterId": "...", "voteType": "gone"}
"""

from __future__ import annotations

import json
import logging
import secrets
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, cast

import paho.mqtt.client as mqtt

from hazardscout._redact import redact_for_log
from hazardscout.config import HazardScoutConfig
from hazardscout.exceptions import HazardScoutError
from hazardscout.models.results import DetectionResult
from hazardscout.models.votes import VoteResult

if TYPE_CHECKING:
    from hazardscout.service import HazardService

DETECTION_EVENT = "detection"
CONFIRMATION_EVENT = "confirmation"


@dataclass(frozen=True)
class MqttSettings:
    """Broker connection details for the bridge."""

    host: str
    port: int
    topic: str
    client_id: str
    username: str | None = None
    password: str | None = None
    keepalive: int = 120
    tls: bool = False

    @classmethod
    def from_config(cls, config: HazardScoutConfig) -> MqttSettings:
        return cls(
            host=config.mqtt_host,
            port=config.mqtt_port,
            topic=config.mqtt_topic,
            client_id=config.mqtt_client_id or f"hazardscout_{secrets.token_hex(4)}",
            username=config.mqtt_username,
            password=config.mqtt_password,
            keepalive=config.mqtt_keepalive,
            tls=config.mqtt_tls,
        )


@dataclass(frozen=True)
class BridgeMessage:
    """Decoded bridge message envelope."""

    event: str
    topic: str
    payload: dict[str, Any]


def decode_bridge_message(payload: bytes, topic: str = "") -> BridgeMessage:
    """Parse MQTT payload bytes into a :class:`BridgeMessage`."""
    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise HazardScoutError(f"MQTT payload on {topic!r} is not JSON") from exc
    if not isinstance(parsed, dict):
        raise HazardScoutError("MQTT payload decoded to non-object JSON")
    event_name = str(parsed.get("event") or "").strip().lower()
    return BridgeMessage(event=event_name, topic=topic, payload=parsed)


class HazardMqttBridge:
    """Threaded paho-mqtt runtime that dispatches messages to the service."""

    def __init__(
        self,
        service: HazardService,
        settings: MqttSettings,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._service = service
        self._settings = settings
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False

    @classmethod
    def from_config(cls, config: HazardScoutConfig, service: HazardService) -> HazardMqttBridge:
        return cls(service, MqttSettings.from_config(config))

    @property
    def is_running(self) -> bool:
        """Whether the MQTT runtime is actively running."""
        return self._running

    def dispatch(self, message: BridgeMessage) -> DetectionResult | VoteResult | None:
        """Hand one decoded message to the service; unknown events are ignored."""
        if message.event == DETECTION_EVENT:
            return self._service.handle_detection(message.payload)
        if message.event == CONFIRMATION_EVENT:
            return self._service.handle_confirmation(message.payload)
        self._logger.debug("MQTT message ignored event=%r topic=%s", message.event, message.topic)
        return None

    def handle_payload(self, payload: bytes, topic: str = "") -> DetectionResult | VoteResult | None:
        try:
            message = decode_bridge_message(payload, topic)
        except HazardScoutError:
            self._logger.debug("MQTT payload parse failure topic=%s", topic, exc_info=True)
            return None
        self._logger.debug("Received PUBLISH topic=%s parsed=%s", topic, redact_for_log(message.payload))
        return self.dispatch(message)

    def start(self) -> None:
        """Connect and subscribe using the configured broker details."""
        self.stop()
        settings = self._settings
        self._logger.debug(
            "MQTT bridge start requested host=%s port=%s topic=%s client_id=%s",
            settings.host,
            settings.port,
            settings.topic,
            settings.client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=settings.client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if settings.username:
            client.username_pw_set(settings.username, settings.password)
        if settings.tls:
            client.tls_set()

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._logger.debug("MQTT connected reason=%s, subscribing topic=%s", reason_code, settings.topic)
            c.subscribe(settings.topic, qos=1)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            try:
                self.handle_payload(msg.payload, msg.topic)
            except Exception:
                self._logger.exception("MQTT message handling failed topic=%s", msg.topic)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.debug("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect(settings.host, settings.port, keepalive=settings.keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Stop and disconnect current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")

    def __enter__(self) -> HazardMqttBridge:
        self.start()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.stop()
