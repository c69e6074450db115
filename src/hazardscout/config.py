"""Process configuration for hazardscout."""

from __future__ import annotations

import dataclasses
import os
from typing import Any


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class HazardScoutConfig:
    """Deployment configuration.

    Resolution policy and notification preferences are not part of this
    object: they live in :class:`~hazardscout.models.ServiceSettings` and
    :class:`~hazardscout.models.NotificationSettings`, are persisted with
    the hazard state and can be changed at runtime.

    Parameters
    ----------
    state_path : str or None
        JSON file holding the persisted state.  ``None`` keeps state in
        memory only.
    time_zone : str or None
        IANA time zone the Do-Not-Disturb window is expressed in.
        ``None`` uses the system local time zone.
    sweep_interval_seconds : float or None
        Overrides the persisted scheduler period when set.
    mqtt_enabled : bool
        Enable the MQTT event bridge.
    mqtt_host : str
        Broker host name.
    mqtt_port : int
        Broker port.
    mqtt_topic : str
        Topic filter the bridge subscribes to.
    mqtt_client_id : str or None
        MQTT client id; a random one is used when ``None``.
    mqtt_username : str or None
        Broker user name.
    mqtt_password : str or None
        Broker password.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_tls : bool
        Connect with TLS using the system trust store.
    """

    state_path: str | None = None
    time_zone: str | None = None
    sweep_interval_seconds: float | None = None
    mqtt_enabled: bool = False
    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_topic: str = "hazardscout/events/#"
    mqtt_client_id: str | None = None
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_keepalive: int = 120
    mqtt_tls: bool = False

    @classmethod
    def from_env(cls, **overrides: Any) -> HazardScoutConfig:
        """Create configuration from ``HAZARDSCOUT_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "HAZARDSCOUT_STATE_PATH": "state_path",
            "HAZARDSCOUT_TIME_ZONE": "time_zone",
            "HAZARDSCOUT_MQTT_HOST": "mqtt_host",
            "HAZARDSCOUT_MQTT_TOPIC": "mqtt_topic",
            "HAZARDSCOUT_MQTT_CLIENT_ID": "mqtt_client_id",
            "HAZARDSCOUT_MQTT_USERNAME": "mqtt_username",
            "HAZARDSCOUT_MQTT_PASSWORD": "mqtt_password",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None and val.strip():
                config_kwargs[field_name] = val.strip()

        interval_env = env.get("HAZARDSCOUT_SWEEP_INTERVAL_SECONDS")
        if interval_env is not None and "sweep_interval_seconds" not in overrides:
            config_kwargs["sweep_interval_seconds"] = float(interval_env)

        port_env = env.get("HAZARDSCOUT_MQTT_PORT")
        if port_env is not None and "mqtt_port" not in overrides:
            config_kwargs["mqtt_port"] = int(port_env)

        keepalive_env = env.get("HAZARDSCOUT_MQTT_KEEPALIVE")
        if keepalive_env is not None and "mqtt_keepalive" not in overrides:
            config_kwargs["mqtt_keepalive"] = int(keepalive_env)

        if "mqtt_enabled" not in overrides:
            config_kwargs["mqtt_enabled"] = _env_bool(env.get("HAZARDSCOUT_MQTT_ENABLED"), False)

        if "mqtt_tls" not in overrides:
            config_kwargs["mqtt_tls"] = _env_bool(env.get("HAZARDSCOUT_MQTT_TLS"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
