"""Helpers for safe debug logging.

Reporter ids are caller-supplied identity tokens and must not end up in
logs verbatim.  This module masks them (and any credential-like keys)
before payloads are emitted at DEBUG level.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "token",
        "authorization",
        "identitytoken",
        "identity_token",
    }
)

_IDENTITY_KEYS: frozenset[str] = frozenset(
    {
        "reporterid",
        "reporter_id",
        "deviceid",
        "device_id",
        "vehicleid",
        "vehicle_id",
    }
)


def mask_identity(value: str, *, visible: int = 4) -> str:
    """Keep a short prefix of an identity token so log lines stay correlatable."""
    if len(value) <= visible:
        return "<id>"
    return f"{value[:visible]}…<{len(value)}>"


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs."""
    if _depth > 20:
        return "<max-depth>"

    if value is None:
        return None

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, bytes):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            lowered = key.lower()
            if lowered in _SENSITIVE_VALUE_KEYS:
                redacted[key] = "<redacted>"
            elif lowered in _IDENTITY_KEYS and isinstance(v, str):
                redacted[key] = mask_identity(v)
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    # Fallback: represent unknown objects without dumping internals.
    return repr(value)
