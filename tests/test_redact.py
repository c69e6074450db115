from __future__ import annotations

from hazardscout._redact import mask_identity, redact_for_log


def test_redact_for_log_masks_identity_and_secrets() -> None:
    payload = {
        "event": "confirmation",
        "hazardId": "hazard-1",
        "reporterId": "device-abcdef123456",
        "password": "pw",
        "nested": {"token": "SIG", "deviceId": "xy"},
    }

    redacted = redact_for_log(payload)

    assert redacted["hazardId"] == "hazard-1"
    assert redacted["reporterId"] == "devi…<19>"
    assert redacted["password"] == "<redacted>"
    assert redacted["nested"]["token"] == "<redacted>"
    assert redacted["nested"]["deviceId"] == "<id>"


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_redact_for_log_handles_sequences_and_bytes() -> None:
    redacted = redact_for_log([{"reporter_id": "abcdefgh"}, b"\x00\x01"])
    assert redacted == [{"reporter_id": "abcd…<8>"}, "<bytes:2b>"]


def test_mask_identity_short_values() -> None:
    assert mask_identity("abc") == "<id>"
    assert mask_identity("abcdef", visible=2) == "ab…<6>"
