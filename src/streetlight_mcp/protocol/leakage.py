"""JSON envelope codec for earth-leakage protection modules.

Inbound telemetry (topic ``device_report``)::

    {"leakage": {"id": "<module id>", "msg_id": 17,
                 "param": {"time_utc": 1718000000, "V": 0.4, "I": 5, "R": 70}}}

Outbound control (topic ``cloud/<module id>``)::

    {"leakage": {"msg_id": 0, "msg_code": 0, "measure_ground_res_time": 60, ...}}
    {"leakage": {"get_ground_res": 1}}
"""

from __future__ import annotations

import json
from typing import Any

from ..errors import DecodeIgnored, InvalidAddress
from ..models.telemetry import LeakageSample

ENVELOPE_KEY = "leakage"
_TOPIC_SPECIAL = frozenset("/+#")


def normalize_leakage_address(address: object) -> str:
    """Validate a leakage module id. Case is preserved.

    Raises:
        InvalidAddress: If the id is empty, not a string, padded with
            whitespace, or contains MQTT topic-special characters.
    """
    if not isinstance(address, str) or not address.strip():
        raise InvalidAddress(address, "empty or not a string")
    if address != address.strip():
        raise InvalidAddress(address, "surrounding whitespace")
    if any(ch in _TOPIC_SPECIAL for ch in address):
        raise InvalidAddress(address, "contains topic wildcard or separator")
    return address


def parse_leakage_report(payload: bytes | str) -> LeakageSample:
    """Decode a telemetry report into a LeakageSample.

    Raises:
        DecodeIgnored: If the payload is not JSON or lacks required fields.
    """
    try:
        message = json.loads(payload)
        body = message[ENVELOPE_KEY]
        param = body["param"]
        return LeakageSample(
            address=str(body["id"]),
            msg_id=int(body["msg_id"]),
            time_utc=int(param["time_utc"]),
            voltage=float(param["V"]),
            current=float(param["I"]),
            resistance=float(param["R"]),
        )
    except (ValueError, KeyError, TypeError, OverflowError) as e:
        raise DecodeIgnored(f"Malformed leakage report: {e}") from e


def build_leakage_settings(
    measure_ground_res_time: int | None = None,
    mqtt_upload_time: int | None = None,
    ground_res_correction: float | None = None,
) -> bytes:
    """Build a settings message for a leakage module.

    Interval fields are sent only when given and non-negative; the
    correction is sent whenever given.
    """
    body: dict[str, Any] = {"msg_id": 0, "msg_code": 0}
    if measure_ground_res_time is not None and measure_ground_res_time >= 0:
        body["measure_ground_res_time"] = measure_ground_res_time
    if mqtt_upload_time is not None and mqtt_upload_time >= 0:
        body["mqtt_upload_time"] = mqtt_upload_time
    if ground_res_correction is not None:
        body["ground_res_correction"] = ground_res_correction
    return json.dumps({ENVELOPE_KEY: body}).encode("utf-8")


def build_measure_resistance() -> bytes:
    """Build the request asking a module to measure ground resistance now."""
    return json.dumps({ENVELOPE_KEY: {"get_ground_res": 1}}).encode("utf-8")
