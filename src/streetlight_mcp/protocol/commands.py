"""Command codes and outbound frame builders for lighting controllers.

Each command is identified by a single byte at hex offset 16. Requests
sent to a box use the ``0xAx`` range; a box answers with the matching
``0xBx`` code. Heartbeats (``0x01``) and fault alerts (``0xAA``) are
unsolicited.
"""

from __future__ import annotations

from enum import IntEnum

from ..models.time_policy import TimePolicy
from .framing import build_frame, hex_field

BRIGHTNESS_WIDTH = 2
DEFAULT_BRIGHTNESS = 100


class Command(IntEnum):
    """Lighting command codes."""

    # Unsolicited reports
    HEARTBEAT = 0x01
    FAULT_ALERT = 0xAA

    # Requests (engine -> box)
    SWITCH = 0xA1
    SET_TIME = 0xA2
    QUERY_TIME = 0xA3
    QUERY_POWER = 0xA4
    QUERY_STATE = 0xA9

    # Responses (box -> engine)
    SWITCH_ACK = 0xB1
    SET_TIME_ACK = 0xB2
    QUERY_TIME_RESULT = 0xB3
    POWER_RESULT = 0xB4
    STATE_RESULT = 0xB9

    # Sent both ways: the engine acknowledges a fault, the box confirms
    ALERT_ACK = 0xBA


# Fixed header fields that precede the variable part of a request
SWITCH_HEADER = ("04", "01", "01")
SET_TIME_HEADER = ("10", "01", "01")
EMPTY_LENGTH = ("00",)

STATE_OFF = 0x00
STATE_ON = 0x01


def _clamp_brightness(brightness: object) -> int:
    if (
        isinstance(brightness, bool)
        or not isinstance(brightness, (int, float))
        or not 0 <= brightness <= 100
    ):
        return DEFAULT_BRIGHTNESS
    return round(brightness)


def build_light_on(address: str, brightness: object = DEFAULT_BRIGHTNESS) -> str:
    """Build a Switch command turning the light on.

    Args:
        address: Device address.
        brightness: Percentage 0-100, rounded to a whole number. Anything
            else falls back to 100.
    """
    level = _clamp_brightness(brightness)
    return build_frame(
        address,
        Command.SWITCH,
        [*SWITCH_HEADER, hex_field(STATE_ON, 2), hex_field(level, BRIGHTNESS_WIDTH)],
    )


def build_light_off(address: str) -> str:
    """Build a Switch command turning the light off (brightness 0)."""
    return build_frame(
        address,
        Command.SWITCH,
        [*SWITCH_HEADER, hex_field(STATE_OFF, 2), hex_field(0, BRIGHTNESS_WIDTH)],
    )


def build_set_time(address: str, policy: TimePolicy) -> str:
    """Build a SetTime command writing a schedule to the box.

    The schedule is only stored once the box confirms with SET_TIME_ACK.

    Raises:
        ValueError: If any policy field is out of range.
    """
    return build_frame(address, Command.SET_TIME, [*SET_TIME_HEADER, *policy.to_fields()])


def build_query_time(address: str) -> str:
    """Build a QueryTime command; the box answers with QUERY_TIME_RESULT."""
    return build_frame(address, Command.QUERY_TIME, EMPTY_LENGTH)


def build_query_power(address: str) -> str:
    """Build a QueryPower command; the box answers with POWER_RESULT."""
    return build_frame(address, Command.QUERY_POWER, EMPTY_LENGTH)


def build_query_state(address: str) -> str:
    """Build a QueryState command; the box answers with STATE_RESULT."""
    return build_frame(address, Command.QUERY_STATE, EMPTY_LENGTH)


def build_alert_ack(address: str) -> str:
    """Build the acknowledgment sent after a fault alert is recorded."""
    return build_frame(address, Command.ALERT_ACK, EMPTY_LENGTH)
