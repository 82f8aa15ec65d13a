"""Inbound report parsing for lighting controller frames.

Field offsets are hex-character positions within the whole frame and are
part of the wire contract.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..models.telemetry import POWER_SCALE
from ..models.time_policy import TimePolicy
from .commands import Command
from .framing import Frame

# State reports (HEARTBEAT, SWITCH_ACK, STATE_RESULT)
OFF_STATE = (26, 28)
OFF_BRIGHTNESS = (28, 30)

# Time policy reports (SET_TIME_ACK, QUERY_TIME_RESULT)
TIME_POLICY_OFFSETS = (
    (24, 26),  # start hour
    (26, 28),  # start minute
    (28, 32),  # stage 1 minutes
    (32, 34),  # stage 1 brightness
    (34, 38),  # stage 2 minutes
    (38, 40),  # stage 2 brightness
    (40, 44),  # stage 3 minutes
    (44, 46),  # stage 3 brightness
    (46, 50),  # stage 4 minutes
    (50, 52),  # stage 4 brightness
)

# Power report (POWER_RESULT), 32-bit values
OFF_VOLTAGE = (24, 32)
OFF_CURRENT = (32, 40)
OFF_POWER = (40, 48)

# Fault alert (FAULT_ALERT)
OFF_FAULT_DEVICE = (26, 28)
OFF_FAULT_CONTENT = (28, 30)

STATE_COMMANDS = frozenset({Command.HEARTBEAT, Command.SWITCH_ACK, Command.STATE_RESULT})
TIME_POLICY_COMMANDS = frozenset({Command.SET_TIME_ACK, Command.QUERY_TIME_RESULT})


@dataclass
class StateReport:
    """Switch state and brightness reported by a box."""

    address: str
    command: Command
    state: int
    brightness: int


@dataclass
class TimePolicyReport:
    """Schedule confirmed or returned by a box."""

    address: str
    command: Command
    policy: TimePolicy


@dataclass
class PowerReport:
    """Voltage, current and scaled cumulative power."""

    address: str
    voltage: int
    current: int
    power: float


@dataclass
class FaultReport:
    """Device-reported fault; ``device`` and ``content`` stay as hex codes."""

    address: str
    device: str
    content: str


@dataclass
class AlertAckReport:
    """Box confirms that it received the fault acknowledgment."""

    address: str


def _fields(frame: Frame, offsets) -> list[str] | None:
    values = []
    for start, end in offsets:
        value = frame.field(start, end)
        if value is None:
            return None
        values.append(value)
    return values


def parse_state(frame: Frame) -> StateReport | None:
    """Parse HEARTBEAT, SWITCH_ACK or STATE_RESULT."""
    if frame.command not in STATE_COMMANDS:
        return None
    values = _fields(frame, (OFF_STATE, OFF_BRIGHTNESS))
    if values is None:
        return None
    return StateReport(
        address=frame.address,
        command=Command(frame.command),
        state=int(values[0], 16),
        brightness=int(values[1], 16),
    )


def parse_time_policy(frame: Frame) -> TimePolicyReport | None:
    """Parse SET_TIME_ACK or QUERY_TIME_RESULT into a TimePolicy."""
    if frame.command not in TIME_POLICY_COMMANDS:
        return None
    values = _fields(frame, TIME_POLICY_OFFSETS)
    if values is None:
        return None
    return TimePolicyReport(
        address=frame.address,
        command=Command(frame.command),
        policy=TimePolicy.from_fields(values),
    )


def parse_power(frame: Frame) -> PowerReport | None:
    """Parse POWER_RESULT. Power is scaled by POWER_SCALE."""
    if frame.command != Command.POWER_RESULT:
        return None
    values = _fields(frame, (OFF_VOLTAGE, OFF_CURRENT, OFF_POWER))
    if values is None:
        return None
    return PowerReport(
        address=frame.address,
        voltage=int(values[0], 16),
        current=int(values[1], 16),
        power=int(values[2], 16) * POWER_SCALE,
    )


def parse_fault(frame: Frame) -> FaultReport | None:
    """Parse FAULT_ALERT."""
    if frame.command != Command.FAULT_ALERT:
        return None
    values = _fields(frame, (OFF_FAULT_DEVICE, OFF_FAULT_CONTENT))
    if values is None:
        return None
    return FaultReport(address=frame.address, device=values[0], content=values[1])


def parse_alert_ack(frame: Frame) -> AlertAckReport | None:
    if frame.command != Command.ALERT_ACK:
        return None
    return AlertAckReport(address=frame.address)


PARSERS = {
    Command.HEARTBEAT: parse_state,
    Command.SWITCH_ACK: parse_state,
    Command.STATE_RESULT: parse_state,
    Command.SET_TIME_ACK: parse_time_policy,
    Command.QUERY_TIME_RESULT: parse_time_policy,
    Command.POWER_RESULT: parse_power,
    Command.FAULT_ALERT: parse_fault,
    Command.ALERT_ACK: parse_alert_ack,
}


def parse_response(frame: Frame):
    """Auto-dispatch a frame to the matching report parser.

    Returns the parsed report dataclass, or ``None`` if the command code is
    not an inbound report or the frame is too short for its fields.
    """
    parser = PARSERS.get(frame.command)
    if parser is None:
        return None
    return parser(frame)
