"""Alert records and type codes."""

from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import Enum, IntEnum


class AlertKind(str, Enum):
    """Which device family raised the alert."""

    BOX = "box"
    LEAKAGE = "leakage"


class LeakageAlertType(IntEnum):
    """Leakage alert type codes.

    These are bit values, not a sequence. ``RESISTANCE_NO_SENSOR`` is
    reserved and never produced by threshold evaluation.
    """

    CURRENT = 1
    VOLTAGE = 2
    RESISTANCE_NO_SENSOR = 3
    RESISTANCE = 4


# Fault-device codes of modules that report voltage and current
POWER_FAULT_DEVICES = frozenset({"05", "06"})
FAULT_VOLTAGE = "02"
FAULT_CURRENT = "04"


@dataclass
class Alert:
    """A threshold-exceeding or device-reported fault.

    Natural key: (kind, address, alert_type, time_utc).
    """

    kind: AlertKind
    address: str
    alert_type: int | str
    content: float | None
    time_utc: int
    device: str | None = None  # fault-device code, box alerts only

    @property
    def key(self) -> tuple:
        return (self.kind, self.address, str(self.alert_type), self.time_utc)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["kind"] = self.kind.value
        return d
