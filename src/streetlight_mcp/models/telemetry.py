"""Device state and telemetry records."""

from __future__ import annotations

from dataclasses import dataclass, asdict

# Power reports carry cumulative energy in hundredths of a unit
POWER_SCALE = 0.01


@dataclass
class BoxState:
    """Latest known switch state and brightness of one box (upserted)."""

    address: str
    state: int
    brightness: int

    @property
    def is_on(self) -> bool:
        return self.state != 0

    def to_dict(self) -> dict:
        d = asdict(self)
        d["on"] = self.is_on
        return d


@dataclass
class PowerSample:
    """One power report from a box (append-only).

    ``voltage`` and ``current`` are raw device units; ``power`` is already
    scaled by :data:`POWER_SCALE`. ``time_utc`` is assigned by the engine
    on receipt, in whole seconds since the epoch.
    """

    address: str
    voltage: float
    current: float
    power: float
    time_utc: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class LeakageSample:
    """One telemetry report from a leakage module (append-only).

    ``msg_id`` and ``time_utc`` come from the device.
    """

    address: str
    msg_id: int
    time_utc: int
    voltage: float
    current: float
    resistance: float

    def to_dict(self) -> dict:
        return asdict(self)
