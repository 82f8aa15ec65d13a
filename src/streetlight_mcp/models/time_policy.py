"""Lighting schedule (time policy) model.

A time policy starts at ``hour:minute`` and runs four consecutive stages.
Each stage is a duration in minutes (16-bit) and a brightness percentage
(8-bit, 0-100).

Wire layout inside B2/B3 reports and the A2 set command (hex chars)::

    +------+--------+-----------+-----------+-----------+-----------+
    | Hour | Minute | Stage 1   | Stage 2   | Stage 3   | Stage 4   |
    | 2    | 2      | 4 + 2     | 4 + 2     | 4 + 2     | 4 + 2     |
    +------+--------+-----------+-----------+-----------+-----------+
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

STAGE_COUNT = 4

HOUR_WIDTH = 2
MINUTE_WIDTH = 2
STAGE_DURATION_WIDTH = 4   # minutes, 0-65535
STAGE_BRIGHTNESS_WIDTH = 2  # percent, 0-100


@dataclass
class Stage:
    """One (duration, brightness) step of a schedule."""

    minutes: int = 0
    brightness: int = 0

    def validate(self) -> None:
        if not 0 <= self.minutes <= 0xFFFF:
            raise ValueError(f"Stage duration must be 0-65535 minutes, got {self.minutes}")
        if not 0 <= self.brightness <= 100:
            raise ValueError(f"Stage brightness must be 0-100, got {self.brightness}")


@dataclass
class TimePolicy:
    """A device-side lighting schedule."""

    FIELD_COUNT: ClassVar[int] = 2 + 2 * STAGE_COUNT

    hour: int = 0
    minute: int = 0
    stages: list[Stage] = field(
        default_factory=lambda: [Stage() for _ in range(STAGE_COUNT)]
    )

    def validate(self) -> None:
        """Raise ValueError if any field is out of range."""
        if not 0 <= self.hour <= 23:
            raise ValueError(f"Hour must be 0-23, got {self.hour}")
        if not 0 <= self.minute <= 59:
            raise ValueError(f"Minute must be 0-59, got {self.minute}")
        if len(self.stages) != STAGE_COUNT:
            raise ValueError(f"Expected {STAGE_COUNT} stages, got {len(self.stages)}")
        for stage in self.stages:
            stage.validate()

    def to_fields(self) -> list[str]:
        """Render the ten fixed-width hex fields in wire order."""
        self.validate()
        fields = [f"{self.hour:0{HOUR_WIDTH}X}", f"{self.minute:0{MINUTE_WIDTH}X}"]
        for stage in self.stages:
            fields.append(f"{stage.minutes:0{STAGE_DURATION_WIDTH}X}")
            fields.append(f"{stage.brightness:0{STAGE_BRIGHTNESS_WIDTH}X}")
        return fields

    @classmethod
    def from_fields(cls, fields: list[str]) -> TimePolicy:
        """Build a policy from the ten hex fields sliced out of a report.

        Values are taken as reported; a device echoing an out-of-range
        brightness is still recorded.
        """
        if len(fields) != cls.FIELD_COUNT:
            raise ValueError(
                f"Time policy needs {cls.FIELD_COUNT} fields, got {len(fields)}"
            )
        values = [int(f, 16) for f in fields]
        stages = [
            Stage(minutes=values[2 + 2 * i], brightness=values[3 + 2 * i])
            for i in range(STAGE_COUNT)
        ]
        return cls(hour=values[0], minute=values[1], stages=stages)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"hour": self.hour, "minute": self.minute}
        for i, stage in enumerate(self.stages, start=1):
            d[f"s{i}"] = {"t": stage.minutes, "b": stage.brightness}
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TimePolicy:
        """Build from ``{"hour", "minute", "s1": {"t", "b"}, ... "s4"}``."""
        try:
            stages = [
                Stage(minutes=int(data[f"s{i}"]["t"]), brightness=int(data[f"s{i}"]["b"]))
                for i in range(1, STAGE_COUNT + 1)
            ]
            return cls(hour=int(data["hour"]), minute=int(data["minute"]), stages=stages)
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid time policy: {e}") from e
