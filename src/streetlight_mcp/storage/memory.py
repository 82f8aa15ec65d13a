"""In-process Store used for dry runs and tests."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field

from ..models.alerts import Alert
from ..models.telemetry import BoxState, LeakageSample, PowerSample
from ..models.time_policy import TimePolicy


@dataclass
class InMemoryStore:
    """Dict/list backed implementation of the Store interface.

    Each coroutine completes without awaiting, so writes are atomic with
    respect to other tasks on the same event loop.
    """

    box_states: dict[str, BoxState] = field(default_factory=dict)
    schedules: dict[str, TimePolicy] = field(default_factory=dict)
    power_samples: list[PowerSample] = field(default_factory=list)
    leakage_samples: list[LeakageSample] = field(default_factory=list)
    alerts: list[Alert] = field(default_factory=list)
    settings: dict[str, float] = field(default_factory=dict)

    async def upsert_box_state(self, address: str, state: int, brightness: int) -> None:
        self.box_states[address] = BoxState(address=address, state=state, brightness=brightness)

    async def get_box_state(self, address: str) -> BoxState | None:
        return self.box_states.get(address)

    async def update_box_schedule(self, address: str, policy: TimePolicy) -> None:
        self.schedules[address] = copy.deepcopy(policy)

    async def get_box_schedule(self, address: str) -> TimePolicy | None:
        return self.schedules.get(address)

    async def append_power_sample(self, sample: PowerSample) -> None:
        self.power_samples.append(sample)

    async def latest_power_sample(self, address: str) -> PowerSample | None:
        latest = None
        for sample in self.power_samples:
            if sample.address == address and (
                latest is None or sample.time_utc >= latest.time_utc
            ):
                latest = sample
        return latest

    async def append_leakage_sample(self, sample: LeakageSample) -> None:
        self.leakage_samples.append(sample)

    async def append_alert(self, alert: Alert) -> None:
        if any(existing.key == alert.key for existing in self.alerts):
            return
        self.alerts.append(alert)

    async def read_threshold(self, name: str) -> float | None:
        return self.settings.get(name)

    async def write_threshold_if_absent(self, name: str, default: float) -> bool:
        if name in self.settings:
            return False
        self.settings[name] = default
        return True

    async def close(self) -> None:
        pass
