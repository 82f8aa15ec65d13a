"""Store collaborator interface.

The engine owns no persistent state. Everything it learns from devices is
handed to a Store through these async verbs. Implementations must
serialize writes per key; the engine does not order concurrent handlers.
"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import Protocol, TypeVar

from ..errors import PersistenceFailure
from ..models.alerts import Alert
from ..models.telemetry import BoxState, LeakageSample, PowerSample
from ..models.time_policy import TimePolicy


class Store(Protocol):
    async def upsert_box_state(self, address: str, state: int, brightness: int) -> None:
        """Insert or replace the single state row of ``address``."""

    async def get_box_state(self, address: str) -> BoxState | None: ...

    async def update_box_schedule(self, address: str, policy: TimePolicy) -> None:
        """Store a device-confirmed schedule on the box record."""

    async def get_box_schedule(self, address: str) -> TimePolicy | None: ...

    async def append_power_sample(self, sample: PowerSample) -> None: ...

    async def latest_power_sample(self, address: str) -> PowerSample | None:
        """Most recent power sample by ``time_utc``, or None."""

    async def append_leakage_sample(self, sample: LeakageSample) -> None: ...

    async def append_alert(self, alert: Alert) -> None:
        """Append an alert; a repeated natural key is not stored twice."""

    async def read_threshold(self, name: str) -> float | None: ...

    async def write_threshold_if_absent(self, name: str, default: float) -> bool:
        """Create setting ``name`` with ``default``; True if it was created."""

    async def close(self) -> None:
        """Release connections. The store is unusable afterwards."""


T = TypeVar("T")


async def call_store(operation: str, address: str | None, awaitable: Awaitable[T]) -> T:
    """Await a Store call, converting any failure to PersistenceFailure."""
    try:
        return await awaitable
    except Exception as e:
        raise PersistenceFailure(operation, address) from e
