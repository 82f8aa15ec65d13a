"""Alert evaluation for leakage telemetry and lighting fault reports.

Two independent paths:

1. Threshold alerts. Every persisted leakage sample is checked against
   the current :class:`ThresholdSet`. Current, voltage and resistance are
   compared with strict greater-than and each exceeded limit yields its
   own alert (types 1, 2 and 4).
2. Fault alerts. A FAULT_ALERT frame schedules a lookup of the latest
   power sample of the box after a fixed delay, so that a power report
   sent together with the fault has a chance to be stored first. The
   alert takes that sample's timestamp, then an ALERT_ACK frame is sent
   back to the box. This is a best-effort correlation: if no sample has
   landed yet the alert is dropped with an error log, not retried.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Callable

from ..errors import PersistenceFailure
from ..models.alerts import (
    FAULT_CURRENT,
    FAULT_VOLTAGE,
    POWER_FAULT_DEVICES,
    Alert,
    AlertKind,
    LeakageAlertType,
)
from ..models.telemetry import LeakageSample
from ..protocol.parser import FaultReport
from ..storage.base import Store, call_store

logger = logging.getLogger(__name__)

FAULT_ALERT_DELAY_S = 2.0

# Store setting names for each limit
SETTING_CURRENT = "leakage_cur"
SETTING_VOLTAGE = "leakage_vol"
SETTING_RESISTANCE = "leakage_res"


@dataclass(frozen=True)
class ThresholdSet:
    """Leakage limits. Replaced as a whole, never mutated in place."""

    current: float = 0.0
    voltage: float = 0.0
    resistance: float = 60.0

    def to_dict(self) -> dict:
        return {"current": self.current, "voltage": self.voltage, "resistance": self.resistance}


THRESHOLD_SETTINGS = (
    ("current", SETTING_CURRENT),
    ("voltage", SETTING_VOLTAGE),
    ("resistance", SETTING_RESISTANCE),
)


class AlertEvaluator:
    """Applies thresholds to leakage samples and correlates fault alerts.

    Args:
        store: Store collaborator.
        send_ack: Publishes the ALERT_ACK frame for an address and returns
            False if the publish failed.
        defaults: Limits used for settings missing from the store.
        fault_delay: Seconds to wait before the fault-alert lookup.
    """

    def __init__(
        self,
        store: Store,
        send_ack: Callable[[str], bool],
        defaults: ThresholdSet | None = None,
        fault_delay: float = FAULT_ALERT_DELAY_S,
    ) -> None:
        self._store = store
        self._send_ack = send_ack
        self._defaults = defaults or ThresholdSet()
        self._thresholds = self._defaults
        self._fault_delay = fault_delay
        self._reload_lock = asyncio.Lock()
        self._pending: dict[str, set[asyncio.Task]] = {}

    @property
    def thresholds(self) -> ThresholdSet:
        return self._thresholds

    # ─── Thresholds ──────────────────────────────────────────────────

    async def reload_thresholds(self) -> ThresholdSet:
        """Read the limits from the store, creating missing settings.

        A setting that cannot be read keeps its current value.
        """
        async with self._reload_lock:
            updated = self._thresholds
            for attr, name in THRESHOLD_SETTINGS:
                default = getattr(self._defaults, attr)
                try:
                    created = await self._store.write_threshold_if_absent(name, default)
                    if created:
                        logger.info("[%s] Initialized the setting value to %s", name, default)
                        value = default
                    else:
                        value = await self._store.read_threshold(name)
                        if value is None:
                            value = default
                except Exception:
                    logger.exception("Unable to load setting %s", name)
                    continue
                updated = replace(updated, **{attr: float(value)})
            self._thresholds = updated
        logger.info("Leakage thresholds: %s", self._thresholds)
        return self._thresholds

    def evaluate_leakage(self, sample: LeakageSample) -> list[Alert]:
        """Return one alert per exceeded limit (zero to three)."""
        limits = self._thresholds
        checks = (
            (LeakageAlertType.CURRENT, sample.current, limits.current),
            (LeakageAlertType.VOLTAGE, sample.voltage, limits.voltage),
            (LeakageAlertType.RESISTANCE, sample.resistance, limits.resistance),
        )
        return [
            Alert(
                kind=AlertKind.LEAKAGE,
                address=sample.address,
                alert_type=int(alert_type),
                content=value,
                time_utc=sample.time_utc,
            )
            for alert_type, value, limit in checks
            if value > limit
        ]

    async def record_leakage_alerts(self, sample: LeakageSample) -> list[Alert]:
        """Evaluate ``sample`` and persist each alert independently."""
        recorded = []
        for alert in self.evaluate_leakage(sample):
            try:
                await call_store("append_alert", alert.address, self._store.append_alert(alert))
            except PersistenceFailure:
                logger.exception("Leakage alert type %s lost", alert.alert_type)
                continue
            logger.warning(
                "Leakage alert type %s on %s: %s",
                alert.alert_type,
                alert.address,
                alert.content,
            )
            recorded.append(alert)
        return recorded

    # ─── Fault alerts ────────────────────────────────────────────────

    def schedule_fault_alert(self, address: str, report: FaultReport) -> asyncio.Task:
        """Start the delayed lookup for a fault report; returns the task."""
        task = asyncio.create_task(self._delayed_fault(address, report))
        self._pending.setdefault(address, set()).add(task)
        task.add_done_callback(lambda t: self._forget(address, t))
        return task

    def pending(self, address: str | None = None) -> int:
        """Number of fault lookups still waiting."""
        if address is not None:
            return len(self._pending.get(address, ()))
        return sum(len(tasks) for tasks in self._pending.values())

    def _forget(self, address: str, task: asyncio.Task) -> None:
        tasks = self._pending.get(address)
        if tasks is None:
            return
        tasks.discard(task)
        if not tasks:
            del self._pending[address]

    async def _delayed_fault(self, address: str, report: FaultReport) -> None:
        await asyncio.sleep(self._fault_delay)
        try:
            await self.handle_fault(address, report)
        except PersistenceFailure as e:
            logger.error("%s; fault alert for %s dropped", e, address)
        except Exception:
            logger.exception("Fault alert handling failed for %s", address)

    async def handle_fault(self, address: str, report: FaultReport) -> Alert | None:
        """Create the fault alert from the latest power sample and ack it.

        Fault devices 05 and 06 report voltage (content 02) or current
        (content 04); the matching sample value becomes the alert content.
        Any other fault carries no content.
        """
        sample = await call_store(
            "latest_power_sample", address, self._store.latest_power_sample(address)
        )
        if sample is None:
            logger.error("No power sample for %s, fault alert %s/%s dropped",
                         address, report.device, report.content)
            return None

        content = None
        if report.device in POWER_FAULT_DEVICES:
            if report.content == FAULT_VOLTAGE:
                content = sample.voltage
            elif report.content == FAULT_CURRENT:
                content = sample.current

        alert = Alert(
            kind=AlertKind.BOX,
            address=address,
            alert_type=report.content,
            content=content,
            time_utc=sample.time_utc,
            device=report.device,
        )
        await call_store("append_alert", address, self._store.append_alert(alert))
        logger.warning(
            "Fault alert on %s: device %s type %s content %s",
            address, report.device, report.content, content,
        )

        if not self._send_ack(address):
            logger.error("Fault alert for %s recorded but acknowledgment not sent", address)
        return alert

    async def shutdown(self) -> None:
        """Cancel every pending fault lookup."""
        tasks = [task for tasks in self._pending.values() for task in tasks]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d pending fault alert(s)", len(tasks))
        self._pending.clear()
