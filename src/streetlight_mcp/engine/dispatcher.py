"""Routes decoded device messages to their handlers.

Lighting frames are dispatched purely on their command code through a
fixed handler table. Codes outside the table are ignored without error,
since boxes may send reports this engine does not interpret yet.
"""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from ..errors import PersistenceFailure
from ..models.telemetry import LeakageSample, PowerSample
from ..protocol.commands import Command
from ..protocol.framing import Frame
from ..protocol.parser import (
    AlertAckReport,
    FaultReport,
    PowerReport,
    StateReport,
    TimePolicyReport,
    parse_response,
)
from ..storage.base import Store, call_store
from .alerts import AlertEvaluator

logger = logging.getLogger(__name__)


class CommandDispatcher:
    """Handles one inbound message at a time; keeps no per-device state.

    Args:
        store: Store collaborator.
        alerts: Evaluator for leakage thresholds and fault alerts.
        clock: Returns seconds since the epoch; power samples are stamped
            with it on receipt.
    """

    def __init__(
        self,
        store: Store,
        alerts: AlertEvaluator,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._alerts = alerts
        self._clock = clock
        self._handlers: dict[Command, Callable[[str, object], Awaitable[None]]] = {
            Command.HEARTBEAT: self._update_state,
            Command.SWITCH_ACK: self._update_state,
            Command.STATE_RESULT: self._update_state,
            Command.SET_TIME_ACK: self._update_schedule,
            Command.QUERY_TIME_RESULT: self._update_schedule,
            Command.POWER_RESULT: self._append_power,
            Command.FAULT_ALERT: self._schedule_fault,
            Command.ALERT_ACK: self._alert_acknowledged,
        }

    @property
    def handled_commands(self) -> frozenset[Command]:
        return frozenset(self._handlers)

    async def dispatch(self, address: str, frame: Frame) -> Command | None:
        """Handle one lighting frame received on ``address``'s topic.

        Returns:
            The command handled, or None if the frame was ignored or the
            store failed.
        """
        handler = self._handlers.get(frame.command)
        if handler is None:
            logger.debug("Ignoring command 0x%02X from %s", frame.command, address)
            return None

        report = parse_response(frame)
        if report is None:
            logger.debug("Ignoring short 0x%02X frame from %s: %s",
                         frame.command, address, frame.raw)
            return None

        command = Command(frame.command)
        try:
            await handler(address, report)
        except PersistenceFailure as e:
            logger.error("%s while handling %s", e, command.name)
            return None
        return command

    async def handle_leakage(self, sample: LeakageSample) -> None:
        """Store a leakage sample, then raise any threshold alerts.

        Alerts are only evaluated for samples that were stored.
        """
        try:
            await call_store(
                "append_leakage_sample", sample.address, self._store.append_leakage_sample(sample)
            )
        except PersistenceFailure as e:
            logger.error("%s; leakage sample msg %s dropped", e, sample.msg_id)
            return
        await self._alerts.record_leakage_alerts(sample)

    # ─── Handlers ────────────────────────────────────────────────────

    async def _update_state(self, address: str, report: StateReport) -> None:
        await call_store(
            "upsert_box_state",
            address,
            self._store.upsert_box_state(address, report.state, report.brightness),
        )
        logger.debug("%s %s: state=%d brightness=%d",
                     address, report.command.name, report.state, report.brightness)

    async def _update_schedule(self, address: str, report: TimePolicyReport) -> None:
        await call_store(
            "update_box_schedule", address, self._store.update_box_schedule(address, report.policy)
        )
        logger.info("%s schedule confirmed: %s", address, report.policy.to_dict())

    async def _append_power(self, address: str, report: PowerReport) -> None:
        sample = PowerSample(
            address=address,
            voltage=report.voltage,
            current=report.current,
            power=report.power,
            time_utc=int(self._clock()),
        )
        await call_store("append_power_sample", address, self._store.append_power_sample(sample))

    async def _schedule_fault(self, address: str, report: FaultReport) -> None:
        logger.info("%s reported fault device=%s content=%s", address, report.device, report.content)
        self._alerts.schedule_fault_alert(address, report)

    async def _alert_acknowledged(self, address: str, report: AlertAckReport) -> None:
        logger.debug("%s confirmed alert acknowledgment", address)
