"""Device protocol engine: wires transport, codecs, dispatcher and alerts.

Inbound: the MQTT network thread hands every classified message to the
event loop, where it is processed in its own task. A slow store call for
one box therefore never holds up messages for another.

Outbound: each ``light_*`` / leakage operation validates the address,
encodes the message and publishes it once. It returns False if the
publish failed and never retries; retry policy belongs to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from ..config import EngineConfig
from ..errors import DecodeIgnored, TransportFailure
from ..models.time_policy import TimePolicy
from ..protocol.commands import (
    DEFAULT_BRIGHTNESS,
    build_alert_ack,
    build_light_off,
    build_light_on,
    build_query_power,
    build_query_state,
    build_query_time,
    build_set_time,
)
from ..protocol.framing import frame_bytes, parse_frame
from ..protocol.leakage import (
    build_leakage_settings,
    build_measure_resistance,
    parse_leakage_report,
)
from ..storage.base import Store
from ..storage.memory import InMemoryStore
from ..storage.sqlite import SQLiteStore
from ..transport.mqtt_connection import Channel, InboundMessage, MQTTConnection
from .alerts import AlertEvaluator, ThresholdSet
from .dispatcher import CommandDispatcher

logger = logging.getLogger(__name__)


def build_store(config: EngineConfig) -> Store:
    """Create the store backend named in the config."""
    if config.store == "sqlite":
        return SQLiteStore(config.db_path)
    return InMemoryStore()


def build_connection(config: EngineConfig) -> MQTTConnection:
    return MQTTConnection(
        host=config.broker_host,
        port=config.broker_port,
        username=config.username,
        password=config.password,
        keepalive=config.keepalive_s,
        client_id_prefix=config.client_id_prefix,
        namespace=config.namespace,
        telemetry_topic=config.telemetry_topic,
        leakage_prefix=config.leakage_control_prefix,
        qos=config.qos,
        reconnect_min_delay=config.reconnect_min_delay_s,
        reconnect_max_delay=config.reconnect_max_delay_s,
    )


class DeviceProtocolEngine:
    """Owns one broker connection and everything behind it.

    Usage::

        engine = DeviceProtocolEngine(load_config())
        await engine.start()
        engine.light_on("1A07000011BB", 80)
        ...
        await engine.stop()
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        store: Store | None = None,
        connection: MQTTConnection | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or EngineConfig()
        self._owns_store = store is None
        self.store = store if store is not None else build_store(self.config)
        self.connection = connection or build_connection(self.config)
        self.alerts = AlertEvaluator(
            self.store,
            send_ack=self.send_alert_ack,
            defaults=ThresholdSet(
                current=self.config.default_current_limit,
                voltage=self.config.default_voltage_limit,
                resistance=self.config.default_resistance_limit,
            ),
            fault_delay=self.config.fault_alert_delay_s,
        )
        self.dispatcher = CommandDispatcher(self.store, self.alerts, clock=clock)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._inflight: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._loop is not None

    async def start(self) -> None:
        """Load thresholds, then connect and subscribe.

        Raises:
            TransportFailure: If the broker cannot be reached.
        """
        if self._loop is not None:
            return
        await self.alerts.reload_thresholds()
        self._loop = asyncio.get_running_loop()
        self.connection.set_message_handler(self._on_inbound)
        try:
            self.connection.open()
        except TransportFailure:
            self._loop = None
            raise

    async def stop(self) -> None:
        """Disconnect, let in-flight handlers finish, cancel fault lookups.

        A store built from the config is closed as well; a store passed in
        by the caller stays open.
        """
        self.connection.close()
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        await self.alerts.shutdown()
        self._loop = None
        if self._owns_store:
            await self.store.close()

    # ─── Inbound ─────────────────────────────────────────────────────

    def _on_inbound(self, message: InboundMessage) -> None:
        """Called on the MQTT thread; hands the message to the event loop."""
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug("Engine not running, dropping %s message", message.channel.value)
            return
        loop.call_soon_threadsafe(self.submit, message)

    def submit(self, message: InboundMessage) -> asyncio.Task:
        """Process ``message`` in its own task on the running loop."""
        task = asyncio.get_running_loop().create_task(self.handle_message(message))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def handle_message(self, message: InboundMessage) -> None:
        """Decode and dispatch one inbound message; never raises."""
        try:
            if message.channel is Channel.LEAKAGE:
                sample = parse_leakage_report(message.payload)
                await self.dispatcher.handle_leakage(sample)
                return

            frame = parse_frame(message.payload, verify=self.config.verify_inbound_checksum)
            if frame is None:
                raise DecodeIgnored(f"Undecodable frame from {message.address}")
            await self.dispatcher.dispatch(message.address, frame)
        except DecodeIgnored as e:
            logger.debug("%s", e)
        except Exception:
            logger.exception("Error processing %s message", message.channel.value)

    # ─── Outbound ────────────────────────────────────────────────────

    def _publish(self, topic: str, payload: bytes) -> bool:
        try:
            self.connection.publish(topic, payload)
        except TransportFailure as e:
            logger.error("%s", e)
            return False
        return True

    def _send_frame(self, address: str, frame: str) -> bool:
        topic = self.connection.lighting_command_topic(address)
        logger.debug("-> %s %s", topic, frame)
        return self._publish(topic, frame_bytes(frame))

    def light_on(self, address: str, brightness: object = DEFAULT_BRIGHTNESS) -> bool:
        """Switch a box on. Brightness outside 0-100 falls back to 100."""
        return self._send_frame(address, build_light_on(address, brightness))

    def light_off(self, address: str) -> bool:
        return self._send_frame(address, build_light_off(address))

    def light_set_time(self, address: str, policy: TimePolicy) -> bool:
        """Send a schedule. It is stored only when the box confirms it."""
        return self._send_frame(address, build_set_time(address, policy))

    def light_query_time(self, address: str) -> bool:
        return self._send_frame(address, build_query_time(address))

    def light_query_power(self, address: str) -> bool:
        return self._send_frame(address, build_query_power(address))

    def light_query_state(self, address: str) -> bool:
        return self._send_frame(address, build_query_state(address))

    def send_alert_ack(self, address: str) -> bool:
        return self._send_frame(address, build_alert_ack(address))

    def set_leakage(
        self,
        leakage_id: str,
        measure_ground_res_time: int | None = None,
        mqtt_upload_time: int | None = None,
        ground_res_correction: float | None = None,
    ) -> bool:
        """Push measurement/upload intervals or a correction to a leakage module."""
        topic = self.connection.leakage_control_topic(leakage_id)
        payload = build_leakage_settings(
            measure_ground_res_time, mqtt_upload_time, ground_res_correction
        )
        return self._publish(topic, payload)

    def measure_resistance(self, leakage_id: str) -> bool:
        """Ask a leakage module to measure ground resistance now."""
        topic = self.connection.leakage_control_topic(leakage_id)
        return self._publish(topic, build_measure_resistance())
