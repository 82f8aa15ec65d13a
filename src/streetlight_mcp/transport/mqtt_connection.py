"""MQTT connection to the device broker.

One client per engine instance, identified by a randomized client id so
that several engines can share a broker. Two inbound topic classes are
subscribed at QoS 2:

- ``device_report``: JSON telemetry from leakage modules (exact match)
- ``<namespace>/<ADDRESS>/user/update``: hex frames from lighting boxes

Outbound lighting frames go to ``<namespace>/<ADDRESS>/user/get`` and
leakage control messages to ``cloud/<leakage id>``.

This module only moves bytes and classifies topics; it has no knowledge
of command codes or thresholds.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import paho.mqtt.client as mqtt

from ..errors import InvalidAddress, TransportFailure
from ..protocol.framing import normalize_address
from ..protocol.leakage import normalize_leakage_address

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "/a13jYFS3MfN"
DEFAULT_TELEMETRY_TOPIC = "device_report"
DEFAULT_LEAKAGE_PREFIX = "cloud"
EXACTLY_ONCE = 2

UPDATE_SUFFIX = ("user", "update")
COMMAND_SUFFIX = "user/get"


class Channel(str, Enum):
    """Sub-protocol an inbound message belongs to."""

    LEAKAGE = "leakage"
    LIGHTING = "lighting"


@dataclass
class InboundMessage:
    """A classified inbound message; ``address`` is set for lighting only."""

    channel: Channel
    payload: bytes
    address: str | None = None


@dataclass
class BrokerInfo:
    """Where and as whom the connection is made."""

    host: str = "localhost"
    port: int = 1883
    client_id: str = ""
    username: str = ""


def random_client_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:6]}"


class MQTTConnection:
    """Owns the broker connection, subscriptions and publishing.

    Usage::

        conn = MQTTConnection(host="broker", port=1883)
        conn.set_message_handler(handle)
        conn.open()
        conn.publish(conn.lighting_command_topic(address), frame_bytes)
        conn.close()
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 1883,
        username: str = "",
        password: str = "",
        keepalive: int = 60,
        client_id_prefix: str = "streetlight",
        namespace: str = DEFAULT_NAMESPACE,
        telemetry_topic: str = DEFAULT_TELEMETRY_TOPIC,
        leakage_prefix: str = DEFAULT_LEAKAGE_PREFIX,
        qos: int = EXACTLY_ONCE,
        reconnect_min_delay: int = 1,
        reconnect_max_delay: int = 120,
    ) -> None:
        self._password = password
        self._keepalive = keepalive
        self._namespace = namespace
        self._telemetry_topic = telemetry_topic
        self._leakage_prefix = leakage_prefix
        self._qos = qos
        self._reconnect_delay = (reconnect_min_delay, reconnect_max_delay)
        self._client: mqtt.Client | None = None
        self._connected = False
        self._handler: Callable[[InboundMessage], None] | None = None
        self._broker_info = BrokerInfo(
            host=host,
            port=port,
            client_id=random_client_id(client_id_prefix),
            username=username,
        )

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def broker_info(self) -> BrokerInfo:
        return self._broker_info

    @property
    def qos(self) -> int:
        return self._qos

    # ─── Topics ──────────────────────────────────────────────────────

    @property
    def subscriptions(self) -> list[tuple[str, int]]:
        """Inbound topic filters with their QoS."""
        return [
            (self._telemetry_topic, self._qos),
            (f"{self._namespace}/+/{'/'.join(UPDATE_SUFFIX)}", self._qos),
        ]

    def lighting_command_topic(self, address: str) -> str:
        """``<namespace>/<ADDRESS>/user/get`` with the address upper-cased."""
        return f"{self._namespace}/{normalize_address(address)}/{COMMAND_SUFFIX}"

    def leakage_control_topic(self, leakage_id: str) -> str:
        return f"{self._leakage_prefix}/{normalize_leakage_address(leakage_id)}"

    def classify(self, topic: str, payload: bytes) -> InboundMessage | None:
        """Map a raw topic to its sub-protocol, or None if unrecognized."""
        if topic == self._telemetry_topic:
            return InboundMessage(channel=Channel.LEAKAGE, payload=payload)

        prefix = self._namespace + "/"
        if not topic.startswith(prefix):
            return None
        parts = topic[len(prefix):].split("/")
        if len(parts) != 3 or tuple(parts[1:]) != UPDATE_SUFFIX:
            return None
        try:
            address = normalize_address(parts[0])
        except InvalidAddress:
            return None
        return InboundMessage(channel=Channel.LIGHTING, payload=payload, address=address)

    # ─── Lifecycle ───────────────────────────────────────────────────

    def set_message_handler(self, handler: Callable[[InboundMessage], None]) -> None:
        """Register the callback receiving classified inbound messages.

        The callback runs on the MQTT network thread and must not block.
        """
        self._handler = handler

    def open(self) -> BrokerInfo:
        """Connect to the broker and start the network loop.

        Subscriptions are (re)issued from the connect callback, so they
        survive automatic reconnects.

        Raises:
            TransportFailure: If the broker cannot be reached.
        """
        info = self._broker_info
        client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=info.client_id)
        if info.username:
            client.username_pw_set(info.username, self._password)
        client.reconnect_delay_set(*self._reconnect_delay)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message

        try:
            client.connect(info.host, info.port, self._keepalive)
        except (OSError, ValueError) as e:
            raise TransportFailure(
                f"Could not connect to MQTT broker {info.host}:{info.port}: {e}"
            ) from e

        client.loop_start()
        self._client = client
        logger.info(
            "Connecting to %s:%s as %s", info.host, info.port, info.client_id
        )
        return info

    def close(self) -> None:
        """Stop the network loop and disconnect."""
        if self._client is None:
            return
        try:
            self._client.disconnect()
            self._client.loop_stop()
        except Exception as e:
            logger.warning("Error closing MQTT connection: %s", e)
        finally:
            self._client = None
            self._connected = False
            logger.info("Disconnected")

    def publish(self, topic: str, payload: bytes) -> None:
        """Publish ``payload`` at the configured QoS.

        Raises:
            TransportFailure: If there is no client or paho rejects the call.
        """
        if self._client is None:
            raise TransportFailure("Not connected to broker", topic=topic)
        try:
            info = self._client.publish(topic, payload, qos=self._qos)
        except (OSError, ValueError) as e:
            raise TransportFailure(f"Publish to {topic} failed: {e}", topic=topic) from e
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportFailure(
                f"Publish to {topic} failed: {mqtt.error_string(info.rc)}", topic=topic
            )
        logger.debug("Published %d bytes to %s", len(payload), topic)

    # ─── paho callbacks (network thread) ─────────────────────────────

    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            logger.error("MQTT connect refused: %s", reason_code)
            return
        self._connected = True
        logger.info("MQTT connected")
        result, _mid = client.subscribe(self.subscriptions)
        if result != mqtt.MQTT_ERR_SUCCESS:
            logger.error("Subscribe failed: %s", mqtt.error_string(result))
        else:
            logger.info("Subscribed to %s", [topic for topic, _ in self.subscriptions])

    def _on_disconnect(self, client, userdata, flags, reason_code, properties) -> None:
        self._connected = False
        logger.warning("MQTT disconnected (%s), reconnecting", reason_code)

    def _on_message(self, client, userdata, message) -> None:
        inbound = self.classify(message.topic, message.payload)
        if inbound is None:
            logger.debug("Ignoring message on unrecognized topic %s", message.topic)
            return
        if self._handler is None:
            logger.debug("No handler registered, dropping message on %s", message.topic)
            return
        try:
            self._handler(inbound)
        except Exception:
            logger.exception("Message handler failed for topic %s", message.topic)
