"""Tests for the engine facade: inbound handling and outbound commands."""

import asyncio
import json
import sqlite3
import threading
from unittest.mock import AsyncMock, MagicMock

import pytest

from streetlight_mcp.config import EngineConfig
from streetlight_mcp.engine.service import DeviceProtocolEngine, build_store
from streetlight_mcp.errors import InvalidAddress, TransportFailure
from streetlight_mcp.models.time_policy import Stage, TimePolicy
from streetlight_mcp.protocol.commands import build_alert_ack, build_light_off
from streetlight_mcp.protocol.framing import frame_bytes
from streetlight_mcp.storage.memory import InMemoryStore
from streetlight_mcp.storage.sqlite import SQLiteStore
from streetlight_mcp.transport.mqtt_connection import Channel, InboundMessage, MQTTConnection

ADDRESS = "1A07000011BB"
HEADER = "AA00" + ADDRESS
COMMAND_TOPIC = f"/a13jYFS3MfN/{ADDRESS}/user/get"


def _engine(**config):
    connection = MQTTConnection()
    connection.publish = MagicMock()
    store = InMemoryStore()
    engine = DeviceProtocolEngine(
        EngineConfig(**config), store=store, connection=connection, clock=lambda: 1718000500
    )
    return engine, store, connection


def _lighting(command: str, body: str) -> InboundMessage:
    raw = bytes.fromhex(HEADER + command + body + "0000")
    return InboundMessage(channel=Channel.LIGHTING, payload=raw, address=ADDRESS)


def _leakage(**param) -> InboundMessage:
    values = {"time_utc": 1718000000, "V": 0.0, "I": 0.0, "R": 70}
    values.update(param)
    payload = json.dumps({"leakage": {"id": "LK-01", "msg_id": 5, "param": values}}).encode()
    return InboundMessage(channel=Channel.LEAKAGE, payload=payload)


# ─── Inbound ─────────────────────────────────────────────────────────

def test_leakage_message_stores_sample_and_alert():
    engine, store, _ = _engine()
    asyncio.run(engine.handle_message(_leakage()))

    assert len(store.leakage_samples) == 1
    assert [a.alert_type for a in store.alerts] == [4]


def test_malformed_leakage_message_is_dropped():
    engine, store, _ = _engine()
    asyncio.run(engine.handle_message(InboundMessage(Channel.LEAKAGE, b"{oops")))
    assert store.leakage_samples == []


def test_undecodable_lighting_frame_is_dropped():
    engine, store, _ = _engine()
    asyncio.run(engine.handle_message(InboundMessage(Channel.LIGHTING, b"\xaa", ADDRESS)))
    assert store.box_states == {}


def test_checksum_verification_from_config():
    engine, store, _ = _engine(verify_inbound_checksum=True)
    asyncio.run(engine.handle_message(_lighting("B9", "00040101" + "01" + "64")))
    assert store.box_states == {}


def test_handler_errors_do_not_escape():
    engine, _, _ = _engine()
    engine.dispatcher.dispatch = MagicMock(side_effect=RuntimeError("boom"))
    asyncio.run(engine.handle_message(_lighting("B9", "00040101" + "01" + "64")))


def test_fault_then_power_produces_acknowledged_alert():
    """A power report arriving during the fault delay is picked up."""
    engine, store, connection = _engine(fault_alert_delay_s=0.05)

    async def run():
        await engine.handle_message(_lighting("AA", "00020101" + "05" + "02"))
        await engine.handle_message(
            _lighting("B4", "000000" + "000000DC" + "0000012C" + "000003E8")
        )
        await asyncio.sleep(0.2)

    asyncio.run(run())

    [alert] = store.alerts
    assert alert.content == 220
    assert alert.time_utc == 1718000500
    connection.publish.assert_called_once_with(
        COMMAND_TOPIC, frame_bytes(build_alert_ack(ADDRESS))
    )


def test_messages_for_different_boxes_run_concurrently():
    engine, store, _ = _engine()
    other = "1A07000011CC"
    order = []
    original = store.upsert_box_state

    async def slow_upsert(address, state, brightness):
        if address == ADDRESS:
            await asyncio.sleep(0.05)
        order.append(address)
        await original(address, state, brightness)

    store.upsert_box_state = slow_upsert

    async def run():
        first = engine.submit(_lighting("B9", "00040101" + "01" + "64"))
        raw = bytes.fromhex("AA00" + other + "B9" + "00040101" + "01" + "32" + "0000")
        second = engine.submit(InboundMessage(Channel.LIGHTING, raw, other))
        await asyncio.gather(first, second)

    asyncio.run(run())
    assert order == [other, ADDRESS]
    assert set(store.box_states) == {ADDRESS, other}


def test_inbound_ignored_when_not_running():
    engine, store, _ = _engine()
    engine._on_inbound(_leakage())
    assert store.leakage_samples == []


# ─── Outbound ────────────────────────────────────────────────────────

def test_light_off_publishes_frame():
    engine, _, connection = _engine()
    assert engine.light_off(ADDRESS.lower()) is True
    connection.publish.assert_called_once_with(COMMAND_TOPIC, frame_bytes(build_light_off(ADDRESS)))


def test_light_on_brightness_in_frame():
    engine, _, connection = _engine()
    engine.light_on(ADDRESS, 150)
    topic, payload = connection.publish.call_args.args
    assert topic == COMMAND_TOPIC
    assert payload.hex().upper()[26:28] == "64"


def test_set_time_publishes_without_storing():
    engine, store, connection = _engine()
    policy = TimePolicy(18, 0, [Stage(60, 100), Stage(60, 50), Stage(60, 20), Stage(60, 0)])
    assert engine.light_set_time(ADDRESS, policy) is True
    assert store.schedules == {}
    assert connection.publish.call_args.args[1][8] == 0xA2


@pytest.mark.parametrize(
    "method",
    ["light_off", "light_query_time", "light_query_power", "light_query_state", "send_alert_ack"],
)
def test_invalid_address_never_publishes(method):
    engine, _, connection = _engine()
    with pytest.raises(InvalidAddress):
        getattr(engine, method)("")
    connection.publish.assert_not_called()


def test_publish_failure_returns_false():
    engine, _, connection = _engine()
    connection.publish.side_effect = TransportFailure("broker gone")
    assert engine.light_query_state(ADDRESS) is False
    assert connection.publish.call_count == 1


def test_set_leakage_topic_and_payload():
    engine, _, connection = _engine()
    assert engine.set_leakage("LK-01", measure_ground_res_time=60) is True
    topic, payload = connection.publish.call_args.args
    assert topic == "cloud/LK-01"
    assert json.loads(payload) == {
        "leakage": {"msg_id": 0, "msg_code": 0, "measure_ground_res_time": 60}
    }


def test_measure_resistance_rejects_wildcards():
    engine, _, connection = _engine()
    with pytest.raises(InvalidAddress):
        engine.measure_resistance("LK/#")
    connection.publish.assert_not_called()


# ─── Lifecycle ───────────────────────────────────────────────────────

def test_start_loads_thresholds_and_opens():
    engine, store, connection = _engine(default_resistance_limit=80.0)
    connection.open = MagicMock()
    connection.close = MagicMock()

    async def run():
        await engine.start()
        running = engine.running
        await engine.stop()
        return running

    assert asyncio.run(run()) is True
    assert store.settings["leakage_res"] == 80.0
    connection.open.assert_called_once()
    connection.close.assert_called_once()
    assert engine.running is False


def test_start_failure_leaves_engine_stopped():
    engine, _, connection = _engine()
    connection.open = MagicMock(side_effect=TransportFailure("refused"))

    with pytest.raises(TransportFailure):
        asyncio.run(engine.start())
    assert engine.running is False


def test_build_store_from_config(tmp_path):
    assert isinstance(build_store(EngineConfig(store="memory")), InMemoryStore)
    store = build_store(EngineConfig(db_path=str(tmp_path / "s.sqlite")))
    assert isinstance(store, SQLiteStore)
    asyncio.run(store.close())


def _stopped_cycle(engine):
    engine.connection.open = MagicMock()
    engine.connection.close = MagicMock()

    async def run():
        await engine.start()
        await engine.stop()

    asyncio.run(run())


def test_stop_closes_store_built_from_config(tmp_path):
    engine = DeviceProtocolEngine(
        EngineConfig(db_path=str(tmp_path / "streetlight.sqlite")), connection=MQTTConnection()
    )
    _stopped_cycle(engine)

    with pytest.raises(sqlite3.ProgrammingError):
        engine.store._conn.execute("SELECT 1")


def test_stop_leaves_caller_store_open():
    store = InMemoryStore()
    store.close = AsyncMock()
    engine = DeviceProtocolEngine(EngineConfig(), store=store, connection=MQTTConnection())
    _stopped_cycle(engine)

    store.close.assert_not_called()


def test_message_from_network_thread_is_processed():
    engine, store, connection = _engine()
    connection.open = MagicMock()
    connection.close = MagicMock()

    async def run():
        await engine.start()
        sender = threading.Thread(target=engine._on_inbound, args=(_leakage(),))
        sender.start()
        await asyncio.to_thread(sender.join)
        for _ in range(100):
            if store.leakage_samples:
                break
            await asyncio.sleep(0.01)
        await engine.stop()

    asyncio.run(run())
    assert len(store.leakage_samples) == 1
    assert store.leakage_samples[0].address == "LK-01"
