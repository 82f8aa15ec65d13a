"""MCP server entry point for the street-light protocol engine.

Exposes box and leakage-module control as tools via the Model Context
Protocol using the official Python MCP SDK with stdio transport. The tools
are thin wrappers: validation, framing and publishing live in the engine.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from .config import ConfigError, EngineConfig, load_config
from .engine.service import DeviceProtocolEngine
from .errors import InvalidAddress, TransportFailure
from .models.time_policy import TimePolicy
from .protocol.framing import normalize_address

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "streetlight",
    instructions="MCP server for street-light boxes and earth-leakage modules over MQTT",
)

# Global engine state
_engine: DeviceProtocolEngine | None = None


def _get_engine() -> DeviceProtocolEngine:
    """Get the running engine, raising if not connected."""
    if _engine is None or not _engine.running:
        raise RuntimeError(
            "Not connected to the broker. Use the 'connect' tool first."
        )
    return _engine


def _sent(ok: bool, **extra: Any) -> dict[str, Any]:
    result: dict[str, Any] = {"sent": ok}
    result.update(extra)
    if not ok:
        result["error"] = "Publish failed, see server log"
    return result


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
async def connect(config_path: str | None = None) -> dict[str, Any]:
    """Connect the engine to the MQTT broker and start processing reports.

    Loads thresholds from the store, subscribes to leakage telemetry and
    box update topics at QoS 2.

    Args:
        config_path: Optional YAML config file. Environment variables
            prefixed STREETLIGHT_ override it.
    """
    global _engine
    if _engine is not None and _engine.running:
        info = _engine.connection.broker_info
        return {"connected": True, "message": "Already connected", "client_id": info.client_id}

    try:
        config = load_config(config_path)
    except ConfigError as e:
        return {"error": str(e)}

    engine = DeviceProtocolEngine(config)
    try:
        await engine.start()
    except TransportFailure as e:
        logger.error("Connect failed: %s", e)
        return {"connected": False, "error": str(e)}
    _engine = engine

    info = engine.connection.broker_info
    return {
        "connected": True,
        "broker": f"{info.host}:{info.port}",
        "client_id": info.client_id,
        "thresholds": engine.alerts.thresholds.to_dict(),
    }


@mcp.tool()
async def disconnect() -> dict[str, bool]:
    """Stop the engine and close the broker connection."""
    global _engine
    if _engine is None:
        return {"disconnected": True}
    await _engine.stop()
    _engine = None
    return {"disconnected": True}


# ─── LIGHTING TOOLS ───────────────────────────────────────────────────

@mcp.tool()
def light_on(address: str, brightness: int = 100) -> dict[str, Any]:
    """Switch a box on.

    Args:
        address: 12-hex-char box address.
        brightness: 0-100 percent; out-of-range values fall back to 100.
    """
    engine = _get_engine()
    try:
        return _sent(engine.light_on(address, brightness), address=address.upper())
    except InvalidAddress as e:
        return {"error": str(e)}


@mcp.tool()
def light_off(address: str) -> dict[str, Any]:
    """Switch a box off.

    Args:
        address: 12-hex-char box address.
    """
    engine = _get_engine()
    try:
        return _sent(engine.light_off(address), address=address.upper())
    except InvalidAddress as e:
        return {"error": str(e)}


@mcp.tool()
def set_time_policy(address: str, schedule: dict[str, Any]) -> dict[str, Any]:
    """Send a lighting schedule to a box.

    The schedule is stored only after the box confirms it.

    Args:
        address: 12-hex-char box address.
        schedule: {"hour": 18, "minute": 30,
                   "s1": {"t": 120, "b": 100}, ..., "s4": {"t": 60, "b": 0}}
                   where t is minutes and b brightness percent.
    """
    engine = _get_engine()
    try:
        policy = TimePolicy.from_dict(schedule)
        return _sent(engine.light_set_time(address, policy), address=address.upper())
    except (InvalidAddress, ValueError) as e:
        return {"error": str(e)}


@mcp.tool()
def query_time_policy(address: str) -> dict[str, Any]:
    """Ask a box to report its schedule (stored when the answer arrives)."""
    engine = _get_engine()
    try:
        return _sent(engine.light_query_time(address), address=address.upper())
    except InvalidAddress as e:
        return {"error": str(e)}


@mcp.tool()
def query_power(address: str) -> dict[str, Any]:
    """Ask a box to report voltage, current and energy."""
    engine = _get_engine()
    try:
        return _sent(engine.light_query_power(address), address=address.upper())
    except InvalidAddress as e:
        return {"error": str(e)}


@mcp.tool()
def query_state(address: str) -> dict[str, Any]:
    """Ask a box to report its switch state and brightness."""
    engine = _get_engine()
    try:
        return _sent(engine.light_query_state(address), address=address.upper())
    except InvalidAddress as e:
        return {"error": str(e)}


@mcp.tool()
async def get_box_state(address: str) -> dict[str, Any]:
    """Return what the store knows about a box: state, schedule, last power sample."""
    engine = _get_engine()
    try:
        address = normalize_address(address)
    except InvalidAddress as e:
        return {"error": str(e)}

    state = await engine.store.get_box_state(address)
    schedule = await engine.store.get_box_schedule(address)
    power = await engine.store.latest_power_sample(address)
    return {
        "address": address,
        "state": state.to_dict() if state else None,
        "schedule": schedule.to_dict() if schedule else None,
        "power": power.to_dict() if power else None,
    }


# ─── LEAKAGE TOOLS ────────────────────────────────────────────────────

@mcp.tool()
def set_leakage(
    leakage_id: str,
    measure_ground_res_time: int | None = None,
    mqtt_upload_time: int | None = None,
    ground_res_correction: float | None = None,
) -> dict[str, Any]:
    """Configure a leakage protection module.

    Args:
        leakage_id: Leakage module id.
        measure_ground_res_time: Ground-resistance measurement interval.
        mqtt_upload_time: Telemetry upload interval.
        ground_res_correction: Correction applied to measured resistance.
    """
    engine = _get_engine()
    try:
        ok = engine.set_leakage(
            leakage_id, measure_ground_res_time, mqtt_upload_time, ground_res_correction
        )
    except InvalidAddress as e:
        return {"error": str(e)}
    return _sent(ok, leakage_id=leakage_id)


@mcp.tool()
def measure_ground_resistance(leakage_id: str) -> dict[str, Any]:
    """Ask a leakage module to measure ground resistance now."""
    engine = _get_engine()
    try:
        return _sent(engine.measure_resistance(leakage_id), leakage_id=leakage_id)
    except InvalidAddress as e:
        return {"error": str(e)}


# ─── THRESHOLD TOOLS ──────────────────────────────────────────────────

@mcp.tool()
def get_thresholds() -> dict[str, float]:
    """Current leakage alert limits (current, voltage, resistance)."""
    return _get_engine().alerts.thresholds.to_dict()


@mcp.tool()
async def reload_thresholds() -> dict[str, float]:
    """Re-read leakage alert limits from the store."""
    thresholds = await _get_engine().alerts.reload_thresholds()
    return thresholds.to_dict()


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("streetlight://thresholds")
def resource_thresholds() -> str:
    """Leakage alert limits in effect."""
    if _engine is None:
        return json.dumps({"thresholds": None})
    return json.dumps({"thresholds": _engine.alerts.thresholds.to_dict()})


# ─── MCP PROMPTS ─────────────────────────────────────────────────────

@mcp.prompt()
def diagnose_box(address: str) -> str:
    """Guide the AI through checking a box that is misbehaving.

    Args:
        address: Box address.
    """
    return f"""Diagnose street-light box {address}.
Steps:
- Use query_state and query_power to request fresh reports
- Wait a few seconds, then read get_box_state
- Compare voltage and current with the box's normal range
- Use query_time_policy to confirm the schedule matches expectations
- If the light is off when it should be on, try light_on with a moderate brightness

Summarize what looks wrong and what was changed."""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    try:
        level = load_config().log_level
    except ConfigError:
        level = EngineConfig.log_level
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO))
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
