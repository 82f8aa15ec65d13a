"""Tests for inbound report parsing."""

import pytest

from streetlight_mcp.protocol.commands import Command
from streetlight_mcp.protocol.framing import parse_frame
from streetlight_mcp.protocol.parser import (
    AlertAckReport,
    FaultReport,
    PowerReport,
    StateReport,
    TimePolicyReport,
    parse_fault,
    parse_power,
    parse_response,
    parse_state,
)

ADDRESS = "1A07000011BB"
HEADER = "AA00" + ADDRESS


def _frame(command: str, body: str, checksum: str = "0000"):
    frame = parse_frame(HEADER + command + body + checksum)
    assert frame is not None
    return frame


@pytest.mark.parametrize("command", ["01", "B1", "B9"])
def test_state_reports(command):
    report = parse_response(_frame(command, "00040101" + "01" + "50"))

    assert isinstance(report, StateReport)
    assert report.address == ADDRESS
    assert report.command == Command(int(command, 16))
    assert report.state == 1
    assert report.brightness == 0x50


def test_state_report_off():
    report = parse_state(_frame("B9", "00040101" + "00" + "00"))
    assert report.state == 0
    assert report.brightness == 0


def test_time_policy_report():
    body = "100101" + "121E" + "007864" + "00F03C" + "012C1E" + "003C00"
    report = parse_response(_frame("B3", body))

    assert isinstance(report, TimePolicyReport)
    assert report.command == Command.QUERY_TIME_RESULT
    assert report.policy.to_dict() == {
        "hour": 18,
        "minute": 30,
        "s1": {"t": 120, "b": 100},
        "s2": {"t": 240, "b": 60},
        "s3": {"t": 300, "b": 30},
        "s4": {"t": 60, "b": 0},
    }


def test_power_report():
    body = "000000" + "000000DC" + "0000012C" + "000003E8"
    report = parse_response(_frame("B4", body))

    assert isinstance(report, PowerReport)
    assert report.voltage == 220
    assert report.current == 300
    assert report.power == pytest.approx(10.0)


def test_fault_report():
    report = parse_response(_frame("AA", "00020101" + "05" + "02"))

    assert isinstance(report, FaultReport)
    assert report.device == "05"
    assert report.content == "02"


def test_alert_ack_report():
    report = parse_response(_frame("BA", "00"))
    assert report == AlertAckReport(address=ADDRESS)


def test_unknown_command_is_ignored():
    assert parse_response(_frame("C7", "00112233")) is None


def test_request_codes_are_not_reports():
    assert parse_response(_frame("A1", "0401010150")) is None


def test_short_frames_return_none():
    # Power fields end at offset 48; this frame is shorter
    assert parse_power(_frame("B4", "000000000000DC")) is None
    assert parse_response(_frame("B3", "1001011230")) is None
    assert parse_fault(_frame("AA", "")) is None


def test_parser_rejects_wrong_command():
    assert parse_state(_frame("B4", "00040101" + "01" + "50")) is None
