"""Tests for the leakage module JSON codec."""

import json

import pytest

from streetlight_mcp.errors import DecodeIgnored, InvalidAddress
from streetlight_mcp.protocol.leakage import (
    build_leakage_settings,
    build_measure_resistance,
    normalize_leakage_address,
    parse_leakage_report,
)


def _report(**param):
    values = {"time_utc": 1718000000, "V": 0.4, "I": 5, "R": 70}
    values.update(param)
    return json.dumps({"leakage": {"id": "LK-01", "msg_id": 17, "param": values}}).encode()


def test_parse_leakage_report():
    sample = parse_leakage_report(_report())

    assert sample.address == "LK-01"
    assert sample.msg_id == 17
    assert sample.time_utc == 1718000000
    assert sample.voltage == pytest.approx(0.4)
    assert sample.current == 5.0
    assert sample.resistance == 70.0


def test_parse_leakage_report_from_text():
    sample = parse_leakage_report(_report().decode())
    assert sample.msg_id == 17


@pytest.mark.parametrize(
    "payload",
    [
        b"not json",
        b"[]",
        b'{"other": {}}',
        b'{"leakage": {"id": "LK-01", "msg_id": 1}}',
        b'{"leakage": {"id": "LK-01", "msg_id": 1, "param": {"time_utc": 1, "V": 1, "I": 1}}}',
        b'{"leakage": {"id": "LK-01", "msg_id": "x", "param": {"time_utc": 1, "V": 1, "I": 1, "R": 1}}}',
        b'{"leakage": {"id": "LK-01", "msg_id": 1, "param": {"time_utc": 1e999, "V": 1, "I": 1, "R": 1}}}',
    ],
)
def test_malformed_reports_are_ignored(payload):
    with pytest.raises(DecodeIgnored):
        parse_leakage_report(payload)


def test_settings_message_includes_given_fields():
    payload = json.loads(build_leakage_settings(60, 30, 1.5))
    assert payload == {
        "leakage": {
            "msg_id": 0,
            "msg_code": 0,
            "measure_ground_res_time": 60,
            "mqtt_upload_time": 30,
            "ground_res_correction": 1.5,
        }
    }


def test_settings_message_skips_missing_and_negative_intervals():
    payload = json.loads(build_leakage_settings(None, -1))
    assert payload == {"leakage": {"msg_id": 0, "msg_code": 0}}


def test_settings_message_sends_zero_correction():
    payload = json.loads(build_leakage_settings(ground_res_correction=0))
    assert payload["leakage"]["ground_res_correction"] == 0


def test_measure_resistance_message():
    assert json.loads(build_measure_resistance()) == {"leakage": {"get_ground_res": 1}}


def test_leakage_address_keeps_case():
    assert normalize_leakage_address("Lk-01") == "Lk-01"


@pytest.mark.parametrize("bad", ["", "  ", None, 5, " LK", "LK/1", "LK+", "#"])
def test_leakage_address_rejects(bad):
    with pytest.raises(InvalidAddress):
        normalize_leakage_address(bad)
