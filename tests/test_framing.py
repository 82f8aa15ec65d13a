"""Tests for hex frame building and parsing."""

import pytest

from streetlight_mcp.errors import InvalidAddress
from streetlight_mcp.protocol.framing import (
    Frame,
    PREAMBLE,
    build_frame,
    checksum_ok,
    frame_bytes,
    hex_field,
    normalize_address,
    parse_frame,
)
from streetlight_mcp.utils.crc import crc16_hex

ADDRESS = "1A07000011BB"


def test_build_frame_layout():
    """Preamble, address, command, fields, then checksum."""
    frame = build_frame(ADDRESS, 0xA3, ["00"])
    body = "AA001A07000011BBA300"
    assert frame == body + crc16_hex(body)
    assert frame.startswith(PREAMBLE)


def test_build_frame_uppercases_address():
    frame = build_frame(ADDRESS.lower(), 0xA9, ["00"])
    assert frame[4:16] == ADDRESS


def test_build_frame_rejects_bad_address():
    with pytest.raises(InvalidAddress):
        build_frame("1A07", 0xA9)


@pytest.mark.parametrize("bad", ["", "   ", None, 12, "1A07000011BG", "1A07000011BB00"])
def test_normalize_address_rejects(bad):
    with pytest.raises(InvalidAddress):
        normalize_address(bad)


def test_invalid_address_is_a_value_error():
    with pytest.raises(ValueError):
        normalize_address("xyz")


def test_hex_field_width():
    assert hex_field(10, 2) == "0A"
    assert hex_field(300, 4) == "012C"
    with pytest.raises(ValueError):
        hex_field(256, 2)


def test_parse_frame_from_bytes():
    raw = build_frame(ADDRESS, 0xB9, ["00", "00", "01", "32"])
    parsed = parse_frame(frame_bytes(raw))

    assert parsed is not None
    assert parsed.address == ADDRESS
    assert parsed.command == 0xB9
    assert parsed.raw == raw
    assert parsed.payload == "00000132"


def test_parse_frame_accepts_lowercase_hex_text():
    raw = build_frame(ADDRESS, 0x01, ["00", "00", "01", "64"])
    parsed = parse_frame(raw.lower())
    assert parsed is not None
    assert parsed.raw == raw


def test_parse_frame_does_not_check_preamble():
    """Inbound frames are sliced by offset only."""
    parsed = parse_frame("BB00" + ADDRESS + "B1" + "0000")
    assert parsed is not None
    assert parsed.command == 0xB1


def test_parse_frame_too_short():
    assert parse_frame("AA00" + ADDRESS) is None
    assert parse_frame(b"") is None


def test_parse_frame_not_hex():
    assert parse_frame("AA00" + ADDRESS + "ZZ") is None


def test_parse_frame_odd_length():
    assert parse_frame("AA00" + ADDRESS + "B10") is None


def test_checksum_verification_is_optional():
    raw = build_frame(ADDRESS, 0xB1, ["00", "00", "01", "64"])
    corrupted = raw[:-4] + "0000"

    assert parse_frame(corrupted) is not None
    assert parse_frame(corrupted, verify=True) is None
    assert parse_frame(raw, verify=True) is not None
    assert checksum_ok(raw)
    assert not checksum_ok(corrupted)


def test_frame_field_out_of_range():
    frame = Frame(address=ADDRESS, command=0x01, raw="AA00" + ADDRESS + "01" + "0000")
    assert frame.field(18, 22) == "0000"
    assert frame.field(26, 30) is None
