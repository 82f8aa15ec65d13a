"""Hex frame builder and parser for the lighting controller protocol.

Frame layout (as transmitted, one byte = two hex chars)::

    +----------+---------+---------+------------------+----------+
    | Preamble | Address | Command |     Payload      | Checksum |
    | 2 bytes  | 6 bytes | 1 byte  |  variable length |  2 bytes |
    +----------+---------+---------+------------------+----------+

- Preamble: 0xAA 0x00
- Address: the 12-hex-char device address, upper-cased
- Checksum: CRC-16/MODBUS over every preceding byte, low byte first

Frames travel over MQTT as raw bytes but are built and sliced as uppercase
hex strings. Inbound field offsets are fixed hex-character positions within
the whole frame, which is why :class:`Frame` keeps the full hex text.
"""

from __future__ import annotations

import string
from collections.abc import Sequence
from dataclasses import dataclass

from ..errors import InvalidAddress
from ..utils.crc import checksum_suffix, crc16, parse_suffix

PREAMBLE = "AA00"
ADDRESS_LENGTH = 12  # hex chars (6 bytes)

# Hex-character offsets within a frame
OFF_ADDRESS = 4
OFF_COMMAND = 16
OFF_PAYLOAD = 18
CHECKSUM_LENGTH = 4

_HEX_DIGITS = frozenset(string.hexdigits)


@dataclass
class Frame:
    """A decoded lighting frame."""

    address: str
    command: int
    raw: str  # full uppercase hex, checksum included

    @property
    def payload(self) -> str:
        """Hex chars between the command byte and the checksum."""
        return self.raw[OFF_PAYLOAD:-CHECKSUM_LENGTH]

    def field(self, start: int, end: int) -> str | None:
        """Slice a fixed-offset field, or None if the frame is too short."""
        if len(self.raw) < end:
            return None
        return self.raw[start:end]

    def __repr__(self) -> str:
        return (
            f"Frame(address={self.address}, command=0x{self.command:02X}, "
            f"payload={self.payload or '(empty)'})"
        )


def is_hex(text: str) -> bool:
    return bool(text) and all(ch in _HEX_DIGITS for ch in text)


def normalize_address(address: object) -> str:
    """Validate a device address and return it upper-cased.

    Raises:
        InvalidAddress: If the address is not a 12-char hex string.
    """
    if not isinstance(address, str) or not address.strip():
        raise InvalidAddress(address, "empty or not a string")
    if len(address) != ADDRESS_LENGTH or not is_hex(address):
        raise InvalidAddress(address, f"expected {ADDRESS_LENGTH} hex characters")
    return address.upper()


def hex_field(value: int, width: int) -> str:
    """Render ``value`` as a zero-padded uppercase hex field of ``width`` chars."""
    if value < 0 or value >= 16 ** width:
        raise ValueError(f"Value {value} does not fit in {width} hex chars")
    return f"{value:0{width}X}"


def build_frame(address: str, command: int, fields: Sequence[str] = ()) -> str:
    """Build a complete outbound frame as an uppercase hex string.

    Args:
        address: Device address (any case).
        command: Single-byte command code.
        fields: Pre-rendered fixed-width hex fields, in wire order.

    Returns:
        ``"AA00" + ADDRESS + command + fields + checksum``.
    """
    body = PREAMBLE + normalize_address(address) + hex_field(command, 2)
    body += "".join(fields).upper()
    return body + checksum_suffix(crc16(bytes.fromhex(body)))


def frame_bytes(frame: str) -> bytes:
    """Convert a hex frame to the byte buffer sent over the transport."""
    return bytes.fromhex(frame)


def checksum_ok(raw: str) -> bool:
    """Check the trailing checksum of a full hex frame."""
    if len(raw) < OFF_PAYLOAD + CHECKSUM_LENGTH:
        return False
    body, suffix = raw[:-CHECKSUM_LENGTH], raw[-CHECKSUM_LENGTH:]
    return crc16(bytes.fromhex(body)) == parse_suffix(suffix)


def parse_frame(data: bytes | str, verify: bool = False) -> Frame | None:
    """Parse an inbound frame.

    The device firmware does not guarantee a valid checksum on reports, so
    checksum verification is off unless ``verify`` is set.

    Args:
        data: Raw payload bytes, or the equivalent hex string.
        verify: Drop frames whose trailing checksum does not match.

    Returns:
        A ``Frame``, or ``None`` if the buffer is too short or not hex.
    """
    if isinstance(data, (bytes, bytearray)):
        raw = bytes(data).hex().upper()
    else:
        raw = data.strip().upper()

    if len(raw) < OFF_PAYLOAD or len(raw) % 2 or not is_hex(raw):
        return None

    if verify and not checksum_ok(raw):
        return None

    return Frame(
        address=raw[OFF_ADDRESS:OFF_COMMAND],
        command=int(raw[OFF_COMMAND:OFF_PAYLOAD], 16),
        raw=raw,
    )
