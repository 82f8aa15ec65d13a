"""CRC-16 checksum used by the lighting controller frame format.

CRC-16/MODBUS: initial value 0xFFFF, reflected polynomial 0xA001, computed
bit by bit (no lookup table). The result is appended to a frame low byte
first, so a computed value of ``0x7EB1`` is serialized as ``"B17E"``.
"""

from __future__ import annotations

CRC_INIT = 0xFFFF
CRC_POLY = 0xA001


def crc16(data: bytes) -> int:
    """Compute the CRC-16/MODBUS checksum of ``data``."""
    crc = CRC_INIT
    for byte in data:
        crc ^= byte
        for _ in range(8):
            if crc & 0x0001:
                crc = (crc >> 1) ^ CRC_POLY
            else:
                crc >>= 1
    return crc


def verify(data: bytes, claimed: int) -> bool:
    """Return True if ``claimed`` is the checksum of ``data``."""
    return crc16(data) == claimed


def checksum_suffix(value: int) -> str:
    """Render a 16-bit checksum as four uppercase hex chars, low byte first."""
    low = value & 0xFF
    high = (value >> 8) & 0xFF
    return f"{low:02X}{high:02X}"


def parse_suffix(suffix: str) -> int:
    """Inverse of :func:`checksum_suffix`."""
    if len(suffix) != 4:
        raise ValueError(f"Checksum suffix must be 4 hex chars, got {suffix!r}")
    return int(suffix[0:2], 16) | (int(suffix[2:4], 16) << 8)


def crc16_hex(hex_str: str) -> str:
    """Checksum suffix for a frame given as a hex string."""
    return checksum_suffix(crc16(bytes.fromhex(hex_str)))
