"""Shared helpers (checksums)."""

from .crc import crc16, verify, checksum_suffix
