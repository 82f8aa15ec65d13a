"""Exception hierarchy for the device protocol engine.

Every failure is scoped to a single message or a single outbound call;
none of these are fatal to the process.
"""

from __future__ import annotations


class StreetlightError(Exception):
    """Base class for engine errors."""


class InvalidAddress(StreetlightError, ValueError):
    """A device or leakage address is empty, not a string, or malformed.

    Raised before any transport I/O takes place.
    """

    def __init__(self, address: object, reason: str = "") -> None:
        self.address = address
        message = f"Invalid address {address!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class TransportFailure(StreetlightError, ConnectionError):
    """A connect, subscribe or publish call on the broker failed."""

    def __init__(self, message: str, topic: str | None = None) -> None:
        self.topic = topic
        super().__init__(message)


class DecodeIgnored(StreetlightError):
    """An inbound message was not understood and is dropped silently."""


class PersistenceFailure(StreetlightError):
    """A Store call failed while handling one message."""

    def __init__(self, operation: str, address: str | None = None) -> None:
        self.operation = operation
        self.address = address
        target = f" for {address}" if address else ""
        super().__init__(f"Store operation '{operation}' failed{target}")
