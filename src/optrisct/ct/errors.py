"""
Exceptions raised by the Optris CT driver.

Exchange failures (timeouts, length mismatches, rejected writes) are not
exceptions: they surface as ``None`` or ``False`` from the driver.
"""

from __future__ import annotations

from typing import Optional


class OptrisCtError(Exception):
    """Base exception for Optris CT driver errors."""


class AddressError(OptrisCtError, ValueError):
    """Device address outside the line's range, or an unusable address list."""

    def __init__(self, message: str, address: Optional[int] = None):
        self.address = address
        super().__init__(message)


class PortError(OptrisCtError):
    """Serial port missing or cannot be opened."""

    def __init__(self, port: str, reason: str):
        self.port = port
        self.reason = reason
        super().__init__(f"Cannot open the serial port {port!r}: {reason}")


class FrameError(OptrisCtError, ValueError):
    """Reply bytes cannot be decoded into the requested value."""

    def __init__(self, expected: int, received: int):
        self.expected = expected
        self.received = received
        super().__init__(
            f"Cannot decode reply: expected {expected} bytes, received {received}"
        )
