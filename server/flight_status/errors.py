from __future__ import annotations

from typing import Optional


class FlightStatusError(Exception):
    """Base class for flight status failures."""


class VendorError(FlightStatusError):
    """Non-200 status, transport error or timeout from FlightStats."""

    def __init__(self, reason: str, status: Optional[int] = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.status = status


class ParseError(FlightStatusError):
    """Vendor payload is not JSON or does not have the expected shape."""


class StoreError(FlightStatusError):
    """Backing store unreachable, or a rendezvous key is malformed."""


class InvalidKey(FlightStatusError):
    """Poll with a key that fails validation or was already drained."""
