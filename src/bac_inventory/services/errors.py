"""Failures of a confirmed request, as seen by the client (ASHRAE 135 Clause 18).

Each class carries the decoded reason so callers can decide per point
whether a property is merely absent or the device is unreachable.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bac_inventory.types.enums import AbortReason, ErrorClass, ErrorCode, RejectReason


class BACnetBaseError(Exception):
    """A confirmed request did not produce an ACK."""


class BACnetError(BACnetBaseError):
    """The device answered with an Error-PDU."""

    def __init__(self, error_class: ErrorClass, error_code: ErrorCode) -> None:
        super().__init__(f"{error_class.name}: {error_code.name}")
        self.error_class = error_class
        self.error_code = error_code


class BACnetRejectError(BACnetBaseError):
    """The device refused to parse the request."""

    def __init__(self, reason: RejectReason) -> None:
        super().__init__(f"Rejected ({reason.name})")
        self.reason = reason


class BACnetAbortError(BACnetBaseError):
    def __init__(self, reason: AbortReason) -> None:
        super().__init__(f"Aborted ({reason.name})")
        self.reason = reason


class BACnetTimeoutError(BACnetBaseError):
    """No answer arrived before the retries ran out."""
