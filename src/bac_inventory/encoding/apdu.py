"""Application-layer PDUs of a ReadProperty client (ASHRAE 135 Clause 20.1).

The inventory never segments: requests advertise "unspecified" max
segments, and a segmented ComplexACK is decoded only far enough to be
recognised and refused by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass

from bac_inventory.encoding.primitives import decode_enumerated, encode_application_enumerated
from bac_inventory.encoding.tags import TagClass, as_memoryview, decode_tag
from bac_inventory.types.enums import AbortReason, ErrorClass, ErrorCode, PduType, RejectReason

_SEGMENTED_MESSAGE = 0x08
_ABORT_FROM_SERVER = 0x01

_APDU_SIZES = (50, 128, 206, 480, 1024, 1476)
"""Max-APDU-length accepted, indexed by its 4-bit code (Clause 20.1.2.5)."""


def _apdu_size_code(size: int) -> int:
    """Largest code whose size does not exceed *size*."""
    code = 0
    for i, limit in enumerate(_APDU_SIZES):
        if limit <= size:
            code = i
    return code


@dataclass(frozen=True, slots=True)
class ConfirmedRequestPDU:
    """An unsegmented Confirmed-Request."""

    invoke_id: int
    service_choice: int
    service_request: bytes
    max_apdu_length: int = 1476
    """Largest response the sender accepts, rounded down to a standard size."""


@dataclass(frozen=True, slots=True)
class UnconfirmedRequestPDU:
    service_choice: int
    service_request: bytes


@dataclass(frozen=True, slots=True)
class ComplexAckPDU:
    """A ComplexACK.

    For a segmented ACK only the first segment's octets are kept and
    *segmented* is set; reassembly is not attempted.
    """

    invoke_id: int
    service_choice: int
    service_ack: bytes
    segmented: bool = False


@dataclass(frozen=True, slots=True)
class ErrorPDU:
    invoke_id: int
    service_choice: int
    error_class: ErrorClass
    error_code: ErrorCode


@dataclass(frozen=True, slots=True)
class RejectPDU:
    invoke_id: int
    reject_reason: RejectReason


@dataclass(frozen=True, slots=True)
class AbortPDU:
    sent_by_server: bool
    invoke_id: int
    abort_reason: AbortReason


APDU = (
    ConfirmedRequestPDU | UnconfirmedRequestPDU | ComplexAckPDU | ErrorPDU | RejectPDU | AbortPDU
)


def encode_apdu(pdu: APDU) -> bytes:
    """Serialise *pdu* to its wire octets.

    :raises ValueError: For a segmented ComplexACK.
    :raises TypeError: For anything that is not one of the PDU classes here.
    """
    match pdu:
        case ConfirmedRequestPDU(invoke_id=invoke_id, service_choice=choice):
            header = bytes(
                [
                    PduType.CONFIRMED_REQUEST << 4,
                    _apdu_size_code(pdu.max_apdu_length),
                    invoke_id,
                    choice,
                ]
            )
            return header + pdu.service_request
        case UnconfirmedRequestPDU(service_choice=choice, service_request=body):
            return bytes([PduType.UNCONFIRMED_REQUEST << 4, choice]) + body
        case ComplexAckPDU(segmented=True):
            msg = "Cannot encode a segmented ComplexACK"
            raise ValueError(msg)
        case ComplexAckPDU(invoke_id=invoke_id, service_choice=choice, service_ack=body):
            return bytes([PduType.COMPLEX_ACK << 4, invoke_id, choice]) + body
        case ErrorPDU(invoke_id=invoke_id, service_choice=choice):
            return (
                bytes([PduType.ERROR << 4, invoke_id, choice])
                + encode_application_enumerated(pdu.error_class)
                + encode_application_enumerated(pdu.error_code)
            )
        case RejectPDU(invoke_id=invoke_id, reject_reason=reason):
            return bytes([PduType.REJECT << 4, invoke_id, reason])
        case AbortPDU(sent_by_server=from_server, invoke_id=invoke_id, abort_reason=reason):
            first = PduType.ABORT << 4 | (_ABORT_FROM_SERVER if from_server else 0)
            return bytes([first, invoke_id, reason])
    msg = f"Not an APDU: {type(pdu).__name__}"
    raise TypeError(msg)


def _check_size(data: memoryview, minimum: int, kind: str) -> None:
    if len(data) < minimum:
        msg = f"Truncated {kind}: {len(data)} of at least {minimum} bytes"
        raise ValueError(msg)


def decode_apdu(data: memoryview | bytes) -> APDU:
    """Parse an APDU received from the network.

    Error classes and codes outside the standard ranges are kept as
    plain integers by the open enums.

    :raises ValueError: If *data* is truncated, malformed, or of a PDU
        type a ReadProperty client never receives.
    """
    data = as_memoryview(data)
    _check_size(data, 1, "APDU")
    first = data[0]
    pdu_type = first >> 4

    if pdu_type == PduType.CONFIRMED_REQUEST:
        _check_size(data, 4, "Confirmed-Request")
        if first & _SEGMENTED_MESSAGE:
            msg = "Segmented Confirmed-Request received"
            raise ValueError(msg)
        code = data[1] & 0x0F
        return ConfirmedRequestPDU(
            data[2],
            data[3],
            bytes(data[4:]),
            _APDU_SIZES[code] if code < len(_APDU_SIZES) else 1476,
        )
    if pdu_type == PduType.UNCONFIRMED_REQUEST:
        _check_size(data, 2, "Unconfirmed-Request")
        return UnconfirmedRequestPDU(data[1], bytes(data[2:]))
    if pdu_type == PduType.COMPLEX_ACK:
        if first & _SEGMENTED_MESSAGE:
            # invoke id, sequence number, proposed window, service choice
            _check_size(data, 5, "segmented ComplexACK")
            return ComplexAckPDU(data[1], data[4], bytes(data[5:]), segmented=True)
        _check_size(data, 3, "ComplexACK")
        return ComplexAckPDU(data[1], data[2], bytes(data[3:]))
    if pdu_type == PduType.ERROR:
        _check_size(data, 5, "Error-PDU")
        error_class, error_code = _error_pair(data, 3)
        return ErrorPDU(data[1], data[2], ErrorClass(error_class), ErrorCode(error_code))
    if pdu_type == PduType.REJECT:
        _check_size(data, 3, "Reject-PDU")
        return RejectPDU(data[1], RejectReason(data[2]))
    if pdu_type == PduType.ABORT:
        _check_size(data, 3, "Abort-PDU")
        return AbortPDU(bool(first & _ABORT_FROM_SERVER), data[1], AbortReason(data[2]))

    msg = f"Unexpected PDU type {pdu_type}"
    raise ValueError(msg)


def _error_pair(data: memoryview, offset: int) -> tuple[int, int]:
    values = []
    while len(values) < 2:
        tag, offset = decode_tag(data, offset)
        end = offset + tag.length
        if tag.cls != TagClass.APPLICATION or end > len(data):
            msg = "Error-PDU carries a malformed error class or code"
            raise ValueError(msg)
        values.append(decode_enumerated(data[offset:end]))
        offset = end
    return values[0], values[1]
