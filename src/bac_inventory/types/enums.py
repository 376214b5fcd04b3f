"""BACnet enumerations used by the inventory pipeline (ASHRAE 135-2016 Clause 21).

Only the values the discovery and ReadProperty paths touch are named.
Enumerations that arrive from field devices are *open*: an unnamed value
in the legal range decodes to a pseudo-member instead of raising, so a
vendor-proprietary object type or error code never breaks a scan.
"""

from __future__ import annotations

from enum import IntEnum


_OPEN_LIMITS: dict[str, int] = {
    "ObjectType": 1023,
    "PropertyIdentifier": 0x3FFFFF,
    "RejectReason": 0xFF,
    "AbortReason": 0xFF,
}


class _OpenEnum(IntEnum):
    """IntEnum that tolerates unnamed values inside the legal range."""

    @classmethod
    def _missing_(cls, value: object) -> _OpenEnum | None:
        limit = _OPEN_LIMITS.get(cls.__name__, 0xFFFF)
        if isinstance(value, int) and 0 <= value <= limit:
            member = int.__new__(cls, value)
            member._name_ = f"UNKNOWN_{value}"
            member._value_ = value
            return member
        return None


class ObjectType(_OpenEnum):
    """BACnet object types (Clause 21, BACnetObjectType)."""

    ANALOG_INPUT = 0
    ANALOG_OUTPUT = 1
    ANALOG_VALUE = 2
    BINARY_INPUT = 3
    BINARY_OUTPUT = 4
    BINARY_VALUE = 5
    CALENDAR = 6
    COMMAND = 7
    DEVICE = 8
    EVENT_ENROLLMENT = 9
    FILE = 10
    GROUP = 11
    LOOP = 12
    MULTI_STATE_INPUT = 13
    MULTI_STATE_OUTPUT = 14
    NOTIFICATION_CLASS = 15
    PROGRAM = 16
    SCHEDULE = 17
    AVERAGING = 18
    MULTI_STATE_VALUE = 19
    TREND_LOG = 20
    LIFE_SAFETY_POINT = 21
    LIFE_SAFETY_ZONE = 22
    ACCUMULATOR = 23
    PULSE_CONVERTER = 24
    EVENT_LOG = 25
    GLOBAL_GROUP = 26
    TREND_LOG_MULTIPLE = 27
    LOAD_CONTROL = 28
    STRUCTURED_VIEW = 29
    ACCESS_DOOR = 30
    NETWORK_PORT = 56


class PropertyIdentifier(_OpenEnum):
    """Property identifiers read during inventory (Clause 21)."""

    DESCRIPTION = 28
    MAX_APDU_LENGTH_ACCEPTED = 62
    MODEL_NAME = 70
    NUMBER_OF_STATES = 74
    OBJECT_IDENTIFIER = 75
    OBJECT_LIST = 76
    OBJECT_NAME = 77
    OBJECT_TYPE = 79
    PRESENT_VALUE = 85
    SEGMENTATION_SUPPORTED = 107
    STATE_TEXT = 110
    UNITS = 117
    VENDOR_IDENTIFIER = 120
    VENDOR_NAME = 121


class Segmentation(IntEnum):
    """BACnetSegmentation (Clause 21)."""

    BOTH = 0
    TRANSMIT = 1
    RECEIVE = 2
    NONE = 3


class PduType(IntEnum):
    """APDU type nibble (Clause 20.1.1)."""

    CONFIRMED_REQUEST = 0
    UNCONFIRMED_REQUEST = 1
    SIMPLE_ACK = 2
    COMPLEX_ACK = 3
    SEGMENT_ACK = 4
    ERROR = 5
    REJECT = 6
    ABORT = 7


class UnconfirmedServiceChoice(IntEnum):
    """Unconfirmed service choices used by discovery (Clause 21)."""

    I_AM = 0
    I_HAVE = 1
    WHO_HAS = 7
    WHO_IS = 8


class ConfirmedServiceChoice(IntEnum):
    """Confirmed service choices (Clause 21)."""

    READ_PROPERTY = 12
    READ_PROPERTY_MULTIPLE = 14
    WRITE_PROPERTY = 15


class BvlcFunction(IntEnum):
    """BVLC function codes (Annex J.2)."""

    BVLC_RESULT = 0x00
    FORWARDED_NPDU = 0x04
    DISTRIBUTE_BROADCAST_TO_NETWORK = 0x09
    ORIGINAL_UNICAST_NPDU = 0x0A
    ORIGINAL_BROADCAST_NPDU = 0x0B


class ErrorClass(_OpenEnum):
    """BACnetErrorClass (Clause 21)."""

    DEVICE = 0
    OBJECT = 1
    PROPERTY = 2
    RESOURCES = 3
    SECURITY = 4
    SERVICES = 5
    VT = 6
    COMMUNICATION = 7


class ErrorCode(_OpenEnum):
    """BACnetErrorCode subset seen in ReadProperty answers (Clause 21)."""

    OTHER = 0
    CONFIGURATION_IN_PROGRESS = 2
    DEVICE_BUSY = 3
    SERVICE_REQUEST_DENIED = 29
    TIMEOUT = 30
    UNKNOWN_OBJECT = 31
    UNKNOWN_PROPERTY = 32
    READ_ACCESS_DENIED = 27
    INVALID_ARRAY_INDEX = 42
    PROPERTY_IS_NOT_AN_ARRAY = 50


class RejectReason(_OpenEnum):
    """BACnetRejectReason (Clause 21)."""

    OTHER = 0
    BUFFER_OVERFLOW = 1
    INCONSISTENT_PARAMETERS = 2
    INVALID_PARAMETER_DATA_TYPE = 3
    INVALID_TAG = 4
    MISSING_REQUIRED_PARAMETER = 5
    PARAMETER_OUT_OF_RANGE = 6
    TOO_MANY_ARGUMENTS = 7
    UNDEFINED_ENUMERATION = 8
    UNRECOGNIZED_SERVICE = 9


class AbortReason(_OpenEnum):
    """BACnetAbortReason (Clause 21)."""

    OTHER = 0
    BUFFER_OVERFLOW = 1
    INVALID_APDU_IN_THIS_STATE = 2
    PREEMPTED_BY_HIGHER_PRIORITY_TASK = 3
    SEGMENTATION_NOT_SUPPORTED = 4
    SECURITY_ERROR = 5
    INSUFFICIENT_SECURITY = 6
    WINDOW_SIZE_OUT_OF_RANGE = 7
    APPLICATION_EXCEEDED_REPLY_TIME = 8
    OUT_OF_RESOURCES = 9
    TSM_TIMEOUT = 10
    APDU_TOO_LONG = 11
