"""Tests for tag, primitive, APDU and ReadProperty encoding."""

import pytest

from bac_inventory.encoding.apdu import (
    AbortPDU,
    ComplexAckPDU,
    ConfirmedRequestPDU,
    ErrorPDU,
    RejectPDU,
    decode_apdu,
    encode_apdu,
)
from bac_inventory.encoding.primitives import (
    decode_application_values,
    decode_character_string,
    encode_application_character_string,
    encode_application_enumerated,
    encode_application_object_id,
    encode_application_real,
    encode_application_signed,
    encode_application_unsigned,
    encode_unsigned,
)
from bac_inventory.network.npdu import decode_npdu, encode_npdu
from bac_inventory.services.read_property import ReadPropertyACK, ReadPropertyRequest
from bac_inventory.transport.bvll import decode_bvll, encode_bvll
from bac_inventory.types.enums import (
    AbortReason,
    BvlcFunction,
    ConfirmedServiceChoice,
    ErrorClass,
    ErrorCode,
    ObjectType,
    PropertyIdentifier,
    RejectReason,
)
from bac_inventory.types.primitives import ObjectIdentifier
from bac_inventory.types.values import (
    EnumeratedValue,
    NumberValue,
    ObjectIdValue,
    OpaqueValue,
    TextValue,
    value_as_text,
)


class TestUnsigned:
    @pytest.mark.parametrize(
        ("value", "encoded"),
        [(0, b"\x00"), (255, b"\xff"), (256, b"\x01\x00"), (0xFFFFFFFF, b"\xff\xff\xff\xff")],
    )
    def test_minimum_octets(self, value, encoded):
        assert encode_unsigned(value) == encoded

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            encode_unsigned(-1)


class TestCharacterString:
    def test_utf8(self):
        assert decode_character_string(b"\x00Supply \xc2\xb0C") == "Supply °C"

    def test_invalid_bytes_become_replacement_characters(self):
        assert "\ufffd" in decode_character_string(b"\x00\xff\xfe")

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            decode_character_string(b"")


class TestApplicationValues:
    def test_mixed_values(self):
        data = (
            encode_application_character_string("Zone Temp")
            + encode_application_unsigned(12)
            + encode_application_signed(-3)
            + encode_application_enumerated(62)
            + encode_application_object_id(ObjectType.ANALOG_INPUT, 7)
        )
        assert decode_application_values(data) == [
            TextValue("Zone Temp"),
            NumberValue(12),
            NumberValue(-3),
            EnumeratedValue(62),
            ObjectIdValue(ObjectIdentifier(ObjectType.ANALOG_INPUT, 7)),
        ]

    def test_real(self):
        [value] = decode_application_values(encode_application_real(21.5))
        assert value == NumberValue(21.5)

    def test_null_is_opaque(self):
        assert decode_application_values(b"\x00") == [OpaqueValue(0, b"")]

    def test_truncated_content_rejected(self):
        with pytest.raises(ValueError):
            decode_application_values(encode_application_character_string("abc")[:-1])

    def test_context_tag_rejected(self):
        with pytest.raises(ValueError):
            decode_application_values(b"\x09\x01")

    def test_value_as_text(self):
        assert value_as_text(TextValue("a")) == "a"
        assert value_as_text(NumberValue(3)) == "3"
        assert value_as_text(EnumeratedValue(98)) == "98"
        assert value_as_text(OpaqueValue(1, b"")) is None
        assert value_as_text(None) is None


class TestApdu:
    def test_confirmed_request(self):
        pdu = ConfirmedRequestPDU(5, ConfirmedServiceChoice.READ_PROPERTY, b"\x01\x02")
        encoded = encode_apdu(pdu)
        assert encoded[:4] == bytes([0x00, 0x05, 0x05, 0x0C])
        assert decode_apdu(encoded) == pdu

    def test_complex_ack(self):
        pdu = ComplexAckPDU(9, ConfirmedServiceChoice.READ_PROPERTY, b"\xaa")
        assert decode_apdu(encode_apdu(pdu)) == pdu

    def test_segmented_complex_ack_flagged(self):
        data = bytes([0x38, 0x09, 0x00, 0x04, 0x0C, 0xAA])
        pdu = decode_apdu(data)
        assert isinstance(pdu, ComplexAckPDU)
        assert pdu.segmented
        assert pdu.service_ack == b"\xaa"

    def test_error(self):
        pdu = ErrorPDU(1, 12, ErrorClass.PROPERTY, ErrorCode.UNKNOWN_PROPERTY)
        assert decode_apdu(encode_apdu(pdu)) == pdu

    def test_reject_and_abort(self):
        reject = RejectPDU(2, RejectReason.BUFFER_OVERFLOW)
        abort = AbortPDU(True, 3, AbortReason.SEGMENTATION_NOT_SUPPORTED)
        assert decode_apdu(encode_apdu(reject)) == reject
        assert decode_apdu(encode_apdu(abort)) == abort

    def test_unknown_error_code_is_tolerated(self):
        data = bytes([0x50, 0x01, 0x0C, 0x91, 0x02, 0x91, 0xC8])
        pdu = decode_apdu(data)
        assert isinstance(pdu, ErrorPDU)
        assert int(pdu.error_code) == 200

    def test_truncated(self):
        with pytest.raises(ValueError):
            decode_apdu(b"\x30\x01")


class TestReadProperty:
    def test_request_round_trip(self):
        request = ReadPropertyRequest(
            ObjectIdentifier(ObjectType.DEVICE, 1001), PropertyIdentifier.OBJECT_LIST, 0
        )
        assert ReadPropertyRequest.decode(request.encode()) == request

    def test_request_without_index(self):
        request = ReadPropertyRequest(
            ObjectIdentifier(ObjectType.ANALOG_VALUE, 4), PropertyIdentifier.OBJECT_NAME
        )
        assert ReadPropertyRequest.decode(request.encode()).property_array_index is None

    def test_ack_value_extracted(self):
        value = encode_application_character_string("AHU-1 SAT")
        ack = ReadPropertyACK(
            ObjectIdentifier(ObjectType.ANALOG_INPUT, 1), PropertyIdentifier.OBJECT_NAME, None, value
        )
        decoded = ReadPropertyACK.decode(ack.encode())
        assert decoded.property_value == value
        assert decode_application_values(decoded.property_value) == [TextValue("AHU-1 SAT")]

    def test_ack_without_value_rejected(self):
        request = ReadPropertyRequest(
            ObjectIdentifier(ObjectType.ANALOG_INPUT, 1), PropertyIdentifier.OBJECT_NAME
        )
        with pytest.raises(ValueError):
            ReadPropertyACK.decode(request.encode())


class TestFraming:
    def test_bvll_npdu_round_trip(self):
        frame = encode_bvll(
            BvlcFunction.ORIGINAL_UNICAST_NPDU, encode_npdu(b"\x10\x08", expecting_reply=True)
        )
        bvll = decode_bvll(frame)
        npdu = decode_npdu(bvll.data)
        assert bvll.function is BvlcFunction.ORIGINAL_UNICAST_NPDU
        assert npdu.expecting_reply
        assert npdu.apdu == b"\x10\x08"

    def test_forwarded_npdu_carries_originator(self):
        frame = b"\x81\x04\x00\x0c" + bytes([10, 0, 0, 5, 0xBA, 0xC0]) + b"\x01\x00"
        bvll = decode_bvll(frame)
        assert bvll.originating_address is not None
        assert str(bvll.originating_address) == "10.0.0.5:47808"
        assert bvll.data == b"\x01\x00"

    def test_bad_length(self):
        with pytest.raises(ValueError):
            decode_bvll(b"\x81\x0a\x00\x20\x01\x00")

    def test_wrong_protocol_version(self):
        with pytest.raises(ValueError):
            decode_npdu(b"\x02\x00")
