"""Unit tests for extended-info trailer parsing."""

from __future__ import annotations

import pytest

from antz_discovery.exceptions import ExtendedInfoError, PacketDecodeError
from antz_discovery.protocol.constants import MESG_BROADCAST_DATA_ID, MESG_EXT_BROADCAST_DATA_ID
from antz_discovery.protocol.extended_info import ExtendedInfo, ExtendedInfoParser
from tests.fixtures.messages import LOCATION_1, TRACKER, compact_message, flagged_message

FIELD_ORDER = (
    (0x10, "proximity"),
    (0x08, "rssi"),
    (0x04, None),
    (0x02, "transmission_type"),
    (0x01, "device_type"),
)


def encode_trailer(flags: int, values: dict[str, int]) -> bytes:
    """Build a compact trailer for ``flags`` in bit order 4..0."""
    out = bytearray()
    for bit, name in FIELD_ORDER:
        if flags & bit:
            out.append(0xAA if name is None else values[name] & 0xFF)
    return bytes(out)


class TestTrailerLength:
    """Tests for ExtendedInfoParser.trailer_length."""

    @pytest.mark.parametrize("flags", range(256))
    def test_counts_low_five_bits(self, flags: int):
        """Every low field bit, including the channel type slot, is one byte"""
        assert ExtendedInfoParser.trailer_length(flags) == bin(flags & 0x1F).count("1")

    def test_high_bits_ignored(self):
        """Bits 5..7 announce nothing in the compact trailer"""
        assert ExtendedInfoParser.trailer_length(0xE0) == 0

    def test_channel_type_slot_counted(self):
        """Bit 2 consumes a byte even though its value is dropped"""
        assert ExtendedInfoParser.trailer_length(0x04) == 1
        assert ExtendedInfoParser.trailer_length(0x1F) == 5


class TestParse:
    """Tests for ExtendedInfoParser.parse on a trailer slice."""

    @pytest.mark.parametrize("flags", [0x01, 0x03, 0x0B, 0x0F, 0x13, 0x1B, 0x1F])
    def test_fields_survive_encoding(self, flags: int):
        """Parsing a synthetic trailer yields the announced fields"""
        values = {"proximity": 3, "rssi": -70, "transmission_type": 0xD5, "device_type": 0x29}
        ext = ExtendedInfoParser.parse(encode_trailer(flags, values), flags)

        assert ext.proximity == (3 if flags & 0x10 else None)
        assert ext.rssi == (-70 if flags & 0x08 else None)
        assert ext.transmission_type == (0xD5 if flags & 0x02 else None)
        assert ext.device_type == (0x29 if flags & 0x01 else None)
        assert ext.length == ExtendedInfoParser.trailer_length(flags)

    def test_channel_type_byte_keeps_alignment(self):
        """The discarded channel type byte shifts later fields"""
        ext = ExtendedInfoParser.parse(bytes([0x99, 0x05, 0x78]), 0x07)
        assert ext.transmission_type == 0x05
        assert ext.device_type == 0x78

    def test_rssi_is_signed(self):
        """RSSI is a signed dBm value"""
        ext = ExtendedInfoParser.parse(bytes([0xC4]), 0x08)
        assert ext.rssi == -60

    def test_short_trailer_fails(self):
        """A slice shorter than the flags announce is insufficient data"""
        with pytest.raises(ExtendedInfoError) as exc_info:
            _ = ExtendedInfoParser.parse(bytes([0x01, 0x02]), 0x0B)
        assert exc_info.value.reason == "insufficient_data"

    def test_device_number_passed_through(self):
        """A device number carried outside the trailer is kept"""
        ext = ExtendedInfoParser.parse(b"", 0x00, device_number=0x1234)
        assert ext == ExtendedInfo(flags=0, device_number=0x1234, length=0)


class TestParseCompact:
    """Tests for the end-anchored 0x5D layout."""

    def test_full_identity(self):
        """Device number, types and rssi come out of a compact message"""
        message = compact_message(LOCATION_1, TRACKER, rssi=-55)
        ext = ExtendedInfoParser.parse_compact(message.data)

        assert ext is not None
        assert ext.device_number == TRACKER.number
        assert ext.device_type == TRACKER.device_type
        assert ext.transmission_type == TRACKER.transmission_type
        assert ext.rssi == -55

    def test_too_short_has_no_trailer(self):
        """Messages without room for a trailer return None"""
        assert ExtendedInfoParser.parse_compact(bytes(11)) is None

    def test_twelve_bytes_has_no_trailer(self):
        """Channel, payload, device number and a flag byte leave no room for trailer bytes"""
        data = bytes([1]) + LOCATION_1 + bytes([0x34, 0x12, 0x01])
        assert len(data) == 12
        assert ExtendedInfoParser.parse_compact(data) is None

    def test_underflow_rejected(self):
        """A trailer reaching back into the device number bytes fails"""
        data = bytes([1]) + LOCATION_1 + bytes([0x34, 0x12, 0x05, 0x1F])
        with pytest.raises(ExtendedInfoError) as exc_info:
            _ = ExtendedInfoParser.parse_compact(data)
        assert exc_info.value.reason == "trailer_underflow"


class TestParseFlagged:
    """Tests for the flagged 0x4E layout."""

    def test_channel_id_and_rssi_blocks(self):
        """Channel id block then rssi block"""
        message = flagged_message(LOCATION_1, TRACKER, rssi=-72)
        ext = ExtendedInfoParser.parse_flagged(message.data)

        assert ext is not None
        assert ext.device_number == 0x1234
        assert ext.device_type == 0x29
        assert ext.transmission_type == 0xD5
        assert ext.measurement_type == 0x20
        assert ext.rssi == -72
        assert ext.length == 7

    def test_no_flag_byte(self):
        """A bare nine-byte broadcast has no extended data"""
        assert ExtendedInfoParser.parse_flagged(bytes(9)) is None

    def test_truncated_block(self):
        """Flags announcing more than the message holds fail"""
        data = bytes([1]) + LOCATION_1 + bytes([0x80, 0x34, 0x12])
        with pytest.raises(ExtendedInfoError) as exc_info:
            _ = ExtendedInfoParser.parse_flagged(data)
        assert exc_info.value.reason == "truncated"
        assert isinstance(exc_info.value, PacketDecodeError)


class TestFromMessage:
    """Tests for layout selection by message id."""

    def test_selects_layout(self):
        compact = compact_message(LOCATION_1)
        flagged = flagged_message(LOCATION_1)
        ext_compact = ExtendedInfoParser.from_message(MESG_EXT_BROADCAST_DATA_ID, compact.data)
        ext_flagged = ExtendedInfoParser.from_message(MESG_BROADCAST_DATA_ID, flagged.data)

        assert ext_compact is not None
        assert ext_flagged is not None
        assert ext_compact.device_number == ext_flagged.device_number == TRACKER.number

    def test_other_ids_have_no_trailer(self):
        assert ExtendedInfoParser.from_message(0x4F, bytes(14)) is None
