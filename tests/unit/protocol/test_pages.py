"""Unit tests for stateless page decoders."""

from __future__ import annotations

import pytest

from antz_discovery.exceptions import InsufficientDataError
from antz_discovery.protocol import pages
from antz_discovery.protocol.pages import AssetSituation, BatteryStatus
from tests.fixtures.messages import (
    BATTERY,
    HEART_RATE,
    IDENTIFICATION_1,
    IDENTIFICATION_2,
    LOCATION_1,
    LOCATION_2,
    MANUFACTURER,
    PRODUCT,
)


class TestLocationPages:
    """Tests for location pages 1 and 2."""

    def test_location_1_fields(self):
        page = pages.decode_location_1(LOCATION_1)
        assert page.index == 3
        assert page.distance == 100
        assert page.heading == 90.0
        assert page.gps_lost is True
        assert page.comms_lost is False
        assert page.situation is AssetSituation.ON_POINT
        assert page.latitude_lower == 0x1234

    def test_unknown_distance(self):
        """0xFFFF is unknown, not 65535 m"""
        payload = bytes([0x01, 0x00, 0xFF, 0xFF, 0x00, 0x00, 0x00, 0x00])
        assert pages.decode_location_1(payload).distance is None

    def test_index_is_low_five_bits(self):
        payload = bytes([0x01, 0xE5, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00])
        assert pages.decode_location_1(payload).index == 5

    def test_status_flags(self):
        payload = bytes([0x01, 0x00, 0x00, 0x00, 0x00, 0x0E, 0x00, 0x00])
        page = pages.decode_location_1(payload)
        assert (page.gps_lost, page.comms_lost, page.remove, page.low_battery) == (False, True, True, True)

    def test_location_2_combines_halves(self):
        page = pages.decode_location_2(LOCATION_2)
        assert page.index == 3
        assert page.latitude_raw(0x1234) == 0x15551234
        assert page.longitude == pytest.approx(pages.semicircles_to_degrees(0x0AAAAAAA))

    def test_negative_latitude(self):
        """The combined 32-bit latitude is signed"""
        payload = bytes([0x02, 0x00, 0xFF, 0xFF, 0x00, 0x00, 0x00, 0x80])
        page = pages.decode_location_2(payload)
        assert page.latitude_raw(0xFFFF) == -1
        assert page.longitude == pytest.approx(-180.0)


class TestHeading:
    """Tests for bradian heading conversion."""

    @pytest.mark.parametrize(("raw", "degrees"), [(0, 0.0), (64, 90.0), (128, 180.0), (192, 270.0)])
    def test_heading_degrees(self, raw: int, degrees: float):
        assert pages.heading_degrees(raw) == degrees


class TestSituation:
    """Tests for the status byte situation field."""

    def test_undefined_status(self):
        """0xFF is Undefined whatever its bits say"""
        assert pages.decode_situation(0xFF) is AssetSituation.UNDEFINED

    @pytest.mark.parametrize("status", [0x00, 0x20, 0x47, 0xE0, 0xFE])
    def test_situation_bits(self, status: int):
        assert pages.decode_situation(status) == (status >> 5) & 0x07

    def test_labels(self):
        assert AssetSituation.ON_POINT.label == "On Point"
        assert AssetSituation.UNDEFINED.label == "Undefined"


class TestSemicircles:
    """Tests for semicircle/degree conversion."""

    @pytest.mark.parametrize("raw", [0, 1, -1, 0x15551234, -0x2AAAAAAA, 2**31 - 1, -(2**31)])
    def test_quantization_recovers_raw(self, raw: int):
        assert pages.degrees_to_semicircles(pages.semicircles_to_degrees(raw)) == raw

    def test_scale(self):
        assert pages.semicircles_to_degrees(2**30) == 90.0


class TestIdentificationPages:
    """Tests for identification pages 0x10 and 0x11."""

    def test_upper_name(self):
        page = pages.decode_identification_1(IDENTIFICATION_1)
        assert (page.index, page.colour, page.upper_name) == (3, 2, "ABCDE")

    def test_lower_name(self):
        page = pages.decode_identification_2(IDENTIFICATION_2)
        assert (page.index, page.asset_type, page.lower_name) == (3, 1, "FGHIJ")

    def test_padding_stripped(self):
        payload = bytes([0x10, 0x00, 0x00]) + b"AB\x00\x00\x00"
        assert pages.decode_identification_1(payload).upper_name == "AB"

    def test_asset_type_names(self):
        assert pages.describe_asset_type(0x00) == "Tracker"
        assert pages.describe_asset_type(0x01) == "Dog Collar"
        assert pages.describe_asset_type(0x07) == "Reserved"


class TestCommonPages:
    """Tests for manufacturer, product and battery pages."""

    def test_manufacturer_info(self):
        info = pages.decode_manufacturer_info(MANUFACTURER)
        assert info.hw_revision == 5
        assert info.manufacturer == "Garmin"
        assert info.model == "Alpha 10"

    def test_unknown_manufacturer(self):
        assert pages.lookup_manufacturer(999) == "?"
        assert pages.lookup_model(1, 1) == "?"

    def test_product_info(self):
        info = pages.decode_product_info(PRODUCT)
        assert info.sw_version == pytest.approx(1.234)
        assert info.serial_number == 123456

    def test_software_version_without_supplemental(self):
        assert pages.software_version(12, 0xFF) == pytest.approx(1.2)

    def test_battery_scenario(self):
        """Descriptive 0x23 with fractional 128 and 100 ticks"""
        battery = pages.decode_battery_status(BATTERY)
        assert battery.coarse_voltage == 3
        assert battery.voltage == pytest.approx(3.5)
        assert battery.status is BatteryStatus.GOOD
        assert battery.status.label == "Good"
        assert battery.uptime_seconds == 1600

    def test_battery_two_second_resolution(self):
        payload = bytes([0x52, 0xFF, 0x01, 0x0A, 0x00, 0x00, 0x00, 0x92])
        battery = pages.decode_battery_status(payload)
        assert battery.tick_resolution == 2
        assert battery.uptime_seconds == 20
        assert battery.status is BatteryStatus.NEW

    def test_battery_invalid_voltage_and_reserved_status(self):
        payload = bytes([0x52, 0xFF, 0x01, 0x00, 0x00, 0x00, 0x00, 0x7F])
        battery = pages.decode_battery_status(payload)
        assert battery.voltage is None
        assert battery.status is BatteryStatus.RESERVED

    def test_uptime_formatting(self):
        assert pages.format_uptime(1600) == "26m 40s"
        assert pages.format_uptime(93784) == "1d 2h 3m 4s"
        assert pages.format_uptime(5) == "5s"


class TestHeartRatePage:
    """Tests for heart rate pages."""

    def test_toggle_bit_stripped(self):
        page = pages.decode_heart_rate(HEART_RATE)
        assert page.page == 4
        assert page.toggle is True
        assert page.bpm == 72


class TestShortPayloads:
    """Every decoder validates its length first."""

    @pytest.mark.parametrize(
        "decoder",
        [
            pages.decode_location_1,
            pages.decode_location_2,
            pages.decode_identification_1,
            pages.decode_identification_2,
            pages.decode_manufacturer_info,
            pages.decode_product_info,
            pages.decode_battery_status,
            pages.decode_heart_rate,
        ],
    )
    def test_insufficient_data(self, decoder):
        with pytest.raises(InsufficientDataError) as exc_info:
            _ = decoder(bytes([0x01, 0x02, 0x03]))
        assert exc_info.value.needed == 8
        assert exc_info.value.available == 3


class TestDeviceTypeNames:
    def test_known_and_unknown(self):
        assert pages.describe_device_type(0x29) == "Asset Tracker"
        assert pages.describe_device_type(0x78) == "Heart Rate Monitor"
        assert pages.describe_device_type(0x55) == "Unknown (0x55)"
