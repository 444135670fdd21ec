"""Stateless ANT+ page decoders and lookup tables.

Each ``decode_*`` function takes the eight payload bytes of a broadcast
(``payload[0]`` is the page number) and returns a frozen page record.
Combining pages across messages is the registry's job, not this module's.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Final

from antz_discovery.exceptions import InsufficientDataError
from antz_discovery.protocol.constants import (
    BRADIANS_PER_TURN,
    DEVICE_TYPE_ASSET_TRACKER,
    DEVICE_TYPE_BIKE_SPEED,
    DEVICE_TYPE_BIKE_SPEED_CADENCE,
    DEVICE_TYPE_DOG_COLLAR,
    DEVICE_TYPE_GENERIC_GPS,
    DEVICE_TYPE_HEART_RATE,
    DEVICE_TYPE_STRIDE,
    DEVICE_TYPE_TEMPERATURE,
    DISTANCE_UNKNOWN,
    HR_PAGE_MASK,
    PAYLOAD_LENGTH,
    SEMICIRCLE_SCALE,
    STATUS_UNDEFINED,
)

NAME_FRAGMENT_LENGTH: Final = 5
INDEX_MASK: Final = 0x1F
COARSE_VOLTAGE_INVALID: Final = 0x0F
SW_SUPPLEMENTAL_UNUSED: Final = 0xFF


class AssetSituation(IntEnum):
    """Situation field of location page 1 (status bits 5..7)."""

    UNKNOWN = 0
    ON_POINT = 1
    TREEING = 2
    RUNNING = 3
    CAUGHT = 4
    BARKING = 5
    TRAINING = 6
    HUNTING = 7
    UNDEFINED = 255

    @property
    def label(self) -> str:
        return _SITUATION_LABELS[self]


_SITUATION_LABELS: Final = {
    AssetSituation.UNDEFINED: "Undefined",
    AssetSituation.UNKNOWN: "Unknown",
    AssetSituation.ON_POINT: "On Point",
    AssetSituation.TREEING: "Treeing",
    AssetSituation.RUNNING: "Running",
    AssetSituation.CAUGHT: "Caught",
    AssetSituation.BARKING: "Barking",
    AssetSituation.TRAINING: "Training",
    AssetSituation.HUNTING: "Hunting",
}


class BatteryStatus(IntEnum):
    RESERVED = 0
    NEW = 1
    GOOD = 2
    OK = 3
    LOW = 4
    CRITICAL = 5

    @property
    def label(self) -> str:
        return self.name.capitalize()


DEVICE_TYPE_NAMES: Final[dict[int, str]] = {
    DEVICE_TYPE_ASSET_TRACKER: "Asset Tracker",
    DEVICE_TYPE_HEART_RATE: "Heart Rate Monitor",
    DEVICE_TYPE_BIKE_SPEED: "Bike Speed Sensor",
    DEVICE_TYPE_BIKE_SPEED_CADENCE: "Bike Speed/Cadence Sensor",
    DEVICE_TYPE_GENERIC_GPS: "Generic GPS (Garmin)",
    DEVICE_TYPE_TEMPERATURE: "Temperature Sensor",
    DEVICE_TYPE_STRIDE: "Stride Sensor",
    DEVICE_TYPE_DOG_COLLAR: "Garmin Dog Collar",
}

MANUFACTURERS: Final[dict[int, str]] = {
    1: "Garmin",
}

MODELS: Final[dict[int, dict[int, str]]] = {
    1: {
        3528: "Alpha 10",
        1339: "Astro 320",
    },
}


def describe_device_type(device_type: int | None) -> str:
    if device_type is None:
        return "Unknown"
    return DEVICE_TYPE_NAMES.get(device_type, f"Unknown (0x{device_type:02X})")


def describe_asset_type(asset_type: int) -> str:
    if asset_type == 0x00:
        return "Tracker"
    if asset_type == 0x01:
        return "Dog Collar"
    return "Reserved"


def lookup_manufacturer(manufacturer_id: int) -> str:
    return MANUFACTURERS.get(manufacturer_id, "?")


def lookup_model(manufacturer_id: int, model_number: int) -> str:
    return MODELS.get(manufacturer_id, {}).get(model_number, "?")


def heading_degrees(bradians: int) -> float:
    """Convert a bradian byte (256 per turn) to degrees.

    Example:
        >>> heading_degrees(64)
        90.0

    """
    return bradians / BRADIANS_PER_TURN * 360.0


def semicircles_to_degrees(raw: int) -> float:
    return raw * SEMICIRCLE_SCALE


def degrees_to_semicircles(degrees: float) -> int:
    return round(degrees / SEMICIRCLE_SCALE)


def decode_situation(status: int) -> AssetSituation:
    if status == STATUS_UNDEFINED:
        return AssetSituation.UNDEFINED
    return AssetSituation((status >> 5) & 0x07)


def software_version(main: int, supplemental: int) -> float:
    """Combine main and supplemental software revision bytes.

    Example:
        >>> software_version(12, 34)
        1.234
        >>> software_version(12, 0xFF)
        1.2

    """
    if supplemental != SW_SUPPLEMENTAL_UNUSED:
        return (main * 100 + supplemental) / 1000
    return main / 10


def format_uptime(seconds: int) -> str:
    """Render seconds as ``1d 2h 3m 4s``, dropping leading zero units."""
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    parts: list[str] = []
    if days:
        parts.append(f"{days}d")
    if parts or hours:
        parts.append(f"{hours}h")
    if parts or minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return " ".join(parts)


def _decode_name(raw: bytes) -> str:
    return raw.decode("latin-1").rstrip("\x00").rstrip()


def _require_payload(payload: bytes) -> None:
    if len(payload) < PAYLOAD_LENGTH:
        raise InsufficientDataError(PAYLOAD_LENGTH, len(payload), payload)


@dataclass(frozen=True, slots=True)
class LocationPage1:
    index: int
    distance: int | None
    heading: float
    status: int
    gps_lost: bool
    comms_lost: bool
    remove: bool
    low_battery: bool
    situation: AssetSituation
    latitude_lower: int


@dataclass(frozen=True, slots=True)
class LocationPage2:
    index: int
    latitude_upper: int
    longitude_raw: int

    @property
    def longitude(self) -> float:
        return semicircles_to_degrees(self.longitude_raw)

    def latitude_raw(self, lower: int) -> int:
        """Signed 32-bit latitude from this page's upper half and ``lower``."""
        combined = (self.latitude_upper << 16) | (lower & 0xFFFF)
        return combined - 0x1_0000_0000 if combined & 0x8000_0000 else combined


@dataclass(frozen=True, slots=True)
class IdentificationPage1:
    index: int
    colour: int
    upper_name: str


@dataclass(frozen=True, slots=True)
class IdentificationPage2:
    index: int
    asset_type: int
    lower_name: str


@dataclass(frozen=True, slots=True)
class ManufacturerInfo:
    hw_revision: int
    manufacturer_id: int
    model_number: int

    @property
    def manufacturer(self) -> str:
        return lookup_manufacturer(self.manufacturer_id)

    @property
    def model(self) -> str:
        return lookup_model(self.manufacturer_id, self.model_number)


@dataclass(frozen=True, slots=True)
class ProductInfo:
    sw_supplemental: int
    sw_main: int
    serial_number: int

    @property
    def sw_version(self) -> float:
        return software_version(self.sw_main, self.sw_supplemental)


@dataclass(frozen=True, slots=True)
class BatteryStatusPage:
    battery_id: int
    operating_ticks: int
    fractional_voltage: int
    descriptive: int

    @property
    def coarse_voltage(self) -> int:
        return self.descriptive & 0x0F

    @property
    def voltage(self) -> float | None:
        """Volts, or None when the coarse voltage is flagged invalid."""
        if self.coarse_voltage == COARSE_VOLTAGE_INVALID:
            return None
        return self.coarse_voltage + self.fractional_voltage / 256

    @property
    def status(self) -> BatteryStatus:
        value = (self.descriptive >> 4) & 0x07
        if BatteryStatus.NEW <= value <= BatteryStatus.CRITICAL:
            return BatteryStatus(value)
        return BatteryStatus.RESERVED

    @property
    def tick_resolution(self) -> int:
        return 2 if self.descriptive & 0x80 else 16

    @property
    def uptime_seconds(self) -> int:
        return self.operating_ticks * self.tick_resolution


@dataclass(frozen=True, slots=True)
class HeartRatePage:
    page: int
    toggle: bool
    bpm: int


def decode_location_1(payload: bytes) -> LocationPage1:
    _require_payload(payload)
    distance = int.from_bytes(payload[2:4], "little")
    status = payload[5]
    return LocationPage1(
        index=payload[1] & INDEX_MASK,
        distance=None if distance == DISTANCE_UNKNOWN else distance,
        heading=heading_degrees(payload[4]),
        status=status,
        gps_lost=bool(status & 0x01),
        comms_lost=bool(status & 0x02),
        remove=bool(status & 0x04),
        low_battery=bool(status & 0x08),
        situation=decode_situation(status),
        latitude_lower=int.from_bytes(payload[6:8], "little"),
    )


def decode_location_2(payload: bytes) -> LocationPage2:
    _require_payload(payload)
    return LocationPage2(
        index=payload[1] & INDEX_MASK,
        latitude_upper=int.from_bytes(payload[2:4], "little"),
        longitude_raw=int.from_bytes(payload[4:8], "little", signed=True),
    )


def decode_identification_1(payload: bytes) -> IdentificationPage1:
    _require_payload(payload)
    return IdentificationPage1(
        index=payload[1] & INDEX_MASK,
        colour=payload[2],
        upper_name=_decode_name(payload[3 : 3 + NAME_FRAGMENT_LENGTH]),
    )


def decode_identification_2(payload: bytes) -> IdentificationPage2:
    _require_payload(payload)
    return IdentificationPage2(
        index=payload[1] & INDEX_MASK,
        asset_type=payload[2],
        lower_name=_decode_name(payload[3 : 3 + NAME_FRAGMENT_LENGTH]),
    )


def decode_manufacturer_info(payload: bytes) -> ManufacturerInfo:
    _require_payload(payload)
    return ManufacturerInfo(
        hw_revision=payload[3],
        manufacturer_id=int.from_bytes(payload[4:6], "little"),
        model_number=int.from_bytes(payload[6:8], "little"),
    )


def decode_product_info(payload: bytes) -> ProductInfo:
    _require_payload(payload)
    return ProductInfo(
        sw_supplemental=payload[2],
        sw_main=payload[3],
        serial_number=int.from_bytes(payload[4:8], "little"),
    )


def decode_battery_status(payload: bytes) -> BatteryStatusPage:
    _require_payload(payload)
    return BatteryStatusPage(
        battery_id=payload[2],
        operating_ticks=int.from_bytes(payload[3:6], "little"),
        fractional_voltage=payload[6],
        descriptive=payload[7],
    )


def decode_heart_rate(payload: bytes) -> HeartRatePage:
    _require_payload(payload)
    return HeartRatePage(
        page=payload[0] & HR_PAGE_MASK,
        toggle=bool(payload[0] & 0x80),
        bpm=payload[7],
    )
