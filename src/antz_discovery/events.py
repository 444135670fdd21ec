"""Decoded events and their text, JSON and CSV renderings.

Decoders return one event per handled message. Events are immutable and
carry everything an output sink needs; ``to_dict`` gives a JSON-safe view
that both the stdout formatter and the MQTT publisher use.
"""

from __future__ import annotations

import csv
import io
import json
import time
from dataclasses import dataclass, field, fields
from enum import Enum, StrEnum
from typing import ClassVar

from antz_discovery.devices.identity import DeviceIdentity
from antz_discovery.protocol.pages import (
    AssetSituation,
    describe_asset_type,
    format_uptime,
    lookup_manufacturer,
    lookup_model,
)
from antz_discovery.protocol.profiles import Profile


class EventKind(StrEnum):
    LOCATION = "location"
    POSITION = "position"
    NO_ASSETS = "no_assets"
    IDENTIFICATION = "identification"
    NAME = "name"
    DISCONNECT = "disconnect"
    MANUFACTURER = "manufacturer"
    PRODUCT = "product"
    BATTERY = "battery"
    UNKNOWN_PAGE = "unknown_page"
    HEART_RATE = "heart_rate"
    GENERIC = "generic"


class OutputFormat(StrEnum):
    TEXT = "text"
    JSON = "json"
    CSV = "csv"


@dataclass(frozen=True, kw_only=True)
class DecodedEvent:
    kind: ClassVar[EventKind]
    page_tag: ClassVar[str] = "?"

    channel: int
    page: int
    identity: DeviceIdentity
    profile: Profile
    rssi: int | None = None
    index: int | None = None
    timestamp: float = field(default_factory=time.time, compare=False)

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"kind": self.kind.value}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, DeviceIdentity):
                value = {
                    "number": value.number,
                    "device_type": value.device_type,
                    "transmission_type": value.transmission_type,
                }
            elif isinstance(value, AssetSituation):
                value = value.label
            elif isinstance(value, Enum):
                value = value.value
            data[f.name] = value
        return data

    def details(self) -> str:
        return ""

    def describe(self) -> str:
        prefix = f"[CH] #{self.channel}: [{self.profile.tag}/{self.page_tag}]"
        if self.index is not None:
            prefix = f"{prefix} #{self.index}"
        parts = [p for p in (self.details(),) if p]
        if self.identity.number is not None:
            parts.append(self.identity.describe())
        return " | ".join([prefix, *parts]) if parts else prefix


@dataclass(frozen=True, kw_only=True)
class LocationEvent(DecodedEvent):
    kind: ClassVar[EventKind] = EventKind.LOCATION
    page_tag: ClassVar[str] = "1"

    distance: int | None
    heading: float
    gps_lost: bool
    comms_lost: bool
    remove_requested: bool
    low_battery: bool
    situation: AssetSituation
    name: str | None = None

    def details(self) -> str:
        distance = "?" if self.distance is None else str(self.distance)
        parts = [f"→ {distance}m @ {self.heading:.1f}°"]
        if self.name:
            parts.append(self.name)
        if self.gps_lost:
            parts.append("GPS Lost")
        if self.comms_lost:
            parts.append("Comms Lost")
        if self.remove_requested:
            parts.append("Remove")
        if self.low_battery:
            parts.append("Battery Low")
        parts.append(self.situation.label)
        return " | ".join(parts)


@dataclass(frozen=True, kw_only=True)
class PositionEvent(DecodedEvent):
    kind: ClassVar[EventKind] = EventKind.POSITION
    page_tag: ClassVar[str] = "2"

    latitude: float | None
    longitude: float

    def details(self) -> str:
        latitude = "?" if self.latitude is None else f"{self.latitude:.6f}"
        return f"@ {latitude}, {self.longitude:.6f}"


@dataclass(frozen=True, kw_only=True)
class NoAssetsEvent(DecodedEvent):
    kind: ClassVar[EventKind] = EventKind.NO_ASSETS
    page_tag: ClassVar[str] = "3"

    def details(self) -> str:
        return "No assets connected"


@dataclass(frozen=True, kw_only=True)
class IdentificationEvent(DecodedEvent):
    kind: ClassVar[EventKind] = EventKind.IDENTIFICATION
    page_tag: ClassVar[str] = "16"

    upper_name: str
    colour: int

    def details(self) -> str:
        return f"Upper Name: {self.upper_name} | Color: {self.colour}"


@dataclass(frozen=True, kw_only=True)
class AssetNameEvent(DecodedEvent):
    kind: ClassVar[EventKind] = EventKind.NAME
    page_tag: ClassVar[str] = "17"

    full_name: str
    lower_name: str
    asset_type: int
    name_complete: bool

    def details(self) -> str:
        return f"Full Name: {self.full_name} | Asset Type: {describe_asset_type(self.asset_type)}"


@dataclass(frozen=True, kw_only=True)
class DisconnectEvent(DecodedEvent):
    kind: ClassVar[EventKind] = EventKind.DISCONNECT
    page_tag: ClassVar[str] = "32"

    def details(self) -> str:
        return "Disconnecting"


@dataclass(frozen=True, kw_only=True)
class ManufacturerInfoEvent(DecodedEvent):
    kind: ClassVar[EventKind] = EventKind.MANUFACTURER
    page_tag: ClassVar[str] = "80"

    hw_revision: int
    manufacturer_id: int
    model_number: int

    @property
    def manufacturer(self) -> str:
        return lookup_manufacturer(self.manufacturer_id)

    @property
    def model(self) -> str:
        return lookup_model(self.manufacturer_id, self.model_number)

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        data["manufacturer"] = self.manufacturer
        data["model"] = self.model
        return data

    def details(self) -> str:
        return (
            f"Manufacturer Info: HW Revision {self.hw_revision}"
            f" | Manufacturer: {self.manufacturer} ({self.manufacturer_id})"
            f" | Model: {self.model} ({self.model_number})"
        )


@dataclass(frozen=True, kw_only=True)
class ProductInfoEvent(DecodedEvent):
    kind: ClassVar[EventKind] = EventKind.PRODUCT
    page_tag: ClassVar[str] = "81"

    sw_version: float
    serial_number: int

    def details(self) -> str:
        return f"Product Info | SW Revision {self.sw_version:.3f} | Serial #{self.serial_number}"


@dataclass(frozen=True, kw_only=True)
class BatteryStatusEvent(DecodedEvent):
    kind: ClassVar[EventKind] = EventKind.BATTERY
    page_tag: ClassVar[str] = "82"

    battery_id: int
    voltage: float | None
    status: str
    uptime_seconds: int

    def details(self) -> str:
        voltage = "Invalid" if self.voltage is None else f"{self.voltage:.3f} V"
        return (
            f"Battery Status | Battery ID: {self.battery_id} | Voltage: {voltage}"
            f" | Status: {self.status} | Uptime: {format_uptime(self.uptime_seconds)}"
        )


@dataclass(frozen=True, kw_only=True)
class UnknownPageEvent(DecodedEvent):
    kind: ClassVar[EventKind] = EventKind.UNKNOWN_PAGE

    raw: str

    def details(self) -> str:
        return f"Unknown page : 0x{self.page:02X} | Raw Payload: {self.raw}"


@dataclass(frozen=True, kw_only=True)
class HeartRateEvent(DecodedEvent):
    kind: ClassVar[EventKind] = EventKind.HEART_RATE

    bpm: int

    def describe(self) -> str:
        text = f"[CH] #{self.channel}: [HRM/{self.page}] Heart Rate: {self.bpm} bpm"
        if self.identity.number is not None:
            text = f"{text} | {self.identity.describe()}"
        return text


@dataclass(frozen=True, kw_only=True)
class GenericMessageEvent(DecodedEvent):
    kind: ClassVar[EventKind] = EventKind.GENERIC

    message_id: int
    raw: str

    def details(self) -> str:
        return f"ANT+ payload (id 0x{self.message_id:02X}): {self.raw}"


CSV_COLUMNS = (
    "timestamp",
    "kind",
    "profile",
    "channel",
    "page",
    "device_number",
    "device_type",
    "transmission_type",
    "index",
    "rssi",
    "summary",
)


class EventFormatter:
    """Render events for stdout in the selected output format."""

    def __init__(self, output_format: OutputFormat = OutputFormat.TEXT) -> None:
        self.output_format = output_format
        self._csv_header_written = False

    def format(self, event: DecodedEvent) -> str:
        if self.output_format is OutputFormat.JSON:
            return json.dumps(event.to_dict(), default=str, ensure_ascii=False)
        if self.output_format is OutputFormat.CSV:
            return self._format_csv(event)
        return event.describe()

    def _format_csv(self, event: DecodedEvent) -> str:
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        if not self._csv_header_written:
            writer.writerow(CSV_COLUMNS)
            self._csv_header_written = True
        writer.writerow(
            (
                f"{event.timestamp:.3f}",
                event.kind.value,
                event.profile.value,
                event.channel,
                event.page,
                "" if event.identity.number is None else event.identity.number,
                "" if event.identity.device_type is None else event.identity.device_type,
                "" if event.identity.transmission_type is None else event.identity.transmission_type,
                "" if event.index is None else event.index,
                "" if event.rssi is None else event.rssi,
                event.details(),
            ),
        )
        return buf.getvalue().rstrip("\n")
