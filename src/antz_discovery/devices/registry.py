"""Per-device reassembly state.

The registry owns every piece of state that outlives a single message:
pairing set, known sub-indices, pending latitude halves, upper name
fragments, and the last decoded view of each device and asset. It is
created once by the discovery machine and handed to decoders explicitly.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field

from antz_discovery.devices.identity import DeviceIdentity
from antz_discovery.logging_abstraction import get_logger
from antz_discovery.protocol.pages import (
    AssetSituation,
    BatteryStatusPage,
    IdentificationPage1,
    IdentificationPage2,
    LocationPage1,
    LocationPage2,
    ManufacturerInfo,
    ProductInfo,
    semicircles_to_degrees,
)

logger = get_logger(__name__)

EARTH_RADIUS_METERS = 6_371_000.0

AssetKey = tuple[DeviceIdentity, int]


@dataclass(slots=True)
class AssetState:
    """Last known state of one sub-indexed asset of a tracker."""

    index: int
    distance: int | None = None
    heading: float | None = None
    gps_lost: bool = False
    comms_lost: bool = False
    remove_requested: bool = False
    low_battery: bool = False
    situation: AssetSituation = AssetSituation.UNDEFINED
    latitude: float | None = None
    longitude: float | None = None
    colour: int | None = None
    asset_type: int | None = None
    upper_name: str | None = None
    lower_name: str | None = None
    full_name: str | None = None

    @property
    def position_complete(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def name_complete(self) -> bool:
        return self.upper_name is not None and self.lower_name is not None


@dataclass(slots=True)
class DeviceState:
    """Last known state of one device identity."""

    identity: DeviceIdentity
    channel: int | None = None
    rssi: int | None = None
    last_seen: float = 0.0
    message_count: int = 0
    hw_revision: int | None = None
    manufacturer_id: int | None = None
    model_number: int | None = None
    sw_version: float | None = None
    serial_number: int | None = None
    battery_voltage: float | None = None
    battery_status: str | None = None
    uptime_seconds: int | None = None
    heart_rate: int | None = None
    assets: dict[int, AssetState] = field(default_factory=dict)


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(min(1.0, a)))


class ChangeFilter:
    """Suppress re-publishing assets that have not moved noticeably.

    A zero epsilon disables the corresponding check.
    """

    def __init__(self, eps_meters: float = 0.0, eps_heading: float = 0.0) -> None:
        self.eps_meters = max(0.0, eps_meters)
        self.eps_heading = max(0.0, eps_heading)
        self._positions: dict[AssetKey, tuple[float, float]] = {}
        self._headings: dict[AssetKey, float] = {}

    def position_changed(self, key: AssetKey, latitude: float, longitude: float) -> bool:
        last = self._positions.get(key)
        if last is not None and self.eps_meters > 0:
            if haversine_meters(last[0], last[1], latitude, longitude) < self.eps_meters:
                return False
        self._positions[key] = (latitude, longitude)
        return True

    def heading_changed(self, key: AssetKey, heading: float) -> bool:
        last = self._headings.get(key)
        if last is not None and self.eps_heading > 0:
            delta = abs(heading - last) % 360.0
            if min(delta, 360.0 - delta) < self.eps_heading:
                return False
        self._headings[key] = heading
        return True

    def forget(self, identity: DeviceIdentity) -> None:
        for store in (self._positions, self._headings):
            for key in [k for k in store if k[0] == identity]:
                del store[key]


class DeviceRegistry:
    def __init__(self, change_filter: ChangeFilter | None = None, clock=time.monotonic) -> None:
        self.change_filter = change_filter if change_filter is not None else ChangeFilter()
        self._clock = clock
        self._paired: set[DeviceIdentity] = set()
        self._indexes: dict[DeviceIdentity, set[int]] = {}
        self._latitudes: dict[AssetKey, int] = {}
        self._upper_names: dict[AssetKey, str] = {}
        self._devices: dict[DeviceIdentity, DeviceState] = {}

    def __len__(self) -> int:
        return len(self._devices)

    @property
    def devices(self) -> dict[DeviceIdentity, DeviceState]:
        return self._devices

    # Pairing and sub-indices

    def mark_paired(self, identity: DeviceIdentity) -> bool:
        """Register ``identity`` as paired; True the first time."""
        if identity in self._paired:
            return False
        self._paired.add(identity)
        logger.debug("Registered paired device %s", identity)
        return True

    def is_paired(self, identity: DeviceIdentity) -> bool:
        return identity in self._paired

    @property
    def paired(self) -> frozenset[DeviceIdentity]:
        return frozenset(self._paired)

    def add_index(self, identity: DeviceIdentity, index: int) -> bool:
        """Remember sub-index ``index``; True when it was not known yet."""
        known = self._indexes.setdefault(identity, set())
        if index in known:
            return False
        known.add(index)
        return True

    def known_indexes(self, identity: DeviceIdentity) -> frozenset[int]:
        return frozenset(self._indexes.get(identity, ()))

    def forget_indexes(self, identity: DeviceIdentity) -> None:
        self._indexes.pop(identity, None)

    # Device and asset views

    def touch(self, identity: DeviceIdentity, channel: int, rssi: int | None = None) -> DeviceState:
        state = self._devices.get(identity)
        if state is None:
            state = DeviceState(identity=identity)
            self._devices[identity] = state
            logger.info("New device seen on channel #%d: %s", channel, identity.describe())
        state.channel = channel
        state.message_count += 1
        state.last_seen = self._clock()
        if rssi is not None:
            state.rssi = rssi
        return state

    def device(self, identity: DeviceIdentity) -> DeviceState | None:
        return self._devices.get(identity)

    def asset(self, identity: DeviceIdentity, index: int) -> AssetState:
        device = self._devices.get(identity)
        if device is None:
            device = DeviceState(identity=identity)
            self._devices[identity] = device
        return device.assets.setdefault(index, AssetState(index=index))

    # Asset tracker pages

    def record_location_1(self, identity: DeviceIdentity, page: LocationPage1) -> AssetState:
        # Overwritten on every page 1 so a later page 2 pairs with the freshest half.
        self._latitudes[(identity, page.index)] = page.latitude_lower
        asset = self.asset(identity, page.index)
        asset.distance = page.distance
        asset.heading = page.heading
        asset.gps_lost = page.gps_lost
        asset.comms_lost = page.comms_lost
        asset.remove_requested = page.remove
        asset.low_battery = page.low_battery
        asset.situation = page.situation
        return asset

    def pending_lower_latitude(self, identity: DeviceIdentity, index: int) -> int | None:
        return self._latitudes.get((identity, index))

    def record_location_2(self, identity: DeviceIdentity, page: LocationPage2) -> AssetState:
        """Combine page 2 with the cached lower latitude half.

        Without a prior page 1 for the same sub-index the latitude stays
        None; the longitude is self-contained and always set.
        """
        asset = self.asset(identity, page.index)
        lower = self.pending_lower_latitude(identity, page.index)
        if lower is None:
            logger.warning(
                "Location page 2 for asset #%d of %s arrived before page 1, latitude unknown",
                page.index,
                identity,
            )
            asset.latitude = None
        else:
            asset.latitude = semicircles_to_degrees(page.latitude_raw(lower))
        asset.longitude = page.longitude
        return asset

    def record_identification_1(self, identity: DeviceIdentity, page: IdentificationPage1) -> AssetState:
        self._upper_names[(identity, page.index)] = page.upper_name
        asset = self.asset(identity, page.index)
        asset.colour = page.colour
        asset.upper_name = page.upper_name
        return asset

    def upper_name(self, identity: DeviceIdentity, index: int) -> str | None:
        return self._upper_names.get((identity, index))

    def record_identification_2(self, identity: DeviceIdentity, page: IdentificationPage2) -> AssetState:
        asset = self.asset(identity, page.index)
        upper = self.upper_name(identity, page.index)
        asset.asset_type = page.asset_type
        asset.lower_name = page.lower_name
        asset.full_name = (upper or "") + page.lower_name
        return asset

    # Common pages

    def record_manufacturer(self, identity: DeviceIdentity, info: ManufacturerInfo) -> None:
        device = self._devices.setdefault(identity, DeviceState(identity=identity))
        device.hw_revision = info.hw_revision
        device.manufacturer_id = info.manufacturer_id
        device.model_number = info.model_number

    def record_product(self, identity: DeviceIdentity, info: ProductInfo) -> None:
        device = self._devices.setdefault(identity, DeviceState(identity=identity))
        device.sw_version = info.sw_version
        device.serial_number = info.serial_number

    def record_battery(self, identity: DeviceIdentity, page: BatteryStatusPage) -> None:
        device = self._devices.setdefault(identity, DeviceState(identity=identity))
        device.battery_voltage = page.voltage
        device.battery_status = page.status.label
        device.uptime_seconds = page.uptime_seconds

    def record_heart_rate(self, identity: DeviceIdentity, bpm: int) -> None:
        device = self._devices.setdefault(identity, DeviceState(identity=identity))
        device.heart_rate = bpm

    def forget(self, identity: DeviceIdentity) -> None:
        """Drop pairing and reassembly state after a disconnect."""
        self._paired.discard(identity)
        self.forget_indexes(identity)
        for store in (self._latitudes, self._upper_names):
            for key in [k for k in store if k[0] == identity]:
                del store[key]
        state = self._devices.get(identity)
        if state is not None:
            state.assets.clear()
        self.change_filter.forget(identity)
