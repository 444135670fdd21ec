"""Per-profile page decoders.

Each decoder turns a ``BroadcastMessage`` into a ``DecodedEvent``, updating
the shared ``DeviceRegistry`` and asking the ``RequestScheduler`` for
follow-up pages where the tracker protocol expects it.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from antz_discovery.devices.identity import DeviceIdentity
from antz_discovery.devices.registry import DeviceRegistry
from antz_discovery.events import (
    AssetNameEvent,
    BatteryStatusEvent,
    DecodedEvent,
    DisconnectEvent,
    GenericMessageEvent,
    HeartRateEvent,
    IdentificationEvent,
    LocationEvent,
    ManufacturerInfoEvent,
    NoAssetsEvent,
    PositionEvent,
    ProductInfoEvent,
    UnknownPageEvent,
)
from antz_discovery.logging_abstraction import get_logger
from antz_discovery.metrics import registry as metrics
from antz_discovery.protocol import pages
from antz_discovery.protocol.constants import (
    HR_MAX_PLAUSIBLE_BPM,
    HR_MIN_PLAUSIBLE_BPM,
    IDENTIFICATION_PAGES,
    PAGE_BATTERY_STATUS,
    PAGE_DISCONNECT,
    PAGE_IDENTIFICATION_1,
    PAGE_IDENTIFICATION_2,
    PAGE_LOCATION_1,
    PAGE_LOCATION_2,
    PAGE_MANUFACTURER_IDENT,
    PAGE_NO_ASSETS,
    PAGE_PRODUCT_INFO,
    SUPPLEMENTARY_PAGES,
)
from antz_discovery.protocol.messages import BroadcastMessage, to_hex
from antz_discovery.protocol.profiles import Profile
from antz_discovery.transport.scheduler import RequestScheduler

logger = get_logger(__name__)


class PageDecoder(Protocol):
    profile: Profile

    def decode(self, message: BroadcastMessage, identity: DeviceIdentity) -> DecodedEvent | None: ...


def _rssi(message: BroadcastMessage) -> int | None:
    return message.ext.rssi if message.ext else None


class AssetTrackerDecoder:
    """Asset tracker (device type 0x29) pages."""

    profile = Profile.ASSET_TRACKER

    def __init__(self, registry: DeviceRegistry, scheduler: RequestScheduler) -> None:
        self.registry = registry
        self.scheduler = scheduler
        self._handlers: dict[int, Callable[[BroadcastMessage, DeviceIdentity], DecodedEvent]] = {
            PAGE_LOCATION_1: self._location_1,
            PAGE_LOCATION_2: self._location_2,
            PAGE_NO_ASSETS: self._no_assets,
            PAGE_IDENTIFICATION_1: self._identification_1,
            PAGE_IDENTIFICATION_2: self._identification_2,
            PAGE_DISCONNECT: self._disconnect,
            PAGE_MANUFACTURER_IDENT: self._manufacturer_info,
            PAGE_PRODUCT_INFO: self._product_info,
            PAGE_BATTERY_STATUS: self._battery_status,
        }

    def decode(self, message: BroadcastMessage, identity: DeviceIdentity) -> DecodedEvent:
        handler = self._handlers.get(message.page, self._unknown_page)
        return handler(message, identity)

    def _common(self, message: BroadcastMessage, identity: DeviceIdentity) -> dict[str, object]:
        return {
            "channel": message.channel,
            "page": message.page,
            "identity": identity,
            "profile": self.profile,
            "rssi": _rssi(message),
        }

    def _location_1(self, message: BroadcastMessage, identity: DeviceIdentity) -> DecodedEvent:
        page = pages.decode_location_1(message.payload)
        self.registry.mark_paired(identity)
        asset = self.registry.record_location_1(identity, page)
        event = LocationEvent(
            **self._common(message, identity),
            index=page.index,
            distance=page.distance,
            heading=page.heading,
            gps_lost=page.gps_lost,
            comms_lost=page.comms_lost,
            remove_requested=page.remove,
            low_battery=page.low_battery,
            situation=page.situation,
            name=asset.full_name or self.registry.upper_name(identity, page.index),
        )
        if self.registry.add_index(identity, page.index):
            logger.info("[CH] #%d: New asset #%d on %s", message.channel, page.index, identity.describe())
            self.scheduler.request_asset_pages(message.channel, identity)
        return event

    def _location_2(self, message: BroadcastMessage, identity: DeviceIdentity) -> DecodedEvent:
        page = pages.decode_location_2(message.payload)
        asset = self.registry.record_location_2(identity, page)
        return PositionEvent(
            **self._common(message, identity),
            index=page.index,
            latitude=asset.latitude,
            longitude=page.longitude,
        )

    def _no_assets(self, message: BroadcastMessage, identity: DeviceIdentity) -> DecodedEvent:
        self.registry.forget_indexes(identity)
        self.scheduler.request_asset_pages(message.channel, identity)
        return NoAssetsEvent(**self._common(message, identity))

    def _identification_1(self, message: BroadcastMessage, identity: DeviceIdentity) -> DecodedEvent:
        page = pages.decode_identification_1(message.payload)
        self.registry.record_identification_1(identity, page)
        return IdentificationEvent(
            **self._common(message, identity),
            index=page.index,
            upper_name=page.upper_name,
            colour=page.colour,
        )

    def _identification_2(self, message: BroadcastMessage, identity: DeviceIdentity) -> DecodedEvent:
        page = pages.decode_identification_2(message.payload)
        asset = self.registry.record_identification_2(identity, page)
        if not asset.name_complete:
            logger.debug("Asset #%d of %s named from lower fragment only", page.index, identity)
        return AssetNameEvent(
            **self._common(message, identity),
            index=page.index,
            full_name=asset.full_name or page.lower_name,
            lower_name=page.lower_name,
            asset_type=page.asset_type,
            name_complete=asset.name_complete,
        )

    def _disconnect(self, message: BroadcastMessage, identity: DeviceIdentity) -> DecodedEvent:
        logger.info("[CH] #%d: %s is disconnecting", message.channel, identity.describe())
        self.registry.forget(identity)
        self.scheduler.clear_request_cache_for(identity, (*IDENTIFICATION_PAGES, *SUPPLEMENTARY_PAGES))
        return DisconnectEvent(**self._common(message, identity))

    def _manufacturer_info(self, message: BroadcastMessage, identity: DeviceIdentity) -> DecodedEvent:
        info = pages.decode_manufacturer_info(message.payload)
        self.registry.record_manufacturer(identity, info)
        return ManufacturerInfoEvent(
            **self._common(message, identity),
            hw_revision=info.hw_revision,
            manufacturer_id=info.manufacturer_id,
            model_number=info.model_number,
        )

    def _product_info(self, message: BroadcastMessage, identity: DeviceIdentity) -> DecodedEvent:
        info = pages.decode_product_info(message.payload)
        self.registry.record_product(identity, info)
        return ProductInfoEvent(
            **self._common(message, identity),
            sw_version=info.sw_version,
            serial_number=info.serial_number,
        )

    def _battery_status(self, message: BroadcastMessage, identity: DeviceIdentity) -> DecodedEvent:
        battery = pages.decode_battery_status(message.payload)
        self.registry.record_battery(identity, battery)
        return BatteryStatusEvent(
            **self._common(message, identity),
            battery_id=battery.battery_id,
            voltage=battery.voltage,
            status=battery.status.label,
            uptime_seconds=battery.uptime_seconds,
        )

    def _unknown_page(self, message: BroadcastMessage, identity: DeviceIdentity) -> DecodedEvent:
        raw = to_hex(message.raw)
        logger.info(
            "[CH] #%d: [ASSET/?] Unknown page : 0x%02X | Raw Payload (%d): %s",
            message.channel,
            message.page,
            len(message.raw),
            raw,
        )
        # Resynchronise: ask again for whatever has not been requested yet.
        self.scheduler.request_asset_pages(message.channel, identity)
        return UnknownPageEvent(**self._common(message, identity), raw=raw)


class HeartRateDecoder:
    """Heart rate monitor (device type 0x78): every page carries the bpm byte."""

    profile = Profile.HEART_RATE

    def __init__(self, registry: DeviceRegistry) -> None:
        self.registry = registry

    def decode(self, message: BroadcastMessage, identity: DeviceIdentity) -> DecodedEvent | None:
        page = pages.decode_heart_rate(message.payload)
        if not HR_MIN_PLAUSIBLE_BPM <= page.bpm <= HR_MAX_PLAUSIBLE_BPM:
            logger.warning(
                "[CH] #%d: [HRM/%d] Implausible heart rate %d bpm suppressed",
                message.channel,
                page.page,
                page.bpm,
            )
            metrics.record_event_suppressed("implausible_heart_rate")
            return None
        self.registry.record_heart_rate(identity, page.bpm)
        return HeartRateEvent(
            channel=message.channel,
            page=page.page,
            identity=identity,
            profile=self.profile,
            rssi=_rssi(message),
            bpm=page.bpm,
        )


class GenericDecoder:
    """Fallback for unrecognised profiles: hex dump plus device-info requests."""

    profile = Profile.UNKNOWN

    def __init__(self, scheduler: RequestScheduler) -> None:
        self.scheduler = scheduler

    def decode(self, message: BroadcastMessage, identity: DeviceIdentity) -> DecodedEvent:
        raw = to_hex(message.raw)
        logger.debug("[CH] #%d: [GENERIC] ANT+ payload: %s", message.channel, raw)
        if identity.number is not None:
            self.scheduler.request_device_info(message.channel, identity)
        return GenericMessageEvent(
            channel=message.channel,
            page=message.page,
            identity=identity,
            profile=self.profile,
            rssi=_rssi(message),
            message_id=message.message_id,
            raw=raw,
        )
