"""Profile detection and routing of broadcast messages to page decoders."""

from __future__ import annotations

import time

from antz_discovery.decoders import AssetTrackerDecoder, GenericDecoder, HeartRateDecoder, PageDecoder
from antz_discovery.devices.identity import DeviceIdentity
from antz_discovery.devices.registry import DeviceRegistry
from antz_discovery.events import DecodedEvent
from antz_discovery.exceptions import PacketDecodeError
from antz_discovery.logging_abstraction import get_logger
from antz_discovery.metrics import registry as metrics
from antz_discovery.protocol.extended_info import ExtendedInfo
from antz_discovery.protocol.messages import BroadcastMessage, RawMessage, to_hex
from antz_discovery.protocol.profiles import Profile
from antz_discovery.transport.scheduler import RequestScheduler

logger = get_logger(__name__)


class ProfileDispatcher:
    """Splits raw broadcasts, detects their profile and hands them to a decoder.

    Decode failures are logged and counted here; ``dispatch`` never raises
    for a bad message, it returns None instead.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        scheduler: RequestScheduler,
        decoders: dict[Profile, PageDecoder] | None = None,
    ) -> None:
        self.registry = registry
        self.scheduler = scheduler
        self.decoders: dict[Profile, PageDecoder] = decoders or {
            Profile.ASSET_TRACKER: AssetTrackerDecoder(registry, scheduler),
            Profile.HEART_RATE: HeartRateDecoder(registry),
            Profile.UNKNOWN: GenericDecoder(scheduler),
        }

    @staticmethod
    def detect(ext: ExtendedInfo | None) -> Profile:
        """Profile from the trailer's device type; Unknown without one."""
        if ext is None or not ext.has_device_type:
            return Profile.UNKNOWN
        return Profile.from_device_type(ext.device_type)

    def dispatch(self, raw: RawMessage) -> DecodedEvent | None:
        started = time.perf_counter()
        try:
            message = BroadcastMessage.from_raw(raw)
        except PacketDecodeError as e:
            metrics.record_decode_error(e.reason)
            logger.warning(
                "Dropping message id 0x%02X: %s | Raw Payload (%d): %s",
                raw.message_id,
                e,
                len(raw.data),
                to_hex(raw.data),
            )
            return None

        profile = self.detect(message.ext)
        identity = DeviceIdentity.from_ext(message.ext)
        metrics.record_message_received(profile.value)
        if identity.number is not None or identity.device_type is not None:
            self.registry.touch(identity, message.channel, message.ext.rssi if message.ext else None)
            metrics.record_known_devices(len(self.registry))

        decoder = self.decoders.get(profile) or self.decoders[Profile.UNKNOWN]
        try:
            event = decoder.decode(message, identity)
        except PacketDecodeError as e:
            metrics.record_decode_error(e.reason)
            logger.warning(
                "[CH] #%d: [%s/%d] decode failed: %s",
                message.channel,
                profile.tag,
                message.page,
                e,
            )
            return None
        finally:
            metrics.record_dispatch_latency(time.perf_counter() - started)

        if event is not None:
            metrics.record_event_emitted(event.kind.value)
        return event
