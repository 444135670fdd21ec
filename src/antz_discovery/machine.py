"""Discovery machine: radio lifecycle and the receive loop.

The machine is single threaded. Every inbound message is handled to
completion (decode, registry update, follow-up page requests, output,
publish) before the next one is read.
"""

from __future__ import annotations

import sys
import time
from collections.abc import Callable
from typing import TextIO

from antz_discovery.channels import ChannelConfig, ChannelTable, PairedChannelStore
from antz_discovery.correlation import correlation_context
from antz_discovery.devices.registry import DeviceRegistry
from antz_discovery.dispatch import ProfileDispatcher
from antz_discovery.events import DecodedEvent, EventFormatter, LocationEvent, PositionEvent
from antz_discovery.exceptions import ChannelSetupError, TransportClosedError
from antz_discovery.logging_abstraction import get_logger
from antz_discovery.metrics import registry as metrics
from antz_discovery.mqtt.publisher import MQTTPublisher
from antz_discovery.protocol.constants import (
    ANT_PLUS_NETWORK_KEY,
    BROADCAST_MESSAGE_IDS,
    IDLE_REPORT_SECONDS,
    IDLE_SLEEP_SECONDS,
    IGNORED_MESSAGE_IDS,
    MESG_STARTUP_MESG_ID,
    MESSAGE_TIMEOUT_MS,
    RESET_SETTLE_SECONDS,
    STARTUP_WAIT_ATTEMPTS,
    USER_NETWORK_NUM,
)
from antz_discovery.protocol.profiles import Profile
from antz_discovery.transport.base import TIMED_OUT, Transport
from antz_discovery.transport.scheduler import RequestScheduler

logger = get_logger(__name__)


class DiscoveryMachine:
    """Owns the transport and drives discovery from reset to cleanup."""

    lp: str = "[Machine]"

    def __init__(
        self,
        transport: Transport,
        table: ChannelTable,
        registry: DeviceRegistry | None = None,
        scheduler: RequestScheduler | None = None,
        dispatcher: ProfileDispatcher | None = None,
        formatter: EventFormatter | None = None,
        output: TextIO | None = None,
        publisher: MQTTPublisher | None = None,
        store: PairedChannelStore | None = None,
        auto_pair: bool = True,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.transport = transport
        self.table = table
        self.registry = registry if registry is not None else DeviceRegistry()
        self.scheduler = scheduler if scheduler is not None else RequestScheduler(transport)
        self.dispatcher = (
            dispatcher if dispatcher is not None else ProfileDispatcher(self.registry, self.scheduler)
        )
        self.formatter = formatter if formatter is not None else EventFormatter()
        self.output = output if output is not None else sys.stdout
        self.publisher = publisher
        self.store = store
        self.auto_pair = auto_pair
        self.running = False
        self.opened: list[int] = []
        self._sleep = sleep
        self._clock = clock

    def initialize(self) -> bool:
        """Reset the radio and wait for its startup message."""
        logger.info("%s ANT initialization started...", self.lp)
        if not self.transport.reset_system():
            logger.error("%s ResetSystem failed", self.lp)
            return False
        self._sleep(RESET_SETTLE_SECONDS)

        for _ in range(STARTUP_WAIT_ATTEMPTS):
            length = self.transport.wait_for_message(MESSAGE_TIMEOUT_MS)
            if length == TIMED_OUT:
                continue
            message = self.transport.get_message()
            logger.debug("%s Message ID was 0x%02X", self.lp, message.message_id)
            if message.message_id == MESG_STARTUP_MESG_ID:
                logger.info("%s Radio ready", self.lp)
                return True
        logger.error("%s No startup message after %d attempts", self.lp, STARTUP_WAIT_ATTEMPTS)
        return False

    def open_channel(self, channel: ChannelConfig) -> None:
        """Run the assign, configure, open sequence for one channel.

        Raises:
            ChannelSetupError: On the first step the radio rejects

        """
        n = channel.channel_number
        steps: tuple[tuple[str, Callable[[], bool]], ...] = (
            ("assign", lambda: self.transport.assign_channel(n, channel.channel_type, USER_NETWORK_NUM)),
            (
                "set_channel_id",
                lambda: self.transport.set_channel_id(
                    n,
                    channel.device_number,
                    channel.device_type,
                    channel.transmission_type,
                ),
            ),
            ("set_channel_period", lambda: self.transport.set_channel_period(n, channel.period)),
            ("set_channel_rf_frequency", lambda: self.transport.set_channel_rf_frequency(n, channel.rf_frequency)),
            (
                "set_channel_search_timeout",
                lambda: self.transport.set_channel_search_timeout(n, channel.search_timeout),
            ),
            ("open", lambda: self.transport.open_channel(n)),
        )
        kind = "search" if channel.is_search else "paired"
        for step, call in steps:
            if not call():
                metrics.record_channel_setup(kind, "failed")
                raise ChannelSetupError(n, step)
        self.opened.append(n)
        metrics.record_channel_setup(kind, "ok")
        logger.info("%s Opened %s", self.lp, channel.describe())

    def start_discovery(self) -> bool:
        logger.info("%s Start ANT discovery...", self.lp)
        if not self.transport.set_network_key(USER_NETWORK_NUM, ANT_PLUS_NETWORK_KEY):
            logger.error("%s SetNetworkKey failed", self.lp)
            return False

        for channel in self.table:
            if not channel.enabled:
                continue
            try:
                self.open_channel(channel)
            except ChannelSetupError as e:
                logger.error("%s %s", self.lp, e)

        if not self.transport.enable_extended_messages(True):
            logger.warning("%s Could not enable extended messages, identities will be partial", self.lp)
        return bool(self.opened)

    def stop(self) -> None:
        self.running = False

    def run_event_loop(self) -> None:
        self.running = True
        logger.info("%s Starting event loop...", self.lp)
        last_message = self._clock()
        while self.running:
            now = self._clock()
            try:
                length = self.transport.wait_for_message(MESSAGE_TIMEOUT_MS)
                if length == TIMED_OUT:
                    idle = now - last_message
                    if idle > IDLE_REPORT_SECONDS:
                        logger.info("%s No ANT messages received in the last %d seconds", self.lp, int(idle))
                        last_message = now
                    self._sleep(IDLE_SLEEP_SECONDS)
                    continue
                raw = self.transport.get_message()
            except TransportClosedError:
                logger.info("%s Transport closed, leaving event loop", self.lp)
                break

            if raw.message_id in IGNORED_MESSAGE_IDS:
                continue
            if raw.message_id not in BROADCAST_MESSAGE_IDS:
                logger.fine("%s Skipping message id 0x%02X", self.lp, raw.message_id)
                continue
            last_message = now

            with correlation_context():
                event = self.dispatcher.dispatch(raw)
                if event is not None:
                    self.handle_event(event)
        self.running = False
        logger.info("%s Event loop stopped.", self.lp)

    def should_emit(self, event: DecodedEvent) -> bool:
        """Apply the movement filter to location and position events."""
        change_filter = self.registry.change_filter
        if event.index is None:
            return True
        key = (event.identity, event.index)
        if isinstance(event, PositionEvent) and event.latitude is not None:
            return change_filter.position_changed(key, event.latitude, event.longitude)
        if isinstance(event, LocationEvent):
            return change_filter.heading_changed(key, event.heading)
        return True

    def handle_event(self, event: DecodedEvent) -> None:
        if self.auto_pair:
            self.maybe_promote(event)
        if not self.should_emit(event):
            metrics.record_event_suppressed("unchanged_position")
            return
        print(self.formatter.format(event), file=self.output, flush=True)
        if self.publisher is not None:
            _ = self.publisher.publish(event)

    def maybe_promote(self, event: DecodedEvent) -> ChannelConfig | None:
        """Move a device found on a search channel to its own paired channel."""
        if event.profile is Profile.UNKNOWN or not self.table.is_search_channel(event.channel):
            return None
        if not event.identity.is_concrete or self.table.has_channel(event.identity):
            return None
        channel = self.table.promote(event.identity, template=self.table.find(event.channel))
        if channel is None:
            return None
        try:
            self.open_channel(channel)
        except ChannelSetupError as e:
            logger.error("%s %s, %s stays on search channel #%d", self.lp, e, event.identity.key, event.channel)
            _ = self.table.remove(channel.channel_number)
            if e.step != "assign":
                _ = self.transport.unassign_channel(channel.channel_number)
            return None
        if self.store is not None:
            _ = self.store.save(self.table)
        return channel

    def cleanup(self) -> None:
        logger.info("%s Stopping event loop...", self.lp)
        self.running = False
        for number in reversed(self.opened):
            if not self.transport.close_channel(number):
                logger.warning("%s CloseChannel #%d failed", self.lp, number)
            if not self.transport.unassign_channel(number):
                logger.warning("%s UnAssignChannel #%d failed", self.lp, number)
        self.opened.clear()
        logger.info("%s Resetting ANT system...", self.lp)
        _ = self.transport.reset_system()
        if self.publisher is not None:
            self.publisher.stop()
        logger.info("%s Cleanup complete.", self.lp)
