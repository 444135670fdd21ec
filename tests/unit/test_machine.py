"""Unit tests for the discovery machine lifecycle and receive loop."""

from __future__ import annotations

import io
from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from antz_discovery.channels import ChannelTable, PairedChannelStore
from antz_discovery.devices.registry import ChangeFilter, DeviceRegistry
from antz_discovery.exceptions import ChannelSetupError
from antz_discovery.machine import DiscoveryMachine
from antz_discovery.protocol.constants import (
    IDLE_SLEEP_SECONDS,
    MESG_RESPONSE_EVENT_ID,
    MESG_STARTUP_MESG_ID,
    RESET_SETTLE_SECONDS,
    STARTUP_WAIT_ATTEMPTS,
)
from antz_discovery.protocol.messages import RawMessage
from antz_discovery.transport.scheduler import RequestScheduler
from tests.fixtures.messages import (
    HEART_RATE,
    HRM,
    LOCATION_1,
    TRACKER,
    compact_message,
    plain_message,
)
from tests.helpers.fake_transport import FakeTransport

CHANNEL_STEPS = [
    "assign",
    "set_channel_id",
    "set_channel_period",
    "set_channel_rf_frequency",
    "set_channel_search_timeout",
    "open",
]

MachineFactory = Callable[..., DiscoveryMachine]


@pytest.fixture
def output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def make_machine(
    fake_transport: FakeTransport,
    scheduler: RequestScheduler,
    registry: DeviceRegistry,
    sleeps: list[float],
    output: io.StringIO,
) -> MachineFactory:
    def _make(**kwargs: object) -> DiscoveryMachine:
        options: dict[str, object] = {
            "registry": registry,
            "scheduler": scheduler,
            "output": output,
            "auto_pair": False,
            "sleep": sleeps.append,
            "clock": lambda: 0.0,
        }
        options.update(kwargs)
        return DiscoveryMachine(fake_transport, ChannelTable.build(), **options)  # type: ignore[arg-type]

    return _make


class TestCollaborators:
    def test_keeps_injected_empty_registry(self, fake_transport: FakeTransport):
        registry = DeviceRegistry(ChangeFilter(eps_meters=25.0))
        assert len(registry) == 0
        machine = DiscoveryMachine(fake_transport, ChannelTable.build(), registry=registry)

        assert machine.registry is registry
        assert machine.dispatcher.registry is registry
        assert machine.registry.change_filter.eps_meters == 25.0


class TestInitialize:
    def test_waits_for_startup(self, make_machine: MachineFactory, fake_transport: FakeTransport, sleeps):
        fake_transport.messages.extend([None, RawMessage(0x40, b"\x00"), RawMessage(MESG_STARTUP_MESG_ID, b"\x00")])
        assert make_machine().initialize()
        assert fake_transport.call_names() == ["reset_system"]
        assert sleeps == [RESET_SETTLE_SECONDS]

    def test_reset_failure(self, make_machine: MachineFactory, fake_transport: FakeTransport):
        fake_transport.fail_steps.add("reset_system")
        assert not make_machine().initialize()

    def test_no_startup_message(self, make_machine: MachineFactory, fake_transport: FakeTransport):
        fake_transport.messages.extend([None] * STARTUP_WAIT_ATTEMPTS)
        assert not make_machine().initialize()
        assert not fake_transport.messages


class TestStartDiscovery:
    """Network key and channel open sequence."""

    def test_order(self, make_machine: MachineFactory, fake_transport: FakeTransport):
        machine = make_machine()
        assert machine.start_discovery()

        assert fake_transport.call_names() == [
            "set_network_key",
            *CHANNEL_STEPS,
            *CHANNEL_STEPS,
            "enable_extended_messages",
        ]
        assert machine.opened == [0, 1]
        _, set_id_args = fake_transport.calls[2]
        assert set_id_args == (0, 0, 0x78, 0)

    def test_network_key_failure(self, make_machine: MachineFactory, fake_transport: FakeTransport):
        fake_transport.fail_steps.add("set_network_key")
        assert not make_machine().start_discovery()
        assert fake_transport.call_names() == ["set_network_key"]

    def test_channel_step_failure(self, make_machine: MachineFactory, fake_transport: FakeTransport):
        fake_transport.fail_steps.add("set_channel_period")
        machine = make_machine()
        assert not machine.start_discovery()
        assert "open" not in fake_transport.call_names()
        assert machine.opened == []

    def test_open_channel_raises(self, make_machine: MachineFactory, fake_transport: FakeTransport):
        fake_transport.fail_steps.add("open")
        machine = make_machine()
        channel = machine.table.find(1)
        assert channel is not None
        with pytest.raises(ChannelSetupError) as exc_info:
            machine.open_channel(channel)
        assert exc_info.value.channel_number == 1
        assert exc_info.value.step == "open"


class TestEventLoop:
    """Receive loop behaviour."""

    def test_prints_decoded_events(self, make_machine: MachineFactory, fake_transport, output):
        fake_transport.messages.append(compact_message(HEART_RATE, HRM, channel=0))
        machine = make_machine()
        machine.run_event_loop()

        assert output.getvalue().startswith("[CH] #0: [HRM/4] Heart Rate: 72 bpm")
        assert not machine.running

    def test_skips_non_broadcast(self, make_machine: MachineFactory, fake_transport, output):
        fake_transport.messages.extend(
            [RawMessage(MESG_RESPONSE_EVENT_ID, b"\x00\x01\x03"), RawMessage(0x54, b"\x08\x03")],
        )
        make_machine().run_event_loop()
        assert output.getvalue() == ""

    def test_idle_sleeps(self, make_machine: MachineFactory, fake_transport, sleeps):
        fake_transport.messages.extend([None, None])
        ticks = iter([0.0, 1.0, 7.0, 8.0])
        make_machine(clock=lambda: next(ticks)).run_event_loop()
        assert sleeps == [IDLE_SLEEP_SECONDS, IDLE_SLEEP_SECONDS]

    def test_stop(self, make_machine: MachineFactory, fake_transport, output):
        machine = make_machine()
        fake_transport.messages.append(compact_message(HEART_RATE, HRM, channel=0))
        machine.handle_event = lambda _event: machine.stop()  # type: ignore[method-assign]
        fake_transport.messages.append(compact_message(HEART_RATE, HRM, channel=0))

        machine.run_event_loop()
        assert len(fake_transport.messages) == 1

    def test_publishes(self, make_machine: MachineFactory, fake_transport):
        publisher = MagicMock()
        fake_transport.messages.append(compact_message(HEART_RATE, HRM, channel=0))
        make_machine(publisher=publisher).run_event_loop()
        publisher.publish.assert_called_once()
        assert publisher.publish.call_args.args[0].bpm == 72

    def test_unchanged_heading_suppressed(self, make_machine: MachineFactory, fake_transport, output):
        registry = DeviceRegistry(ChangeFilter(eps_heading=10.0), clock=lambda: 100.0)
        machine = make_machine(registry=registry)
        fake_transport.messages.extend([compact_message(LOCATION_1), compact_message(LOCATION_1)])

        machine.run_event_loop()
        assert len(output.getvalue().splitlines()) == 1


class TestAutoPair:
    """Promotion of discovered devices to paired channels."""

    def test_promotes_and_saves(self, make_machine: MachineFactory, fake_transport, tmp_path: Path):
        store = PairedChannelStore(tmp_path / "paired.csv")
        machine = make_machine(auto_pair=True, store=store)
        fake_transport.messages.extend([compact_message(LOCATION_1, channel=1), compact_message(LOCATION_1, channel=2)])

        machine.run_event_loop()

        assert machine.opened == [2]
        assert machine.table.has_channel(TRACKER)
        assert store.path.read_text(encoding="utf-8") == "2;1;0;4660;41;213;2048;57;6\n"
        assert fake_transport.call_names().count("open") == 1

    def test_generic_not_promoted(self, make_machine: MachineFactory, fake_transport):
        machine = make_machine(auto_pair=True)
        fake_transport.messages.append(plain_message(bytes(8), channel=1))
        machine.run_event_loop()
        assert machine.opened == []

    def test_disabled(self, make_machine: MachineFactory, fake_transport):
        machine = make_machine(auto_pair=False)
        fake_transport.messages.append(compact_message(LOCATION_1, channel=1))
        machine.run_event_loop()
        assert not machine.table.has_channel(TRACKER)


    def test_failed_open_rolls_back(self, make_machine: MachineFactory, fake_transport, tmp_path: Path):
        store = PairedChannelStore(tmp_path / "paired.csv")
        machine = make_machine(auto_pair=True, store=store)
        fake_transport.fail_steps = {"open"}
        fake_transport.messages.append(compact_message(LOCATION_1, channel=1))

        machine.run_event_loop()

        assert machine.opened == []
        assert not machine.table.has_channel(TRACKER)
        assert machine.table.find(2) is None
        assert not store.path.exists()
        assert ("unassign_channel", (2,)) in fake_transport.calls

    def test_retried_after_failed_open(self, make_machine: MachineFactory, fake_transport):
        machine = make_machine(auto_pair=True)
        fake_transport.fail_steps = {"open"}
        fake_transport.messages.append(compact_message(LOCATION_1, channel=1))
        machine.run_event_loop()

        fake_transport.fail_steps = set()
        fake_transport.messages.append(compact_message(LOCATION_1, channel=1))
        machine.run_event_loop()

        assert machine.opened == [2]
        assert machine.table.has_channel(TRACKER)


class TestCleanup:
    def test_closes_in_reverse_and_resets(self, make_machine: MachineFactory, fake_transport):
        publisher = MagicMock()
        machine = make_machine(publisher=publisher)
        assert machine.start_discovery()
        fake_transport.calls.clear()

        machine.cleanup()

        assert fake_transport.calls == [
            ("close_channel", (1,)),
            ("unassign_channel", (1,)),
            ("close_channel", (0,)),
            ("unassign_channel", (0,)),
            ("reset_system", ()),
        ]
        assert machine.opened == []
        publisher.stop.assert_called_once()
