"""Shared fixtures for unit tests."""

from __future__ import annotations

import pytest

from antz_discovery.devices.registry import DeviceRegistry
from antz_discovery.transport.retry_policy import RetryPolicy
from antz_discovery.transport.scheduler import RequestScheduler
from tests.helpers.fake_transport import FakeTransport


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def sleeps() -> list[float]:
    """Records requested sleeps instead of sleeping."""
    return []


@pytest.fixture
def scheduler(fake_transport: FakeTransport, sleeps: list[float]) -> RequestScheduler:
    return RequestScheduler(fake_transport, RetryPolicy(sleep=sleeps.append))


@pytest.fixture
def registry() -> DeviceRegistry:
    return DeviceRegistry(clock=lambda: 100.0)
