"""Transport boundary consumed by the decoder core.

The USB/serial driver lives outside this package. Anything that quacks like
``Transport`` (a real dongle binding, the replay transport, a test fake) can
drive the discovery machine. Calls are fallible: they return False on
failure and expose the last error code through ``get_last_error``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from antz_discovery.protocol.messages import RawMessage

TIMED_OUT = 0


@runtime_checkable
class Transport(Protocol):
    def wait_for_message(self, timeout_ms: int) -> int:
        """Block up to ``timeout_ms``; return the pending message length or ``TIMED_OUT``."""
        ...

    def get_message(self) -> RawMessage: ...

    def send_acknowledged_data(self, channel: int, data: bytes, timeout_ms: int) -> bool: ...

    def send_broadcast_data(self, channel: int, data: bytes) -> bool: ...

    def get_last_error(self) -> int: ...

    def reset_system(self) -> bool: ...

    def set_network_key(self, network: int, key: bytes) -> bool: ...

    def assign_channel(self, channel: int, channel_type: int, network: int) -> bool: ...

    def set_channel_id(self, channel: int, device_number: int, device_type: int, transmission_type: int) -> bool: ...

    def set_channel_period(self, channel: int, period: int) -> bool: ...

    def set_channel_rf_frequency(self, channel: int, rf_frequency: int) -> bool: ...

    def set_channel_search_timeout(self, channel: int, timeout: int) -> bool: ...

    def open_channel(self, channel: int) -> bool: ...

    def close_channel(self, channel: int) -> bool: ...

    def unassign_channel(self, channel: int) -> bool: ...

    def enable_extended_messages(self, enabled: bool) -> bool: ...
