"""Replay transport: feeds captured serial messages through the decoder.

Capture files hold one message per line, message id first, then the data
bytes, all as hex::

    # id  ch  payload                  flags trailer
    4E    01  01 03 64 00 40 21 34 12  80    4A 02 29 D5

Blank lines and ``#`` comments are ignored. Every outbound command is
recorded in ``sent`` so offline runs show what would have been requested.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from antz_discovery.exceptions import ConfigError, TransportClosedError
from antz_discovery.logging_abstraction import get_logger
from antz_discovery.protocol.constants import MESG_STARTUP_MESG_ID
from antz_discovery.protocol.messages import RawMessage

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SentCommand:
    operation: str
    channel: int | None
    args: tuple[object, ...] = ()


def parse_capture_line(line: str) -> RawMessage | None:
    """Parse one capture line; None for blanks and comments.

    Raises:
        ConfigError: If the line is not valid hex

    """
    text = line.split("#", 1)[0].replace(":", " ").strip()
    if not text:
        return None
    try:
        values = [int(token, 16) for token in text.split()]
    except ValueError as e:
        msg = f"Invalid capture line: {line.strip()!r}"
        raise ConfigError(msg) from e
    if any(v < 0 or v > 0xFF for v in values):
        msg = f"Capture bytes out of range: {line.strip()!r}"
        raise ConfigError(msg)
    return RawMessage(message_id=values[0], data=bytes(values[1:]))


class ReplayTransport:
    """In-memory transport backed by a list of captured messages."""

    def __init__(self, messages: Iterable[RawMessage], emit_startup: bool = True) -> None:
        self._queue: deque[RawMessage] = deque(messages)
        self._emit_startup = emit_startup
        self._pending: RawMessage | None = None
        self.sent: list[SentCommand] = []
        self.last_error: int = 0

    @classmethod
    def from_file(cls, path: str | Path) -> ReplayTransport:
        messages: list[RawMessage] = []
        with Path(path).open(encoding="utf-8") as fh:
            for line in fh:
                message = parse_capture_line(line)
                if message is not None:
                    messages.append(message)
        logger.info("Loaded %d captured messages from %s", len(messages), path)
        return cls(messages)

    @property
    def remaining(self) -> int:
        return len(self._queue)

    def _record(self, operation: str, channel: int | None, *args: object) -> bool:
        self.sent.append(SentCommand(operation, channel, args))
        return True

    def wait_for_message(self, timeout_ms: int) -> int:
        if self._pending is not None:
            return max(1, self._pending.length)
        if not self._queue:
            raise TransportClosedError
        self._pending = self._queue.popleft()
        # a captured message with no data bytes is still a delivery, not a timeout
        return max(1, self._pending.length)

    def get_message(self) -> RawMessage:
        if self._pending is None:
            raise TransportClosedError("get_message")
        message, self._pending = self._pending, None
        return message

    def send_acknowledged_data(self, channel: int, data: bytes, timeout_ms: int) -> bool:
        return self._record("send_acknowledged_data", channel, bytes(data), timeout_ms)

    def send_broadcast_data(self, channel: int, data: bytes) -> bool:
        return self._record("send_broadcast_data", channel, bytes(data))

    def get_last_error(self) -> int:
        return self.last_error

    def reset_system(self) -> bool:
        self._record("reset_system", None)
        if self._emit_startup:
            self._queue.appendleft(RawMessage(MESG_STARTUP_MESG_ID, b"\x00"))
        return True

    def set_network_key(self, network: int, key: bytes) -> bool:
        return self._record("set_network_key", None, network, bytes(key))

    def assign_channel(self, channel: int, channel_type: int, network: int) -> bool:
        return self._record("assign_channel", channel, channel_type, network)

    def set_channel_id(self, channel: int, device_number: int, device_type: int, transmission_type: int) -> bool:
        return self._record("set_channel_id", channel, device_number, device_type, transmission_type)

    def set_channel_period(self, channel: int, period: int) -> bool:
        return self._record("set_channel_period", channel, period)

    def set_channel_rf_frequency(self, channel: int, rf_frequency: int) -> bool:
        return self._record("set_channel_rf_frequency", channel, rf_frequency)

    def set_channel_search_timeout(self, channel: int, timeout: int) -> bool:
        return self._record("set_channel_search_timeout", channel, timeout)

    def open_channel(self, channel: int) -> bool:
        return self._record("open_channel", channel)

    def close_channel(self, channel: int) -> bool:
        return self._record("close_channel", channel)

    def unassign_channel(self, channel: int) -> bool:
        return self._record("unassign_channel", channel)

    def enable_extended_messages(self, enabled: bool) -> bool:
        return self._record("enable_extended_messages", None, enabled)
