"""Raw and broadcast message types."""

from __future__ import annotations

from dataclasses import dataclass, field

from antz_discovery.exceptions import InsufficientDataError
from antz_discovery.protocol.constants import PAYLOAD_LENGTH, PAYLOAD_OFFSET
from antz_discovery.protocol.extended_info import ExtendedInfo, ExtendedInfoParser


def to_hex(data: bytes) -> str:
    """Render bytes as space separated uppercase hex, e.g. ``"4E 01 FF"``."""
    return " ".join(f"{b:02X}" for b in data)


@dataclass(frozen=True, slots=True)
class RawMessage:
    """One serial message as delivered by the transport."""

    message_id: int
    data: bytes

    @property
    def length(self) -> int:
        return len(self.data)

    def __str__(self) -> str:
        return f"RawMessage(id=0x{self.message_id:02X}, len={len(self.data)}, data=[{to_hex(self.data)}])"


@dataclass(frozen=True, slots=True)
class BroadcastMessage:
    """A broadcast data message split into channel, payload and trailer.

    Attributes:
        message_id: Serial id it arrived with (0x4E or 0x5D)
        channel: Channel number the message was received on
        payload: The eight profile payload bytes; ``payload[0]`` is the page
        ext: Decoded extended info, or None when no trailer was present
        raw: The complete message data

    """

    message_id: int
    channel: int
    payload: bytes
    ext: ExtendedInfo | None
    raw: bytes = field(repr=False)

    @property
    def page(self) -> int:
        return self.payload[0]

    @classmethod
    def from_raw(cls, message: RawMessage) -> BroadcastMessage:
        """Split ``message`` into its parts.

        Raises:
            InsufficientDataError: If the message cannot hold channel and payload
            ExtendedInfoError: If the trailer contradicts its flag byte

        """
        data = message.data
        needed = PAYLOAD_OFFSET + PAYLOAD_LENGTH
        if len(data) < needed:
            raise InsufficientDataError(needed, len(data), data)
        return cls(
            message_id=message.message_id,
            channel=data[0],
            payload=bytes(data[PAYLOAD_OFFSET:needed]),
            ext=ExtendedInfoParser.from_message(message.message_id, data),
            raw=bytes(data),
        )
