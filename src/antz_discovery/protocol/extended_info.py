"""Extended-info trailer parsing for ANT broadcast messages.

Two layouts reach the decoder, selected by the serial message id:

- Flagged extended data (0x4E): ``[ch][payload x8][flags][blocks...]`` where
  flag 0x80 adds a channel-id block, 0x40 an RSSI block and 0x20 an rx
  timestamp, in that order.
- Compact trailer (0x5D): ``[ch][payload x8][dev# lo][dev# hi][fields...][flags]``
  where the flag byte is last and bits 4..0 each announce one trailer byte
  (proximity, rssi, channel type, transmission type, device type).
"""

from __future__ import annotations

from dataclasses import dataclass

from antz_discovery.exceptions import ExtendedInfoError
from antz_discovery.logging_abstraction import get_logger
from antz_discovery.protocol.constants import (
    CHANNEL_ID_BLOCK_LENGTH,
    CHANNEL_ID_EXT_FLAG,
    COMPACT_DEVICE_NUMBER_OFFSET,
    COMPACT_TRAILER_MIN_START,
    FLAGS_OFFSET,
    MESG_BROADCAST_DATA_ID,
    MESG_EXT_BROADCAST_DATA_ID,
    RSSI_BLOCK_LENGTH,
    RSSI_EXT_FLAG,
    RX_TIMESTAMP_BLOCK_LENGTH,
    RX_TIMESTAMP_FLAG,
    TRAILER_CHANNEL_TYPE_BIT,
    TRAILER_DEVICE_TYPE_BIT,
    TRAILER_FIELD_MASK,
    TRAILER_OFFSET,
    TRAILER_PROXIMITY_BIT,
    TRAILER_RSSI_BIT,
    TRAILER_TX_TYPE_BIT,
)

logger = get_logger(__name__)

# Shortest compact message: channel, payload, device number, one trailer byte, flags
COMPACT_MIN_LENGTH = COMPACT_TRAILER_MIN_START + 2


def _signed8(value: int) -> int:
    return value - 0x100 if value & 0x80 else value


@dataclass(frozen=True, slots=True)
class ExtendedInfo:
    """Optional fields decoded from a broadcast trailer.

    Every field is ``None`` when the trailer did not carry it. ``length`` is
    the number of trailer bytes consumed.
    """

    flags: int = 0
    device_number: int | None = None
    device_type: int | None = None
    transmission_type: int | None = None
    rssi: int | None = None
    proximity: int | None = None
    measurement_type: int | None = None
    rx_timestamp: int | None = None
    length: int = 0

    @property
    def has_device_type(self) -> bool:
        return self.device_type is not None


class ExtendedInfoParser:
    """Stateless trailer decoder; every method is a staticmethod."""

    @staticmethod
    def trailer_length(flags: int) -> int:
        """Number of compact trailer bytes announced by ``flags``.

        Bits 4..0 each contribute one byte. Bit 2 (channel type) is counted
        even though its value is discarded, since it still occupies a slot.

        Example:
            >>> ExtendedInfoParser.trailer_length(0x1F)
            5
            >>> ExtendedInfoParser.trailer_length(0x04)
            1
            >>> ExtendedInfoParser.trailer_length(0xE0)
            0

        """
        return (flags & TRAILER_FIELD_MASK).bit_count()

    @staticmethod
    def parse(trailer: bytes, flags: int, device_number: int | None = None) -> ExtendedInfo:
        """Decode a compact trailer slice.

        Args:
            trailer: Trailer bytes starting at the first announced field
            flags: Flag byte announcing the fields
            device_number: Device number carried outside the trailer, if any

        Returns:
            ExtendedInfo with the announced fields set

        Raises:
            ExtendedInfoError: If ``trailer`` is shorter than ``flags`` announce

        """
        needed = ExtendedInfoParser.trailer_length(flags)
        if len(trailer) < needed:
            raise ExtendedInfoError("insufficient_data", trailer)

        fields: dict[str, int] = {}
        pos = 0
        if flags & TRAILER_PROXIMITY_BIT:
            fields["proximity"] = trailer[pos]
            pos += 1
        if flags & TRAILER_RSSI_BIT:
            fields["rssi"] = _signed8(trailer[pos])
            pos += 1
        if flags & TRAILER_CHANNEL_TYPE_BIT:
            # channel type slot, read and dropped
            pos += 1
        if flags & TRAILER_TX_TYPE_BIT:
            fields["transmission_type"] = trailer[pos]
            pos += 1
        if flags & TRAILER_DEVICE_TYPE_BIT:
            fields["device_type"] = trailer[pos]
            pos += 1

        return ExtendedInfo(flags=flags, device_number=device_number, length=pos, **fields)

    @staticmethod
    def parse_compact(data: bytes) -> ExtendedInfo | None:
        """Decode an end-anchored compact trailer from a full 0x5D message.

        Returns None when the message is too short to carry a trailer.

        Raises:
            ExtendedInfoError: If the announced trailer would overlap the
                payload or device number bytes

        """
        if len(data) < COMPACT_MIN_LENGTH:
            return None

        flags = data[-1]
        trailer_start = len(data) - 1 - ExtendedInfoParser.trailer_length(flags)
        if trailer_start < COMPACT_TRAILER_MIN_START:
            raise ExtendedInfoError("trailer_underflow", data)

        device_number = int.from_bytes(
            data[COMPACT_DEVICE_NUMBER_OFFSET : COMPACT_DEVICE_NUMBER_OFFSET + 2],
            "little",
        )
        return ExtendedInfoParser.parse(data[trailer_start:-1], flags, device_number)

    @staticmethod
    def parse_flagged(data: bytes) -> ExtendedInfo | None:
        """Decode flagged extended data blocks from a full 0x4E message.

        Returns None when the message has no flag byte.

        Raises:
            ExtendedInfoError: If the flag byte announces more block bytes
                than the message holds

        """
        if len(data) <= FLAGS_OFFSET:
            return None

        flags = data[FLAGS_OFFSET]
        needed = 0
        if flags & CHANNEL_ID_EXT_FLAG:
            needed += CHANNEL_ID_BLOCK_LENGTH
        if flags & RSSI_EXT_FLAG:
            needed += RSSI_BLOCK_LENGTH
        if flags & RX_TIMESTAMP_FLAG:
            needed += RX_TIMESTAMP_BLOCK_LENGTH
        if TRAILER_OFFSET + needed > len(data):
            raise ExtendedInfoError("truncated", data)

        fields: dict[str, int] = {}
        pos = TRAILER_OFFSET
        if flags & CHANNEL_ID_EXT_FLAG:
            fields["device_number"] = int.from_bytes(data[pos : pos + 2], "little")
            fields["device_type"] = data[pos + 2]
            fields["transmission_type"] = data[pos + 3]
            pos += CHANNEL_ID_BLOCK_LENGTH
        if flags & RSSI_EXT_FLAG:
            fields["measurement_type"] = data[pos]
            fields["rssi"] = _signed8(data[pos + 1])
            fields["proximity"] = data[pos + 2]
            pos += RSSI_BLOCK_LENGTH
        if flags & RX_TIMESTAMP_FLAG:
            fields["rx_timestamp"] = int.from_bytes(data[pos : pos + 2], "little")
            pos += RX_TIMESTAMP_BLOCK_LENGTH

        return ExtendedInfo(flags=flags, length=pos - TRAILER_OFFSET, **fields)

    @staticmethod
    def from_message(message_id: int, data: bytes) -> ExtendedInfo | None:
        """Pick the trailer layout for ``message_id`` and decode it."""
        if message_id == MESG_EXT_BROADCAST_DATA_ID:
            ext = ExtendedInfoParser.parse_compact(data)
        elif message_id == MESG_BROADCAST_DATA_ID:
            ext = ExtendedInfoParser.parse_flagged(data)
        else:
            return None

        if ext is not None:
            logger.debug(
                "Parsed extended info: flags=0x%02X, dev#=%s, dType=%s, tType=%s, rssi=%s",
                ext.flags,
                ext.device_number,
                ext.device_type,
                ext.transmission_type,
                ext.rssi,
            )
        return ext
