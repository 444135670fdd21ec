"""Exception hierarchy for ANT+ decoding, transport and channel errors.

Decoders raise instead of returning partial results; the dispatcher and the
event loop catch ``AntzError`` subclasses, log them and move on to the next
message.
"""

from __future__ import annotations


class AntzError(Exception):
    """Base exception for all antz-discovery errors."""


class PacketDecodeError(AntzError):
    """A received message cannot be decoded.

    Attributes:
        reason: Specific failure reason (e.g., "too_short", "truncated")
        data_preview: First 16 bytes of the offending message
    """

    def __init__(self, reason: str, data: bytes = b""):
        self.reason = reason
        self.data_preview = bytes(data[:16]) if data else b""
        super().__init__(f"Packet decode failed: {reason}")


class InsufficientDataError(PacketDecodeError):
    """A page decoder was handed fewer bytes than its layout needs."""

    def __init__(self, needed: int, available: int, data: bytes = b""):
        self.needed = needed
        self.available = available
        super().__init__("insufficient_data", data)
        self.args = (f"Packet decode failed: insufficient_data (need {needed} bytes, have {available})",)


class ExtendedInfoError(PacketDecodeError):
    """The extended-info trailer is inconsistent with its flag byte."""


class TransportError(AntzError):
    """A boundary call into the ANT transport failed.

    Attributes:
        operation: Transport call that failed (e.g., "assign_channel")
        error_code: Last error code reported by the transport, if any
    """

    def __init__(self, operation: str, error_code: int | None = None):
        self.operation = operation
        self.error_code = error_code
        suffix = f" (0x{error_code:02X})" if error_code is not None else ""
        super().__init__(f"Transport call failed: {operation}{suffix}")


class TransportClosedError(TransportError):
    """The transport has no more messages to deliver."""

    def __init__(self, operation: str = "wait_for_message"):
        super().__init__(operation)


class ChannelSetupError(AntzError):
    """A step of the channel open sequence failed."""

    def __init__(self, channel_number: int, step: str):
        self.channel_number = channel_number
        self.step = step
        super().__init__(f"Channel #{channel_number} setup failed at {step}")


class PageRequestError(AntzError):
    """A request-data-page command was not acknowledged within the retry budget."""

    def __init__(self, channel: int, page: int, attempts: int, last_error: int | None = None):
        self.channel = channel
        self.page = page
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Request for page 0x{page:02X} on channel #{channel} failed after {attempts} attempts")


class ConfigError(AntzError):
    """Invalid command line, connection string or channel file."""
