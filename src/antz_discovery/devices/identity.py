"""Device identity: the natural key for all per-device state."""

from __future__ import annotations

from dataclasses import dataclass

from antz_discovery.protocol.extended_info import ExtendedInfo
from antz_discovery.protocol.pages import describe_device_type


@dataclass(frozen=True, slots=True)
class DeviceIdentity:
    """``(device number, device type, transmission type)`` of one ANT device.

    Any part may be None when the trailer did not carry it. Equality and
    hashing cover all three parts, so a partial identity never collides with
    a concrete one.
    """

    number: int | None
    device_type: int | None
    transmission_type: int | None

    @classmethod
    def from_ext(cls, ext: ExtendedInfo | None) -> DeviceIdentity:
        if ext is None:
            return UNKNOWN_IDENTITY
        return cls(ext.device_number, ext.device_type, ext.transmission_type)

    @property
    def is_concrete(self) -> bool:
        return self.number is not None and self.device_type is not None and self.transmission_type is not None

    @property
    def key(self) -> str:
        """``"number:dtype:ttype"`` with ``?`` for missing parts."""
        return ":".join("?" if part is None else str(part) for part in (self.number, self.device_type, self.transmission_type))

    def describe(self) -> str:
        number = "?" if self.number is None else f"0x{self.number:04X}"
        ttype = "?" if self.transmission_type is None else f"0x{self.transmission_type:02X}"
        return f"Device # {number} | Type: {describe_device_type(self.device_type)} | Tx Type: {ttype}"

    def __str__(self) -> str:
        return self.key


UNKNOWN_IDENTITY = DeviceIdentity(None, None, None)
