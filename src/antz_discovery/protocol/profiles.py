"""ANT+ sensor profiles recognised by the dispatcher."""

from __future__ import annotations

from enum import StrEnum

from antz_discovery.protocol.constants import DEVICE_TYPE_ASSET_TRACKER, DEVICE_TYPE_HEART_RATE


class Profile(StrEnum):
    HEART_RATE = "hrm"
    ASSET_TRACKER = "asset"
    UNKNOWN = "generic"

    @classmethod
    def from_device_type(cls, device_type: int | None) -> Profile:
        if device_type == DEVICE_TYPE_HEART_RATE:
            return cls.HEART_RATE
        if device_type == DEVICE_TYPE_ASSET_TRACKER:
            return cls.ASSET_TRACKER
        return cls.UNKNOWN

    @property
    def tag(self) -> str:
        """Short tag used in log and text output, e.g. ``ASSET``."""
        return {"hrm": "HRM", "asset": "ASSET", "generic": "GENERIC"}[self.value]
