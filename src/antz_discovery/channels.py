"""Channel configuration: search channels, paired channels and their store.

A *search* channel listens with a wildcard device number and a long search
timeout to discover devices of one type. A *paired* channel pins a concrete
``(device number, device type, transmission type)`` and reconnects quickly.
Paired channels survive restarts through a ``;`` separated CSV store::

    cNum;use;cType;dNum;dType;tType;period;rfFreq;searchTimeout
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from antz_discovery.devices.identity import DeviceIdentity
from antz_discovery.exceptions import ConfigError
from antz_discovery.logging_abstraction import get_logger
from antz_discovery.protocol.constants import (
    CHANNEL_TYPE_SLAVE,
    DEVICE_NUMBER_WILDCARD,
    DEVICE_TYPE_ASSET_TRACKER,
    DEVICE_TYPE_HEART_RATE,
    MAX_CHANNELS,
    MAX_SEARCH_CHANNELS,
    TRANSMISSION_TYPE_WILDCARD,
    USER_CHANNEL_RF_FREQ,
)

logger = get_logger(__name__)

CSV_FIELDS = (
    "channel_number",
    "enabled",
    "channel_type",
    "device_number",
    "device_type",
    "transmission_type",
    "period",
    "rf_frequency",
    "search_timeout",
)


class ChannelConfig(BaseModel):
    """One ANT channel slot."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    channel_number: int = Field(ge=0, lt=MAX_CHANNELS)
    channel_type: int = Field(default=CHANNEL_TYPE_SLAVE, ge=0, le=0xFF)
    device_number: int = Field(default=DEVICE_NUMBER_WILDCARD, ge=0, le=0xFFFF)
    device_type: int = Field(ge=0, le=0xFF)
    transmission_type: int = Field(default=TRANSMISSION_TYPE_WILDCARD, ge=0, le=0xFF)
    period: int = Field(ge=1, le=0xFFFF)
    rf_frequency: int = Field(default=USER_CHANNEL_RF_FREQ, ge=0, le=124)
    search_timeout: int = Field(ge=0, le=0xFF)

    @property
    def is_search(self) -> bool:
        return self.device_number == DEVICE_NUMBER_WILDCARD

    @property
    def identity(self) -> DeviceIdentity:
        return DeviceIdentity(self.device_number, self.device_type, self.transmission_type)

    def matches(self, identity: DeviceIdentity) -> bool:
        return (
            self.device_number == identity.number
            and self.device_type == identity.device_type
            and self.transmission_type == identity.transmission_type
        )

    def to_csv(self) -> str:
        return ";".join(str(int(getattr(self, name))) for name in CSV_FIELDS)

    @classmethod
    def from_csv(cls, line: str) -> ChannelConfig:
        """Parse one store row.

        Raises:
            ConfigError: If the row has too few fields or out-of-range values

        """
        tokens = [t.strip() for t in line.strip().split(";")]
        if len(tokens) < len(CSV_FIELDS):
            msg = f"Expected {len(CSV_FIELDS)} fields, got {len(tokens)}: {line.strip()!r}"
            raise ConfigError(msg)
        try:
            values = [int(t) for t in tokens[: len(CSV_FIELDS)]]
            return cls(**dict(zip(CSV_FIELDS, values, strict=True)))
        except (ValueError, ValidationError) as e:
            msg = f"Invalid channel row {line.strip()!r}: {e}"
            raise ConfigError(msg) from e

    def describe(self) -> str:
        kind = "search" if self.is_search else "paired"
        return (
            f"Channel #{self.channel_number} [{kind}] dev# 0x{self.device_number:04X}"
            f" dType 0x{self.device_type:02X} tType 0x{self.transmission_type:02X}"
            f" period {self.period} rf {self.rf_frequency} timeout {self.search_timeout}"
        )


class PairedDefaults(BaseModel):
    """Template for channels created when a device is promoted."""

    channel_type: int = CHANNEL_TYPE_SLAVE
    period: int = 2048
    rf_frequency: int = USER_CHANNEL_RF_FREQ
    search_timeout: int = 0x06


HRM_SEARCH_CHANNEL = ChannelConfig(
    channel_number=0,
    device_type=DEVICE_TYPE_HEART_RATE,
    period=8070,
    search_timeout=0x12,
)

TRACKER_SEARCH_CHANNEL = ChannelConfig(
    channel_number=1,
    device_type=DEVICE_TYPE_ASSET_TRACKER,
    period=2048,
    search_timeout=0x03,
)

DEFAULT_SEARCH_CHANNELS = (HRM_SEARCH_CHANNEL, TRACKER_SEARCH_CHANNEL)


class ChannelTable:
    """Ordered set of channel configurations, unique by channel number."""

    def __init__(
        self,
        channels: Iterable[ChannelConfig] = (),
        defaults: PairedDefaults | None = None,
    ) -> None:
        self.defaults = defaults if defaults is not None else PairedDefaults()
        self._channels: list[ChannelConfig] = []
        for channel in channels:
            self.add(channel)

    @classmethod
    def build(
        cls,
        static: Iterable[ChannelConfig] = DEFAULT_SEARCH_CHANNELS,
        paired: Iterable[ChannelConfig] = (),
        defaults: PairedDefaults | None = None,
    ) -> ChannelTable:
        """Static channels first, then stored paired channels.

        A stored channel whose number is taken is moved to the next free
        slot; one whose identity is already present is dropped.
        """
        table = cls(static, defaults)
        for channel in paired:
            if table.has_channel(channel.identity):
                continue
            if channel.channel_number < MAX_SEARCH_CHANNELS or table.find(channel.channel_number) is not None:
                number = table.next_free_channel_number()
                if number is None:
                    logger.warning("No free channel for stored %s", channel.describe())
                    continue
                channel = channel.model_copy(update={"channel_number": number})
            table.add(channel)
        return table

    def __iter__(self) -> Iterator[ChannelConfig]:
        return iter(self._channels)

    def __len__(self) -> int:
        return len(self._channels)

    @property
    def paired_channels(self) -> list[ChannelConfig]:
        return [c for c in self._channels if not c.is_search]

    def add(self, channel: ChannelConfig) -> None:
        if self.find(channel.channel_number) is not None:
            msg = f"Channel #{channel.channel_number} already configured"
            raise ConfigError(msg)
        self._channels.append(channel)

    def remove(self, channel_number: int) -> ChannelConfig | None:
        channel = self.find(channel_number)
        if channel is not None:
            self._channels.remove(channel)
        return channel

    def find(self, channel_number: int) -> ChannelConfig | None:
        return next((c for c in self._channels if c.channel_number == channel_number), None)

    def has_channel(self, identity: DeviceIdentity) -> bool:
        return any(c.matches(identity) for c in self._channels)

    def is_search_channel(self, channel_number: int) -> bool:
        channel = self.find(channel_number)
        return channel is not None and channel.is_search

    def next_free_channel_number(self) -> int | None:
        """Lowest unused number above the search slots, or None when full."""
        used = {c.channel_number for c in self._channels}
        return next((n for n in range(MAX_SEARCH_CHANNELS, MAX_CHANNELS) if n not in used), None)

    def promote(self, identity: DeviceIdentity, template: ChannelConfig | None = None) -> ChannelConfig | None:
        """Create a dedicated paired channel for a concrete ``identity``.

        Radio timing comes from ``template`` (normally the search channel the
        device was found on) or the paired defaults; the search timeout is
        always the paired default.

        Returns:
            The new channel, or None when the identity is not concrete,
            already has a channel or no slot is free

        """
        device_number, device_type, transmission_type = (
            identity.number,
            identity.device_type,
            identity.transmission_type,
        )
        if device_number is None or device_type is None or transmission_type is None:
            return None
        if device_number == DEVICE_NUMBER_WILDCARD or self.has_channel(identity):
            return None
        number = self.next_free_channel_number()
        if number is None:
            logger.warning("No free channel to pair %s", identity.describe())
            return None
        channel = ChannelConfig(
            channel_number=number,
            channel_type=template.channel_type if template else self.defaults.channel_type,
            device_number=device_number,
            device_type=device_type,
            transmission_type=transmission_type,
            period=template.period if template else self.defaults.period,
            rf_frequency=template.rf_frequency if template else self.defaults.rf_frequency,
            search_timeout=self.defaults.search_timeout,
        )
        self._channels.append(channel)
        logger.info("Promoted %s to %s", identity.describe(), channel.describe())
        return channel


class PairedChannelStore:
    """CSV persistence for concrete (paired) channels."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> list[ChannelConfig]:
        if not self.path.exists():
            logger.warning("Paired channel store not found: %s", self.path)
            return []
        loaded: list[ChannelConfig] = []
        seen: set[DeviceIdentity] = set()
        with self.path.open(encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, start=1):
                if not line.strip() or line.lstrip().startswith("#"):
                    continue
                try:
                    channel = ChannelConfig.from_csv(line)
                except ConfigError as e:
                    logger.warning("%s:%d: %s", self.path, lineno, e)
                    continue
                if channel.identity in seen:
                    continue
                seen.add(channel.identity)
                loaded.append(channel)
        if loaded:
            logger.info("Loaded %d paired channel(s) from %s", len(loaded), self.path)
        else:
            logger.info("No paired channels loaded from %s", self.path)
        return loaded

    def save(self, channels: Iterable[ChannelConfig]) -> bool:
        rows = [c.to_csv() for c in channels if not c.is_search]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text("".join(f"{row}\n" for row in rows), encoding="utf-8")
        except OSError as e:
            logger.warning("Failed to write paired store %s: %s", self.path, e)
            return False
        logger.info("Saved %d paired channel(s) to %s", len(rows), self.path)
        return True


def load_channel_file(path: str | Path) -> list[ChannelConfig]:
    """Load a static channel table from YAML.

    Expected layout::

        channels:
          - channel_number: 0
            device_type: 0x78
            period: 8070
            search_timeout: 18

    Raises:
        ConfigError: If the file cannot be read or validated

    """
    try:
        with Path(path).open(encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as e:
        msg = f"Failed to read channel file {path}: {e}"
        raise ConfigError(msg) from e

    if not isinstance(data, dict) or not isinstance(data.get("channels"), list):
        msg = f"Channel file {path} has no 'channels' list"
        raise ConfigError(msg)
    try:
        channels = [ChannelConfig.model_validate(entry) for entry in data["channels"]]
    except ValidationError as e:
        msg = f"Invalid channel in {path}: {e}"
        raise ConfigError(msg) from e
    logger.info("Loaded %d channel(s) from %s", len(channels), path)
    return channels
