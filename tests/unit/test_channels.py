"""Unit tests for the channel table, paired store and YAML channel files."""

from __future__ import annotations

from pathlib import Path

import pytest

from antz_discovery.channels import (
    DEFAULT_SEARCH_CHANNELS,
    HRM_SEARCH_CHANNEL,
    TRACKER_SEARCH_CHANNEL,
    ChannelConfig,
    ChannelTable,
    PairedChannelStore,
    load_channel_file,
)
from antz_discovery.devices.identity import DeviceIdentity
from antz_discovery.exceptions import ConfigError
from tests.fixtures.messages import HRM, TRACKER


def paired(number: int, identity: DeviceIdentity = TRACKER) -> ChannelConfig:
    assert identity.number is not None
    assert identity.device_type is not None
    assert identity.transmission_type is not None
    return ChannelConfig(
        channel_number=number,
        device_number=identity.number,
        device_type=identity.device_type,
        transmission_type=identity.transmission_type,
        period=2048,
        search_timeout=6,
    )


class TestChannelConfig:
    def test_search_vs_paired(self):
        assert HRM_SEARCH_CHANNEL.is_search
        assert not paired(2).is_search
        assert paired(2).matches(TRACKER)
        assert not paired(2).matches(HRM)

    def test_csv_row(self):
        assert paired(2).to_csv() == "2;1;0;4660;41;213;2048;57;6"
        assert ChannelConfig.from_csv("2;1;0;4660;41;213;2048;57;6\n") == paired(2)

    @pytest.mark.parametrize("row", ["1;1;0", "2;1;0;x;41;213;2048;57;6", "9;1;0;4660;41;213;2048;57;6"])
    def test_bad_rows(self, row: str):
        with pytest.raises(ConfigError):
            _ = ChannelConfig.from_csv(row)


class TestChannelTable:
    """Tests for ChannelTable."""

    def test_defaults(self):
        table = ChannelTable.build()
        assert [c.channel_number for c in table] == [0, 1]
        assert table.is_search_channel(1)
        assert not table.is_search_channel(5)

    def test_next_free_channel_number(self):
        table = ChannelTable(DEFAULT_SEARCH_CHANNELS)
        assert table.next_free_channel_number() == 2
        table.add(paired(2))
        table.add(paired(4, HRM))
        assert table.next_free_channel_number() == 3

    def test_full_table(self):
        table = ChannelTable(DEFAULT_SEARCH_CHANNELS)
        for n in range(2, 8):
            table.add(paired(n, DeviceIdentity(n, 0x29, 0xD5)))
        assert table.next_free_channel_number() is None
        assert table.promote(TRACKER) is None

    def test_duplicate_number_rejected(self):
        table = ChannelTable(DEFAULT_SEARCH_CHANNELS)
        with pytest.raises(ConfigError):
            table.add(paired(1))

    def test_promote(self):
        table = ChannelTable(DEFAULT_SEARCH_CHANNELS)
        channel = table.promote(TRACKER, template=TRACKER_SEARCH_CHANNEL)

        assert channel is not None
        assert channel.channel_number == 2
        assert channel.matches(TRACKER)
        assert channel.period == TRACKER_SEARCH_CHANNEL.period
        assert channel.search_timeout == table.defaults.search_timeout
        assert table.has_channel(TRACKER)
        assert table.promote(TRACKER) is None

    def test_promote_partial_identity(self):
        table = ChannelTable(DEFAULT_SEARCH_CHANNELS)
        assert table.promote(DeviceIdentity(0x1234, None, None)) is None
        assert table.promote(DeviceIdentity(0x0000, 0x29, 0xD5)) is None
        assert table.next_free_channel_number() == 2

    def test_build_relocates_and_deduplicates(self):
        table = ChannelTable.build(paired=[paired(1), paired(3), paired(5)])
        assert [c.channel_number for c in table.paired_channels] == [2]


class TestPairedChannelStore:
    """Tests for the CSV store."""

    def test_round_trip(self, tmp_path: Path):
        store = PairedChannelStore(tmp_path / "antz" / "paired.csv")
        table = ChannelTable([*DEFAULT_SEARCH_CHANNELS, paired(2), paired(3, HRM)])

        assert store.save(table)
        assert store.path.read_text(encoding="utf-8").splitlines() == [
            "2;1;0;4660;41;213;2048;57;6",
            "3;1;0;3054;120;1;2048;57;6",
        ]
        assert store.load() == [paired(2), paired(3, HRM)]

    def test_missing_file(self, tmp_path: Path):
        assert PairedChannelStore(tmp_path / "none.csv").load() == []

    def test_bad_rows_skipped(self, tmp_path: Path):
        path = tmp_path / "paired.csv"
        path.write_text(
            "# comment\n2;1;0;4660;41;213;2048;57;6\nnot;a;row\n3;1;0;4660;41;213;2048;57;6\n",
            encoding="utf-8",
        )
        assert PairedChannelStore(path).load() == [paired(2)]


class TestLoadChannelFile:
    def test_yaml(self, tmp_path: Path):
        path = tmp_path / "channels.yaml"
        path.write_text(
            "channels:\n"
            "  - channel_number: 0\n"
            "    device_type: 0x78\n"
            "    period: 8070\n"
            "    search_timeout: 18\n",
            encoding="utf-8",
        )
        channels = load_channel_file(path)
        assert channels == [HRM_SEARCH_CHANNEL]

    def test_missing_list(self, tmp_path: Path):
        path = tmp_path / "channels.yaml"
        path.write_text("other: 1\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            _ = load_channel_file(path)

    def test_invalid_entry(self, tmp_path: Path):
        path = tmp_path / "channels.yaml"
        path.write_text("channels:\n  - channel_number: 12\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            _ = load_channel_file(path)
