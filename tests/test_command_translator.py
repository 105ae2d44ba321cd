# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Tests for CommandTranslator."""

from __future__ import annotations

import pytest

from onkyo_receiver.exceptions import UnknownCommandError
from onkyo_receiver.protocol import CommandTranslator, ReceiverMessage
from onkyo_receiver.protocol.command_translator import (
    convert_time_info,
    decode_hex_groups,
    integer_range_code,
)


@pytest.fixture
def translator() -> CommandTranslator:
    return CommandTranslator()


class TestCommandToIscp:
    """Tests for encoding symbolic commands."""

    def test_enumerated_argument(self, translator: CommandTranslator) -> None:
        assert translator.command_to_iscp("system-power", "on") == "PWR01"
        assert translator.command_to_iscp("system-power", "standby") == "PWR00"
        assert translator.command_to_iscp("audio-muting", "toggle") == "AMTTG"

    def test_query(self, translator: CommandTranslator) -> None:
        assert translator.command_to_iscp("volume", "query") == "MVLQSTN"
        assert translator.command_to_iscp("fp-display", "query") == "FLDQSTN"

    def test_alias_name(self, translator: CommandTranslator) -> None:
        assert translator.command_to_iscp("input-selector", "net") == "SLI2B"

    def test_integer_range(self, translator: CommandTranslator) -> None:
        assert translator.command_to_iscp("volume", 40) == "MVL28"
        assert translator.command_to_iscp("volume", "40") == "MVL28"
        assert translator.command_to_iscp("volume", 5) == "MVL05"
        assert translator.command_to_iscp("volume", 255) == "MVLFF"

    def test_named_argument_of_integer_range_command(self, translator: CommandTranslator) -> None:
        assert translator.command_to_iscp("volume", "level-up") == "MVLUP"

    def test_unknown_argument_passes_through(self, translator: CommandTranslator) -> None:
        assert translator.command_to_iscp("net-service", "0A0") == "NSV0A0"

    def test_no_argument(self, translator: CommandTranslator) -> None:
        assert translator.command_to_iscp("system-power") == "PWR"

    def test_zone_does_not_change_encoding(self, translator: CommandTranslator) -> None:
        assert translator.command_to_iscp("system-power", "on", zone="zone2") == "PWR01"

    def test_unknown_command(self, translator: CommandTranslator) -> None:
        with pytest.raises(UnknownCommandError):
            translator.command_to_iscp("no-such-command", "on")


class TestIscpToCommand:
    """Tests for decoding inbound ISCP messages."""

    def test_enumerated_value(self, translator: CommandTranslator) -> None:
        message = translator.iscp_to_command("PWR01")
        assert message == ReceiverMessage("system-power", "on")
        assert message.iscp_command == "PWR01"

    def test_list_valued_name_yields_first(self, translator: CommandTranslator) -> None:
        assert translator.iscp_to_command("SLI2B").argument == "net"

    def test_integer_range_value(self, translator: CommandTranslator) -> None:
        message = translator.iscp_to_command("MVL28")
        assert message.command == "volume"
        assert message.argument == 40

    def test_control_characters_stripped(self, translator: CommandTranslator) -> None:
        assert translator.iscp_to_command("PWR01\x1a").argument == "on"

    def test_concatenated_telegram_stripped(self, translator: CommandTranslator) -> None:
        assert translator.iscp_to_command("MVL28ISCP\x00\x00\x00\x10").argument == 40
        assert translator.iscp_to_command("AMT01 ").argument == "on"

    def test_unknown_prefix(self, translator: CommandTranslator) -> None:
        message = translator.iscp_to_command("XYZ01")
        assert message.command == "undefined"
        assert message.argument == "undefined"
        assert message.is_undefined

    def test_hex_text(self, translator: CommandTranslator) -> None:
        message = translator.iscp_to_command("FLD53706F7469667920202020")
        assert message.command == "fp-display"
        assert isinstance(message.argument, str)
        assert message.argument.strip() == "Spotify"

    def test_raw_value(self, translator: CommandTranslator) -> None:
        message = translator.iscp_to_command("IFAHDMI 1,PCM,48 kHz,2.0 ch,")
        assert message.command == "audio-information"
        assert message.argument == "HDMI 1,PCM,48 kHz,2.0 ch,"

    def test_time_info(self, translator: CommandTranslator) -> None:
        message = translator.iscp_to_command("NTM01:30/04:05")
        assert message.command == "NTM"
        assert message.argument == "90/245"

    def test_dab_station_passthrough(self, translator: CommandTranslator) -> None:
        message = translator.iscp_to_command("DSNBBC Radio 4")
        assert message.command == "DSN"
        assert message.argument == "BBC Radio 4"

    def test_rolling_metadata(self, translator: CommandTranslator) -> None:
        translator.iscp_to_command("NATDaft Punk")
        translator.iscp_to_command("NTIAround the World")
        message = translator.iscp_to_command("NALHomework")
        assert message.command == "metadata"
        assert message.argument == dict(
            artist="Daft Punk",
            title="Around the World",
            album="Homework",
        )

    def test_metadata_is_per_translator(self) -> None:
        first = CommandTranslator()
        second = CommandTranslator()
        first.iscp_to_command("NATDaft Punk")
        message = second.iscp_to_command("NTIOne More Time")
        assert message.argument == dict(artist="", title="One More Time", album="")

    def test_reset_metadata(self, translator: CommandTranslator) -> None:
        translator.iscp_to_command("NATDaft Punk")
        translator.reset_metadata()
        message = translator.iscp_to_command("NALDiscovery")
        assert message.argument == dict(artist="", title="", album="Discovery")

    def test_display_metadata_tags(self, translator: CommandTranslator) -> None:
        message = translator.iscp_to_command("FLD1A" + "Björk".encode("utf-8").hex().upper())
        assert message.command == "metadata"
        assert message.argument["artist"] == "Björk"  # type: ignore[index]


class TestTableQueries:
    """Tests for listing commands and their arguments."""

    def test_list_commands(self, translator: CommandTranslator) -> None:
        commands = translator.list_commands()
        assert "system-power" in commands
        assert "input-selector" in commands

    def test_list_command_values(self, translator: CommandTranslator) -> None:
        values = translator.list_command_values("main.system-power")
        assert set(values) >= {"on", "standby", "query"}

    def test_list_values_of_unknown_command(self, translator: CommandTranslator) -> None:
        with pytest.raises(UnknownCommandError):
            translator.list_command_values("bogus")


class TestHelpers:
    """Tests for the value conversion helpers."""

    def test_convert_time_info_keeps_malformed_side(self) -> None:
        assert convert_time_info("--:--/04:05") == "--:--/245"
        assert convert_time_info("01:02:03/") == "3723/"
        assert convert_time_info("no-slash") == "no-slash"

    def test_decode_hex_groups(self) -> None:
        assert decode_hex_groups("4142") == "AB"
        assert decode_hex_groups("41,4243") == ["A", "BC"]
        assert decode_hex_groups("HDMI") is None

    def test_integer_range_code(self) -> None:
        assert integer_range_code(10) == "0A"
        assert integer_range_code("7") == "07"
        assert integer_range_code("up") is None
        assert integer_range_code(-1) is None
