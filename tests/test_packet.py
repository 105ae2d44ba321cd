# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Tests for eISCP frame encoding and decoding."""

from __future__ import annotations

from onkyo_receiver.protocol import (
    encode_eiscp_packet,
    decode_eiscp_packet,
    parse_eiscp_header,
)


def receiver_frame(payload: bytes) -> bytes:
    """Builds a frame the way a receiver sends it."""
    return (
        b"ISCP"
        + (16).to_bytes(4, "big")
        + len(payload).to_bytes(4, "big")
        + b"\x01\x00\x00\x00"
        + payload
    )


class TestEncode:
    """Tests for encode_eiscp_packet."""

    def test_frame_layout(self) -> None:
        """A message gets the receiver prefix, CR LF and a 16-byte header."""
        frame = encode_eiscp_packet("PWR01")
        assert frame == (
            b"ISCP"
            + b"\x00\x00\x00\x10"
            + b"\x00\x00\x00\x09"
            + b"\x01\x00\x00\x00"
            + b"!1PWR01\r\n"
        )

    def test_data_size_matches_payload(self) -> None:
        frame = encode_eiscp_packet("MVLQSTN")
        data_size = int.from_bytes(frame[8:12], "big")
        assert data_size == len(frame) - 16
        assert frame[16:] == b"!1MVLQSTN\r\n"

    def test_explicit_start_character_is_kept(self) -> None:
        """Messages that already start with "!" (discovery) are not prefixed again."""
        frame = encode_eiscp_packet("!xECNQSTN")
        assert frame[16:] == b"!xECNQSTN\r\n"


class TestDecode:
    """Tests for decode_eiscp_packet."""

    def test_skips_header_and_unit_prefix(self) -> None:
        assert decode_eiscp_packet(receiver_frame(b"!1SLI2B\r\n")) == "SLI2B"

    def test_drops_exactly_two_trailing_bytes(self) -> None:
        """Receivers end messages with EOF CR LF; only CR LF is dropped here."""
        assert decode_eiscp_packet(receiver_frame(b"!1PWR01\x1a\r\n")) == "PWR01\x1a"

    def test_decodes_own_encoding(self) -> None:
        assert decode_eiscp_packet(encode_eiscp_packet("AMTQSTN")) == "AMTQSTN"

    def test_short_frame_yields_empty_string(self) -> None:
        assert decode_eiscp_packet(b"ISCP") == ""
        assert decode_eiscp_packet(b"") == ""

    def test_non_ascii_does_not_raise(self) -> None:
        text = decode_eiscp_packet(receiver_frame(b"!1NTI\xc3\xa9t\xc3\xa9\r\n"))
        assert text.startswith("NTI")


class TestParseHeader:
    """Tests for parse_eiscp_header."""

    def test_header_sizes(self) -> None:
        frame = encode_eiscp_packet("PWR01")
        assert parse_eiscp_header(frame) == (16, 9)

    def test_missing_magic(self) -> None:
        assert parse_eiscp_header(b"XXXX" + bytes(12)) is None

    def test_incomplete_header(self) -> None:
        assert parse_eiscp_header(b"ISCP\x00\x00") is None
