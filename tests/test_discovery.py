# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Tests for eISCP UDP discovery."""

from __future__ import annotations

import asyncio
import socket
import time

import pytest

from onkyo_receiver.discovery import DiscoveredReceiver, EiscpDiscoveryClient, discover
from onkyo_receiver.emulator import OnkyoReceiverEmulator


def unused_udp_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class TestDiscoveredReceiver:
    """Tests for parsing discovery responses."""

    def test_from_response(self) -> None:
        receiver = DiscoveredReceiver.from_response(
            ("192.168.1.20", 60128), "ECNTX-NR686/60128/DX/0009B0E0DADC\x19"
        )
        assert receiver is not None
        assert receiver.host == "192.168.1.20"
        assert receiver.port == 60128
        assert receiver.model == "TX-NR686"
        assert receiver.area_code == "DX"
        assert receiver.mac == "0009B0E0DADC"

    def test_not_a_discovery_response(self) -> None:
        assert DiscoveredReceiver.from_response(("10.0.0.1", 60128), "PWR01") is None

    def test_malformed_response(self) -> None:
        assert DiscoveredReceiver.from_response(("10.0.0.1", 60128), "ECNTX-NR686/60128") is None
        assert DiscoveredReceiver.from_response(("10.0.0.1", 60128), "ECNTX-NR686/port/DX/00") is None

    def test_to_jsonable(self) -> None:
        receiver = DiscoveredReceiver("10.0.0.5", 60128, "TX-RZ50", "XX", "0009B0000001")
        assert receiver.to_jsonable() == dict(
            host="10.0.0.5",
            port=60128,
            model="TX-RZ50",
            area_code="XX",
            mac="0009B0000001",
        )


class TestDiscover:
    """Tests for discover() against the emulator's discovery responder."""

    @pytest.mark.asyncio
    async def test_finds_emulator(self, emulator: OnkyoReceiverEmulator) -> None:
        receivers = await discover(
            devices=1,
            timeout_secs=2.0,
            address="127.0.0.1",
            port=emulator.discovery_port,
        )
        assert len(receivers) == 1
        assert receivers[0].host == "127.0.0.1"
        assert receivers[0].port == emulator.port
        assert receivers[0].model == "TX-NR686"

    @pytest.mark.asyncio
    async def test_stops_early_when_enough_devices_answer(self, emulator: OnkyoReceiverEmulator) -> None:
        start = time.monotonic()
        await discover(devices=1, timeout_secs=5.0, address="127.0.0.1", port=emulator.discovery_port)
        assert time.monotonic() - start < 2.0

    @pytest.mark.asyncio
    async def test_repeated_responses_are_reported_once(self, emulator: OnkyoReceiverEmulator) -> None:
        async with EiscpDiscoveryClient(address="127.0.0.1", port=emulator.discovery_port) as client:
            client.send_query()
            receivers = [r async for r in client.search(response_wait_time=0.5)]
        assert len(receivers) == 1

    @pytest.mark.asyncio
    async def test_no_receiver_waits_for_timeout(self) -> None:
        port = unused_udp_port()
        start = time.monotonic()
        receivers = await discover(devices=1, timeout_secs=1.0, address="127.0.0.1", port=port)
        elapsed = time.monotonic() - start
        assert receivers == []
        assert 0.9 <= elapsed < 2.0
