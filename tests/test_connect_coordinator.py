# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Tests for ConnectCoordinator."""

from __future__ import annotations

from typing import List

import pytest

from onkyo_receiver.client import (
    ConnectCoordinator,
    ConnectionManager,
    ReconnectionManager,
    ReceiverMessageHandler,
    ZoneRegistry,
    ZoneStateTracker,
)

from conftest import FakeConnectionFactory, ManualClock, MODEL, HOST, HOST2, make_config

POLL = ["PWRQSTN", "SLIQSTN", "MVLQSTN", "AMTQSTN", "LMDQSTN", "FLDQSTN"]


class Harness:
    """A coordinator wired to fake connections and a manual clock."""

    def __init__(self, factory: FakeConnectionFactory, clock: ManualClock) -> None:
        self.factory = factory
        self.clock = clock
        self.registry = ZoneRegistry()
        self.tracker = ZoneStateTracker(clock=clock)
        self.reconnection_manager = ReconnectionManager(timeouts=(0.01,))
        self.connection_manager = ConnectionManager(
            self.reconnection_manager,
            connection_factory=factory,
        )
        self.coordinator = ConnectCoordinator(
            self.connection_manager,
            self.registry,
            self.tracker,
            message_handler_factory=lambda identity: ReceiverMessageHandler(identity, self.registry, self.tracker),
        )
        self.connection_manager.query_all_zones_state = self.coordinator.query_all_zones_state

    async def aclose(self) -> None:
        await self.reconnection_manager.aclose()


@pytest.fixture
def harness(connection_factory: FakeConnectionFactory, clock: ManualClock) -> Harness:
    return Harness(connection_factory, clock)


class TestConnect:
    """Tests for connect()."""

    @pytest.mark.asyncio
    async def test_no_configs(self, harness: Harness) -> None:
        assert not await harness.coordinator.connect([])
        assert harness.factory.created == []

    @pytest.mark.asyncio
    async def test_zones_share_one_connection(self, harness: Harness) -> None:
        configs = [make_config(zone="main"), make_config(zone="zone2")]
        assert await harness.coordinator.connect(configs)
        assert len(harness.factory.created) == 1
        main = harness.registry.get_binding((MODEL, HOST, "main"))
        zone2 = harness.registry.get_binding((MODEL, HOST, "zone2"))
        assert main is not None and zone2 is not None
        assert main.physical_connection is zone2.physical_connection

    @pytest.mark.asyncio
    async def test_each_zone_is_polled_after_connection(self, harness: Harness) -> None:
        configs = [make_config(zone="main"), make_config(zone="zone2")]
        await harness.coordinator.connect(configs)
        assert harness.factory.created[0].sent == POLL + POLL
        assert not harness.tracker.should_query((MODEL, HOST, "main"))
        assert not harness.tracker.should_query((MODEL, HOST, "zone2"))

    @pytest.mark.asyncio
    async def test_separate_receivers(self, harness: Harness) -> None:
        configs = [make_config(host=HOST), make_config(host=HOST2)]
        assert await harness.coordinator.connect(configs)
        assert len(harness.factory.created) == 2
        assert all(conn.sent == POLL for conn in harness.factory.created)

    @pytest.mark.asyncio
    async def test_query_threshold_from_config(self, harness: Harness) -> None:
        await harness.coordinator.connect([make_config(queue_threshold_ms=0)])
        assert harness.tracker.get_query_threshold((MODEL, HOST, "main")) == 0.0

    @pytest.mark.asyncio
    async def test_unreachable_receiver_is_still_bound(self, harness: Harness) -> None:
        harness.factory.default_connect_result = False
        assert await harness.coordinator.connect([make_config()])
        assert harness.registry.is_bound((MODEL, HOST, "main"))
        assert harness.reconnection_manager.has_scheduled_reconnection((MODEL, HOST))
        assert harness.factory.created[0].sent == []
        await harness.aclose()

    @pytest.mark.asyncio
    async def test_reconnects_existing_connection(self, harness: Harness) -> None:
        harness.factory.default_connect_result = False
        configs = [make_config()]
        await harness.coordinator.connect(configs)
        conn = harness.factory.created[0]
        conn.default_connect_result = True
        harness.clock.advance(10.0)
        assert await harness.coordinator.connect(configs)
        assert len(harness.factory.created) == 1
        assert conn.is_connected
        assert conn.sent == POLL
        assert not harness.reconnection_manager.has_scheduled_reconnection((MODEL, HOST))

    @pytest.mark.asyncio
    async def test_connected_receiver_is_not_reconnected(self, harness: Harness) -> None:
        configs = [make_config()]
        await harness.coordinator.connect(configs)
        conn = harness.factory.created[0]
        await harness.coordinator.connect(configs)
        assert len(conn.connect_calls) == 1


class TestQueryAllZonesState:
    """Tests for query_all_zones_state()."""

    @pytest.mark.asyncio
    async def test_standby_zones_are_skipped(self, harness: Harness) -> None:
        configs = [make_config(zone="main"), make_config(zone="zone2")]
        await harness.coordinator.connect(configs)
        conn = harness.factory.created[0]
        conn.sent.clear()
        harness.tracker.set_power_state((MODEL, HOST, "main"), "on")
        harness.tracker.set_power_state((MODEL, HOST, "zone2"), "standby")
        harness.clock.advance(10.0)
        await harness.coordinator.query_all_zones_state((MODEL, HOST), "after scheduled reconnection")
        assert conn.sent == POLL

    @pytest.mark.asyncio
    async def test_all_zones_after_reconnection(self, harness: Harness) -> None:
        configs = [make_config(zone="main"), make_config(zone="zone2")]
        await harness.coordinator.connect(configs)
        conn = harness.factory.created[0]
        conn.sent.clear()
        harness.clock.advance(10.0)
        await harness.coordinator.query_all_zones_state((MODEL, HOST), "after reconnection")
        assert conn.sent == POLL + POLL

    @pytest.mark.asyncio
    async def test_recent_poll_is_not_repeated(self, harness: Harness) -> None:
        await harness.coordinator.connect([make_config()])
        conn = harness.factory.created[0]
        conn.sent.clear()
        await harness.coordinator.query_all_zones_state((MODEL, HOST), "after reconnection")
        assert conn.sent == []

    @pytest.mark.asyncio
    async def test_unbound_zone_query_is_ignored(self, harness: Harness) -> None:
        await harness.coordinator.query_avr_state((MODEL, HOST, "main"), "test")
        assert harness.factory.created == []
