# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Tests for ConnectionManager."""

from __future__ import annotations

import asyncio
from typing import List, Tuple
from unittest.mock import AsyncMock

import pytest

from onkyo_receiver.client import (
    ConnectionManager,
    ReconnectionManager,
    ReconnectResult,
    EiscpConnection,
    default_connection_factory,
)
from onkyo_receiver.exceptions import DuplicateConnectionError

from conftest import FakeConnectionFactory, MODEL, HOST, HOST2, make_config, wait_until

IDENTITY = (MODEL, HOST)


def make_manager(
    factory: FakeConnectionFactory,
    query_all_zones_state: AsyncMock = None,
) -> ConnectionManager:
    return ConnectionManager(
        ReconnectionManager(timeouts=(0.01, 0.01, 0.01), schedule_delay_secs=0.01),
        query_all_zones_state=query_all_zones_state,
        connection_factory=factory,
        connect_wait_timeout_secs=0.01,
    )


class TestCreateAndConnect:
    """Tests for creating physical connections."""

    @pytest.mark.asyncio
    async def test_creates_registers_and_connects(self, connection_factory: FakeConnectionFactory) -> None:
        manager = make_manager(connection_factory)
        config = make_config(port=60200)
        physical_connection = await manager.create_and_connect(IDENTITY, config)
        assert physical_connection.is_connected
        assert manager.get_physical_connection(IDENTITY) is physical_connection
        assert manager.has_physical_connection(IDENTITY)
        conn = connection_factory.created[0]
        assert conn.connect_calls == [(HOST, 60200, MODEL)]
        assert len(conn.close_listeners) == 1
        assert len(conn.error_listeners) == 1

    @pytest.mark.asyncio
    async def test_message_handler_is_installed(self, connection_factory: FakeConnectionFactory) -> None:
        manager = make_manager(connection_factory)
        handler = lambda message: None
        await manager.create_and_connect(IDENTITY, make_config(), lambda conn: handler)
        assert connection_factory.created[0].message_handler is handler

    @pytest.mark.asyncio
    async def test_duplicate_identity(self, connection_factory: FakeConnectionFactory) -> None:
        manager = make_manager(connection_factory)
        await manager.create_and_connect(IDENTITY, make_config())
        with pytest.raises(DuplicateConnectionError):
            await manager.create_and_connect(IDENTITY, make_config(zone="zone2"))
        assert len(connection_factory.created) == 1

    @pytest.mark.asyncio
    async def test_failure_registers_and_schedules_reconnect(self) -> None:
        factory = FakeConnectionFactory(default_connect_result=False)
        query_all = AsyncMock()
        manager = make_manager(factory, query_all)
        physical_connection = await manager.create_and_connect(IDENTITY, make_config(reconnect_delay_secs=0.01))
        assert not physical_connection.is_connected
        assert manager.has_physical_connection(IDENTITY)
        assert manager.reconnection_manager.has_scheduled_reconnection(IDENTITY)
        factory.created[0].default_connect_result = True
        await wait_until(lambda: query_all.await_count == 1)
        query_all.assert_awaited_once_with(IDENTITY, "after scheduled reconnection")
        assert physical_connection.is_connected
        await manager.reconnection_manager.aclose()

    @pytest.mark.asyncio
    async def test_separate_receivers_get_separate_connections(self, connection_factory: FakeConnectionFactory) -> None:
        manager = make_manager(connection_factory)
        await manager.create_and_connect((MODEL, HOST), make_config(host=HOST))
        await manager.create_and_connect((MODEL, HOST2), make_config(host=HOST2))
        assert len(manager.get_all_physical_connections()) == 2


class TestReconnection:
    """Tests for manual reconnection and teardown."""

    @pytest.mark.asyncio
    async def test_attempt_reconnection_unknown_identity(self, connection_factory: FakeConnectionFactory) -> None:
        manager = make_manager(connection_factory)
        assert await manager.attempt_reconnection(IDENTITY) == ReconnectResult(False, 0)

    @pytest.mark.asyncio
    async def test_attempt_reconnection_cancels_scheduled_retry(self) -> None:
        factory = FakeConnectionFactory(default_connect_result=False)
        manager = make_manager(factory)
        physical_connection = await manager.create_and_connect(IDENTITY, make_config(reconnect_delay_secs=10.0))
        assert manager.reconnection_manager.has_scheduled_reconnection(IDENTITY)
        factory.created[0].default_connect_result = True
        result = await manager.attempt_reconnection(IDENTITY)
        assert result == ReconnectResult(True, 1)
        assert physical_connection.is_connected
        assert not manager.reconnection_manager.has_scheduled_reconnection(IDENTITY)

    @pytest.mark.asyncio
    async def test_manual_failure_does_not_schedule(self, connection_factory: FakeConnectionFactory) -> None:
        manager = make_manager(connection_factory)
        await manager.create_and_connect(IDENTITY, make_config())
        conn = connection_factory.created[0]
        conn.connected = False
        conn.default_connect_result = False
        result = await manager.attempt_reconnection(IDENTITY)
        assert result == ReconnectResult(False, 3)
        assert not manager.reconnection_manager.has_scheduled_reconnection(IDENTITY)

    @pytest.mark.asyncio
    async def test_clear_all_connections(self, connection_factory: FakeConnectionFactory) -> None:
        manager = make_manager(connection_factory)
        await manager.create_and_connect((MODEL, HOST), make_config(host=HOST))
        await manager.create_and_connect((MODEL, HOST2), make_config(host=HOST2))
        await manager.clear_all_connections()
        assert manager.get_all_physical_connections() == []
        assert all(conn.disconnect_calls == 1 for conn in connection_factory.created)


class TestLinkLoss:
    """Tests for recovering a link that the receiver drops after setup."""

    @pytest.mark.asyncio
    async def test_dropped_link_schedules_reconnect(self, connection_factory: FakeConnectionFactory) -> None:
        query_all = AsyncMock()
        manager = make_manager(connection_factory, query_all)
        physical_connection = await manager.create_and_connect(IDENTITY, make_config(reconnect_delay_secs=0.01))
        assert not manager.reconnection_manager.has_scheduled_reconnection(IDENTITY)
        conn = connection_factory.created[0]
        conn.drop()
        assert manager.reconnection_manager.has_scheduled_reconnection(IDENTITY)
        await wait_until(lambda: query_all.await_count == 1)
        query_all.assert_awaited_once_with(IDENTITY, "after scheduled reconnection")
        assert physical_connection.is_connected
        assert len(conn.connect_calls) == 2
        assert not manager.reconnection_manager.has_scheduled_reconnection(IDENTITY)

    @pytest.mark.asyncio
    async def test_dropped_link_keeps_retrying(self, connection_factory: FakeConnectionFactory) -> None:
        manager = make_manager(connection_factory)
        await manager.create_and_connect(IDENTITY, make_config(reconnect_delay_secs=0.01))
        conn = connection_factory.created[0]
        conn.default_connect_result = False
        conn.drop()
        await wait_until(lambda: len(conn.connect_calls) >= 7)
        assert manager.reconnection_manager.has_scheduled_reconnection(IDENTITY)
        await manager.reconnection_manager.aclose()

    @pytest.mark.asyncio
    async def test_pending_retry_is_not_replaced(self, connection_factory: FakeConnectionFactory) -> None:
        manager = make_manager(connection_factory)
        await manager.create_and_connect(IDENTITY, make_config(reconnect_delay_secs=10.0))
        conn = connection_factory.created[0]
        conn.drop()
        record = manager.reconnection_manager._scheduled[IDENTITY]
        conn.drop()
        assert manager.reconnection_manager._scheduled[IDENTITY] is record
        await manager.reconnection_manager.aclose()

    @pytest.mark.asyncio
    async def test_cleared_connection_is_not_reconnected(self, connection_factory: FakeConnectionFactory) -> None:
        manager = make_manager(connection_factory)
        await manager.create_and_connect(IDENTITY, make_config(reconnect_delay_secs=10.0))
        await manager.clear_all_connections()
        connection_factory.created[0].drop()
        assert not manager.reconnection_manager.has_scheduled_reconnection(IDENTITY)


class TestDefaultFactory:
    """Tests for default_connection_factory."""

    @pytest.mark.asyncio
    async def test_builds_connection_from_config(self) -> None:
        config = make_config(port=60300, queue_threshold_ms=150, net_menu_delay_ms=700)
        conn = default_connection_factory(config)
        assert isinstance(conn, EiscpConnection)
        assert (conn.host, conn.port, conn.model) == (HOST, 60300, MODEL)
        assert conn.queue.send_delay_secs == pytest.approx(0.15)
        assert conn.queue.net_menu_delay_secs == pytest.approx(0.7)
        await conn.aclose()
