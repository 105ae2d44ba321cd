# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Shared fixtures for onkyo_receiver tests."""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio

from onkyo_receiver.client import ReceiverConfig
from onkyo_receiver.client.transport_connection import ConnectionInfo
from onkyo_receiver.emulator import OnkyoReceiverEmulator
from onkyo_receiver.exceptions import ConnectionTimeoutError, NotConnectedError
from onkyo_receiver.protocol import CommandTranslator, EiscpCommand, ReceiverMessage, as_command

MODEL = "TX-NR686"
HOST = "192.168.1.20"
HOST2 = "192.168.1.21"


class FakeConnection:
    """Stands in for EiscpConnection in component tests.

    connect_results is consumed one entry per connect() call: True makes the
    connection come up, False leaves it down so wait_for_connect() times out.
    When the list is exhausted, default_connect_result is used.
    """

    def __init__(
        self,
        config: Optional[ReceiverConfig] = None,
        connect_results: Optional[List[bool]] = None,
        default_connect_result: bool = True,
    ) -> None:
        self.config = config
        self.host = None if config is None else config.host
        self.model = None if config is None else config.model
        self.port = 60128 if config is None else config.port
        self.connected = False
        self.connect_results = [] if connect_results is None else list(connect_results)
        self.default_connect_result = default_connect_result
        self.connect_calls: List[Tuple[Any, ...]] = []
        self.wait_timeouts: List[float] = []
        self.sent: List[str] = []
        self.sent_commands: List[EiscpCommand] = []
        self.message_handler: Optional[Callable[[ReceiverMessage], None]] = None
        self.close_listeners: List[Any] = []
        self.error_listeners: List[Any] = []
        self.disconnect_calls = 0
        self.translator = CommandTranslator()
        self._pending_result = False

    @property
    def is_connected(self) -> bool:
        return self.connected

    @property
    def info(self) -> ConnectionInfo:
        return ConnectionInfo(self.model, self.host, self.port)

    def set_message_handler(self, handler: Optional[Callable[[ReceiverMessage], None]]) -> None:
        self.message_handler = handler

    def add_close_listener(self, listener: Any) -> None:
        self.close_listeners.append(listener)

    def add_error_listener(self, listener: Any) -> None:
        self.error_listeners.append(listener)

    async def connect(self, host: Optional[str] = None, port: Optional[int] = None, model: Optional[str] = None) -> ConnectionInfo:
        self.connect_calls.append((host, port, model))
        if len(self.connect_results) > 0:
            self._pending_result = self.connect_results.pop(0)
        else:
            self._pending_result = self.default_connect_result
        return self.info

    async def wait_for_connect(self, timeout_secs: float = 5.0) -> None:
        self.wait_timeouts.append(timeout_secs)
        if self.connected:
            return
        if self._pending_result:
            self.connected = True
            return
        raise ConnectionTimeoutError(f"not connected within {timeout_secs} seconds")

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False

    async def send_raw(self, message: str) -> None:
        if not self.connected:
            raise NotConnectedError("Send command, while not connected")
        self.sent.append(message)

    async def send_command(self, command: Any) -> str:
        cmd = as_command(command)
        iscp_message = self.translator.command_to_iscp(cmd.command, cmd.args, cmd.zone)
        await self.send_raw(iscp_message)
        self.sent_commands.append(cmd)
        return iscp_message

    def receive(self, iscp_message: str) -> None:
        """Simulates a telegram arriving from the receiver."""
        message = self.translator.iscp_to_command(iscp_message)
        message.host = self.host
        message.model = self.model
        assert self.message_handler is not None
        self.message_handler(message)

    def drop(self) -> None:
        """Simulates the receiver closing the socket."""
        self.connected = False
        for listener in self.close_listeners:
            listener(self, None)


class FakeConnectionFactory:
    """A connection factory that records every FakeConnection it creates."""

    def __init__(self, default_connect_result: bool = True) -> None:
        self.default_connect_result = default_connect_result
        self.connect_results: Dict[Tuple[str, str], List[bool]] = {}
        self.created: List[FakeConnection] = []

    def __call__(self, config: ReceiverConfig) -> FakeConnection:
        results = self.connect_results.get((config.model, config.host))
        connection = FakeConnection(
            config,
            connect_results=results,
            default_connect_result=self.default_connect_result,
        )
        self.created.append(connection)
        return connection


class PublishedStates:
    """Collects (entity_id, attributes) updates from a state publisher."""

    def __init__(self) -> None:
        self.updates: List[Tuple[str, Dict[str, Any]]] = []

    def __call__(self, entity_id: str, attributes: Dict[str, Any]) -> None:
        self.updates.append((entity_id, dict(attributes)))

    def merged(self, entity_id: str) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for eid, attributes in self.updates:
            if eid == entity_id:
                result.update(attributes)
        return result

    def with_key(self, key: str) -> List[Any]:
        return [attributes[key] for _, attributes in self.updates if key in attributes]


def make_config(
    host: str = HOST,
    model: str = MODEL,
    zone: str = "main",
    **kwargs: Any,
) -> ReceiverConfig:
    kwargs.setdefault("queue_threshold_ms", 0)
    return ReceiverConfig(host=host, model=model, zone=zone, use_config_file=False, **kwargs)


class ManualClock:
    """A settable clock for query deduplication tests."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, secs: float) -> None:
        self.now += secs


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep ONKYO_RECEIVER_* settings of the developer's shell out of tests."""
    for name in (
        "ONKYO_RECEIVER_CONFIG_FILE",
        "ONKYO_RECEIVER_HOST",
        "ONKYO_RECEIVER_PORT",
        "ONKYO_RECEIVER_MODEL",
        "ONKYO_RECEIVER_ZONE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config() -> ReceiverConfig:
    return make_config()


@pytest.fixture
def published() -> PublishedStates:
    return PublishedStates()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def connection_factory() -> FakeConnectionFactory:
    return FakeConnectionFactory()


@pytest_asyncio.fixture
async def emulator() -> AsyncIterator[OnkyoReceiverEmulator]:
    """A receiver emulator on loopback, with ephemeral TCP and UDP ports."""
    async with OnkyoReceiverEmulator(bind_addr="127.0.0.1", port=0, discovery_port=0) as emu:
        yield emu


async def wait_until(predicate: Callable[[], bool], timeout_secs: float = 2.0) -> None:
    """Polls predicate until it is true; fails the test on timeout."""
    loop = asyncio.get_running_loop()
    end_time = loop.time() + timeout_secs
    while not predicate():
        if loop.time() > end_time:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)
