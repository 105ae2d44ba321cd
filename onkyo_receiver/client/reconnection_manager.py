# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Reconnection policy for physical receiver connections.

Two retry policies are provided:

  1. attempt_reconnection(): a finite sequence of connect attempts with
     progressive timeouts. Gives up after the last timeout.
  2. schedule_reconnection(): a background retry task that waits, then runs
     attempt_reconnection(), and repeats until it succeeds or is cancelled.

At most one scheduled retry task exists per physical identity.
"""

from __future__ import annotations

import asyncio
import inspect
from aenum import Enum as AEnum

from ..internal_types import *
from ..exceptions import OnkyoReceiverError
from ..constants import RECONNECT_TIMEOUTS, SCHEDULED_RECONNECT_DELAY
from ..pkg_logging import logger

from .transport_connection import EiscpConnection, ConnectionInfo

class ReconnectionState(AEnum):
    IDLE = 'idle'
    SCHEDULED_WAIT = 'scheduled_wait'
    ATTEMPTING = 'attempting'

class ReconnectResult(NamedTuple):
    success: bool
    attempts: int

ShouldSkipCallback = Callable[[], bool]
OnReconnectedCallback = Callable[[PhysicalIdentity], Optional[Awaitable[None]]]

def _identity_str(identity: PhysicalIdentity) -> str:
    return f"{identity[0]} {identity[1]}"

class ScheduledReconnection:
    """The record of one scheduled retry task."""

    identity: PhysicalIdentity
    state: ReconnectionState = ReconnectionState.SCHEDULED_WAIT

    cycles: int = 0
    """The number of attempt_reconnection() sequences run so far."""

    cancelled: bool = False
    task: Optional[asyncio.Task[None]] = None

    def __init__(self, identity: PhysicalIdentity) -> None:
        self.identity = identity

    def __str__(self) -> str:
        return f"ScheduledReconnection({_identity_str(self.identity)}, state={self.state.name}, cycles={self.cycles})"

    def __repr__(self) -> str:
        return str(self)

class ReconnectionManager:
    timeouts: Tuple[float, ...]
    """wait_for_connect() timeouts, one per attempt, in seconds."""

    schedule_delay_secs: float
    """Delay before each scheduled attempt sequence, in seconds."""

    _scheduled: Dict[PhysicalIdentity, ScheduledReconnection]

    def __init__(
            self,
            timeouts: Sequence[float]=RECONNECT_TIMEOUTS,
            schedule_delay_secs: float=SCHEDULED_RECONNECT_DELAY,
          ) -> None:
        self.timeouts = tuple(timeouts)
        self.schedule_delay_secs = schedule_delay_secs
        self._scheduled = {}

    async def attempt_reconnection(
            self,
            identity: PhysicalIdentity,
            connection: EiscpConnection,
            info: ConnectionInfo,
            context: str='reconnection',
          ) -> ReconnectResult:
        """Tries to connect once per configured timeout, in order.

        Returns on the first success. Never retries beyond the timeout sequence.
        """
        n = len(self.timeouts)
        for attempt, timeout in enumerate(self.timeouts, start=1):
            logger.info(f"[{_identity_str(identity)}] {context} attempt {attempt}/{n} (timeout: {timeout}s)")
            try:
                await connection.connect(info.host, info.port, info.model)
                await connection.wait_for_connect(timeout)
                logger.info(f"[{_identity_str(identity)}] Successfully reconnected ({context})")
                return ReconnectResult(True, attempt)
            except OnkyoReceiverError as e:
                logger.warning(f"[{_identity_str(identity)}] {context} attempt {attempt}/{n} failed: {e}")
        logger.warning(f"[{_identity_str(identity)}] Failed to reconnect after all attempts ({context})")
        return ReconnectResult(False, n)

    def schedule_reconnection(
            self,
            identity: PhysicalIdentity,
            connection: EiscpConnection,
            info: ConnectionInfo,
            should_skip: ShouldSkipCallback,
            on_reconnected: OnReconnectedCallback,
            delay_secs: Optional[float]=None,
          ) -> ScheduledReconnection:
        """Starts a background task that retries until connected or cancelled.

        Any retry task already scheduled for the identity is cancelled first.
        Before each attempt sequence the task waits delay_secs and calls
        should_skip(); if that returns True the task ends without retrying.
        After a successful sequence on_reconnected(identity) is called (and
        awaited, if it returns an awaitable).
        """
        self.cancel_scheduled_reconnection(identity)
        if delay_secs is None:
            delay_secs = self.schedule_delay_secs
        logger.info(f"[{_identity_str(identity)}] Scheduling reconnection attempt in {delay_secs} seconds")
        record = ScheduledReconnection(identity)
        self._scheduled[identity] = record
        record.task = asyncio.create_task(
            self._retry_loop(record, connection, info, should_skip, on_reconnected, delay_secs))
        return record

    async def _retry_loop(
            self,
            record: ScheduledReconnection,
            connection: EiscpConnection,
            info: ConnectionInfo,
            should_skip: ShouldSkipCallback,
            on_reconnected: OnReconnectedCallback,
            delay_secs: float,
          ) -> None:
        identity = record.identity
        succeeded = False
        try:
            while not record.cancelled:
                record.state = ReconnectionState.SCHEDULED_WAIT
                await asyncio.sleep(delay_secs)
                if record.cancelled:
                    break
                try:
                    skip = should_skip()
                except Exception:
                    logger.exception(f"[{_identity_str(identity)}] should_skip callback failed")
                    skip = False
                if skip:
                    logger.info(f"[{_identity_str(identity)}] Skipping scheduled reconnection")
                    break
                record.state = ReconnectionState.ATTEMPTING
                record.cycles += 1
                result = await self.attempt_reconnection(
                    identity, connection, info, context='Scheduled reconnection')
                if record.cancelled:
                    logger.debug(f"[{_identity_str(identity)}] Scheduled reconnection cancelled during attempt")
                    break
                if result.success:
                    succeeded = True
                    break
                logger.info(
                    f"[{_identity_str(identity)}] All scheduled reconnection attempts failed, "
                    f"will retry again in {delay_secs} seconds")
        finally:
            record.state = ReconnectionState.IDLE
            if self._scheduled.get(identity) is record:
                del self._scheduled[identity]
        if succeeded:
            try:
                result_awaitable = on_reconnected(identity)
                if inspect.isawaitable(result_awaitable):
                    await result_awaitable
            except Exception:
                logger.exception(f"[{_identity_str(identity)}] on_reconnected callback failed")

    def cancel_scheduled_reconnection(self, identity: PhysicalIdentity) -> bool:
        """Cancels the retry task for an identity.

        A task that is waiting is stopped immediately. A task in the middle of
        an attempt sequence is allowed to finish the sequence, then exits
        without calling on_reconnected.

        Returns:
            True if a retry task was scheduled.
        """
        record = self._scheduled.pop(identity, None)
        if record is None:
            return False
        logger.debug(f"[{_identity_str(identity)}] Cancelling scheduled reconnection")
        record.cancelled = True
        if record.state != ReconnectionState.ATTEMPTING and record.task is not None:
            record.task.cancel()
        return True

    def cancel_all_scheduled_reconnections(self) -> None:
        for identity in list(self._scheduled.keys()):
            self.cancel_scheduled_reconnection(identity)

    def has_scheduled_reconnection(self, identity: PhysicalIdentity) -> bool:
        return identity in self._scheduled

    def get_state(self, identity: PhysicalIdentity) -> ReconnectionState:
        record = self._scheduled.get(identity)
        if record is None:
            return ReconnectionState.IDLE
        return record.state

    async def aclose(self) -> None:
        """Cancels all retry tasks, including attempts in progress, and waits for them."""
        records = list(self._scheduled.values())
        self._scheduled.clear()
        for record in records:
            record.cancelled = True
            if record.task is not None:
                record.task.cancel()
        for record in records:
            if record.task is not None:
                try:
                    await record.task
                except asyncio.CancelledError:
                    pass
