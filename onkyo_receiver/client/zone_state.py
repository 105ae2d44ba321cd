# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Per-zone receiver state cache and state polling.

One ZoneStateTracker is created by the client and shared by every component
that reads or updates zone state. It remembers the source, network sub-source,
audio format and power state of each zone, triggers a refresh cascade of
queries when the source changes, and keeps the timestamp of the last full
state poll of each zone so that polls are not repeated within
QUERY_DEDUP_TTL seconds.
"""

from __future__ import annotations

import time
import asyncio

from ..internal_types import *
from ..exceptions import OnkyoReceiverError, QueryFailure
from ..constants import QUERY_DEDUP_TTL, DEFAULT_STATE_QUERY_THRESHOLD_MS
from ..pkg_logging import logger
from ..util import zone_entity_id
from ..protocol import EiscpCommand, QUERY_ARGUMENT

from .transport_connection import EiscpConnection

UNKNOWN = 'unknown'

SendQuery = Callable[[ZoneIdentity, EiscpCommand], Awaitable[Any]]
"""Sends a query command on behalf of a zone."""

CLEARED_MEDIA_ATTRIBUTES: Dict[str, Jsonable] = dict(
    media_artist='',
    media_title='',
    media_album='',
    media_image_url='',
    media_position=0,
    media_duration=0,
  )
"""Published when the source changes so stale now-playing data is not shown."""

class ZoneState:
    """The cached state of one zone. All values are lowercase."""
    source: str
    sub_source: str
    audio_format: str
    power_state: str

    def __init__(self) -> None:
        self.source = UNKNOWN
        self.sub_source = UNKNOWN
        self.audio_format = UNKNOWN
        self.power_state = UNKNOWN

    def to_jsonable(self) -> JsonableDict:
        return dict(
            source=self.source,
            sub_source=self.sub_source,
            audio_format=self.audio_format,
            power_state=self.power_state,
          )

    def __str__(self) -> str:
        return f"ZoneState(source={self.source}, sub_source={self.sub_source}, audio_format={self.audio_format}, power_state={self.power_state})"

    def __repr__(self) -> str:
        return str(self)

class ZoneStateTracker:
    send_query: Optional[SendQuery]
    """Used by the refresh cascade. If None, source changes do not trigger a cascade."""

    publisher: Optional[StatePublisher]

    clock: Callable[[], float]
    """Returns the current time in seconds; time.monotonic by default."""

    query_ttl_secs: float
    default_threshold_secs: float

    _states: Dict[ZoneIdentity, ZoneState]
    _last_queries: Dict[ZoneIdentity, float]
    _thresholds: Dict[ZoneIdentity, float]
    _cascade_tasks: Set[asyncio.Task[None]]

    def __init__(
            self,
            send_query: Optional[SendQuery]=None,
            publisher: Optional[StatePublisher]=None,
            clock: Callable[[], float]=time.monotonic,
            query_ttl_secs: float=QUERY_DEDUP_TTL,
            default_threshold_secs: float=DEFAULT_STATE_QUERY_THRESHOLD_MS / 1000.0,
          ) -> None:
        self.send_query = send_query
        self.publisher = publisher
        self.clock = clock
        self.query_ttl_secs = query_ttl_secs
        self.default_threshold_secs = default_threshold_secs
        self._states = {}
        self._last_queries = {}
        self._thresholds = {}
        self._cascade_tasks = set()

    def get_state(self, zone_identity: ZoneIdentity) -> ZoneState:
        """Returns the state of a zone, creating it if it does not exist."""
        state = self._states.get(zone_identity)
        if state is None:
            state = ZoneState()
            self._states[zone_identity] = state
        return state

    def get_source(self, zone_identity: ZoneIdentity) -> str:
        return self.get_state(zone_identity).source

    def get_sub_source(self, zone_identity: ZoneIdentity) -> str:
        return self.get_state(zone_identity).sub_source

    def get_audio_format(self, zone_identity: ZoneIdentity) -> str:
        return self.get_state(zone_identity).audio_format

    def get_power_state(self, zone_identity: ZoneIdentity) -> str:
        return self.get_state(zone_identity).power_state

    def is_on(self, zone_identity: ZoneIdentity) -> bool:
        return self.get_state(zone_identity).power_state == 'on'

    def set_query_threshold(self, zone_identity: ZoneIdentity, threshold_secs: float) -> None:
        """Sets the spacing between queries of a zone's refresh cascade."""
        self._thresholds[zone_identity] = threshold_secs

    def get_query_threshold(self, zone_identity: ZoneIdentity) -> float:
        return self._thresholds.get(zone_identity, self.default_threshold_secs)

    # ---- setters ----

    def set_source(self, zone_identity: ZoneIdentity, source: str) -> bool:
        """Sets the source of a zone. On change, the sub-source is reset and a
        refresh cascade is started.

        Returns:
            True if the source changed.
        """
        state = self.get_state(zone_identity)
        normalized = source.lower()
        if state.source == normalized:
            return False
        logger.info(f"[{zone_entity_id(zone_identity)}] source changed from '{state.source}' to '{normalized}'")
        state.source = normalized
        state.sub_source = UNKNOWN
        self._start_refresh(zone_identity)
        return True

    def set_sub_source(self, zone_identity: ZoneIdentity, sub_source: str) -> bool:
        """Sets the network sub-source of a zone. On change, a refresh cascade is started."""
        state = self.get_state(zone_identity)
        normalized = sub_source.lower()
        if state.sub_source == normalized:
            return False
        logger.info(f"[{zone_entity_id(zone_identity)}] sub-source changed from '{state.sub_source}' to '{normalized}'")
        state.sub_source = normalized
        self._start_refresh(zone_identity)
        return True

    def set_power_state(self, zone_identity: ZoneIdentity, power_state: str) -> bool:
        state = self.get_state(zone_identity)
        normalized = power_state.lower()
        if state.power_state == normalized:
            return False
        logger.info(f"[{zone_entity_id(zone_identity)}] power state changed from '{state.power_state}' to '{normalized}'")
        state.power_state = normalized
        return True

    def set_audio_format(self, zone_identity: ZoneIdentity, audio_format: str) -> bool:
        state = self.get_state(zone_identity)
        normalized = audio_format.lower()
        if state.audio_format == normalized:
            return False
        logger.info(f"[{zone_entity_id(zone_identity)}] audio format changed from '{state.audio_format}' to '{normalized}'")
        state.audio_format = normalized
        return True

    def clear_state(self, zone_identity: ZoneIdentity) -> None:
        self._states.pop(zone_identity, None)
        self._last_queries.pop(zone_identity, None)
        self._thresholds.pop(zone_identity, None)

    def clear_all(self) -> None:
        self._states.clear()
        self._last_queries.clear()
        self._thresholds.clear()

    # ---- refresh cascade ----

    @property
    def pending_refreshes(self) -> List[asyncio.Task[None]]:
        """Refresh cascades that have not finished yet."""
        return list(self._cascade_tasks)

    def _start_refresh(self, zone_identity: ZoneIdentity) -> None:
        if self.send_query is None:
            return
        task = asyncio.create_task(self.refresh_avr_state(zone_identity))
        self._cascade_tasks.add(task)
        task.add_done_callback(self._cascade_tasks.discard)

    async def refresh_avr_state(self, zone_identity: ZoneIdentity) -> None:
        """Re-queries the state that depends on the source, and clears the
        published now-playing attributes.

        Errors are logged, not raised.
        """
        send_query = self.send_query
        if send_query is None:
            return
        entity_id = zone_entity_id(zone_identity)
        zone = zone_identity[2]
        threshold = self.get_query_threshold(zone_identity)

        async def query(command: str) -> None:
            try:
                await send_query(zone_identity, EiscpCommand(command, QUERY_ARGUMENT, zone=zone))
            except OnkyoReceiverError as e:
                raise QueryFailure(f"[{entity_id}] {command} query failed: {e}") from e

        try:
            logger.info(f"[{entity_id}] querying volume for zone '{zone}'")
            await query('volume')
            if self.publisher is not None:
                self.publisher(entity_id, dict(CLEARED_MEDIA_ATTRIBUTES))
            await asyncio.sleep(threshold)
            logger.info(f"[{entity_id}] querying AV-info for zone '{zone}'")
            await query('audio-information')
            await asyncio.sleep(threshold)
            await query('video-information')
            await asyncio.sleep(threshold)
            await query('input-selector')
            await asyncio.sleep(threshold * 3)
            await query('listening-mode')
            await asyncio.sleep(threshold)
            await query('fp-display')
        except QueryFailure as e:
            logger.warning(f"Failed to refresh receiver state: {e}")

    # ---- query deduplication ----

    def should_query(self, zone_identity: ZoneIdentity) -> bool:
        """Returns True unless the zone was polled within the last query_ttl_secs."""
        last = self._last_queries.get(zone_identity)
        if last is None:
            return True
        return self.clock() - last > self.query_ttl_secs

    def record_query(self, zone_identity: ZoneIdentity) -> None:
        self._last_queries[zone_identity] = self.clock()

    def record_queries(self, zone_identities: Iterable[ZoneIdentity]) -> None:
        now = self.clock()
        for zone_identity in zone_identities:
            self._last_queries[zone_identity] = now

    async def query_avr_state(
            self,
            zone_identity: ZoneIdentity,
            connection: EiscpConnection,
            zone: str,
            context: str,
            threshold_secs: Optional[float]=None,
          ) -> None:
        """Polls the general state of one zone: power, input, volume, muting,
        listening mode and front panel display.

        Skipped if the zone was polled within the last query_ttl_secs. A failed
        poll is logged and leaves the cached state untouched.
        """
        entity_id = zone_entity_id(zone_identity)
        if not self.should_query(zone_identity):
            logger.debug(f"[{entity_id}] skipping redundant query ({context})")
            return
        self.record_query(zone_identity)
        if threshold_secs is None:
            threshold_secs = self.get_query_threshold(zone_identity)

        async def query(command: str) -> None:
            try:
                await connection.send_command(EiscpCommand(command, QUERY_ARGUMENT, zone=zone))
            except OnkyoReceiverError as e:
                raise QueryFailure(f"{command} query failed: {e}") from e

        logger.info(f"[{entity_id}] Querying receiver state for zone {zone} ({context})")
        try:
            await query('system-power')
            await asyncio.sleep(threshold_secs)
            await query('input-selector')
            await asyncio.sleep(threshold_secs)
            await query('volume')
            await asyncio.sleep(threshold_secs)
            await query('audio-muting')
            await asyncio.sleep(threshold_secs)
            await query('listening-mode')
            await asyncio.sleep(threshold_secs * 3)
            await query('fp-display')
        except QueryFailure as e:
            logger.warning(f"[{entity_id}] Failed to query receiver state ({context}): {e}")

    async def aclose(self) -> None:
        """Cancels any running refresh cascades."""
        tasks = list(self._cascade_tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
