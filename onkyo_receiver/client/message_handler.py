# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Consumer of decoded messages from one physical receiver connection.

Routes each message to the bound zone it applies to, updates the shared
ZoneStateTracker and publishes entity attribute updates.
"""

from __future__ import annotations

from ..internal_types import *
from ..pkg_logging import logger
from ..util import zone_entity_id
from ..protocol import ReceiverMessage

from .zone_state import ZoneStateTracker, CLEARED_MEDIA_ATTRIBUTES
from .zone_registry import ZoneRegistry, ZoneBinding

MEDIA_SOURCES = ('net', 'spotify', 'airplay')
"""Sources that deliver now-playing metadata."""

DAB_SOURCE = 'dab'
DAB_ARTIST = 'DAB Radio'

def scale_volume(level: int, volume_scale: int) -> int:
    """Converts a receiver volume level (0..volume_scale) to 0..100."""
    if volume_scale <= 0:
        return level
    return max(0, min(100, round(level * 100 / volume_scale)))

def _seconds(text: str) -> int:
    text = text.strip()
    return int(text) if text.isdigit() else 0

class ReceiverMessageHandler:
    """Handles inbound messages of one physical receiver; set as the
    connection's message handler."""

    physical_identity: PhysicalIdentity
    registry: ZoneRegistry
    tracker: ZoneStateTracker
    publisher: Optional[StatePublisher]

    presets: Dict[ZoneIdentity, str]
    """The last reported radio preset of each zone."""

    now_playing: Dict[ZoneIdentity, Dict[str, str]]
    _last_track: Dict[ZoneIdentity, str]

    def __init__(
            self,
            physical_identity: PhysicalIdentity,
            registry: ZoneRegistry,
            tracker: ZoneStateTracker,
            publisher: Optional[StatePublisher]=None,
          ) -> None:
        self.physical_identity = physical_identity
        self.registry = registry
        self.tracker = tracker
        self.publisher = publisher
        self.presets = {}
        self.now_playing = {}
        self._last_track = {}

    def _publish(self, binding: ZoneBinding, attributes: Dict[str, Jsonable]) -> None:
        if self.publisher is None:
            return
        self.publisher(binding.entity_id, attributes)

    def __call__(self, message: ReceiverMessage) -> None:
        model, host = self.physical_identity
        zone_identity = (model, host, message.zone)
        binding = self.registry.get_binding(zone_identity)
        if binding is None:
            logger.debug(f"[{zone_entity_id(zone_identity)}] ignoring message for unbound zone: {message}")
            return
        self.handle_message(binding, message)

    def handle_message(self, binding: ZoneBinding, message: ReceiverMessage) -> None:
        zone_identity = binding.zone_identity
        command = message.command
        argument = message.argument

        if command == 'system-power':
            power_state = str(argument)
            self.tracker.set_power_state(zone_identity, power_state)
            self._publish(binding, dict(state='on' if power_state == 'on' else 'standby'))
        elif command == 'audio-muting':
            self._publish(binding, dict(muted=argument == 'on'))
        elif command == 'volume':
            if isinstance(argument, int):
                self._publish(binding, dict(volume=scale_volume(argument, binding.config.volume_scale)))
            else:
                logger.debug(f"[{binding.entity_id}] ignoring non-numeric volume {argument!r}")
        elif command == 'preset':
            self.presets[zone_identity] = str(argument)
            logger.debug(f"[{binding.entity_id}] preset set to {argument}")
        elif command == 'input-selector':
            source = str(argument).lower()
            self.tracker.set_source(zone_identity, source)
            self._publish(binding, dict(source=source))
        elif command == 'listening-mode':
            self._publish(binding, dict(sound_mode=str(argument)))
        elif command == 'audio-information':
            audio_format = str(argument).split(',')[0].strip()
            if audio_format != '':
                self.tracker.set_audio_format(zone_identity, audio_format)
        elif command == 'fp-display':
            if self.tracker.get_source(zone_identity) == 'net' and isinstance(argument, str):
                tokens = argument.split()
                if len(tokens) > 0:
                    self.tracker.set_sub_source(zone_identity, tokens[0])
        elif command == 'DSN':
            self.tracker.set_source(zone_identity, DAB_SOURCE)
            self._publish(binding, dict(
                source=DAB_SOURCE,
                media_artist=DAB_ARTIST,
                media_title=str(argument),
                media_album='',
              ))
        elif command == 'NTM':
            position, _, duration = str(argument).partition('/')
            self._publish(binding, dict(
                media_position=_seconds(position),
                media_duration=_seconds(duration),
              ))
        elif command == 'metadata' and isinstance(argument, dict):
            self.now_playing[zone_identity] = dict(argument)
            self._publish_now_playing(binding)

    def _publish_now_playing(self, binding: ZoneBinding) -> None:
        zone_identity = binding.zone_identity
        source = self.tracker.get_source(zone_identity)
        if source not in MEDIA_SOURCES:
            if source != DAB_SOURCE:
                self._publish(binding, dict(CLEARED_MEDIA_ATTRIBUTES))
            return
        now_playing = self.now_playing.get(zone_identity, {})
        artist = now_playing.get('artist') or 'unknown'
        title = now_playing.get('title') or 'unknown'
        album = now_playing.get('album') or 'unknown'
        track = f"{title}|{album}|{artist}"
        if self._last_track.get(zone_identity) == track:
            return
        self._last_track[zone_identity] = track
        attributes: Dict[str, Jsonable] = dict(
            media_artist=artist,
            media_title=title,
            media_album=album,
          )
        album_art_url = binding.config.album_art_url
        if album_art_url and album_art_url != 'na':
            attributes['media_image_url'] = f"http://{binding.config.host}/{album_art_url}"
        self._publish(binding, attributes)
