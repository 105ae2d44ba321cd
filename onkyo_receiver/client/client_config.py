# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Onkyo receiver zone configuration.

One ReceiverConfig describes one controllable zone of one physical receiver.
Several configs with the same (model, host) share a single connection.
"""

from __future__ import annotations

import os
import json

from ..internal_types import *
from ..exceptions import ConfigError
from ..constants import (
    DEFAULT_PORT,
    DEFAULT_DISCOVERY_TIMEOUT,
    DEFAULT_QUEUE_THRESHOLD_MS,
    DEFAULT_NET_MENU_DELAY_MS,
    DEFAULT_VOLUME_SCALE,
    DEFAULT_ALBUM_ART_URL,
    SCHEDULED_RECONNECT_DELAY,
  )
from ..pkg_logging import logger
from ..protocol import ZONES, DEFAULT_ZONE

VALID_VOLUME_SCALES = (80, 100)

_CAMEL_CASE_KEYS: Dict[str, str] = {
    'ip': 'host',
    'queueThreshold': 'queue_threshold_ms',
    'netMenuDelay': 'net_menu_delay_ms',
    'volumeScale': 'volume_scale',
    'albumArtURL': 'album_art_url',
  }
"""Alternate key names accepted in JSON configuration."""

class ReceiverConfig:
    """Configuration of one zone of an Onkyo receiver."""
    model: Optional[str]
    host: Optional[str]
    port: int
    zone: str
    queue_threshold_ms: int
    net_menu_delay_ms: int
    volume_scale: int
    album_art_url: str
    timeout_secs: float
    reconnect_delay_secs: float

    def __init__(
            self,
            host: Optional[str]=None,
            model: Optional[str]=None,
            *,
            port: Optional[int]=None,
            zone: Optional[str]=None,
            queue_threshold_ms: Optional[int]=None,
            net_menu_delay_ms: Optional[int]=None,
            volume_scale: Optional[int]=None,
            album_art_url: Optional[str]=None,
            timeout_secs: Optional[float]=None,
            reconnect_delay_secs: Optional[float]=None,
            base_config: Optional[ReceiverConfig]=None,
            use_config_file: bool=True,
          ) -> None:
        """Creates a configuration for one receiver zone.

           Args:
             host: The hostname or IPV4 address of the receiver. If None,
                   the host will be taken from the ONKYO_RECEIVER_HOST
                   environment variable. If still unknown, the receiver is
                   found with UDP discovery at connect time.
             model:
                   The receiver model, e.g. "TX-NR686". If None, the model
                   will be taken from the ONKYO_RECEIVER_MODEL environment
                   variable. If still unknown, a discovery query is sent
                   directly to the host at connect time.
             port: The eISCP TCP port. If None, taken from ONKYO_RECEIVER_PORT,
                   or 60128.
             zone: "main", "zone2" or "zone3". Default "main".
             queue_threshold_ms:
                   The minimum spacing between consecutive commands sent
                   to the receiver, in milliseconds. Also spaces the
                   queries of a state poll. Default 100.
             net_menu_delay_ms:
                   The delay between selecting the NET input and selecting
                   a network service, in milliseconds. Default 500.
             volume_scale:
                   The receiver's maximum volume step, 80 or 100. Received
                   volume levels are scaled from this to 0..100.
             album_art_url:
                   The path of the receiver's album art resource.
             timeout_secs:
                   The discovery timeout, in seconds. Default 10.
             reconnect_delay_secs:
                   The delay before each background reconnection attempt,
                   in seconds. Default 30.
             base_config:
                   An optional base configuration to use instead of defaults.
             use_config_file:
                   If True and base_config is None, the JSON file named by
                   ONKYO_RECEIVER_CONFIG_FILE and then the ONKYO_RECEIVER_*
                   environment variables are applied over the defaults.
        """
        if base_config is None:
            self.init_from_defaults(use_config_file=use_config_file)
        else:
            self.init_from_base_config(base_config)

        if host is not None and host != '':
            self.host = host

        if model is not None and model != '':
            self.model = model

        if port is not None and port > 0:
            self.port = port

        if zone is not None and zone != '':
            self.zone = zone

        if queue_threshold_ms is not None:
            self.queue_threshold_ms = queue_threshold_ms

        if net_menu_delay_ms is not None:
            self.net_menu_delay_ms = net_menu_delay_ms

        if volume_scale is not None:
            self.volume_scale = volume_scale

        if album_art_url is not None:
            self.album_art_url = album_art_url

        if timeout_secs is not None:
            self.timeout_secs = timeout_secs

        if reconnect_delay_secs is not None:
            self.reconnect_delay_secs = reconnect_delay_secs

        self.validate()

    def init_from_defaults(self, use_config_file: bool=True) -> None:
        """Initializes the configuration from defaults."""
        self.model = None
        self.host = None
        self.port = DEFAULT_PORT
        self.zone = DEFAULT_ZONE
        self.queue_threshold_ms = DEFAULT_QUEUE_THRESHOLD_MS
        self.net_menu_delay_ms = DEFAULT_NET_MENU_DELAY_MS
        self.volume_scale = DEFAULT_VOLUME_SCALE
        self.album_art_url = DEFAULT_ALBUM_ART_URL
        self.timeout_secs = DEFAULT_DISCOVERY_TIMEOUT
        self.reconnect_delay_secs = SCHEDULED_RECONNECT_DELAY

        if use_config_file:
            config_file = os.environ.get('ONKYO_RECEIVER_CONFIG_FILE')
            if config_file is not None and config_file != '':
                try:
                    with open(config_file, 'r') as f:
                        config_jsonable = json.load(f)
                except (OSError, ValueError) as e:
                    raise ConfigError(f"Unable to read config file {config_file!r}: {e}") from e
                self.update_from_jsonable(config_jsonable)
            self.update_from_environment()

    def update_from_environment(self) -> None:
        """Applies the ONKYO_RECEIVER_* environment variables."""
        host = os.environ.get('ONKYO_RECEIVER_HOST')
        if host is not None and host != '':
            self.host = host
        model = os.environ.get('ONKYO_RECEIVER_MODEL')
        if model is not None and model != '':
            self.model = model
        port_str = os.environ.get('ONKYO_RECEIVER_PORT')
        if port_str is not None and port_str != '':
            try:
                self.port = int(port_str)
            except ValueError as e:
                raise ConfigError(f"Invalid ONKYO_RECEIVER_PORT: {port_str!r}") from e
        zone = os.environ.get('ONKYO_RECEIVER_ZONE')
        if zone is not None and zone != '':
            self.zone = zone

    def init_from_base_config(self, base_config: ReceiverConfig) -> None:
        """Initializes the configuration from a base configuration."""
        self.model = base_config.model
        self.host = base_config.host
        self.port = base_config.port
        self.zone = base_config.zone
        self.queue_threshold_ms = base_config.queue_threshold_ms
        self.net_menu_delay_ms = base_config.net_menu_delay_ms
        self.volume_scale = base_config.volume_scale
        self.album_art_url = base_config.album_art_url
        self.timeout_secs = base_config.timeout_secs
        self.reconnect_delay_secs = base_config.reconnect_delay_secs

    def validate(self, require_address: bool=False) -> None:
        """Raises ConfigError if the configuration is not usable.

        A bare connection can discover a missing host or model, so they are
        only checked if require_address is True.
        """
        if require_address:
            if self.host is None or self.host == "":
                raise ConfigError(f"Receiver host is required for zone {self.zone}")
            if self.model is None or self.model == "":
                raise ConfigError(f"Receiver model is required for {self.host}")
        if self.zone not in ZONES:
            raise ConfigError(f"Unknown zone {self.zone!r}; expected one of {', '.join(ZONES)}")
        if self.volume_scale not in VALID_VOLUME_SCALES:
            raise ConfigError(f"Invalid volume scale {self.volume_scale}; expected 80 or 100")
        if self.queue_threshold_ms < 0 or self.net_menu_delay_ms < 0:
            raise ConfigError("Delays must not be negative")

    @property
    def send_delay_secs(self) -> float:
        """The minimum spacing between consecutive commands, in seconds."""
        return self.queue_threshold_ms / 1000.0

    @property
    def net_menu_delay_secs(self) -> float:
        return self.net_menu_delay_ms / 1000.0

    @property
    def physical_identity(self) -> PhysicalIdentity:
        """The (model, host) identity of the receiver. Requires model and host."""
        if self.model is None or self.host is None:
            raise ConfigError(f"Receiver model and host are required: {self}")
        return (self.model, self.host)

    @property
    def zone_identity(self) -> ZoneIdentity:
        """The (model, host, zone) identity of this zone. Requires model and host."""
        model, host = self.physical_identity
        return (model, host, self.zone)

    def to_jsonable(self) -> JsonableDict:
        """Returns a JSON-serializable representation of the configuration."""
        result: JsonableDict = dict(
            port=self.port,
            zone=self.zone,
            queue_threshold_ms=self.queue_threshold_ms,
            net_menu_delay_ms=self.net_menu_delay_ms,
            volume_scale=self.volume_scale,
            album_art_url=self.album_art_url,
            timeout_secs=self.timeout_secs,
            reconnect_delay_secs=self.reconnect_delay_secs,
          )
        if self.model is not None:
            result['model'] = self.model
        if self.host is not None:
            result['host'] = self.host
        return result

    def to_json(self) -> str:
        """Returns a JSON representation of the configuration."""
        return json.dumps(self.to_jsonable())

    def update_from_jsonable(self, jsonable: JsonableDict) -> None:
        """Updates the configuration from a JSON-serializable representation.

        Empty or missing values leave the current setting unchanged.
        """
        normalized: Dict[str, Any] = {}
        for key, value in jsonable.items():
            normalized[_CAMEL_CASE_KEYS.get(key, key)] = value
        try:
            host = normalized.get('host')
            if host is not None and host != '':
                self.host = str(host)
            model = normalized.get('model')
            if model is not None and model != '':
                self.model = str(model)
            port = normalized.get('port')
            if port is not None and port != '':
                self.port = int(port)
            zone = normalized.get('zone')
            if zone is not None and zone != '':
                self.zone = str(zone)
            queue_threshold_ms = normalized.get('queue_threshold_ms')
            if queue_threshold_ms is not None and queue_threshold_ms != '':
                self.queue_threshold_ms = int(queue_threshold_ms)
            net_menu_delay_ms = normalized.get('net_menu_delay_ms')
            if net_menu_delay_ms is not None and net_menu_delay_ms != '':
                self.net_menu_delay_ms = int(net_menu_delay_ms)
            volume_scale = normalized.get('volume_scale')
            if volume_scale is not None and volume_scale != '':
                self.volume_scale = int(volume_scale)
            album_art_url = normalized.get('album_art_url')
            if album_art_url is not None:
                self.album_art_url = str(album_art_url)
            timeout_secs = normalized.get('timeout_secs')
            if timeout_secs is not None and timeout_secs != '':
                self.timeout_secs = float(timeout_secs)
            reconnect_delay_secs = normalized.get('reconnect_delay_secs')
            if reconnect_delay_secs is not None and reconnect_delay_secs != '':
                self.reconnect_delay_secs = float(reconnect_delay_secs)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid receiver configuration {jsonable!r}: {e}") from e

    @classmethod
    def from_jsonable(cls, jsonable: JsonableDict, use_config_file: bool=True) -> 'ReceiverConfig':
        """Creates a configuration from a JSON-serializable representation."""
        result = cls(use_config_file=use_config_file)
        result.update_from_jsonable(jsonable)
        result.validate()
        return result

    @classmethod
    def from_json(cls, json_str: str, use_config_file: bool=True) -> 'ReceiverConfig':
        """Creates a configuration from a JSON representation."""
        jsonable = json.loads(json_str)
        return cls.from_jsonable(jsonable, use_config_file=use_config_file)

    @classmethod
    def from_config_file(cls, filename: str) -> 'ReceiverConfig':
        """Creates a configuration from a JSON-serialized config file."""
        with open(filename, 'r') as f:
            jsonable: JsonableDict = json.load(f)

        result = cls.from_jsonable(jsonable, use_config_file=False)
        return result

    def __str__(self) -> str:
        return (
            f"ReceiverConfig("
            f"model={self.model}, "
            f"host={self.host}, "
            f"port={self.port}, "
            f"zone={self.zone})"
          )

    def __repr__(self) -> str:
        return str(self)

def load_receiver_configs(jsonable: Union[JsonableDict, List[Any]]) -> List[ReceiverConfig]:
    """Loads a list of zone configurations.

    Accepts either a list of zone objects or an object with an "avrs" list.
    Environment variables and the ONKYO_RECEIVER_CONFIG_FILE file are not
    applied to the entries; each entry starts from the defaults.
    """
    if isinstance(jsonable, dict):
        entries = jsonable.get('avrs', [])
    else:
        entries = jsonable
    if not isinstance(entries, list):
        raise ConfigError(f"Expected a list of receiver configurations, got {type(entries).__name__}")
    results: List[ReceiverConfig] = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ConfigError(f"Invalid receiver configuration entry: {entry!r}")
        results.append(ReceiverConfig.from_jsonable(entry, use_config_file=False))
    logger.debug(f"Loaded {len(results)} receiver zone configuration(s)")
    return results
