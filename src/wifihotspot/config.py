"""Settings file for the hotspot tool.

Settings live in ``$XDG_CONFIG_HOME/wifihotspot/config.json``.  The core
itself persists nothing; the file only feeds a :class:`HotspotConfig`
and :class:`RoleHints` into each ``activate()`` call.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import stat
from dataclasses import dataclass, field

from wifihotspot.access_point import DEFAULT_CONNECTION_NAME
from wifihotspot.hotspot_common import HotspotConfig
from wifihotspot.roles import RoleHints

logger = logging.getLogger(__name__)

APP_DIR = "wifihotspot"
CONFIG_FILE = "config.json"


def default_config_path() -> str:
    """Return the settings path, honouring ``XDG_CONFIG_HOME``."""
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return os.path.join(base, APP_DIR, CONFIG_FILE)


@dataclass
class Settings:
    """Persisted user settings with their defaults."""

    connection_name: str = DEFAULT_CONNECTION_NAME
    ssid: str = "Hotspot"
    passphrase: str = field(default="changeme123", repr=False)
    band: str | None = "bg"
    channel: int | None = None
    nat_enabled: bool = True
    gateway_ip: str = "192.168.44.1/24"
    hotspot_interface: str | None = None
    uplink_interface: str | None = None
    command_timeout: float = 30
    activation_timeout: float = 45
    helper_timeout: float = 30
    nat_remove_attempts: int = 3
    nat_retry_delay: float = 1.0
    poll_interval: float = 2.0
    nat_helper_path: str = "/usr/local/bin/wifihotspot-nat"

    def hotspot_config(self) -> HotspotConfig:
        return HotspotConfig(
            ssid=self.ssid,
            passphrase=self.passphrase,
            band=self.band,
            channel=self.channel,
            nat_enabled=self.nat_enabled,
        )

    def role_hints(self) -> RoleHints:
        return RoleHints(uplink=self.uplink_interface, hotspot=self.hotspot_interface)


# Accepted JSON types per field; None is allowed where the default is None
_FIELD_TYPES: dict[str, tuple[type, ...]] = {
    "connection_name": (str,),
    "ssid": (str,),
    "passphrase": (str,),
    "band": (str, type(None)),
    "channel": (int, type(None)),
    "nat_enabled": (bool,),
    "gateway_ip": (str,),
    "hotspot_interface": (str, type(None)),
    "uplink_interface": (str, type(None)),
    "command_timeout": (int, float),
    "activation_timeout": (int, float),
    "helper_timeout": (int, float),
    "nat_remove_attempts": (int,),
    "nat_retry_delay": (int, float),
    "poll_interval": (int, float),
    "nat_helper_path": (str,),
}


def _accepts(name: str, value: object) -> bool:
    # bool is an int subclass; only nat_enabled may be a bool
    if isinstance(value, bool) and name != "nat_enabled":
        return False
    return isinstance(value, _FIELD_TYPES[name])


def settings_from_dict(data: dict) -> Settings:
    """Build Settings from a decoded JSON object, keeping defaults for bad fields."""
    settings = Settings()
    for key, value in data.items():
        if key not in _FIELD_TYPES:
            logger.debug("settings: ignoring unknown key %r", key)
            continue
        if not _accepts(key, value):
            logger.warning("settings: %s has wrong type (%s); using default", key, type(value).__name__)
            continue
        setattr(settings, key, value)
    return settings


def load_settings(filepath: str | None = None) -> Settings:
    """Load settings from *filepath* (default location if None).

    Returns defaults if the file is missing, unreadable or not a JSON
    object.
    """
    filepath = filepath or default_config_path()
    if not os.path.isfile(filepath):
        return Settings()

    try:
        with open(filepath, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("settings: failed to load %s: %s", filepath, exc)
        return Settings()

    if not isinstance(data, dict):
        logger.warning("settings: expected a JSON object in %s", filepath)
        return Settings()

    # The file holds the hotspot passphrase
    try:
        if os.stat(filepath).st_mode & stat.S_IROTH:
            logger.warning("settings: %s is world-readable (chmod 600 recommended)", filepath)
    except OSError:
        pass

    return settings_from_dict(data)


def save_settings(settings: Settings, filepath: str | None = None) -> str:
    """Write *settings* as JSON with mode 0600 and return the path."""
    filepath = filepath or default_config_path()
    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)

    fd = os.open(filepath, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        json.dump(dataclasses.asdict(settings), f, indent=2)
        f.write("\n")
    os.chmod(filepath, 0o600)
    logger.debug("settings: saved to %s", filepath)
    return filepath
