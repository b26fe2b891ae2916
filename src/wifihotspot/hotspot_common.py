"""Shared data structures and helpers for the hotspot control core."""

from __future__ import annotations

import enum
import logging
import os
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from wifihotspot.errors import ConfigError

if TYPE_CHECKING:
    from wifihotspot.errors import HelperError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------

class LinkState(enum.Enum):
    """Live link/connection state of a network interface."""

    DOWN = "down"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    AP_ACTIVE = "ap-active"


@dataclass(frozen=True)
class NetworkInterface:
    """A network interface as seen by one inventory scan.

    Never persisted: every scan re-derives it from live system state.
    """

    name: str                       # kernel name, e.g. "wlan0"
    wifi_capable: bool = False
    link_state: LinkState = LinkState.DOWN
    is_default_route: bool = False
    connection: str | None = None   # active NetworkManager connection name
    route_metric: int | None = None  # lowest default-route metric, if any


@dataclass(frozen=True)
class InterfaceRoles:
    """Immutable role assignment handed from the resolver to the controller."""

    uplink: NetworkInterface
    hotspot: NetworkInterface

    def __post_init__(self) -> None:
        if self.uplink.name == self.hotspot.name:
            raise ValueError(
                f"uplink and hotspot must differ (both {self.uplink.name!r})"
            )

    @property
    def pair(self) -> tuple[str, str]:
        """Return ``(hotspot_name, uplink_name)``."""
        return (self.hotspot.name, self.uplink.name)


# ---------------------------------------------------------------------------
# Hotspot configuration
# ---------------------------------------------------------------------------

BANDS = ("bg", "a")
BAND_LABELS = {"bg": "2.4 GHz", "a": "5 GHz"}

MIN_PASSPHRASE_LEN = 8
MAX_PASSPHRASE_LEN = 63
MAX_SSID_BYTES = 32


def is_valid_channel(channel: int, band: str | None = None) -> bool:
    """Return True if *channel* is plausible for *band* (any band if None)."""
    if band == "bg":
        return 1 <= channel <= 14
    if band == "a":
        return 32 <= channel <= 196
    return 1 <= channel <= 196


@dataclass(frozen=True)
class HotspotConfig:
    """User-supplied access point settings.

    Immutable once a session starts; call :meth:`validate` before use.
    """

    ssid: str
    passphrase: str = field(repr=False)
    band: str | None = "bg"
    channel: int | None = None
    nat_enabled: bool = True

    def validate(self) -> None:
        """Raise :class:`ConfigError` if any field is unusable."""
        ssid_len = len(self.ssid.encode("utf-8"))
        if not 1 <= ssid_len <= MAX_SSID_BYTES:
            raise ConfigError(
                "ssid", f"must be 1-{MAX_SSID_BYTES} bytes (got {ssid_len})"
            )

        if len(self.passphrase) < MIN_PASSPHRASE_LEN:
            raise ConfigError(
                "passphrase",
                f"must be at least {MIN_PASSPHRASE_LEN} characters",
            )
        if len(self.passphrase) > MAX_PASSPHRASE_LEN:
            raise ConfigError(
                "passphrase",
                f"must be at most {MAX_PASSPHRASE_LEN} characters",
            )
        if not all(32 <= ord(c) <= 126 for c in self.passphrase):
            raise ConfigError("passphrase", "must be printable ASCII")

        if self.band is not None and self.band not in BANDS:
            raise ConfigError("band", f"must be one of {', '.join(BANDS)}")

        if self.channel is not None and not is_valid_channel(self.channel, self.band):
            raise ConfigError(
                "channel",
                f"{self.channel} is not valid for band {self.band or 'any'}",
            )


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class HotspotState(enum.Enum):
    """Lifecycle states of the hotspot controller."""

    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    STOPPING = "stopping"
    FAILED = "failed"


class NatStatus(enum.Enum):
    """Outcome of NAT handling for a session."""

    DISABLED = "disabled"
    PENDING = "pending"
    APPLIED = "applied"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


@dataclass(frozen=True)
class HotspotSession:
    """The single hotspot session owned by the controller."""

    config: HotspotConfig
    roles: InterfaceRoles
    state: HotspotState
    started_at: datetime = field(default_factory=datetime.now)
    nat_status: NatStatus = NatStatus.PENDING
    nat_error: HelperError | None = None

    @property
    def hotspot_interface(self) -> str:
        return self.roles.hotspot.name

    @property
    def uplink_interface(self) -> str:
        return self.roles.uplink.name


# ---------------------------------------------------------------------------
# Command runner protocol (subprocess injection seam)
# ---------------------------------------------------------------------------

class CommandRunner(Protocol):
    """Protocol for running external commands.

    Provides an injection seam so callers can substitute a fake runner in
    tests instead of patching ``subprocess`` globally.
    """

    def run(
        self,
        cmd: list[str],
        *,
        capture_output: bool = True,
        text: bool = True,
        timeout: float | None = None,
        env: dict[str, str] | None = None,
        input: str | None = None,
    ) -> subprocess.CompletedProcess[Any]:
        """Run *cmd* and return a CompletedProcess."""
        ...  # pragma: no cover


class SubprocessRunner:
    """Default CommandRunner that delegates to the real ``subprocess`` module."""

    def run(
        self,
        cmd: list[str],
        *,
        capture_output: bool = True,
        text: bool = True,
        timeout: float | None = None,
        env: dict[str, str] | None = None,
        input: str | None = None,
    ) -> subprocess.CompletedProcess[Any]:
        """Run *cmd* via ``subprocess.run``.

        ``subprocess.run`` kills the child when *timeout* expires, so every
        external call made through this runner is bounded and cancellable.
        """
        logger.debug("run: %s", " ".join(_redact(cmd)))
        return subprocess.run(
            cmd,
            capture_output=capture_output,
            text=text,
            timeout=timeout,
            env=env,
            input=input,
        )


# Arguments whose following value must never reach a log
SECRET_OPTIONS = ("wifi-sec.psk",)


def _redact(cmd: list[str]) -> list[str]:
    """Return a copy of *cmd* with the values of SECRET_OPTIONS masked."""
    shown = list(cmd)
    for i in range(len(shown) - 1):
        if shown[i] in SECRET_OPTIONS:
            shown[i + 1] = "********"
    return shown


def _minimal_env() -> dict[str, str]:
    """Return a small, locale-neutral environment for external tools.

    ``LC_ALL=C`` keeps nmcli/iw/ip output parseable regardless of the
    user's locale.
    """
    return {
        "PATH": "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin",
        "LC_ALL": "C",
        "HOME": os.environ.get("HOME", "/root"),
    }


def _stderr_text(result: subprocess.CompletedProcess[Any]) -> str:
    """Return the stripped stderr (or stdout) of *result* for error messages."""
    text = (result.stderr or result.stdout or "").strip()
    return text or f"exit status {result.returncode}"
