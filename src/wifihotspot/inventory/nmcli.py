"""Device status via nmcli (NetworkManager CLI).

Can also be invoked as a standalone tool::

    python -m wifihotspot.inventory.nmcli            # print device table
"""

from __future__ import annotations

import argparse
import logging
import re
import subprocess
from dataclasses import dataclass

from wifihotspot.errors import PlatformQueryError
from wifihotspot.hotspot_common import (
    CommandRunner,
    LinkState,
    SubprocessRunner,
    _minimal_env,
    _stderr_text,
)

logger = logging.getLogger(__name__)

_DEFAULT_RUNNER = SubprocessRunner()

# Device types reported by the inventory; loopback, bridges, tunnels and
# wifi-p2p pseudo-devices are never candidates for either role.
REPORTED_TYPES = ("wifi", "ethernet")


@dataclass
class DeviceStatus:
    """One row of ``nmcli device status``."""

    device: str
    type: str
    state: str
    connection: str = ""


# ---------------------------------------------------------------------------
# nmcli output parsing
# ---------------------------------------------------------------------------

def _split_nmcli_line(line: str) -> list[str]:
    """Split a nmcli terse-mode line on unescaped colons.

    Colons inside field values are escaped as ``\\:``.  We split on
    unescaped colons and then unescape the fields.
    """
    parts = re.split(r"(?<!\\):", line)
    return [p.replace("\\:", ":").replace("\\\\", "\\") for p in parts]


def map_nm_state(state: str) -> LinkState:
    """Map a NetworkManager device state string to a :class:`LinkState`.

    nmcli prints e.g. ``connected``, ``connecting (getting IP
    configuration)``, ``disconnected``, ``unavailable`` or ``unmanaged``.
    """
    s = state.strip().lower()
    if s.startswith("connected"):
        return LinkState.CONNECTED
    if s.startswith("connecting"):
        return LinkState.CONNECTING
    return LinkState.DOWN


def parse_device_status(output: str) -> list[DeviceStatus]:
    """Parse ``nmcli -t -f DEVICE,TYPE,STATE,CONNECTION device status``."""
    devices: list[DeviceStatus] = []

    for line in output.strip().splitlines():
        line = line.strip()
        if not line:
            continue

        fields = _split_nmcli_line(line)
        if len(fields) < 3:
            logger.debug("Skipped nmcli device line with %d fields: %r", len(fields), line)
            continue

        connection = fields[3] if len(fields) > 3 else ""
        if connection == "--":
            connection = ""

        devices.append(DeviceStatus(
            device=fields[0],
            type=fields[1],
            state=fields[2],
            connection=connection,
        ))

    return devices


# ---------------------------------------------------------------------------
# Live query
# ---------------------------------------------------------------------------

def query_device_status(
    *,
    runner: CommandRunner | None = None,
    timeout: float = 10,
) -> list[DeviceStatus]:
    """Return wifi/ethernet devices known to NetworkManager.

    Raises:
        PlatformQueryError: nmcli is missing, timed out, or failed.
    """
    runner = runner or _DEFAULT_RUNNER
    cmd = [
        "nmcli", "-t",
        "-f", "DEVICE,TYPE,STATE,CONNECTION",
        "device", "status",
    ]

    try:
        result = runner.run(
            cmd, capture_output=True, text=True, timeout=timeout, env=_minimal_env(),
        )
    except subprocess.TimeoutExpired:
        raise PlatformQueryError("nmcli device status", f"timed out after {timeout}s")
    except (FileNotFoundError, OSError) as exc:
        raise PlatformQueryError("nmcli device status", str(exc))

    if result.returncode != 0:
        raise PlatformQueryError("nmcli device status", _stderr_text(result))

    return [d for d in parse_device_status(result.stdout) if d.type in REPORTED_TYPES]


# ---------------------------------------------------------------------------
# Standalone CLI
# ---------------------------------------------------------------------------

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for standalone invocation."""
    parser = argparse.ArgumentParser(
        description="List WiFi/ethernet devices as NetworkManager sees them.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Print NetworkManager device status."""
    _parse_args(argv)
    devices = query_device_status()
    if not devices:
        print("No devices found.")
        return
    print(f"{'DEVICE':<16} {'TYPE':<10} {'STATE':<14} {'CONNECTION'}")
    print("-" * 60)
    for d in devices:
        print(f"{d.device:<16} {d.type:<10} {map_nm_state(d.state).value:<14} {d.connection}")


if __name__ == "__main__":
    main()
