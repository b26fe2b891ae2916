"""Connected-client listing for the hotspot interface.

Reads the neighbour table via ``ip neigh show dev <iface>`` and falls
back to ``/proc/net/arp`` when that yields nothing.
"""

from __future__ import annotations

import logging
import re
import subprocess

from wifihotspot.hotspot_common import CommandRunner, SubprocessRunner, _minimal_env

logger = logging.getLogger(__name__)

_DEFAULT_RUNNER = SubprocessRunner()

_IPV4_RE = re.compile(r"^\d{1,3}(?:\.\d{1,3}){3}$")


# ---------------------------------------------------------------------------
# Output parsing
# ---------------------------------------------------------------------------

def _parse_ip_neigh_output(output: str) -> list[str]:
    """Extract client IPs from ``ip neigh show dev <iface>`` output.

    Lines look like ``192.168.44.2 lladdr aa:bb:cc:dd:ee:ff REACHABLE``.
    Entries in ``FAILED`` or ``INCOMPLETE`` state are stale and skipped.
    """
    clients: list[str] = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 4:
            continue
        if "FAILED" in parts or "INCOMPLETE" in parts:
            continue
        if parts[0] not in clients:
            clients.append(parts[0])
    return clients


def _parse_proc_arp(content: str, interface: str) -> list[str]:
    """Extract client IPs on *interface* from ``/proc/net/arp`` content.

    Format (after a header line)::

        IP address  HW type  Flags  HW address  Mask  Device

    Flags ``0x0`` marks an incomplete entry.
    """
    clients: list[str] = []
    for line in content.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 6 or parts[5] != interface:
            continue
        if parts[2] == "0x0" or not _IPV4_RE.match(parts[0]):
            continue
        clients.append(parts[0])
    return clients


# ---------------------------------------------------------------------------
# Live query
# ---------------------------------------------------------------------------

def connected_clients(
    interface: str,
    *,
    runner: CommandRunner | None = None,
    arp_path: str = "/proc/net/arp",
    timeout: float = 5,
) -> list[str]:
    """Return the IP addresses of clients seen on *interface*.

    Best effort: an empty list means no clients or no way to tell.
    """
    runner = runner or _DEFAULT_RUNNER
    try:
        result = runner.run(
            ["ip", "neigh", "show", "dev", interface],
            capture_output=True,
            text=True,
            timeout=timeout,
            env=_minimal_env(),
        )
        if result.returncode == 0:
            clients = _parse_ip_neigh_output(result.stdout)
            if clients:
                return clients
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
        logger.debug("ip neigh failed on %s; trying %s", interface, arp_path)

    try:
        with open(arp_path) as f:
            return _parse_proc_arp(f.read(), interface)
    except OSError:
        return []
