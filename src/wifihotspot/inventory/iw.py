"""WiFi interface modes via ``iw dev``.

``iw dev`` is the only source that reliably tells an interface running
in access-point mode apart from a managed (client) one.
"""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass

from wifihotspot.hotspot_common import CommandRunner, SubprocessRunner, _minimal_env

logger = logging.getLogger(__name__)

_DEFAULT_RUNNER = SubprocessRunner()

# Matches "phy#N" lines
_PHY_RE = re.compile(r"^phy#(\d+)")
# Matches "\tInterface <name>" lines
_IFACE_RE = re.compile(r"^\tInterface\s+(\S+)")
# Matches "\t\ttype <mode>" lines
_TYPE_RE = re.compile(r"^\t\ttype\s+(.+?)\s*$")


@dataclass
class IwInterface:
    """One interface block from ``iw dev``."""

    name: str
    phy: str
    type: str = "unknown"   # e.g. "managed", "AP", "monitor"

    @property
    def is_ap(self) -> bool:
        return self.type.lower() == "ap"


def parse_iw_dev_output(output: str) -> list[IwInterface]:
    """Parse ``iw dev`` output into :class:`IwInterface` entries.

    ``phy`` uses the format ``"phy0"`` (without the ``#``).
    """
    results: list[IwInterface] = []
    current_phy: str | None = None
    current: IwInterface | None = None

    for line in output.splitlines():
        phy_match = _PHY_RE.match(line)
        if phy_match:
            current_phy = f"phy{phy_match.group(1)}"
            current = None
            continue

        iface_match = _IFACE_RE.match(line)
        if iface_match and current_phy is not None:
            current = IwInterface(name=iface_match.group(1), phy=current_phy)
            results.append(current)
            continue

        type_match = _TYPE_RE.match(line)
        if type_match and current is not None:
            current.type = type_match.group(1)

    return results


def list_ap_interfaces(
    *,
    runner: CommandRunner | None = None,
    timeout: float = 5,
) -> set[str]:
    """Return the names of interfaces currently in AP mode.

    Best effort: returns an empty set when ``iw`` is unavailable.
    """
    runner = runner or _DEFAULT_RUNNER
    try:
        result = runner.run(
            ["iw", "dev"],
            capture_output=True,
            text=True,
            timeout=timeout,
            env=_minimal_env(),
        )
    except (FileNotFoundError, subprocess.TimeoutExpired, OSError):
        logger.debug("iw dev failed or not found")
        return set()

    if result.returncode != 0:
        logger.debug("iw dev returned non-zero: %d", result.returncode)
        return set()

    return {i.name for i in parse_iw_dev_output(result.stdout) if i.is_ap}
