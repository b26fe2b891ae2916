"""Default-route lookup via ``ip -4 route show default``."""

from __future__ import annotations

import logging
import re
import subprocess

from wifihotspot.errors import PlatformQueryError
from wifihotspot.hotspot_common import (
    CommandRunner,
    SubprocessRunner,
    _minimal_env,
    _stderr_text,
)

logger = logging.getLogger(__name__)

_DEFAULT_RUNNER = SubprocessRunner()

_DEV_RE = re.compile(r"\bdev\s+(\S+)")
_METRIC_RE = re.compile(r"\bmetric\s+(\d+)")


def parse_default_routes(output: str) -> dict[str, int]:
    """Map each device carrying a default route to its lowest metric.

    Typical line::

        default via 192.168.1.1 dev wlan0 proto dhcp src 192.168.1.20 metric 600

    A route without a ``metric`` keyword has metric 0.
    """
    routes: dict[str, int] = {}
    for line in output.splitlines():
        line = line.strip()
        if not line.startswith("default"):
            continue
        dev_match = _DEV_RE.search(line)
        if not dev_match:
            continue
        metric_match = _METRIC_RE.search(line)
        metric = int(metric_match.group(1)) if metric_match else 0
        dev = dev_match.group(1)
        if dev not in routes or metric < routes[dev]:
            routes[dev] = metric
    return routes


def query_default_routes(
    *,
    runner: CommandRunner | None = None,
    timeout: float = 5,
) -> dict[str, int]:
    """Return ``{device: metric}`` for every IPv4 default route.

    Raises:
        PlatformQueryError: ``ip`` is missing, timed out, or failed.
    """
    runner = runner or _DEFAULT_RUNNER
    try:
        result = runner.run(
            ["ip", "-4", "route", "show", "default"],
            capture_output=True,
            text=True,
            timeout=timeout,
            env=_minimal_env(),
        )
    except subprocess.TimeoutExpired:
        raise PlatformQueryError("ip route", f"timed out after {timeout}s")
    except (FileNotFoundError, OSError) as exc:
        raise PlatformQueryError("ip route", str(exc))

    if result.returncode != 0:
        raise PlatformQueryError("ip route", _stderr_text(result))

    routes = parse_default_routes(result.stdout)
    logger.debug("default routes: %s", routes)
    return routes
