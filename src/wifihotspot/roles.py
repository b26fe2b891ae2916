"""Assign the uplink and hotspot roles to concrete WiFi interfaces.

Selection policy:

1. Fewer than two WiFi-capable interfaces is always fatal.
2. The uplink is the WiFi interface carrying the default route (lowest
   metric, then name).  An explicit uplink hint forces the choice even
   without a default route.
3. The hotspot is chosen among the remaining WiFi interfaces, preferring
   ones not connected as a client so a busy radio is not repurposed.
   Ties are broken by interface name, ascending.

Hints always override the heuristic but are still checked against the
hard constraints (distinct interfaces, both WiFi-capable).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from wifihotspot.errors import InsufficientInterfaces, InvalidRoleHint, NoUplink
from wifihotspot.hotspot_common import InterfaceRoles, LinkState, NetworkInterface

logger = logging.getLogger(__name__)

_CLIENT_STATES = (LinkState.CONNECTED, LinkState.CONNECTING)


@dataclass(frozen=True)
class RoleHints:
    """Explicit interface choices made by the user."""

    uplink: str | None = None
    hotspot: str | None = None


def _check_hint(
    name: str,
    role: str,
    by_name: dict[str, NetworkInterface],
) -> NetworkInterface:
    iface = by_name.get(name)
    if iface is None:
        raise InvalidRoleHint(f"{role} interface {name} does not exist", interface=name)
    if not iface.wifi_capable:
        raise InvalidRoleHint(f"{role} interface {name} is not WiFi-capable", interface=name)
    return iface


def resolve(
    interfaces: list[NetworkInterface],
    hints: RoleHints | None = None,
) -> InterfaceRoles:
    """Pick the uplink and hotspot interfaces.

    Args:
        interfaces: Result of a fresh inventory scan.
        hints: Optional user overrides.

    Raises:
        InsufficientInterfaces: fewer than two WiFi-capable interfaces.
        InvalidRoleHint: a hint names an unknown/non-WiFi interface, or the
            same interface for both roles.
        NoUplink: no WiFi interface carries a default route and no uplink
            was hinted.
    """
    hints = hints or RoleHints()
    wifi = sorted((i for i in interfaces if i.wifi_capable), key=lambda i: i.name)
    if len(wifi) < 2:
        raise InsufficientInterfaces([i.name for i in wifi])

    by_name = {i.name: i for i in interfaces}
    if hints.uplink and hints.hotspot and hints.uplink == hints.hotspot:
        raise InvalidRoleHint(
            f"{hints.uplink} cannot be both uplink and hotspot",
            interface=hints.uplink,
        )

    hinted_hotspot = _check_hint(hints.hotspot, "hotspot", by_name) if hints.hotspot else None

    if hints.uplink:
        uplink = _check_hint(hints.uplink, "uplink", by_name)
        if not uplink.is_default_route:
            logger.info("uplink %s forced by user (no default route)", uplink.name)
    else:
        candidates = [
            i for i in wifi
            if i.is_default_route and (hinted_hotspot is None or i.name != hinted_hotspot.name)
        ]
        if not candidates:
            raise NoUplink([i.name for i in wifi])
        uplink = min(
            candidates,
            key=lambda i: (i.route_metric if i.route_metric is not None else 0, i.name),
        )

    if hinted_hotspot is not None:
        hotspot = hinted_hotspot
    else:
        remaining = [i for i in wifi if i.name != uplink.name]

        def _busy(iface: NetworkInterface) -> tuple[int, str]:
            """Lower sorts first: idle radios before client-connected ones."""
            return (1 if iface.link_state in _CLIENT_STATES else 0, iface.name)

        hotspot = min(remaining, key=_busy)

    roles = InterfaceRoles(uplink=uplink, hotspot=hotspot)
    logger.debug("resolved roles: uplink=%s hotspot=%s", uplink.name, hotspot.name)
    return roles
