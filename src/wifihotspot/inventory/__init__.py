"""Interface inventory: live WiFi/ethernet interfaces and their state."""

from __future__ import annotations

import logging

from wifihotspot.hotspot_common import (
    CommandRunner,
    LinkState,
    NetworkInterface,
    SubprocessRunner,
)
from wifihotspot.inventory.iw import list_ap_interfaces
from wifihotspot.inventory.nmcli import map_nm_state, query_device_status
from wifihotspot.inventory.routes import query_default_routes

logger = logging.getLogger(__name__)


class InterfaceInventory:
    """Enumerate network interfaces from live system state.

    Every call to :meth:`scan` queries NetworkManager, the routing table
    and ``iw`` afresh; nothing is cached between scans.

    Args:
        runner: Optional CommandRunner for subprocess calls (testing seam).
        timeout: Per-command timeout in seconds.
    """

    def __init__(
        self,
        runner: CommandRunner | None = None,
        *,
        timeout: float = 10,
    ) -> None:
        self._runner = runner or SubprocessRunner()
        self._timeout = timeout

    def scan(self) -> list[NetworkInterface]:
        """Return the current interfaces, sorted by name.

        Raises:
            PlatformQueryError: NetworkManager or the routing table could
                not be queried.
        """
        devices = query_device_status(runner=self._runner, timeout=self._timeout)
        routes = query_default_routes(runner=self._runner, timeout=self._timeout)
        ap_names = list_ap_interfaces(runner=self._runner, timeout=self._timeout)

        interfaces: list[NetworkInterface] = []
        for dev in devices:
            link_state = map_nm_state(dev.state)
            if dev.device in ap_names and link_state is LinkState.CONNECTED:
                link_state = LinkState.AP_ACTIVE

            interfaces.append(NetworkInterface(
                name=dev.device,
                wifi_capable=dev.type == "wifi",
                link_state=link_state,
                is_default_route=dev.device in routes,
                connection=dev.connection or None,
                route_metric=routes.get(dev.device),
            ))

        interfaces.sort(key=lambda i: i.name)
        logger.debug(
            "inventory: %s",
            [(i.name, i.link_state.value, i.is_default_route) for i in interfaces],
        )
        return interfaces


__all__ = ["InterfaceInventory"]
