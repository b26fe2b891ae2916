"""In-memory stand-ins for the inventory, access point and NAT coordinator."""

from __future__ import annotations

import threading

from wifihotspot.hotspot_common import HotspotConfig, LinkState, NetworkInterface
from wifihotspot.nat.coordinator import NatCheck
from wifihotspot.nat.rules import NatRuleSet

WLAN0 = NetworkInterface("wlan0", wifi_capable=True, link_state=LinkState.CONNECTED,
                         is_default_route=True, connection="HomeNet", route_metric=600)
WLAN1 = NetworkInterface("wlan1", wifi_capable=True)
CONFIG = HotspotConfig(ssid="Home", passphrase="12345678")


class FakeInventory:
    def __init__(self, interfaces=None) -> None:
        self.interfaces = list(interfaces) if interfaces is not None else [WLAN0, WLAN1]
        self.error: Exception | None = None
        self.scans = 0

    def scan(self):
        self.scans += 1
        if self.error is not None:
            raise self.error
        return list(self.interfaces)


class FakeAccessPoint:
    """Records calls into a shared *log*; ``gate`` blocks bring_up until set."""

    connection_name = "wifihotspot"

    def __init__(self, log: list) -> None:
        self.log = log
        self.active = False
        self.bring_up_error: Exception | None = None
        self.tear_down_error: Exception | None = None
        self.is_active_error: Exception | None = None
        self.confirm = True
        self.clients: list[str] = []
        self.gate: threading.Event | None = None
        self.entered = threading.Event()

    def bring_up(self, interface: str, config: HotspotConfig) -> None:
        self.log.append(("bring_up", interface))
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(5)
        if self.bring_up_error is not None:
            raise self.bring_up_error
        self.active = self.confirm

    def is_active(self) -> bool:
        if self.is_active_error is not None:
            raise self.is_active_error
        return self.active

    def connected_clients(self, interface: str) -> list[str]:
        return list(self.clients)

    def tear_down(self, interface: str | None = None) -> None:
        self.log.append(("tear_down", interface))
        if self.tear_down_error is not None:
            raise self.tear_down_error
        self.active = False


class FakeNat:
    def __init__(self, log: list) -> None:
        self.log = log
        self.installed: NatRuleSet | None = None
        self.apply_error: Exception | None = None
        self.remove_errors: list[Exception] = []
        self.verify_result = NatCheck.MATCH
        self.verify_error: Exception | None = None

    def apply(self, roles):
        self.log.append(("nat_apply", roles.pair))
        if self.apply_error is not None:
            raise self.apply_error
        self.installed = NatRuleSet.from_roles(roles)
        return self.installed

    def remove(self, roles) -> None:
        self.log.append(("nat_remove", roles.pair))
        if self.remove_errors:
            raise self.remove_errors.pop(0)
        self.installed = None

    def verify(self, roles) -> NatCheck:
        self.log.append(("nat_check", roles.pair))
        if self.verify_error is not None:
            raise self.verify_error
        return self.verify_result
