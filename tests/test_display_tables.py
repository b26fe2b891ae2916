"""Tests for wifihotspot.display.tables: Rich table builders."""

from __future__ import annotations

from dataclasses import replace

from rich.console import Console
from rich.table import Table

from fakes import CONFIG, WLAN0, WLAN1
from wifihotspot.controller import ControllerSnapshot
from wifihotspot.display.tables import (
    LINK_COLORS,
    NAT_COLORS,
    STATE_COLORS,
    _colored,
    build_interface_table,
    build_status_table,
)
from wifihotspot.errors import Drift, DriftKind, NatUnavailable
from wifihotspot.hotspot_common import (
    HotspotSession,
    HotspotState,
    InterfaceRoles,
    LinkState,
    NatStatus,
    NetworkInterface,
)

ROLES = InterfaceRoles(uplink=WLAN0, hotspot=WLAN1)
ETH0 = NetworkInterface("eth0", link_state=LinkState.CONNECTED, is_default_route=True, route_metric=100)


def _cells(table: Table, header: str) -> list[str]:
    column = next(c for c in table.columns if c.header == header)
    return [str(cell) for cell in column.cells]


def _render(table: Table) -> str:
    console = Console(width=120, record=True, color_system=None)
    console.print(table)
    return console.export_text()


class TestColors:
    def test_every_enum_member_has_a_color(self):
        assert set(LINK_COLORS) == set(LinkState)
        assert set(STATE_COLORS) == set(HotspotState)
        assert set(NAT_COLORS) == set(NatStatus)

    def test_colored_escapes_markup(self):
        assert _colored("[x]", "red") == "[red]\\[x][/red]"


class TestBuildInterfaceTable:
    def test_returns_table_with_row_per_interface(self):
        table = build_interface_table([ETH0, WLAN0, WLAN1])
        assert isinstance(table, Table)
        assert table.row_count == 3

    def test_columns(self):
        table = build_interface_table([])
        assert [c.header for c in table.columns] == [
            "Interface", "WiFi", "State", "Default", "Metric", "Connection", "Role",
        ]

    def test_roles_marked(self):
        table = build_interface_table([ETH0, WLAN0, WLAN1], ROLES)
        roles = _cells(table, "Role")
        assert roles[0] == ""
        assert "uplink" in roles[1]
        assert "hotspot" in roles[2]

    def test_no_roles_column_empty(self):
        assert _cells(build_interface_table([WLAN0, WLAN1]), "Role") == ["", ""]

    def test_metric_shown_only_with_route(self):
        assert _cells(build_interface_table([WLAN0, WLAN1]), "Metric") == ["600", ""]

    def test_renders_connection_name(self):
        assert "HomeNet" in _render(build_interface_table([WLAN0]))


class TestBuildStatusTable:
    def test_idle_shows_state_only(self):
        table = build_status_table(ControllerSnapshot(HotspotState.IDLE))
        assert _cells(table, "Key") == ["State"]

    def test_active_session_details(self):
        session = HotspotSession(CONFIG, ROLES, HotspotState.ACTIVE, nat_status=NatStatus.APPLIED)
        table = build_status_table(ControllerSnapshot(HotspotState.ACTIVE, session), ["192.168.44.10"])
        text = _render(table)
        assert "Home" in text
        assert "2.4 GHz" in text
        assert "wlan1" in text
        assert "applied" in text
        assert "192.168.44.10" in text

    def test_channel_appended_to_band(self):
        config = replace(CONFIG, band="a", channel=36)
        session = HotspotSession(config, ROLES, HotspotState.ACTIVE)
        assert "5 GHz, channel 36" in _render(build_status_table(ControllerSnapshot(HotspotState.ACTIVE, session)))

    def test_nat_error_reason_shown(self):
        error = NatUnavailable("apply", "wlan1", "wlan0", "not authorized", exit_code=126)
        session = HotspotSession(CONFIG, ROLES, HotspotState.ACTIVE, nat_status=NatStatus.UNAVAILABLE, nat_error=error)
        text = _render(build_status_table(ControllerSnapshot(HotspotState.ACTIVE, session)))
        assert "unavailable" in text
        assert "not authorized" in text

    def test_failure_shown(self):
        session = HotspotSession(CONFIG, ROLES, HotspotState.FAILED)
        drift = Drift(DriftKind.INTERFACE_LOST, interface="wlan1")
        text = _render(build_status_table(ControllerSnapshot(HotspotState.FAILED, session, drift)))
        assert "hotspot interface lost: wlan1" in text

    def test_empty_client_list_says_none(self):
        session = HotspotSession(CONFIG, ROLES, HotspotState.ACTIVE)
        table = build_status_table(ControllerSnapshot(HotspotState.ACTIVE, session), [])
        assert "none" in _cells(table, "Value")[-1]
