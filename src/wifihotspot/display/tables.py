"""Rich table builders for the hotspot CLI.

Builds Rich :class:`Table` objects for the interface inventory and for
the live session status.
"""

from __future__ import annotations

from rich.markup import escape
from rich.table import Table

from wifihotspot.controller import ControllerSnapshot
from wifihotspot.hotspot_common import (
    BAND_LABELS,
    HotspotState,
    InterfaceRoles,
    LinkState,
    NatStatus,
    NetworkInterface,
)

# ---------------------------------------------------------------------------
# Colors
# ---------------------------------------------------------------------------

LINK_COLORS: dict[LinkState, str] = {
    LinkState.DOWN: "grey50",
    LinkState.CONNECTING: "yellow",
    LinkState.CONNECTED: "green",
    LinkState.AP_ACTIVE: "cyan",
}

STATE_COLORS: dict[HotspotState, str] = {
    HotspotState.IDLE: "grey50",
    HotspotState.STARTING: "yellow",
    HotspotState.ACTIVE: "green",
    HotspotState.STOPPING: "yellow",
    HotspotState.FAILED: "red",
}

NAT_COLORS: dict[NatStatus, str] = {
    NatStatus.DISABLED: "grey50",
    NatStatus.PENDING: "yellow",
    NatStatus.APPLIED: "green",
    NatStatus.UNAVAILABLE: "dark_orange",
    NatStatus.FAILED: "red",
}


def _colored(text: str, color: str) -> str:
    return f"[{color}]{escape(text)}[/{color}]"


# ---------------------------------------------------------------------------
# Interface table
# ---------------------------------------------------------------------------

def build_interface_table(
    interfaces: list[NetworkInterface],
    roles: InterfaceRoles | None = None,
) -> Table:
    """Build a table of interfaces, marking the resolved roles if given."""
    table = Table(
        title="Network interfaces",
        title_style="bold cyan",
        caption=f"{len(interfaces)} interface(s)",
        caption_style="grey50",
        expand=True,
        padding=(0, 1),
    )
    table.add_column("Interface", style="white", min_width=8)
    table.add_column("WiFi", justify="center", width=4)
    table.add_column("State", width=10)
    table.add_column("Default", justify="center", width=7)
    table.add_column("Metric", justify="right", width=6)
    table.add_column("Connection", style="grey50", max_width=24)
    table.add_column("Role", width=8)

    for iface in interfaces:
        role = ""
        if roles is not None:
            if iface.name == roles.uplink.name:
                role = "[bold green]uplink[/bold green]"
            elif iface.name == roles.hotspot.name:
                role = "[bold cyan]hotspot[/bold cyan]"

        table.add_row(
            escape(iface.name),
            "[green]●[/green]" if iface.wifi_capable else "",
            _colored(iface.link_state.value, LINK_COLORS[iface.link_state]),
            "[green]yes[/green]" if iface.is_default_route else "",
            "" if iface.route_metric is None else str(iface.route_metric),
            escape(iface.connection or ""),
            role,
        )

    return table


# ---------------------------------------------------------------------------
# Session status table
# ---------------------------------------------------------------------------

def build_status_table(
    snapshot: ControllerSnapshot,
    clients: list[str] | None = None,
) -> Table:
    """Build a two-column key/value table describing the controller state."""
    table = Table(
        title="Hotspot",
        title_style="bold cyan",
        show_header=False,
        expand=True,
        padding=(0, 1),
    )
    table.add_column("Key", style="grey50", width=12)
    table.add_column("Value")

    state = snapshot.state
    table.add_row("State", _colored(state.value, STATE_COLORS[state]))

    session = snapshot.session
    if session is not None:
        config = session.config
        band = BAND_LABELS.get(config.band or "", "auto")
        if config.channel is not None:
            band = f"{band}, channel {config.channel}"
        table.add_row("SSID", escape(config.ssid))
        table.add_row("Band", band)
        table.add_row("Hotspot", escape(session.hotspot_interface))
        table.add_row("Uplink", escape(session.uplink_interface))
        nat = _colored(session.nat_status.value, NAT_COLORS[session.nat_status])
        if session.nat_error is not None:
            nat = f"{nat} [grey50]({escape(session.nat_error.reason)})[/grey50]"
        table.add_row("NAT", nat)
        table.add_row("Since", session.started_at.strftime("%H:%M:%S"))

    if snapshot.failure is not None:
        table.add_row("Error", _colored(str(snapshot.failure), "red"))

    if clients is not None:
        table.add_row("Clients", ", ".join(escape(c) for c in clients) if clients else "[grey50]none[/grey50]")

    return table
