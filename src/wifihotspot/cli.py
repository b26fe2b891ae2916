"""Command-line front end: ``wifihotspot <command>``.

Commands:
    interfaces  list interfaces and the roles the resolver would pick
    up          start the hotspot and watch it until Ctrl+C
    status      report whether the managed AP connection is active
    cleanup     tear down a leftover AP connection and NAT rule set
    settings    show the settings file, or save command-line values into it
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import os
import sys
import time

from rich.console import Console
from rich.live import Live
from rich.markup import escape

from wifihotspot import __version__
from wifihotspot.access_point import NetworkManagerAP
from wifihotspot.config import Settings, default_config_path, load_settings, save_settings
from wifihotspot.controller import HotspotController
from wifihotspot.display.tables import build_interface_table, build_status_table
from wifihotspot.errors import HotspotError, RoleResolutionError
from wifihotspot.events import EventBus, StatusReport
from wifihotspot.hotspot_common import (
    BANDS,
    CommandRunner,
    HotspotState,
    InterfaceRoles,
    NetworkInterface,
)
from wifihotspot.inventory import InterfaceInventory
from wifihotspot.nat.coordinator import NatCoordinator
from wifihotspot.reconciler import StatusReconciler
from wifihotspot.roles import resolve

_LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(name)s: %(levelname)s: %(message)s"
REFRESH_INTERVAL = 1.0


# ---------------------------------------------------------------------------
# Arguments and logging
# ---------------------------------------------------------------------------

def _add_role_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--hotspot-interface",
        metavar="IFACE",
        help="interface to run the access point on",
    )
    parser.add_argument(
        "--uplink-interface",
        metavar="IFACE",
        help="interface that keeps the upstream connection",
    )


def _add_hotspot_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--ssid", help="network name to broadcast")
    parser.add_argument("--passphrase", help="WPA2 passphrase (8-63 characters)")
    parser.add_argument("--band", choices=BANDS, help="bg = 2.4 GHz, a = 5 GHz")
    parser.add_argument("--channel", type=int, help="fixed channel (default: automatic)")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="wifihotspot",
        description="Share a WiFi uplink through a second WiFi radio",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        metavar="FILE",
        help=f"settings file (default: {default_config_path()})",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="enable debug logging",
    )
    parser.add_argument(
        "--log-file",
        metavar="FILE",
        help="also append log output to FILE",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_ifaces = sub.add_parser("interfaces", help="list interfaces and proposed roles")
    p_ifaces.add_argument("--json", action="store_true", help="print JSON instead of a table")
    _add_role_arguments(p_ifaces)

    p_up = sub.add_parser("up", help="start the hotspot and watch it until Ctrl+C")
    _add_hotspot_arguments(p_up)
    p_up.add_argument("--no-nat", action="store_true", help="do not share the uplink")
    _add_role_arguments(p_up)

    p_status = sub.add_parser("status", help="report the managed AP connection")
    p_status.add_argument("--json", action="store_true", help="print JSON instead of a table")

    p_cleanup = sub.add_parser("cleanup", help="remove a leftover AP connection and NAT rules")
    _add_role_arguments(p_cleanup)

    p_settings = sub.add_parser("settings", help="show the settings, or save command-line values into them")
    _add_hotspot_arguments(p_settings)
    nat = p_settings.add_mutually_exclusive_group()
    nat.add_argument("--nat", action="store_true", help="share the uplink (default)")
    nat.add_argument("--no-nat", action="store_true", help="do not share the uplink")
    _add_role_arguments(p_settings)
    p_settings.add_argument("--save", action="store_true", help="write the result to the settings file")

    return parser.parse_args(argv)


def _setup_logging(debug: bool, log_file: str | None) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        except OSError as exc:
            _LOGGER.warning("cannot open log file %s: %s", log_file, exc)
            return
        file_handler.setLevel(logging.DEBUG if debug else logging.INFO)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(file_handler)


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Return *settings* with any command-line values laid over it."""
    overrides = {}
    for field in ("ssid", "passphrase", "band", "channel", "hotspot_interface", "uplink_interface"):
        value = getattr(args, field, None)
        if value is not None:
            overrides[field] = value
    if getattr(args, "no_nat", False):
        overrides["nat_enabled"] = False
    elif getattr(args, "nat", False):
        overrides["nat_enabled"] = True
    return dataclasses.replace(settings, **overrides)


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def _build_services(
    settings: Settings,
    runner: CommandRunner | None = None,
) -> tuple[InterfaceInventory, NetworkManagerAP, NatCoordinator]:
    inventory = InterfaceInventory(runner, timeout=settings.command_timeout)
    access_point = NetworkManagerAP(
        settings.connection_name,
        gateway_ip=settings.gateway_ip,
        timeout=settings.command_timeout,
        activation_timeout=settings.activation_timeout,
        runner=runner,
    )
    nat = NatCoordinator(
        settings.nat_helper_path,
        timeout=settings.helper_timeout,
        remove_attempts=settings.nat_remove_attempts,
        retry_delay=settings.nat_retry_delay,
        escalate=os.geteuid() != 0,
        runner=runner,
    )
    return inventory, access_point, nat


def _interface_dict(iface: NetworkInterface) -> dict:
    data = dataclasses.asdict(iface)
    data["link_state"] = iface.link_state.value
    return data


def _print_error(console: Console, exc: HotspotError) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
    detail = {k: v for k, v in exc.to_dict().items() if k != "message" and v is not None}
    console.print(f"[grey50]{escape(json.dumps(detail, sort_keys=True))}[/grey50]", highlight=False)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_interfaces(args: argparse.Namespace, settings: Settings, console: Console, runner=None) -> int:
    inventory, _, _ = _build_services(settings, runner)
    interfaces = inventory.scan()

    roles: InterfaceRoles | None = None
    reason: str | None = None
    try:
        roles = resolve(interfaces, settings.role_hints())
    except RoleResolutionError as exc:
        reason = str(exc)

    if args.json:
        payload = {
            "interfaces": [_interface_dict(i) for i in interfaces],
            "roles": {"uplink": roles.uplink.name, "hotspot": roles.hotspot.name} if roles else None,
            "error": reason,
        }
        console.print_json(json.dumps(payload))
        return 0

    console.print(build_interface_table(interfaces, roles))
    if roles is not None:
        console.print(
            f"[bold]Proposed:[/bold] hotspot on [cyan]{roles.hotspot.name}[/cyan], "
            f"uplink via [green]{roles.uplink.name}[/green]"
        )
    else:
        console.print(f"[yellow]Cannot pick roles:[/yellow] {reason}")
    return 0


def cmd_up(args: argparse.Namespace, settings: Settings, console: Console, runner=None) -> int:
    inventory, access_point, nat = _build_services(settings, runner)
    events = EventBus()
    controller = HotspotController(inventory, access_point, nat, events=events)
    reconciler = StatusReconciler(
        controller, inventory, access_point, nat,
        events=events, interval=settings.poll_interval,
    )

    clients: list[str] = []

    def _on_event(event) -> None:
        if isinstance(event, StatusReport):
            clients[:] = event.clients

    unsubscribe = events.subscribe(_on_event)
    try:
        config = settings.hotspot_config()
        console.print(f"Starting hotspot [bold]{config.ssid}[/bold]…")
        future = controller.activate(config, settings.role_hints())
        try:
            session = future.result()
        except KeyboardInterrupt:
            console.print("\nCancelling…")
            controller.deactivate().result()
            return 130
        _LOGGER.info("hotspot active on %s (uplink %s)", session.hotspot_interface, session.uplink_interface)

        reconciler.start()
        try:
            with Live(console=console, refresh_per_second=1) as live:
                while True:
                    snap = controller.snapshot()
                    live.update(build_status_table(snap, list(clients)))
                    if snap.state in (HotspotState.FAILED, HotspotState.IDLE) and not snap.in_flight:
                        break
                    time.sleep(REFRESH_INTERVAL)
        except KeyboardInterrupt:
            console.print("\nStopping…")
        finally:
            reconciler.stop()

        snap = controller.snapshot()
        if snap.state is HotspotState.FAILED and snap.failure is not None:
            _print_error(console, snap.failure)
            controller.reset().result()
            return 1
        controller.deactivate().result()
        console.print("[bold cyan]Hotspot[/bold cyan] stopped.")
        return 0
    finally:
        unsubscribe()
        controller.close()


def cmd_status(args: argparse.Namespace, settings: Settings, console: Console, runner=None) -> int:
    inventory, access_point, _ = _build_services(settings, runner)
    active = access_point.is_active()

    interface: str | None = None
    clients: list[str] = []
    if active:
        for iface in inventory.scan():
            if iface.connection == settings.connection_name:
                interface = iface.name
                break
        if interface is not None:
            clients = access_point.connected_clients(interface)

    if args.json:
        payload = {
            "connection": settings.connection_name,
            "active": active,
            "interface": interface,
            "clients": clients,
        }
        console.print_json(json.dumps(payload))
        return 0

    if not active:
        console.print(f"[grey50]{settings.connection_name}: inactive[/grey50]")
        return 0
    console.print(
        f"[green]{settings.connection_name}: active[/green]"
        + (f" on [cyan]{interface}[/cyan]" if interface else "")
    )
    console.print(f"Clients: {', '.join(clients) if clients else 'none'}")
    return 0


def cmd_cleanup(args: argparse.Namespace, settings: Settings, console: Console, runner=None) -> int:
    _, access_point, nat = _build_services(settings, runner)

    access_point.tear_down(settings.hotspot_interface)
    console.print(f"Removed connection [bold]{settings.connection_name}[/bold].")

    if settings.hotspot_interface and settings.uplink_interface:
        roles = InterfaceRoles(
            uplink=NetworkInterface(settings.uplink_interface, wifi_capable=True),
            hotspot=NetworkInterface(settings.hotspot_interface, wifi_capable=True),
        )
        nat.remove(roles)
        console.print(
            f"Removed NAT rules for {settings.hotspot_interface} -> {settings.uplink_interface}."
        )
    else:
        console.print("[grey50]NAT rules left alone (pass both interfaces to remove them).[/grey50]")
    return 0


def cmd_settings(args: argparse.Namespace, settings: Settings, console: Console, runner=None) -> int:
    if args.save:
        settings.hotspot_config().validate()
        path = save_settings(settings, args.config)
        console.print(f"Saved settings to [bold]{escape(path)}[/bold].")
        return 0

    data = dataclasses.asdict(settings)
    data["passphrase"] = "********"
    console.print_json(json.dumps(data))
    return 0


COMMANDS = {
    "interfaces": cmd_interfaces,
    "up": cmd_up,
    "status": cmd_status,
    "cleanup": cmd_cleanup,
    "settings": cmd_settings,
}


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None, *, runner: CommandRunner | None = None) -> int:
    """Run one ``wifihotspot`` command and return its exit status."""
    args = _parse_args(argv)
    _setup_logging(args.debug, args.log_file)
    console = Console()

    settings = _apply_overrides(load_settings(args.config), args)
    _LOGGER.debug("command=%s settings=%r", args.command, settings)

    try:
        return COMMANDS[args.command](args, settings, console, runner)
    except HotspotError as exc:
        _LOGGER.debug("command %s failed", args.command, exc_info=True)
        _print_error(console, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
