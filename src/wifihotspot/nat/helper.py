"""Privileged NAT helper (``wifihotspot-nat``).

Runs as root, normally through ``pkexec``, and does exactly one thing:
install, remove or check the NAT rule set for one hotspot/uplink pair::

    wifihotspot-nat apply  wlan1 wlan0
    wifihotspot-nat remove wlan1 wlan0
    wifihotspot-nat check  wlan1 wlan0

Interface names are validated before anything else runs, nft is invoked
by absolute path with a fixed environment, and the rule text is
generated here rather than accepted from the caller.  The outcome is
reported through the exit status plus one JSON line on stdout.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import subprocess
import sys

from wifihotspot.hotspot_common import CommandRunner, SubprocessRunner, _minimal_env, _stderr_text
from wifihotspot.nat.rules import (
    NatRuleSet,
    is_valid_interface_name,
    list_command,
    parse_installed,
    removal_script,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_USAGE = 2
EXIT_INVALID_INTERFACE = 3
EXIT_NOT_ROOT = 4
EXIT_NFT_MISSING = 5
EXIT_NFT_FAILED = 6
EXIT_MISMATCH = 7
EXIT_ABSENT = 8
# 126 and 127 belong to pkexec (authorization dismissed / refused)

ACTIONS = ("apply", "remove", "check")
NFT_CANDIDATES = ("/usr/sbin/nft", "/sbin/nft", "/usr/bin/nft")
NFT_TIMEOUT = 20


class _NftError(Exception):
    """nft returned an unexpected failure."""


def find_nft(candidates: tuple[str, ...] = NFT_CANDIDATES) -> str | None:
    """Return the first executable nft binary among *candidates*."""
    for path in candidates:
        if os.path.isfile(path) and os.access(path, os.X_OK):
            return path
    return None


def read_installed(
    nft: str,
    runner: CommandRunner,
    timeout: float = NFT_TIMEOUT,
) -> NatRuleSet | None:
    """Return the rule set currently in the kernel, or None if absent."""
    try:
        result = runner.run(
            [nft, *list_command()],
            capture_output=True,
            text=True,
            timeout=timeout,
            env=_minimal_env(),
        )
    except (subprocess.TimeoutExpired, OSError) as exc:
        raise _NftError(f"nft list failed: {exc}")

    if result.returncode != 0:
        if "No such file or directory" in (result.stderr or ""):
            return None
        raise _NftError(f"nft list failed: {_stderr_text(result)}")
    try:
        return parse_installed(result.stdout)
    except ValueError as exc:
        raise _NftError(str(exc))


def _nft_script(
    nft: str,
    script: str,
    runner: CommandRunner,
    timeout: float = NFT_TIMEOUT,
) -> None:
    """Feed *script* to ``nft -f -`` as one atomic transaction."""
    try:
        result = runner.run(
            [nft, "-f", "-"],
            capture_output=True,
            text=True,
            timeout=timeout,
            env=_minimal_env(),
            input=script,
        )
    except (subprocess.TimeoutExpired, OSError) as exc:
        raise _NftError(f"nft -f failed: {exc}")
    if result.returncode != 0:
        raise _NftError(f"nft -f failed: {_stderr_text(result)}")


def run_action(
    action: str,
    ruleset: NatRuleSet,
    *,
    nft: str,
    runner: CommandRunner,
) -> tuple[int, str]:
    """Perform *action* for *ruleset* and return ``(exit_code, message)``."""
    try:
        if action == "apply":
            _nft_script(nft, ruleset.render(), runner)
            return EXIT_OK, f"NAT rules installed for {ruleset.comment}"

        installed = read_installed(nft, runner)
        if installed is None:
            if action == "remove":
                # the table may exist without tagged rules; drop it regardless
                _nft_script(nft, removal_script(), runner)
                return EXIT_OK, "no NAT rules installed"
            return EXIT_ABSENT, "no NAT rules installed"
        if installed != ruleset:
            return EXIT_MISMATCH, f"installed rules belong to {installed.comment}"

        if action == "remove":
            _nft_script(nft, removal_script(), runner)
            return EXIT_OK, f"NAT rules removed for {ruleset.comment}"
        return EXIT_OK, f"NAT rules installed for {ruleset.comment}"
    except _NftError as exc:
        return EXIT_NFT_FAILED, str(exc)


def _respond(action: str, code: int, message: str, hotspot: str, uplink: str) -> int:
    print(json.dumps({
        "ok": code == EXIT_OK,
        "action": action,
        "hotspot": hotspot,
        "uplink": uplink,
        "code": code,
        "message": message,
    }))
    return code


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="wifihotspot-nat",
        description="Apply, remove or check the hotspot NAT rule set (requires root).",
    )
    parser.add_argument("action", choices=ACTIONS)
    parser.add_argument("hotspot_interface", help="interface serving the access point")
    parser.add_argument("uplink_interface", help="interface carrying the default route")
    return parser.parse_args(argv)


def main(
    argv: list[str] | None = None,
    *,
    runner: CommandRunner | None = None,
    euid: int | None = None,
    nft_path: str | None = None,
) -> int:
    """Entry point; returns the process exit status."""
    logging.basicConfig(level=logging.WARNING, format="%(name)s: %(levelname)s: %(message)s", stream=sys.stderr)
    args = _parse_args(argv)
    hotspot, uplink = args.hotspot_interface, args.uplink_interface

    for name in (hotspot, uplink):
        if not is_valid_interface_name(name):
            return _respond(args.action, EXIT_INVALID_INTERFACE, f"invalid interface name: {name!r}", hotspot, uplink)
    if hotspot == uplink:
        return _respond(args.action, EXIT_INVALID_INTERFACE, "hotspot and uplink interface must differ", hotspot, uplink)

    if (os.geteuid() if euid is None else euid) != 0:
        return _respond(args.action, EXIT_NOT_ROOT, "must run as root", hotspot, uplink)

    nft = nft_path or find_nft()
    if nft is None:
        return _respond(args.action, EXIT_NFT_MISSING, "nft not found", hotspot, uplink)

    ruleset = NatRuleSet(hotspot_interface=hotspot, uplink_interface=uplink)
    code, message = run_action(args.action, ruleset, nft=nft, runner=runner or SubprocessRunner())
    if code not in (EXIT_OK, EXIT_ABSENT):
        logger.warning("%s %s: %s", args.action, ruleset.comment, message)
    return _respond(args.action, code, message, hotspot, uplink)


if __name__ == "__main__":
    sys.exit(main())
