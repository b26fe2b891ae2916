"""The NAT rule set for one hotspot/uplink interface pair.

All rules live in a dedicated nftables table so that installing or
removing them is a single ``nft -f`` transaction: the kernel commits the
whole table or nothing, and no other table is touched.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from wifihotspot.hotspot_common import InterfaceRoles

logger = logging.getLogger(__name__)

TABLE_FAMILY = "ip"
TABLE_NAME = "wifihotspot"
COMMENT_PREFIX = "wifihotspot:"

# Linux IFNAMSIZ is 16 including the terminating NUL
_IFNAME_RE = re.compile(r"[A-Za-z0-9_.-]{1,15}")
_COMMENT_RE = re.compile(rf"{re.escape(COMMENT_PREFIX)}([A-Za-z0-9_.-]+)>([A-Za-z0-9_.-]+)")


def is_valid_interface_name(name: str) -> bool:
    """Return True if *name* is a safe kernel interface name."""
    return bool(_IFNAME_RE.fullmatch(name)) and name not in (".", "..")


@dataclass(frozen=True)
class NatRuleSet:
    """Forward + masquerade rules from *hotspot_interface* to *uplink_interface*."""

    hotspot_interface: str
    uplink_interface: str

    def __post_init__(self) -> None:
        for name in (self.hotspot_interface, self.uplink_interface):
            if not is_valid_interface_name(name):
                raise ValueError(f"invalid interface name: {name!r}")
        if self.hotspot_interface == self.uplink_interface:
            raise ValueError("hotspot and uplink interface must differ")

    @classmethod
    def from_roles(cls, roles: InterfaceRoles) -> NatRuleSet:
        return cls(hotspot_interface=roles.hotspot.name, uplink_interface=roles.uplink.name)

    @property
    def comment(self) -> str:
        return f"{COMMENT_PREFIX}{self.hotspot_interface}>{self.uplink_interface}"

    def render(self) -> str:
        """Return the nft script that installs exactly this rule set.

        The leading ``table``/``delete table`` pair makes the script replace
        any previous rule set within the same transaction, whether or not
        the table existed before.
        """
        hs = self.hotspot_interface
        up = self.uplink_interface
        tag = self.comment
        return (
            f"add table {TABLE_FAMILY} {TABLE_NAME}\n"
            f"delete table {TABLE_FAMILY} {TABLE_NAME}\n"
            f"table {TABLE_FAMILY} {TABLE_NAME} {{\n"
            f"\tchain forward {{\n"
            f"\t\ttype filter hook forward priority 0; policy accept;\n"
            f'\t\tiifname "{hs}" oifname "{up}" accept comment "{tag}"\n'
            f'\t\tiifname "{up}" oifname "{hs}" ct state related,established accept comment "{tag}"\n'
            f"\t}}\n"
            f"\tchain postrouting {{\n"
            f"\t\ttype nat hook postrouting priority 100; policy accept;\n"
            f'\t\tiifname "{hs}" oifname "{up}" masquerade comment "{tag}"\n'
            f"\t}}\n"
            f"}}\n"
        )


def removal_script() -> str:
    """Return the nft script that removes the rule set, present or not."""
    return (
        f"add table {TABLE_FAMILY} {TABLE_NAME}\n"
        f"delete table {TABLE_FAMILY} {TABLE_NAME}\n"
    )


def list_command() -> list[str]:
    """Return the nft arguments that dump the table as JSON."""
    return ["-j", "list", "table", TABLE_FAMILY, TABLE_NAME]


def parse_installed(nft_json: str | dict[str, Any]) -> NatRuleSet | None:
    """Recover the installed interface pair from ``nft -j list table`` output.

    Returns None when the table holds no tagged rules.  If the rules carry
    more than one pair (never written by this tool) the first is returned
    and a warning is logged.

    Raises:
        ValueError: The output is not an nft JSON document.
    """
    if isinstance(nft_json, str):
        if not nft_json.strip():
            return None
        try:
            data = json.loads(nft_json)
        except json.JSONDecodeError as exc:
            raise ValueError(f"could not parse nft JSON output: {exc}") from exc
    else:
        data = nft_json
    if not isinstance(data, dict):
        raise ValueError("nft JSON output is not an object")

    pairs: list[tuple[str, str]] = []
    for item in data.get("nftables", []):
        rule = item.get("rule")
        if not rule or rule.get("table") != TABLE_NAME:
            continue
        match = _COMMENT_RE.fullmatch(rule.get("comment") or "")
        if match and match.groups() not in pairs:
            pairs.append(match.groups())

    if not pairs:
        return None
    if len(pairs) > 1:
        logger.warning("nft table %s holds several pairs: %s", TABLE_NAME, pairs)
    hotspot, uplink = pairs[0]
    return NatRuleSet(hotspot_interface=hotspot, uplink_interface=uplink)
