"""Access point control through NetworkManager (nmcli).

The hotspot is a dedicated NetworkManager connection profile in ``ap``
mode with ``ipv4.method shared``, so NetworkManager runs DHCP for the
clients.  Each operation here is a short series of blocking nmcli calls,
every one bounded by a timeout.
"""

from __future__ import annotations

import logging
import subprocess

from wifihotspot.clients import connected_clients
from wifihotspot.errors import ActivationFailed, PlatformQueryError, TeardownFailed
from wifihotspot.hotspot_common import (
    CommandRunner,
    HotspotConfig,
    SubprocessRunner,
    _minimal_env,
    _stderr_text,
)

logger = logging.getLogger(__name__)

DEFAULT_CONNECTION_NAME = "wifihotspot"
DEFAULT_GATEWAY_IP = "192.168.44.1/24"


def build_add_command(
    connection_name: str,
    interface: str,
    config: HotspotConfig,
    gateway_ip: str = DEFAULT_GATEWAY_IP,
) -> list[str]:
    """Build the ``nmcli connection add`` command for an AP profile."""
    cmd = [
        "nmcli", "connection", "add",
        "type", "wifi",
        "ifname", interface,
        "con-name", connection_name,
        "autoconnect", "no",
        "ssid", config.ssid,
        "--",
        "wifi.mode", "ap",
    ]
    if config.band:
        cmd += ["wifi.band", config.band]
    if config.channel is not None:
        cmd += ["wifi.channel", str(config.channel)]
    cmd += [
        "wifi-sec.key-mgmt", "wpa-psk",
        "wifi-sec.proto", "rsn",
        "wifi-sec.pairwise", "ccmp",
        "wifi-sec.group", "ccmp",
        "wifi-sec.psk", config.passphrase,
        "ipv4.method", "shared",
        "ipv4.addresses", gateway_ip,
        "ipv6.method", "disabled",
    ]
    return cmd


class NetworkManagerAP:
    """Bring an access point up or down on one interface via nmcli.

    Args:
        connection_name: NetworkManager profile name owned by this tool.
        gateway_ip: Address/prefix of the hotspot side.
        timeout: Timeout for short nmcli calls, in seconds.
        activation_timeout: How long ``connection up`` may wait for the
            AP to come up.
        runner: Optional CommandRunner for subprocess calls (testing seam).
    """

    def __init__(
        self,
        connection_name: str = DEFAULT_CONNECTION_NAME,
        *,
        gateway_ip: str = DEFAULT_GATEWAY_IP,
        timeout: float = 30,
        activation_timeout: float = 45,
        runner: CommandRunner | None = None,
    ) -> None:
        self.connection_name = connection_name
        self.gateway_ip = gateway_ip
        self._timeout = timeout
        self._activation_timeout = activation_timeout
        self._runner = runner or SubprocessRunner()

    def _nmcli(self, args: list[str], timeout: float) -> subprocess.CompletedProcess:
        return self._runner.run(
            ["nmcli", *args],
            capture_output=True,
            text=True,
            timeout=timeout,
            env=_minimal_env(),
        )

    def _delete_profile(self) -> None:
        """Remove the profile; a missing profile is not an error."""
        try:
            self._nmcli(["connection", "delete", self.connection_name], self._timeout)
        except (subprocess.TimeoutExpired, FileNotFoundError, OSError) as exc:
            logger.debug("delete of %s failed: %s", self.connection_name, exc)

    # -- bring up --------------------------------------------------------

    def bring_up(self, interface: str, config: HotspotConfig) -> None:
        """Create and activate the AP profile on *interface*.

        Raises:
            ActivationFailed: profile creation or activation failed or
                timed out.  ``step`` is ``"create"`` or ``"activate"``.
        """
        self._delete_profile()

        cmd = build_add_command(self.connection_name, interface, config, self.gateway_ip)
        try:
            result = self._runner.run(
                cmd, capture_output=True, text=True, timeout=self._timeout, env=_minimal_env(),
            )
        except subprocess.TimeoutExpired:
            raise ActivationFailed(interface, "create", f"timed out after {self._timeout}s")
        except (FileNotFoundError, OSError) as exc:
            raise ActivationFailed(interface, "create", str(exc))
        if result.returncode != 0:
            raise ActivationFailed(interface, "create", _stderr_text(result))

        wait = int(self._activation_timeout)
        try:
            # nmcli's own --wait ends before ours so its error text wins
            result = self._nmcli(
                ["--wait", str(wait), "connection", "up", self.connection_name],
                self._activation_timeout + 5,
            )
        except subprocess.TimeoutExpired:
            raise ActivationFailed(interface, "activate", f"timed out after {wait}s")
        except (FileNotFoundError, OSError) as exc:
            raise ActivationFailed(interface, "activate", str(exc))
        if result.returncode != 0:
            raise ActivationFailed(interface, "activate", _stderr_text(result))

        logger.info("access point %r up on %s", config.ssid, interface)

    # -- query -----------------------------------------------------------

    def is_active(self) -> bool:
        """Return True if the AP profile is activated.

        Raises:
            PlatformQueryError: nmcli is missing or timed out.
        """
        try:
            result = self._nmcli(
                ["-t", "-f", "GENERAL.STATE", "connection", "show", self.connection_name],
                self._timeout,
            )
        except subprocess.TimeoutExpired:
            raise PlatformQueryError("nmcli connection show", f"timed out after {self._timeout}s")
        except (FileNotFoundError, OSError) as exc:
            raise PlatformQueryError("nmcli connection show", str(exc))

        # Unknown profile: nmcli exits 10 and the AP is simply not up
        if result.returncode != 0:
            return False
        return "activated" in result.stdout and "deactivat" not in result.stdout

    def connected_clients(self, interface: str) -> list[str]:
        """Return client IPs on *interface* (best effort)."""
        return connected_clients(interface, runner=self._runner)

    # -- tear down -------------------------------------------------------

    def tear_down(self, interface: str | None = None) -> None:
        """Deactivate and delete the AP profile.

        Raises:
            TeardownFailed: nmcli timed out or the profile is still active
                afterwards.
        """
        for args in (
            ["connection", "down", self.connection_name],
            ["connection", "delete", self.connection_name],
        ):
            try:
                result = self._nmcli(args, self._timeout)
            except subprocess.TimeoutExpired:
                raise TeardownFailed(
                    f"nmcli {args[1]} timed out after {self._timeout}s", interface=interface,
                )
            except (FileNotFoundError, OSError) as exc:
                raise TeardownFailed(str(exc), interface=interface)
            if result.returncode != 0:
                logger.debug("nmcli %s: %s", args[1], _stderr_text(result))

        try:
            still_active = self.is_active()
        except PlatformQueryError as exc:
            raise TeardownFailed(exc.reason, interface=interface)
        if still_active:
            raise TeardownFailed(
                f"connection {self.connection_name} is still active", interface=interface,
            )
        logger.info("access point %s down", self.connection_name)
