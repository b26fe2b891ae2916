"""NAT coordination: request rule changes from the privileged helper.

The coordinator never touches netfilter itself.  It runs the helper
through ``pkexec`` and maps the outcome onto :class:`NatUnavailable`
(helper missing or not authorized) or :class:`NatApplyFailed` (helper
ran, nothing changed).
"""

from __future__ import annotations

import enum
import json
import logging
import os
import subprocess
import time
from typing import Callable

from wifihotspot.errors import HelperError, NatApplyFailed, NatUnavailable
from wifihotspot.hotspot_common import (
    CommandRunner,
    InterfaceRoles,
    SubprocessRunner,
    _minimal_env,
)
from wifihotspot.nat import helper
from wifihotspot.nat.rules import NatRuleSet

logger = logging.getLogger(__name__)

DEFAULT_HELPER_PATH = "/usr/local/bin/wifihotspot-nat"

# pkexec: 126 = authentication dialog dismissed, 127 = not authorized
_PKEXEC_UNAUTHORIZED = (126, 127)


class NatCheck(enum.Enum):
    MATCH = "match"
    ABSENT = "absent"
    MISMATCH = "mismatch"


def _helper_message(stdout: str, stderr: str, code: int) -> str:
    """Pull the ``message`` field out of the helper's JSON response."""
    for line in reversed((stdout or "").strip().splitlines()):
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
    text = (stderr or "").strip()
    return text or f"helper exited with status {code}"


class NatCoordinator:
    """Apply and remove the NAT rule set for a role assignment.

    Args:
        helper_path: Absolute path of the installed ``wifihotspot-nat``.
        timeout: Bound on each helper invocation, in seconds.
        remove_attempts: How many times removal is tried before giving up.
        retry_delay: Seconds between removal attempts.
        escalate: Prefix the helper with ``pkexec``; disable when the
            caller already runs as root.
        runner: Optional CommandRunner for subprocess calls (testing seam).
        sleep: Sleep function used between retries (testing seam).
    """

    def __init__(
        self,
        helper_path: str = DEFAULT_HELPER_PATH,
        *,
        timeout: float = 30,
        remove_attempts: int = 3,
        retry_delay: float = 1.0,
        escalate: bool = True,
        runner: CommandRunner | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.helper_path = helper_path
        self._timeout = timeout
        self._remove_attempts = max(1, remove_attempts)
        self._retry_delay = retry_delay
        self._escalate = escalate
        self._runner = runner or SubprocessRunner()
        self._sleep = sleep
        self._installed: NatRuleSet | None = None

    @property
    def installed(self) -> NatRuleSet | None:
        """The rule set this coordinator last installed and has not removed."""
        return self._installed

    def _command(self, action: str, ruleset: NatRuleSet) -> list[str]:
        cmd = [self.helper_path, action, ruleset.hotspot_interface, ruleset.uplink_interface]
        if self._escalate:
            cmd = ["pkexec", "--disable-internal-agent", *cmd]
        return cmd

    def _invoke(self, action: str, ruleset: NatRuleSet) -> int:
        """Run the helper and return its exit code.

        Raises:
            NatUnavailable: helper or pkexec missing, or not authorized.
            NatApplyFailed: timeout, or a failure code other than
                ``EXIT_ABSENT``/``EXIT_MISMATCH`` (which are returned).
        """
        hs, up = ruleset.hotspot_interface, ruleset.uplink_interface
        if not os.path.exists(self.helper_path):
            raise NatUnavailable(action, hs, up, f"helper not installed at {self.helper_path}")

        try:
            result = self._runner.run(
                self._command(action, ruleset),
                capture_output=True,
                text=True,
                timeout=self._timeout,
                env=_minimal_env(),
            )
        except subprocess.TimeoutExpired:
            raise NatApplyFailed(action, hs, up, f"helper timed out after {self._timeout}s")
        except FileNotFoundError as exc:
            raise NatUnavailable(action, hs, up, f"cannot run helper: {exc}")
        except OSError as exc:
            raise NatApplyFailed(action, hs, up, str(exc))

        code = result.returncode
        logger.debug("nat helper %s %s>%s exited %d", action, hs, up, code)
        if code == helper.EXIT_OK:
            return code
        if self._escalate and code in _PKEXEC_UNAUTHORIZED:
            raise NatUnavailable(
                action, hs, up, "not authorized (is the polkit policy installed?)", exit_code=code,
            )
        if action in ("check", "remove") and code in (helper.EXIT_ABSENT, helper.EXIT_MISMATCH):
            return code
        raise NatApplyFailed(
            action, hs, up, _helper_message(result.stdout, result.stderr, code), exit_code=code,
        )

    def _ruleset(self, action: str, roles: InterfaceRoles) -> NatRuleSet:
        try:
            return NatRuleSet.from_roles(roles)
        except ValueError as exc:
            raise NatApplyFailed(action, roles.hotspot.name, roles.uplink.name, str(exc))

    # -- public API ------------------------------------------------------

    def apply(self, roles: InterfaceRoles) -> NatRuleSet:
        """Install the rule set for *roles*.

        Raises:
            NatUnavailable: NAT cannot be configured on this host.
            NatApplyFailed: the helper failed; no rules were changed.
        """
        ruleset = self._ruleset("apply", roles)
        self._invoke("apply", ruleset)
        self._installed = ruleset
        logger.info("NAT applied: %s -> %s", ruleset.hotspot_interface, ruleset.uplink_interface)
        return ruleset

    def remove(self, roles: InterfaceRoles) -> None:
        """Remove the rule set for *roles*, retrying on failure.

        Stale NAT rules are a security-relevant leftover, so removal is
        attempted up to ``remove_attempts`` times before the last error is
        raised.
        """
        ruleset = self._ruleset("remove", roles)
        last_error: HelperError | None = None

        for attempt in range(1, self._remove_attempts + 1):
            try:
                code = self._invoke("remove", ruleset)
            except HelperError as exc:
                last_error = exc
                logger.warning(
                    "NAT removal attempt %d/%d failed: %s",
                    attempt, self._remove_attempts, exc.reason,
                )
                if attempt < self._remove_attempts:
                    self._sleep(self._retry_delay)
                continue

            if code == helper.EXIT_MISMATCH:
                last_error = NatApplyFailed(
                    "remove", ruleset.hotspot_interface, ruleset.uplink_interface,
                    "installed rules belong to another interface pair", exit_code=code,
                )
                break
            if self._installed == ruleset:
                self._installed = None
            logger.info("NAT removed: %s -> %s", ruleset.hotspot_interface, ruleset.uplink_interface)
            return

        assert last_error is not None
        raise last_error

    def verify(self, roles: InterfaceRoles) -> NatCheck:
        """Compare the kernel's rule set with the one for *roles*."""
        code = self._invoke("check", self._ruleset("check", roles))
        if code == helper.EXIT_ABSENT:
            return NatCheck.ABSENT
        if code == helper.EXIT_MISMATCH:
            return NatCheck.MISMATCH
        return NatCheck.MATCH
