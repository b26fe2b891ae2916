"""Error taxonomy for the hotspot control core.

Every error carries enough structured detail (which interface, which
step) for a UI to show an actionable message.  ``to_dict()`` exposes
that detail in a serialisable form.
"""

from __future__ import annotations

import enum
from typing import Any


class HotspotError(Exception):
    """Base class for all control-core failures."""

    step: str = "unknown"

    def __init__(self, message: str, *, interface: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.interface = interface

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "step": self.step,
            "interface": self.interface,
            "message": self.message,
        }


class ConfigError(HotspotError):
    """A HotspotConfig field failed validation."""

    step = "validate"

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"invalid {field}: {reason}")
        self.field = field
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        return data


# ---------------------------------------------------------------------------
# Role resolution
# ---------------------------------------------------------------------------

class RoleResolutionError(HotspotError):
    step = "resolve"


class InsufficientInterfaces(RoleResolutionError):
    """Fewer than two WiFi-capable interfaces exist."""

    def __init__(self, found: list[str]) -> None:
        names = ", ".join(found) if found else "none"
        super().__init__(
            f"need two WiFi interfaces, found {len(found)} ({names})"
        )
        self.found = list(found)


class NoUplink(RoleResolutionError):
    """No WiFi interface carries a default route and none was forced."""

    def __init__(self, candidates: list[str]) -> None:
        super().__init__(
            "no WiFi interface carries a default route; "
            "connect one to the internet or choose an uplink explicitly"
        )
        self.candidates = list(candidates)


class InvalidRoleHint(RoleResolutionError):
    """A user-supplied interface choice violates a hard constraint."""

    def __init__(self, message: str, *, interface: str | None = None) -> None:
        super().__init__(message, interface=interface)


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class Busy(HotspotError):
    """Another transition is in flight."""

    step = "dispatch"

    def __init__(self, operation: str, in_flight: str) -> None:
        super().__init__(f"cannot {operation}: {in_flight} already in progress")
        self.operation = operation
        self.in_flight = in_flight


class InvalidState(HotspotError):
    """The requested operation is not allowed in the current state."""

    step = "dispatch"

    def __init__(self, operation: str, state: str) -> None:
        super().__init__(f"cannot {operation} while {state}")
        self.operation = operation
        self.state = state


# ---------------------------------------------------------------------------
# Platform
# ---------------------------------------------------------------------------

class PlatformQueryError(HotspotError):
    """The network-configuration service could not be queried."""

    step = "query"

    def __init__(self, command: str, reason: str, *, interface: str | None = None) -> None:
        super().__init__(f"{command} failed: {reason}", interface=interface)
        self.command = command
        self.reason = reason


class ActivationFailed(HotspotError):
    """The platform refused or failed to bring up the access point."""

    def __init__(self, interface: str, step: str, reason: str) -> None:
        super().__init__(
            f"could not start access point on {interface} ({step}): {reason}",
            interface=interface,
        )
        self.step = step
        self.reason = reason


class TeardownFailed(HotspotError):
    """The access point could not be taken down."""

    step = "teardown"

    def __init__(self, reason: str, *, interface: str | None = None) -> None:
        super().__init__(f"could not stop access point: {reason}", interface=interface)
        self.reason = reason


# ---------------------------------------------------------------------------
# NAT helper
# ---------------------------------------------------------------------------

class HelperError(HotspotError):
    """The privileged NAT helper did not complete the requested action."""

    step = "nat"

    def __init__(
        self,
        action: str,
        hotspot_interface: str,
        uplink_interface: str,
        reason: str,
        *,
        exit_code: int | None = None,
    ) -> None:
        super().__init__(
            f"NAT {action} for {hotspot_interface} -> {uplink_interface} failed: {reason}",
            interface=hotspot_interface,
        )
        self.action = action
        self.hotspot_interface = hotspot_interface
        self.uplink_interface = uplink_interface
        self.reason = reason
        self.exit_code = exit_code

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            action=self.action,
            uplink_interface=self.uplink_interface,
            exit_code=self.exit_code,
        )
        return data


class NatUnavailable(HelperError):
    """The helper is not installed or not authorized to run."""


class NatApplyFailed(HelperError):
    """The helper ran but the rule change failed (nothing was changed)."""


# ---------------------------------------------------------------------------
# Drift
# ---------------------------------------------------------------------------

class DriftKind(enum.Enum):
    INTERFACE_LOST = "hotspot interface lost"
    AP_DROPPED = "access point dropped"
    NAT_MISMATCH = "NAT rules do not match session"
    UNEXPECTED_AP = "access point active without a session"


class Drift(HotspotError):
    """Live system state disagrees with the controller's recorded state."""

    step = "reconcile"

    def __init__(
        self,
        kind: DriftKind,
        *,
        interface: str | None = None,
        detail: str = "",
        session_started_at: Any = None,
    ) -> None:
        message = kind.value
        if interface:
            message = f"{message}: {interface}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message, interface=interface)
        self.kind = kind
        self.detail = detail
        self.session_started_at = session_started_at

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kind"] = self.kind.name
        return data
