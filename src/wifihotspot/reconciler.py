"""Status reconciliation: compare live state with the controller's record.

The reconciler never repairs anything itself.  Each mismatch becomes a
:class:`Drift`, published as a :class:`DriftDetected` event and handed to
the controller, which decides what to do (normally: go FAILED).
"""

from __future__ import annotations

import logging
import threading

from wifihotspot.access_point import NetworkManagerAP
from wifihotspot.controller import ControllerSnapshot, HotspotController
from wifihotspot.errors import Drift, DriftKind, HelperError, PlatformQueryError
from wifihotspot.events import DriftDetected, EventBus, StatusReport
from wifihotspot.hotspot_common import HotspotSession, HotspotState, NatStatus
from wifihotspot.inventory import InterfaceInventory
from wifihotspot.nat.coordinator import NatCheck, NatCoordinator

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 2.0


def _same_session(before: ControllerSnapshot, after: ControllerSnapshot) -> bool:
    if after.in_flight or after.state is not before.state:
        return False
    started_before = before.session.started_at if before.session else None
    started_after = after.session.started_at if after.session else None
    return started_before == started_after


class StatusReconciler:
    """Periodically cross-check the controller against the live system.

    Args:
        controller: The controller whose recorded session is checked.
        inventory: Interface inventory, scanned fresh on every pass.
        access_point: Platform access-point service.
        nat: NAT coordinator used to verify installed rules; None skips
            the NAT check.
        events: Bus for drift/status events; defaults to the controller's.
        interval: Seconds between passes when running in the background.
        verify_nat: Query the helper each pass while NAT is applied.
    """

    def __init__(
        self,
        controller: HotspotController,
        inventory: InterfaceInventory,
        access_point: NetworkManagerAP,
        nat: NatCoordinator | None = None,
        *,
        events: EventBus | None = None,
        interval: float = DEFAULT_INTERVAL,
        verify_nat: bool = True,
    ) -> None:
        self._controller = controller
        self._inventory = inventory
        self._ap = access_point
        self._nat = nat
        self.events = events or controller.events
        self.interval = interval
        self._verify_nat = verify_nat
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    # -- single pass -----------------------------------------------------

    def _check_active(self, session: HotspotSession) -> tuple[list[Drift], list[str]]:
        hotspot = session.hotspot_interface
        started = session.started_at

        interfaces = self._inventory.scan()
        if hotspot not in {i.name for i in interfaces}:
            return [Drift(DriftKind.INTERFACE_LOST, interface=hotspot, session_started_at=started)], []

        if not self._ap.is_active():
            return [Drift(DriftKind.AP_DROPPED, interface=hotspot, session_started_at=started)], []

        if self._nat is not None and self._verify_nat and session.nat_status is NatStatus.APPLIED:
            try:
                check = self._nat.verify(session.roles)
            except HelperError as exc:
                logger.warning("NAT check skipped: %s", exc.reason)
            else:
                if check is not NatCheck.MATCH:
                    return [Drift(
                        DriftKind.NAT_MISMATCH,
                        interface=hotspot,
                        detail=f"rules {check.value}",
                        session_started_at=started,
                    )], []

        return [], self._ap.connected_clients(hotspot)

    def check_once(self) -> list[Drift]:
        """Run one reconciliation pass and return the drifts found."""
        snap = self._controller.snapshot()
        if snap.in_flight or snap.state in (HotspotState.STARTING, HotspotState.STOPPING):
            logger.debug("reconcile skipped: transition in flight")
            return []

        drifts: list[Drift] = []
        clients: list[str] = []
        try:
            if snap.state is HotspotState.ACTIVE and snap.session is not None:
                drifts, clients = self._check_active(snap.session)
            elif snap.state is HotspotState.IDLE and self._ap.is_active():
                drifts = [Drift(DriftKind.UNEXPECTED_AP, detail=self._ap.connection_name)]
        except PlatformQueryError as exc:
            logger.warning("reconcile pass skipped: %s", exc)
            return []

        # A transition that ran during the live queries invalidates them
        if not _same_session(snap, self._controller.snapshot()):
            logger.debug("reconcile pass discarded: controller changed during the pass")
            return []

        for drift in drifts:
            logger.warning("drift detected: %s", drift)
            self.events.publish(DriftDetected(drift, snap.session))
            self._controller.report_drift(drift)

        self.events.publish(StatusReport(snap.state, snap.session, clients))
        return drifts

    # -- background loop -------------------------------------------------

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            self.check_once()

    def start(self) -> None:
        """Start periodic passes on a daemon thread."""
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="hotspot-reconciler", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the background thread and wait for it."""
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=self.interval + 5)
            self._thread = None
