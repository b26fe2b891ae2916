"""Hotspot lifecycle state machine.

States::

    IDLE -> STARTING -> ACTIVE -> STOPPING -> IDLE
                 \\          \\
                  +-> FAILED <+--- (drift)      FAILED -> IDLE via reset()

All transitions run on one control thread (a single-worker executor), so
they are strictly serialized.  Public calls return immediately with a
:class:`~concurrent.futures.Future`; a call made while another transition
is in flight raises :class:`Busy` instead of queueing, except for a
``deactivate()`` during start-up, which is queued to run once the start
finishes so the access point is never left half-configured.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Any, Callable

from wifihotspot.access_point import NetworkManagerAP
from wifihotspot.errors import (
    ActivationFailed,
    Busy,
    Drift,
    DriftKind,
    HelperError,
    HotspotError,
    InvalidState,
    NatApplyFailed,
    NatUnavailable,
    PlatformQueryError,
    TeardownFailed,
)
from wifihotspot.events import EventBus, StateChanged
from wifihotspot.hotspot_common import (
    HotspotConfig,
    HotspotSession,
    HotspotState,
    NatStatus,
)
from wifihotspot.inventory import InterfaceInventory
from wifihotspot.nat.coordinator import NatCoordinator
from wifihotspot.roles import RoleHints, resolve

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ControllerSnapshot:
    """Read-only view of the controller for display.

    ``session`` is the live session while STARTING/ACTIVE/STOPPING and the
    failed session while FAILED; ``failure`` is the error that caused FAILED.
    """

    state: HotspotState
    session: HotspotSession | None = None
    failure: HotspotError | None = None
    in_flight: str | None = None


def _completed(result: Any = None) -> Future:
    future: Future = Future()
    future.set_result(result)
    return future


class HotspotController:
    """Owns the single hotspot session and every transition of it.

    Args:
        inventory: Interface inventory, scanned fresh before each start.
        access_point: Platform access-point service.
        nat: NAT coordinator used when a config enables NAT.
        events: Event bus for observers; a private one is created if None.
    """

    def __init__(
        self,
        inventory: InterfaceInventory,
        access_point: NetworkManagerAP,
        nat: NatCoordinator,
        *,
        events: EventBus | None = None,
    ) -> None:
        self._inventory = inventory
        self._ap = access_point
        self._nat = nat
        self.events = events or EventBus()

        self._lock = threading.RLock()
        self._state = HotspotState.IDLE
        self._session: HotspotSession | None = None
        self._failure: HotspotError | None = None
        self._in_flight: str | None = None
        self._stop_queued = False
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="hotspot-control")

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def state(self) -> HotspotState:
        with self._lock:
            return self._state

    def snapshot(self) -> ControllerSnapshot:
        with self._lock:
            return ControllerSnapshot(
                state=self._state,
                session=self._session,
                failure=self._failure,
                in_flight=self._in_flight,
            )

    def close(self) -> None:
        """Wait for the current transition, then stop the control thread."""
        self._executor.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def activate(self, config: HotspotConfig, hints: RoleHints | None = None) -> Future:
        """Start a hotspot session with *config*.

        Raises immediately with :class:`ConfigError`, :class:`Busy` or
        :class:`InvalidState`.  Role resolution and inventory errors are
        raised by the returned future and leave the controller IDLE;
        activation failures move it to FAILED.
        """
        config.validate()
        with self._lock:
            if self._in_flight:
                raise Busy("activate", self._in_flight)
            if self._state is not HotspotState.IDLE:
                raise InvalidState("activate", self._state.value)
            self._in_flight = "activate"
        return self._submit("activate", self._run_activate, config, hints)

    def deactivate(self) -> Future:
        """Stop the active session.  A no-op when already IDLE.

        While FAILED this acts as :meth:`reset`, including for a stop that
        was queued behind a start which then failed.
        """
        with self._lock:
            if self._in_flight == "activate" and not self._stop_queued:
                logger.info("deactivate requested during start; stopping once started")
                self._stop_queued = True
                return self._executor.submit(self._run_task, "deactivate", self._run_deactivate)
            if self._in_flight:
                raise Busy("deactivate", self._in_flight)
            if self._state is HotspotState.IDLE:
                return _completed()
            if self._state is HotspotState.FAILED:
                return self.reset()
            self._in_flight = "deactivate"
        return self._submit("deactivate", self._run_deactivate)

    def reset(self) -> Future:
        """Acknowledge a failure and return to IDLE.

        Any NAT rule set the session may have installed is removed first;
        if that fails the controller stays FAILED and the future raises.
        """
        with self._lock:
            if self._in_flight:
                raise Busy("reset", self._in_flight)
            if self._state is HotspotState.IDLE:
                return _completed()
            if self._state is not HotspotState.FAILED:
                raise InvalidState("reset", self._state.value)
            self._in_flight = "reset"
        return self._submit("reset", self._run_reset)

    def report_drift(self, drift: Drift) -> Future | None:
        """Let the controller act on a drift observed by the reconciler.

        Only a drift about the current ACTIVE session, seen while no
        transition is in flight, is acted on: the session is torn down and
        the controller moves to FAILED with the drift as its failure.
        Returns None when the drift is ignored.
        """
        with self._lock:
            session = self._session
            if (
                self._in_flight
                or self._state is not HotspotState.ACTIVE
                or session is None
                or drift.kind is DriftKind.UNEXPECTED_AP
            ):
                logger.debug("drift ignored in state %s: %s", self._state.value, drift)
                return None
            if drift.session_started_at not in (None, session.started_at):
                logger.debug("drift for an earlier session ignored: %s", drift)
                return None
            self._in_flight = "drift"
        return self._submit("drift", self._run_drift, drift)

    # ------------------------------------------------------------------
    # Control thread
    # ------------------------------------------------------------------

    def _submit(self, name: str, fn: Callable[..., Any], *args: Any) -> Future:
        try:
            return self._executor.submit(self._run_task, name, fn, *args)
        except RuntimeError:
            with self._lock:
                self._in_flight = None
            raise

    def _run_task(self, name: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        finally:
            with self._lock:
                if name == "activate" and self._stop_queued:
                    self._in_flight = "deactivate"
                else:
                    self._in_flight = None
                    if name == "deactivate":
                        self._stop_queued = False

    def _transition(
        self,
        new_state: HotspotState,
        session: HotspotSession | None,
        error: HotspotError | None = None,
    ) -> HotspotSession | None:
        if session is not None:
            session = replace(session, state=new_state)
        with self._lock:
            previous = self._state
            self._state = new_state
            self._session = session
            if new_state is HotspotState.FAILED:
                self._failure = error
            elif new_state is HotspotState.IDLE:
                self._failure = None

        if error is not None:
            logger.warning("hotspot %s -> %s: %s", previous.value, new_state.value, error)
        else:
            logger.info("hotspot %s -> %s", previous.value, new_state.value)
        self.events.publish(StateChanged(previous, new_state, session, error))
        return session

    def _nat_may_be_installed(self, session: HotspotSession) -> bool:
        """True if rules for *session* could be in the kernel.

        A helper timeout leaves the outcome unknown; a helper that reported
        failure changed nothing.
        """
        if self._nat.installed is not None:
            return True
        error = session.nat_error
        return (
            session.nat_status is NatStatus.FAILED
            and error is not None
            and error.exit_code is None
        )

    def _teardown_quietly(self, session: HotspotSession) -> None:
        try:
            self._ap.tear_down(session.hotspot_interface)
        except Exception as exc:
            logger.warning("best-effort teardown on %s failed: %s", session.hotspot_interface, exc)

    def _remove_nat(self, session: HotspotSession) -> None:
        """Remove the session's NAT rules; any failure surfaces as HelperError."""
        try:
            self._nat.remove(session.roles)
        except HelperError:
            raise
        except Exception as exc:
            hotspot, uplink = session.roles.pair
            raise NatApplyFailed("remove", hotspot, uplink, f"unexpected error: {exc!r}") from exc

    def _run_activate(self, config: HotspotConfig, hints: RoleHints | None) -> HotspotSession:
        interfaces = self._inventory.scan()
        roles = resolve(interfaces, hints)

        session = HotspotSession(
            config=config,
            roles=roles,
            state=HotspotState.STARTING,
            nat_status=NatStatus.PENDING if config.nat_enabled else NatStatus.DISABLED,
        )
        session = self._transition(HotspotState.STARTING, session)
        hotspot = roles.hotspot.name

        try:
            self._ap.bring_up(hotspot, config)
            try:
                up = self._ap.is_active()
            except PlatformQueryError as exc:
                raise ActivationFailed(hotspot, "confirm", exc.reason)
            if not up:
                raise ActivationFailed(hotspot, "confirm", "access point did not report activated")
        except ActivationFailed as exc:
            self._teardown_quietly(session)
            self._transition(HotspotState.FAILED, session, exc)
            raise
        except Exception as exc:
            error = ActivationFailed(hotspot, "activate", f"unexpected error: {exc!r}")
            self._teardown_quietly(session)
            self._transition(HotspotState.FAILED, session, error)
            raise error from exc

        if config.nat_enabled:
            try:
                self._nat.apply(roles)
                session = replace(session, nat_status=NatStatus.APPLIED)
            except NatUnavailable as exc:
                logger.warning("NAT unavailable, hotspot runs without internet bridging: %s", exc.reason)
                session = replace(session, nat_status=NatStatus.UNAVAILABLE, nat_error=exc)
            except NatApplyFailed as exc:
                logger.warning("NAT apply failed, hotspot runs without internet bridging: %s", exc.reason)
                session = replace(session, nat_status=NatStatus.FAILED, nat_error=exc)
            except Exception as exc:
                # no exit code: the rules count as possibly installed
                error = NatApplyFailed("apply", hotspot, roles.uplink.name, f"unexpected error: {exc!r}")
                logger.warning("NAT apply failed, hotspot runs without internet bridging: %s", error.reason)
                session = replace(session, nat_status=NatStatus.FAILED, nat_error=error)

        return self._transition(HotspotState.ACTIVE, session)

    def _run_deactivate(self) -> None:
        with self._lock:
            state, session, queued = self._state, self._session, self._stop_queued
        if state is HotspotState.FAILED and queued:
            logger.info("start failed before the queued stop; resetting")
            return self._run_reset()
        if state is not HotspotState.ACTIVE or session is None:
            logger.debug("deactivate: nothing to stop (%s)", state.value)
            return None

        session = self._transition(HotspotState.STOPPING, session)

        # NAT first, so the uplink never forwards for a half-torn-down AP
        if self._nat_may_be_installed(session):
            try:
                self._remove_nat(session)
            except HelperError as exc:
                self._teardown_quietly(session)
                self._transition(HotspotState.FAILED, session, exc)
                raise

        try:
            self._ap.tear_down(session.hotspot_interface)
        except TeardownFailed as exc:
            self._transition(HotspotState.FAILED, session, exc)
            raise
        except Exception as exc:
            error = TeardownFailed(f"unexpected error: {exc!r}", interface=session.hotspot_interface)
            self._transition(HotspotState.FAILED, session, error)
            raise error from exc

        self._transition(HotspotState.IDLE, None)
        return None

    def _run_reset(self) -> None:
        with self._lock:
            state, session = self._state, self._session
        if state is not HotspotState.FAILED:
            return None

        if session is not None:
            if self._nat_may_be_installed(session):
                try:
                    self._remove_nat(session)
                except HelperError as exc:
                    self._transition(HotspotState.FAILED, session, exc)
                    raise
            self._teardown_quietly(session)

        self._transition(HotspotState.IDLE, None)
        return None

    def _run_drift(self, drift: Drift) -> None:
        with self._lock:
            state, session = self._state, self._session
        if state is not HotspotState.ACTIVE or session is None:
            return None

        if self._nat_may_be_installed(session):
            try:
                self._remove_nat(session)
            except HelperError as exc:
                logger.error("NAT removal after drift failed; reset() will retry: %s", exc)
        self._teardown_quietly(session)
        self._transition(HotspotState.FAILED, session, drift)
        return None
