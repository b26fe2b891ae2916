"""Events published by the controller and the status reconciler.

Observers (the UI layer) subscribe a callback on an :class:`EventBus`
and receive every event synchronously, in subscription order.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Union

from wifihotspot.errors import Drift, HotspotError
from wifihotspot.hotspot_common import HotspotSession, HotspotState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateChanged:
    """A controller transition."""

    previous: HotspotState
    current: HotspotState
    session: HotspotSession | None = None
    error: HotspotError | None = None


@dataclass(frozen=True)
class DriftDetected:
    """Live state disagrees with the controller's record."""

    drift: Drift
    session: HotspotSession | None = None


@dataclass(frozen=True)
class StatusReport:
    """Result of one reconciliation pass."""

    state: HotspotState
    session: HotspotSession | None = None
    clients: list[str] = field(default_factory=list)


Event = Union[StateChanged, DriftDetected, StatusReport]
Callback = Callable[[Event], None]


class EventBus:
    """Thread-safe publish/subscribe fan-out."""

    def __init__(self) -> None:
        self._subscribers: list[Callback] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Callback) -> Callable[[], None]:
        """Register *callback*; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, event: Event) -> None:
        """Deliver *event* to every subscriber.

        A failing subscriber is logged and skipped so it cannot stall the
        control thread.
        """
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("event subscriber %r failed on %s", callback, type(event).__name__)
