"""Keyboard-avoidance inset controller.

Folds show/hide obstruction notifications into a single bottom inset and
publishes every update to observers. Subscription lifetime is tied to the
controller: use it as a context manager (or call :meth:`dispose`) so that
release never depends on garbage collection.

Usage::

    with KeyboardInsetController(source) as controller:
        controller.on_change(lambda inset: view.set_bottom_padding(inset))
        ...
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from kbinset.exceptions import InsetInitializationError
from kbinset.source import NotificationSource, SubscriptionHandle
from kbinset.state.events import ObstructionHidden, ObstructionKind, ObstructionShown
from kbinset.state.policy import InsetPhase, transition

_logger = logging.getLogger(__name__)

InsetObserver = Callable[[float], None]


class InsetSnapshot(BaseModel):
    """Point-in-time view of a controller, for diagnostics."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    phase: InsetPhase
    inset: float
    events_applied: int
    last_event_at: datetime | None = None
    disposed: bool = False


class ObserverHandle:
    """Deregistration handle returned by :meth:`KeyboardInsetController.on_change`."""

    __slots__ = ("_controller", "_observer_id")

    def __init__(self, controller: KeyboardInsetController | None, observer_id: int) -> None:
        self._controller = controller
        self._observer_id = observer_id

    @property
    def active(self) -> bool:
        controller = self._controller
        return controller is not None and controller._has_observer(self._observer_id)

    def remove(self) -> None:
        """Stop notifying the observer. Safe to call more than once."""
        controller = self._controller
        self._controller = None
        if controller is not None:
            controller._remove_observer(self._observer_id)


class KeyboardInsetController:
    """Derives the current bottom inset from keyboard obstruction events.

    State machine: ``Idle(0)`` and ``Obstructed(h)``. Every ``Shown(h)``
    moves to ``Obstructed(h)``; every ``Hidden`` moves to ``Idle``. Events
    are applied in arrival order and each one notifies all observers, even
    when the value does not change.

    Not thread-safe: the source must deliver callbacks serially on one
    coordination thread.
    """

    def __init__(
        self,
        source: NotificationSource,
        *,
        log_events: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self._logger = logger or _logger
        self._log_events = log_events
        self._phase = InsetPhase.IDLE
        self._inset = 0.0
        self._events_applied = 0
        self._last_event_at: datetime | None = None
        self._observers: dict[int, InsetObserver] = {}
        self._next_observer_id = 1
        self._disposed = False
        self._source: NotificationSource | None = source
        self._handles: list[SubscriptionHandle] = []

        for kind in (ObstructionKind.SHOWN, ObstructionKind.HIDDEN):
            try:
                self._handles.append(source.subscribe(kind, self._on_event))
            except Exception as exc:
                self._release_subscriptions()
                self._disposed = True
                raise InsetInitializationError(
                    f"Failed to subscribe to {kind} notifications: {exc}",
                    kind=str(kind),
                ) from exc

    # ------------------------------------------------------------------
    # Scoped lifecycle
    # ------------------------------------------------------------------

    def __enter__(self) -> KeyboardInsetController:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.dispose()

    def dispose(self) -> None:
        """Release the source subscriptions.

        Idempotent, and safe to call from inside an observer. Once this
        returns no further event reaches the controller and the inset stays
        at its last value. A subscription the source fails to release is
        logged and retried by the next call.
        """
        if self._disposed and not self._handles:
            return
        self._disposed = True
        self._observers.clear()
        self._release_subscriptions()
        self._logger.debug("Inset controller disposed inset=%s", self._inset)

    def _release_subscriptions(self) -> None:
        """Unsubscribe every handle; failed handles are kept for a later retry."""
        source = self._source
        if source is None:
            return
        failed: list[SubscriptionHandle] = []
        for handle in self._handles:
            try:
                source.unsubscribe(handle)
            except Exception:
                self._logger.exception("Failed to release %s subscription id=%s", handle.kind, handle.id)
                failed.append(handle)
        self._handles = failed
        if not failed:
            self._source = None

    # ------------------------------------------------------------------
    # Derived value
    # ------------------------------------------------------------------

    @property
    def current_inset(self) -> float:
        return self._inset

    def current_inset_value(self) -> float:
        """Return the latest inset; equivalent to :attr:`current_inset`."""
        return self._inset

    @property
    def phase(self) -> InsetPhase:
        return self._phase

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def snapshot(self) -> InsetSnapshot:
        return InsetSnapshot(
            phase=self._phase,
            inset=self._inset,
            events_applied=self._events_applied,
            last_event_at=self._last_event_at,
            disposed=self._disposed,
        )

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def on_change(self, observer: InsetObserver) -> ObserverHandle:
        """Call *observer* with the new inset after every applied event.

        Registering on a disposed controller returns an inactive handle.
        """
        if self._disposed:
            return ObserverHandle(None, 0)
        observer_id = self._next_observer_id
        self._next_observer_id += 1
        self._observers[observer_id] = observer
        return ObserverHandle(self, observer_id)

    def _has_observer(self, observer_id: int) -> bool:
        return observer_id in self._observers

    def _remove_observer(self, observer_id: int) -> None:
        self._observers.pop(observer_id, None)

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def _on_event(self, event: ObstructionShown | ObstructionHidden) -> None:
        if self._disposed:
            return

        self._phase, self._inset = transition(self._phase, self._inset, event)
        self._events_applied += 1
        self._last_event_at = event.observed_at
        if self._log_events:
            self._logger.debug(
                "Applied obstruction event kind=%s phase=%s inset=%s",
                event.kind,
                self._phase,
                self._inset,
            )
        self._notify(self._inset)

    def _notify(self, inset: float) -> None:
        observers = self._observers
        for observer_id, observer in tuple(observers.items()):
            # Removed (or controller disposed) earlier in this dispatch.
            if observers.get(observer_id) is not observer:
                continue
            try:
                observer(inset)
            except Exception:
                self._logger.exception("Inset observer %r failed", observer)
