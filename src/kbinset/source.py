"""Notification source abstraction and an in-process implementation.

A notification source delivers obstruction events on one logical channel
per :class:`ObstructionKind`. Delivery is serial on a single coordination
thread; nothing here takes a lock.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from kbinset.exceptions import SourceClosedError
from kbinset.state.events import ObstructionHidden, ObstructionKind, ObstructionShown

_logger = logging.getLogger(__name__)

NotificationCallback = Callable[[ObstructionShown | ObstructionHidden], None]


@dataclass(frozen=True, slots=True)
class SubscriptionHandle:
    """Opaque token returned by :meth:`NotificationSource.subscribe`."""

    id: int
    kind: ObstructionKind


@runtime_checkable
class NotificationSource(Protocol):
    def subscribe(self, kind: ObstructionKind, callback: NotificationCallback) -> SubscriptionHandle: ...

    def unsubscribe(self, handle: SubscriptionHandle) -> None: ...


class SubscriberRegistry:
    """Per-kind callback bookkeeping shared by concrete sources.

    ``unsubscribe`` takes effect immediately, even for a dispatch that is
    already iterating: a callback removed before its turn is skipped.
    """

    def __init__(self, *, name: str = "source") -> None:
        self._name = name
        self._ids = itertools.count(1)
        self._callbacks: dict[ObstructionKind, dict[int, NotificationCallback]] = {
            kind: {} for kind in ObstructionKind
        }
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    def subscriber_count(self, kind: ObstructionKind | None = None) -> int:
        if kind is not None:
            return len(self._callbacks[ObstructionKind(kind)])
        return sum(len(callbacks) for callbacks in self._callbacks.values())

    def subscribe(self, kind: ObstructionKind, callback: NotificationCallback) -> SubscriptionHandle:
        if self._closed:
            raise SourceClosedError(f"{self._name} is closed")
        kind = ObstructionKind(kind)
        handle = SubscriptionHandle(id=next(self._ids), kind=kind)
        self._callbacks[kind][handle.id] = callback
        _logger.debug("%s subscribed id=%s kind=%s", self._name, handle.id, kind)
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        removed = self._callbacks[handle.kind].pop(handle.id, None)
        if removed is not None:
            _logger.debug("%s unsubscribed id=%s kind=%s", self._name, handle.id, handle.kind)

    def dispatch(self, event: ObstructionShown | ObstructionHidden) -> int:
        """Deliver *event* to the current subscribers of its kind.

        Returns the number of callbacks invoked.
        """
        callbacks = self._callbacks[ObstructionKind(event.kind)]
        invoked = 0
        for sub_id, callback in tuple(callbacks.items()):
            # Removed earlier in this same dispatch.
            if callbacks.get(sub_id) is not callback:
                continue
            callback(event)
            invoked += 1
        return invoked

    def close(self) -> None:
        """Drop every subscription and refuse new ones."""
        if self._closed:
            return
        self._closed = True
        for callbacks in self._callbacks.values():
            callbacks.clear()
        _logger.debug("%s closed", self._name)


class LocalNotificationSource:
    """In-process notification source.

    Events are pushed by the host (or a test) and delivered synchronously
    on the calling thread.
    """

    def __init__(self) -> None:
        self._registry = SubscriberRegistry(name="local source")

    @property
    def is_closed(self) -> bool:
        return self._registry.is_closed

    def subscriber_count(self, kind: ObstructionKind | None = None) -> int:
        return self._registry.subscriber_count(kind)

    def subscribe(self, kind: ObstructionKind, callback: NotificationCallback) -> SubscriptionHandle:
        return self._registry.subscribe(kind, callback)

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        self._registry.unsubscribe(handle)

    def post(self, event: ObstructionShown | ObstructionHidden) -> int:
        """Deliver *event* and return the number of callbacks invoked."""
        return self._registry.dispatch(event)

    def post_shown(self, height: float) -> int:
        return self.post(ObstructionShown(height=height))

    def post_hidden(self) -> int:
        return self.post(ObstructionHidden())

    def close(self) -> None:
        self._registry.close()
