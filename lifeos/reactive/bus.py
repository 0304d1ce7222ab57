"""
Subscriber Bus

Synchronous fan-out of StateChangeEvents to registered listeners.

GUARANTEES:
===========
- Delivery happens on the caller's thread, before publish() returns
- Every listener registered when publish() starts is tried exactly once,
  unless it was unsubscribed earlier in the same delivery
- A raising listener never stops delivery to the rest
- No batching or coalescing (a burst of changes is a burst of calls)
"""

from __future__ import annotations
from typing import Callable, List, Optional
import logging

from ..contracts.base import Error, ErrorCode
from ..contracts.events import StateChangeEvent
from ..observability import ObservabilityEngine

logger = logging.getLogger(__name__)

Listener = Callable[[StateChangeEvent], None]


def _noop() -> None:
    return None


class SubscriberBus:
    """Registration list of change listeners."""

    def __init__(self, observability: Optional[ObservabilityEngine] = None):
        self._listeners: List[Listener] = []
        self._observability = observability

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener and return its unsubscribe function.

        Non-callable listeners are ignored; the returned function is then
        a no-op.
        """
        if not callable(listener):
            logger.debug("Ignoring non-callable listener %r", listener)
            return _noop
        self._listeners.append(listener)

        def unsubscribe() -> None:
            self.unsubscribe(listener)
        return unsubscribe

    def unsubscribe(self, listener: Listener) -> None:
        """Remove one registration of `listener` (no-op if absent)."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def publish(self, event: StateChangeEvent) -> int:
        """Deliver `event` to every listener; returns the number that succeeded."""
        delivered = 0
        for listener in list(self._listeners):
            # skip listeners removed by an earlier listener in this delivery
            if listener not in self._listeners:
                continue
            try:
                listener(event)
            except Exception:
                logger.warning(
                    "Subscriber %r failed handling change from %s",
                    listener, event.source, exc_info=True
                )
                self._record_failure(event)
                continue
            delivered += 1

        if self._observability:
            self._observability.collect_metric("notifications_delivered_total", delivered)
        return delivered

    def _record_failure(self, event: StateChangeEvent) -> None:
        if not self._observability:
            return
        error = Error(
            code=ErrorCode.SUBSCRIBER_FAILURE,
            message=f"Listener raised while handling {event.source}",
            timestamp=event.timestamp,
        )
        self._observability.record_error(error, layer='bus', entity_id=event.source)
        self._observability.collect_metric("subscriber_failures_total", 1)
