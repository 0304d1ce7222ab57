"""
Mutation Interceptor

Wraps every mutating RecordStore operation so that no caller has to
invalidate caches by hand.

OPERATION TABLE:
================
Classification is explicit: every public callable on the store must be
listed in OPERATION_TABLE as mutating (True) or pure (False). Installing
on a store that exposes an unlisted operation raises
UnclassifiedOperationError instead of guessing.

WRAPPED CALL:
=============
1. Run the original operation and keep its result
2. Invalidate every cache layer
3. Publish StateChangeEvent(source=<operation>, timestamp) on the bus
4. Return the original result unchanged

If the original raises, nothing is invalidated or published and the
exception propagates. A mutation issued from inside another intercepted
mutation notifies on its own as soon as it returns.
"""

from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional
import functools
import logging

from ..contracts.base import UnclassifiedOperationError
from ..contracts.events import AuditEventType, StateChangeEvent
from ..observability import ObservabilityEngine
from ..temporal.clock import LogicalClock
from .bus import SubscriberBus

logger = logging.getLogger(__name__)


OPERATION_TABLE: Dict[str, bool] = {
    # vision record
    'get_vision_state': False,
    'save_vision_state': True,
    'reset_vision_state': True,
    'update_north_star': True,
    'update_time_horizons': True,
    'update_targets': True,
    'get_themes': False,
    'add_theme': True,
    'remove_theme': True,
    # milestones
    'get_milestones': False,
    'get_milestone': False,
    'add_milestone': True,
    'update_milestone': True,
    'remove_milestone': True,
    'toggle_weekly_commitment': True,
    # decisions
    'get_decision_log': False,
    'log_decision': True,
    # snapshot history
    'get_snapshots': False,
    'get_latest_snapshot': False,
    'save_snapshot': True,
    # external signals
    'get_finance_snapshot': False,
    'save_finance_snapshot': True,
    'get_habits': False,
    'save_habits': True,
    'toggle_habit': True,
    'get_habit_completion_rate': False,
    # maintenance
    'clear_all': True,
    'seed_demo_data': True,
}

_INSTALLED_FLAG = '_lifeos_interceptor'


def public_operations(store: Any) -> List[str]:
    """Names of the public callables a store exposes."""
    names = []
    for name in dir(store):
        if name.startswith('_'):
            continue
        if callable(getattr(store, name, None)):
            names.append(name)
    return names


def mutating_operations(table: Optional[Dict[str, bool]] = None) -> List[str]:
    table = OPERATION_TABLE if table is None else table
    return sorted(name for name, mutates in table.items() if mutates)


class MutationInterceptor:
    """Installs invalidate-and-notify wrappers on a store instance."""

    def __init__(
        self,
        invalidate_all: Callable[[], None],
        bus: SubscriberBus,
        clock: Optional[LogicalClock] = None,
        observability: Optional[ObservabilityEngine] = None,
        operation_table: Optional[Dict[str, bool]] = None
    ):
        self._invalidate_all = invalidate_all
        self._bus = bus
        self._clock = clock or LogicalClock.live()
        self._observability = observability
        self._table = dict(OPERATION_TABLE if operation_table is None else operation_table)

    @property
    def operation_table(self) -> Dict[str, bool]:
        return dict(self._table)

    @staticmethod
    def is_installed(store: Any) -> bool:
        return getattr(store, _INSTALLED_FLAG, None) is not None

    def install(self, store: Any) -> Any:
        """
        Wrap the store's mutating operations in place.

        Idempotent: a store that already carries an interceptor is
        returned untouched.
        """
        if self.is_installed(store):
            return store

        unclassified = [name for name in public_operations(store) if name not in self._table]
        if unclassified:
            raise UnclassifiedOperationError(
                f"Store operations missing from the operation table: {', '.join(sorted(unclassified))}"
            )

        wrapped = []
        for name in mutating_operations(self._table):
            original = getattr(store, name, None)
            if original is None:
                continue
            setattr(store, name, self._wrap(name, original))
            wrapped.append(name)

        setattr(store, _INSTALLED_FLAG, self)
        logger.debug("Intercepting %d mutating operations", len(wrapped))
        if self._observability:
            self._observability.log_audit(
                action="install",
                layer='interceptor',
                details=f"wrapped={len(wrapped)}"
            )
        return store

    def _wrap(self, name: str, original: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(original)
        def intercepted(*args, **kwargs):
            result = original(*args, **kwargs)
            self._after_mutation(name)
            return result

        intercepted.__lifeos_mutating__ = True
        return intercepted

    def _after_mutation(self, source: str) -> None:
        self._invalidate_all()
        event = StateChangeEvent(source=source, timestamp=self._clock.now())
        if self._observability:
            self._observability.log_audit(
                action=source,
                layer='interceptor',
                event_type=AuditEventType.MUTATION,
            )
            self._observability.collect_metric("mutations_total", 1, {"operation": source})
        self._bus.publish(event)
