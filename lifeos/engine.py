"""
Dashboard Orchestration Module

Unified entry point wiring the record store, the reactive context, the
subscriber bus and observability from one configuration.

DESIGN PRINCIPLES:
==================
1. The dashboard owns exactly one StateContext (no module singletons)
2. Every write goes through the intercepted store
3. Snapshots are produced only by the Vision Alignment Engine
4. All operations are traceable through observability
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional
import logging
import os
import time

from .contracts.base import to_iso
from .contracts.events import AuditEventType, StateChangeEvent
from .contracts.snapshot import Snapshot, WeeklyInsights
from .observability import ObservabilityConfig, ObservabilityEngine
from .reactive import StateContext
from .storage import KeyValueBackend, RecordStore, StorageConfig
from .temporal.clock import LogicalClock
from .vision import ENGINE_VERSION, compute, get_weekly_insights

logger = logging.getLogger(__name__)

CHANGE_LOG_LIMIT = 200


@dataclass
class DashboardConfig:
    """Unified configuration for the dashboard."""
    storage: StorageConfig = None
    observability: ObservabilityConfig = None
    register_default_producers: bool = True

    def __post_init__(self):
        self.storage = self.storage or StorageConfig()
        self.observability = self.observability or ObservabilityConfig()

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> 'DashboardConfig':
        """Read LIFEOS_STORAGE_BACKEND and LIFEOS_STORAGE_DIR."""
        env = os.environ if environ is None else environ
        storage = StorageConfig()
        backend = env.get('LIFEOS_STORAGE_BACKEND')
        if backend:
            storage.backend_type = backend.lower()
        storage_dir = env.get('LIFEOS_STORAGE_DIR')
        if storage_dir:
            storage.storage_dir = storage_dir
            if not backend:
                storage.backend_type = 'file'
        return cls(storage=storage)


class LifeDashboard:
    """
    Unified facade for the Life OS derived-state engine.

    FLOW:
    =====
    1. Callers mutate records through `store` (intercepted)
    2. Every mutation invalidates all layers and notifies subscribers
    3. Readers call get_state()/get_*_state() and get memoized views
    4. recompute_vision() persists a new snapshot to history
    """

    def __init__(
        self,
        config: Optional[DashboardConfig] = None,
        clock: Optional[LogicalClock] = None,
        backend: Optional[KeyValueBackend] = None
    ):
        self._config = config or DashboardConfig()
        self._clock = clock or LogicalClock.live()
        self._observability = ObservabilityEngine(self._config.observability, self._clock)

        store = RecordStore(backend=backend, config=self._config.storage, clock=self._clock)
        factory = (
            StateContext.with_default_producers
            if self._config.register_default_producers
            else StateContext
        )
        self._context = factory(store, clock=self._clock, observability=self._observability)

        self._pending_changes: List[str] = []
        self._changes: Deque[Dict[str, Any]] = deque(maxlen=CHANGE_LOG_LIMIT)
        self._context.subscribe(self._track_change)

    # =========================================================================
    # COLLABORATORS
    # =========================================================================

    @property
    def config(self) -> DashboardConfig:
        return self._config

    @property
    def store(self) -> RecordStore:
        """The intercepted record store."""
        return self._context.store

    @property
    def context(self) -> StateContext:
        return self._context

    @property
    def clock(self) -> LogicalClock:
        return self._clock

    @property
    def observability(self) -> ObservabilityEngine:
        return self._observability

    def subscribe(self, listener: Callable[[StateChangeEvent], None]) -> Callable[[], None]:
        return self._context.subscribe(listener)

    def get_state(self, layer: str, force_recompute: bool = False) -> Any:
        return self._context.get_state(layer, force_recompute)

    # =========================================================================
    # CHANGE TRACKING
    # =========================================================================

    def _track_change(self, event: StateChangeEvent) -> None:
        self._changes.append(event.to_dict())
        if event.source != 'save_snapshot' and event.source not in self._pending_changes:
            self._pending_changes.append(event.source)

    def recent_changes(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Change notifications seen on the bus, oldest first."""
        changes = list(self._changes)
        return changes[-limit:] if limit else changes

    def pending_changes(self) -> List[str]:
        """Mutation sources seen since the last recompute."""
        return list(self._pending_changes)

    # =========================================================================
    # VISION
    # =========================================================================

    def recompute_vision(self) -> Snapshot:
        """Run the engine and append the snapshot to history."""
        store = self.store
        started = time.perf_counter()
        snapshot = compute(
            store.get_vision_state(),
            now=self._clock.now(),
            store=store,
            snapshots=store.get_snapshots(),
            decisions=store.get_decision_log(),
        )
        duration_ms = round((time.perf_counter() - started) * 1000, 2)

        metadata = {
            'computeDurationMs': duration_ms,
            'engineVersion': ENGINE_VERSION,
            'inputChangedFields': sorted(self._pending_changes),
        }
        record = store.save_snapshot(snapshot, metadata)
        self._pending_changes.clear()

        self._observability.collect_metric("vision_compute_duration_ms", duration_ms)
        self._observability.log_audit(
            action="recompute_vision",
            layer='vision',
            event_type=AuditEventType.COMPUTE,
            entity_id=snapshot.computed_at,
            details=f"overall={snapshot.alignment_map['overall']}"
        )
        logger.info(
            "Vision snapshot %s: alignment %s, momentum %s (%.2f ms)",
            snapshot.computed_at, snapshot.alignment_map['overall'],
            snapshot.momentum.overall, duration_ms
        )
        return Snapshot.from_dict(record)

    def weekly_insights(self, reference_date: Any = None) -> WeeklyInsights:
        store = self.store
        return get_weekly_insights(
            store.get_decision_log(),
            store.get_snapshots(),
            store.get_milestones(),
            reference_date if reference_date is not None else self._clock.now(),
        )

    def log_decision_with_context(
        self,
        decision: str,
        note: Optional[str] = None,
        energy_state: Optional[str] = None,
        context_mode: str = 'vision',
        vision_type: str = 'Custom'
    ) -> Dict[str, Any]:
        """Log a decision stamped with the last persisted alignment and drift."""
        # no history yet reads as alignment 50, drift 0
        current = Snapshot.from_dict(self.store.get_latest_snapshot())
        return self.store.log_decision({
            'decision': decision,
            'note': note,
            'energyState': energy_state,
            'contextMode': context_mode,
            'visionType': vision_type,
            'alignmentAtDecision': current.alignment_map['overall'],
            'driftAtDecision': current.drift_map['overall'],
        })

    # =========================================================================
    # OBSERVABILITY INTERFACE
    # =========================================================================

    def get_audit_log(self, layers: Optional[List[str]] = None) -> List:
        return self._observability.get_unified_log(layers)

    def get_audit_report(self) -> Dict:
        return self._observability.generate_audit_report()

    def get_metrics(self):
        return self._observability.get_metrics()

    def status(self) -> Dict[str, Any]:
        latest = self.store.get_latest_snapshot()
        started = self._clock.get_start_time()
        return {
            'engineVersion': ENGINE_VERSION,
            'time': to_iso(self._clock.now()),
            'startedAt': to_iso(started) if started else None,
            'subscribers': self._context.bus.subscriber_count,
            'snapshots': len(self.store.get_snapshots()),
            'lastComputedAt': latest.get('computedAt') if latest else None,
        }
