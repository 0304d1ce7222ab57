"""
Observability & Audit Layer

RESPONSIBILITY: Audit trail and metrics for every reactive layer
ALLOWED INPUTS: Audit entries, errors and metric points from any layer
OUTPUTS: Unified audit log, metric series, audit report

WHAT THIS LAYER MUST NOT DO:
============================
- Modify system behavior
- Filter or interpret events (only record them)
- Raise into the caller that is reporting

BOUNDARY ENFORCEMENT:
=====================
- Collectors are append-only (bounded by retention)
- Provides read-only access to logs and metrics
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Dict, List, Optional, Tuple
import hashlib

from ..contracts.base import Error, to_iso
from ..contracts.events import AuditEventType, AuditLogEntry, MetricPoint
from ..temporal.clock import LogicalClock


LAYERS: Tuple[str, ...] = ('store', 'interceptor', 'cache', 'bus', 'vision')


# =============================================================================
# LOG COLLECTORS (One per layer)
# =============================================================================

class LogCollector:
    """
    Per-layer audit collector.

    Append-only; once `retention` entries are held the oldest ones are
    dropped.
    """

    def __init__(self, layer_name: str, retention: int = 1000):
        self._layer_name = layer_name
        self._retention = max(1, retention)
        self._entries: List[AuditLogEntry] = []
        self._sequence: int = 0

    def collect(self, entry: AuditLogEntry):
        """Collect an audit entry (append-only)."""
        self._entries.append(entry)
        self._sequence += 1
        if len(self._entries) > self._retention:
            del self._entries[:len(self._entries) - self._retention]

    def get_entries(
        self,
        event_type: Optional[AuditEventType] = None,
        action: Optional[str] = None
    ) -> List[AuditLogEntry]:
        """Get entries, optionally filtered."""
        entries = self._entries
        if event_type:
            entries = [e for e in entries if e.event_type == event_type]
        if action:
            entries = [e for e in entries if e.action == action]
        return list(entries)

    @property
    def layer_name(self) -> str:
        return self._layer_name

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    @property
    def sequence(self) -> int:
        """Total entries ever collected, including dropped ones."""
        return self._sequence


# =============================================================================
# METRICS COLLECTOR
# =============================================================================

class MetricType(Enum):
    """Types of metrics collected."""
    COUNTER = "counter"
    GAUGE = "gauge"
    TIMING = "timing"


@dataclass
class MetricDefinition:
    """Definition of a metric to collect."""
    name: str
    metric_type: MetricType
    description: str
    labels: Tuple[str, ...] = field(default_factory=tuple)


class MetricsCollector:
    """
    Collect and aggregate metrics from all layers.

    Each series keeps the latest `retention` points; `total()` reads
    running sums that cover every point ever recorded.
    """

    def __init__(self, clock: Optional[LogicalClock] = None, retention: int = 1000):
        self._clock = clock or LogicalClock.live()
        self._retention = max(1, retention)
        self._metrics: Dict[str, Deque[MetricPoint]] = {}
        self._totals: Dict[str, Dict[Tuple[Tuple[str, str], ...], float]] = {}
        self._definitions: Dict[str, MetricDefinition] = {}
        self._register_default_metrics()

    def _register_default_metrics(self):
        """Register standard metrics."""
        defaults = [
            MetricDefinition(
                name="mutations_total",
                metric_type=MetricType.COUNTER,
                description="Intercepted mutating store operations",
                labels=("operation",)
            ),
            MetricDefinition(
                name="cache_hits_total",
                metric_type=MetricType.COUNTER,
                description="Layer reads served from the memoized entry",
                labels=("layer",)
            ),
            MetricDefinition(
                name="cache_misses_total",
                metric_type=MetricType.COUNTER,
                description="Layer reads that invoked the producer",
                labels=("layer",)
            ),
            MetricDefinition(
                name="producer_failures_total",
                metric_type=MetricType.COUNTER,
                description="Producer invocations that fell back to the default",
                labels=("layer",)
            ),
            MetricDefinition(
                name="subscriber_failures_total",
                metric_type=MetricType.COUNTER,
                description="Listener invocations that raised"
            ),
            MetricDefinition(
                name="notifications_delivered_total",
                metric_type=MetricType.COUNTER,
                description="Listener invocations per published change"
            ),
            MetricDefinition(
                name="vision_compute_duration_ms",
                metric_type=MetricType.TIMING,
                description="Vision Alignment Engine run time in milliseconds"
            ),
        ]

        for definition in defaults:
            self.register_metric(definition)

    def register_metric(self, definition: MetricDefinition):
        """Register a new metric definition."""
        self._definitions[definition.name] = definition
        if definition.name not in self._metrics:
            self._metrics[definition.name] = deque(maxlen=self._retention)

    def record(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ):
        """Record a metric data point."""
        if metric_name not in self._metrics:
            self._metrics[metric_name] = deque(maxlen=self._retention)

        label_tuple = tuple(sorted(labels.items())) if labels else ()

        point = MetricPoint(
            metric_name=metric_name,
            value=value,
            timestamp=self._clock.now(),
            labels=label_tuple
        )
        self._metrics[metric_name].append(point)
        totals = self._totals.setdefault(metric_name, {})
        totals[label_tuple] = totals.get(label_tuple, 0) + value

    def get_metric(
        self,
        metric_name: str,
        labels: Optional[Dict[str, str]] = None
    ) -> List[MetricPoint]:
        """Get metric data points, optionally restricted to matching labels."""
        points = self._metrics.get(metric_name, [])
        if labels:
            wanted = set(labels.items())
            points = [p for p in points if wanted.issubset(set(p.labels))]
        return list(points)

    def total(self, metric_name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Sum of every recorded value whose labels include `labels`."""
        wanted = set(labels.items()) if labels else set()
        return sum(
            value for label_tuple, value in self._totals.get(metric_name, {}).items()
            if wanted.issubset(label_tuple)
        )

    def get_latest(self, metric_name: str) -> Optional[MetricPoint]:
        """Get the latest value for a metric."""
        points = self._metrics.get(metric_name, [])
        return points[-1] if points else None

    def get_definition(self, metric_name: str) -> Optional[MetricDefinition]:
        return self._definitions.get(metric_name)

    def compute_aggregates(self, metric_name: str) -> Dict[str, float]:
        """Aggregate statistics over the retained points of a metric."""
        values = [p.value for p in self.get_metric(metric_name)]

        if not values:
            return {}

        return {
            'count': len(values),
            'sum': sum(values),
            'min': min(values),
            'max': max(values),
            'avg': sum(values) / len(values),
        }


# =============================================================================
# OBSERVABILITY ENGINE (Orchestrates all observability)
# =============================================================================

@dataclass
class ObservabilityConfig:
    """Configuration for observability engine."""
    enable_metrics: bool = True
    enable_audit: bool = True
    audit_retention: int = 1000
    metric_retention: int = 1000


class ObservabilityEngine:
    """
    Central Observability Engine.

    BOUNDARY ENFORCEMENT:
    - ONLY observes, never modifies
    - Provides read-only access to collected data
    """

    def __init__(
        self,
        config: Optional[ObservabilityConfig] = None,
        clock: Optional[LogicalClock] = None
    ):
        self._config = config or ObservabilityConfig()
        self._clock = clock or LogicalClock.live()
        self._collectors: Dict[str, LogCollector] = {
            name: LogCollector(name, self._config.audit_retention) for name in LAYERS
        }
        self._metrics = (
            MetricsCollector(self._clock, self._config.metric_retention)
            if self._config.enable_metrics else None
        )

    def now(self):
        return self._clock.now()

    def collect_audit(self, entry: AuditLogEntry):
        """Collect an audit log entry from any layer."""
        if not self._config.enable_audit:
            return
        collector = self._collectors.get(entry.layer)
        if collector is None:
            collector = self._collectors[entry.layer] = LogCollector(
                entry.layer, self._config.audit_retention
            )
        collector.collect(entry)

    def log_audit(
        self,
        action: str,
        layer: str,
        event_type: AuditEventType = AuditEventType.SYSTEM,
        entity_id: Optional[str] = None,
        outcome: str = "success",
        details: str = ""
    ) -> Optional[AuditLogEntry]:
        """Build and collect an audit entry."""
        if not self._config.enable_audit:
            return None
        timestamp = self._clock.now()
        collector = self._collectors.get(layer)
        sequence = collector.sequence if collector else 0
        entry_id = hashlib.sha256(
            f"{layer}_{action}|{sequence}|{to_iso(timestamp)}".encode()
        ).hexdigest()[:16]

        entry = AuditLogEntry(
            entry_id=f"audit_{entry_id}",
            event_type=event_type,
            timestamp=timestamp,
            layer=layer,
            action=action,
            entity_id=entity_id,
            metadata=(
                ("outcome", outcome),
                ("details", details)
            )
        )
        self.collect_audit(entry)
        return entry

    def record_error(self, error: Error, layer: str, entity_id: Optional[str] = None):
        """Record an absorbed failure as an ERROR audit entry."""
        details = error.message
        if error.context:
            details += " | " + ", ".join(f"{k}={v}" for k, v in error.context)
        self.log_audit(
            action=error.code.name.lower(),
            layer=layer,
            event_type=AuditEventType.ERROR,
            entity_id=entity_id,
            outcome="failure",
            details=details
        )

    def collect_metric(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ):
        """Collect a metric data point."""
        if self._metrics:
            self._metrics.record(metric_name, value, labels)

    def get_unified_log(self, layers: Optional[List[str]] = None) -> List[AuditLogEntry]:
        """Get unified log from all or specified layers, oldest first."""
        target_layers = layers or list(self._collectors.keys())

        all_entries = []
        for layer_name in target_layers:
            collector = self._collectors.get(layer_name)
            if collector:
                all_entries.extend(collector.get_entries())

        all_entries.sort(key=lambda e: e.timestamp)
        return all_entries

    def get_layer_log(
        self,
        layer_name: str,
        event_type: Optional[AuditEventType] = None
    ) -> List[AuditLogEntry]:
        """Get log for a specific layer."""
        collector = self._collectors.get(layer_name)
        if not collector:
            return []
        return collector.get_entries(event_type=event_type)

    def get_metrics(self) -> Optional[MetricsCollector]:
        """Get metrics collector (read-only access)."""
        return self._metrics

    def generate_audit_report(self) -> Dict:
        """Summarise the unified log by layer and event type."""
        entries = self.get_unified_log()

        by_layer: Dict[str, int] = {}
        by_type: Dict[str, int] = {}
        for entry in entries:
            by_layer[entry.layer] = by_layer.get(entry.layer, 0) + 1
            by_type[entry.event_type.value] = by_type.get(entry.event_type.value, 0) + 1

        return {
            'total_entries': len(entries),
            'by_layer': by_layer,
            'by_event_type': by_type,
            'time_range': {
                'start': to_iso(entries[0].timestamp) if entries else None,
                'end': to_iso(entries[-1].timestamp) if entries else None,
            },
            'generated_at': to_iso(self._clock.now())
        }
