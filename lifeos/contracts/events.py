"""
Event Contracts

Notification and audit types exchanged between the reactive core and
its observers.

- StateChangeEvent: published on the subscriber bus after every
  intercepted mutation
- AuditLogEntry / MetricPoint: recorded by the observability layer
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .base import to_iso


@dataclass(frozen=True)
class StateChangeEvent:
    """
    IMMUTABLE notification that persisted state changed.

    `source` is the name of the mutating operation that ran.
    """
    source: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {'source': self.source, 'timestamp': to_iso(self.timestamp)}


# =============================================================================
# OBSERVABILITY CONTRACTS
# =============================================================================

class AuditEventType(Enum):
    """Explicit audit event types."""
    MUTATION = "mutation"
    RECOMPUTE = "recompute"
    NOTIFICATION = "notification"
    COMPUTE = "compute"
    ERROR = "error"
    SYSTEM = "system"


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable audit log entry."""
    entry_id: str
    event_type: AuditEventType
    timestamp: datetime
    layer: str  # Which layer generated this
    action: str
    entity_id: Optional[str] = None
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def metadata_value(self, key: str) -> Optional[str]:
        return dict(self.metadata).get(key)


@dataclass(frozen=True)
class MetricPoint:
    """Immutable metric data point."""
    metric_name: str
    value: float
    timestamp: datetime
    labels: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
