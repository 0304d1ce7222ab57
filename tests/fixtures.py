"""
Test Fixtures

Explicit, deterministic records and clocks shared by the test modules.
No random generation outside the hypothesis property tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from lifeos.reactive import StateContext
from lifeos.storage import InMemoryKeyValueBackend, RecordStore, StorageConfig
from lifeos.temporal import LogicalClock


# =============================================================================
# FIXED TIMESTAMPS (deterministic)
# =============================================================================

# Wednesday
NOW = datetime(2026, 3, 11, 15, 30, 0, tzinfo=timezone.utc)
TODAY = datetime(2026, 3, 11, tzinfo=timezone.utc)
WEEK_START = datetime(2026, 3, 9, tzinfo=timezone.utc)
NEXT_WEEK_START = datetime(2026, 3, 16, tzinfo=timezone.utc)


def iso(moment: datetime) -> str:
    return moment.isoformat().replace('+00:00', 'Z')


def day(offset: int) -> str:
    """YYYY-MM-DD relative to TODAY."""
    return (TODAY + timedelta(days=offset)).date().isoformat()


# =============================================================================
# RECORD BUILDERS
# =============================================================================

def milestone(
    milestone_id: str,
    title: str,
    completion: float = 50,
    vision_type: str = 'Custom',
    due: Optional[str] = None,
    next_action: str = 'Do the next thing',
    blocker: str = '',
    updated_at: Optional[datetime] = NOW,
    **extra: Any
) -> Dict[str, Any]:
    record = {
        'id': milestone_id,
        'title': title,
        'completionPct': completion,
        'visionType': vision_type,
        'date': due or '',
        'nextAction': next_action,
        'blocker': blocker,
        'createdAt': iso(updated_at) if updated_at else None,
        'updatedAt': iso(updated_at) if updated_at else None,
    }
    record.update(extra)
    return record


def vision_state(
    milestones: List[Dict[str, Any]] = (),
    targets: Optional[Dict[str, float]] = None,
    commitments: List[str] = (),
    themes: List[Dict[str, Any]] = ()
) -> Dict[str, Any]:
    return {
        'northStar': 'Build a calm, creative life.',
        'themes': list(themes),
        'milestones': list(milestones),
        'weeklyCommitmentIds': list(commitments),
        'targets': dict(targets or {}),
    }


def decision(outcome: str, created_at: datetime, **extra: Any) -> Dict[str, Any]:
    record = {'id': f"d-{iso(created_at)}", 'decision': outcome, 'createdAt': iso(created_at)}
    record.update(extra)
    return record


def snapshot_record(computed_at: datetime, overall: float, drift: float = 0) -> Dict[str, Any]:
    return {
        'computedAt': iso(computed_at),
        'alignment': {'overall': overall},
        'drift': {'overall': drift},
    }


# =============================================================================
# WIRED OBJECTS
# =============================================================================

def fixed_clock(moment: datetime = NOW) -> LogicalClock:
    return LogicalClock.fixed(moment)


def create_store(clock: Optional[LogicalClock] = None, **config: Any) -> RecordStore:
    return RecordStore(
        backend=InMemoryKeyValueBackend(),
        config=StorageConfig(**config),
        clock=clock or fixed_clock(),
    )


def create_context(**kwargs: Any) -> StateContext:
    clock = kwargs.pop('clock', None) or fixed_clock()
    return StateContext(create_store(clock), clock=clock, **kwargs)


class SpyProducer:
    """Plain-callable producer that counts invocations."""

    def __init__(self, value: Any = None, error: Optional[Exception] = None):
        self.calls = 0
        self.value = value if value is not None else {'score': 0.9}
        self.error = error

    def __call__(self, domain_state, prior_derived, history):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return dict(self.value)
