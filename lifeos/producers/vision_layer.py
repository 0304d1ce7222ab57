"""
Vision and Alignment Producers

- VisionSnapshotProducer: runs the Vision Alignment Engine over the
  domain state and snapshot history
- AlignmentProducer: projects the vision snapshot onto the 0..1
  alignment-layer shape
"""

from __future__ import annotations
from typing import Any, Dict, Mapping, Optional

from ..contracts.base import clamp, to_number
from ..contracts.snapshot import Snapshot
from ..reactive.cache import LayerContext, StateProducer
from ..vision.engine import compute

ALIGNED_THRESHOLD = 0.65

SURVIVAL_FLAGS = frozenset({'tension-income-instability'})
OVERLOAD_FLAGS = frozenset({'tension-overextension', 'tension-burnout'})


class DomainSignals:
    """Finance and habit readings taken from a domain-state mapping."""

    def __init__(self, domain_state: Mapping[str, Any]):
        self._domain_state = domain_state

    def get_finance_snapshot(self) -> Optional[Mapping[str, Any]]:
        finance = self._domain_state.get('finance')
        return finance if isinstance(finance, Mapping) else None

    def get_habit_completion_rate(self) -> Optional[float]:
        rate = self._domain_state.get('habitCompletionRate')
        return to_number(rate) if rate is not None else None


class VisionSnapshotProducer(StateProducer[Dict[str, Any]]):

    def compute(self, context: LayerContext) -> Dict[str, Any]:
        history = context.history
        snapshot = compute(
            context.domain_state.get('vision'),
            now=context.now,
            store=DomainSignals(context.domain_state),
            snapshots=history.get('snapshots') or [],
            decisions=history.get('decisions') or [],
        )
        return snapshot.to_dict()


def _ratio(value: Any) -> float:
    return round(clamp(value, 0, 100) / 100, 3)


def alignment_mode(score: float, flag_ids) -> str:
    flags = set(flag_ids)
    if flags & SURVIVAL_FLAGS:
        return 'SURVIVAL'
    if flags & OVERLOAD_FLAGS:
        return 'OVERLOAD'
    if score >= ALIGNED_THRESHOLD:
        return 'ALIGNED'
    return 'DRIFT'


class AlignmentProducer(StateProducer[Dict[str, Any]]):
    """Reads `vision` through its memoized getter."""

    def compute(self, context: LayerContext) -> Dict[str, Any]:
        snapshot = Snapshot.from_dict(context.layer_state('vision'))
        score = _ratio(snapshot.alignment_map.get('overall'))
        return {
            'score': score,
            'mode': alignment_mode(score, (flag.id for flag in snapshot.tension_flags)),
            'milestoneRatio': _ratio(snapshot.momentum.milestones),
            'decisionRatio': _ratio(snapshot.momentum.decisions),
            'habitRatio': _ratio(snapshot.momentum.habits),
        }
