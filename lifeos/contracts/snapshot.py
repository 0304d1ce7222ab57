"""
Snapshot Contracts

Immutable output types of the Vision Alignment Engine.

A Snapshot is created only by `vision.engine.compute()`. Once written to
history it is never mutated: drift is computed by diffing a new snapshot
against the latest prior one.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .base import clamp, coerce_text, round_half_up
from .records import DIMENSION_KEYS

SCORE_KEYS: Tuple[str, ...] = DIMENSION_KEYS + ('overall',)

NEUTRAL_ALIGNMENT = 50
NEUTRAL_MOMENTUM = 55

STABLE_RISK_LABEL = 'Risk profile stable'
STABLE_RISK_DETAIL = 'No significant tension detected.'


def _scores(values: Mapping[str, Any], low: float, high: float, fallback: float) -> Tuple[Tuple[str, int], ...]:
    return tuple(
        (key, round_half_up(clamp(values[key], low, high)) if key in values else int(fallback))
        for key in SCORE_KEYS
    )


@dataclass(frozen=True)
class ActionItem:
    """One entry of the ranked action queue."""
    milestone_id: Optional[str]
    title: str
    reason: str
    priority: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'milestoneId': self.milestone_id,
            'title': self.title,
            'reason': self.reason,
            'priority': self.priority,
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> ActionItem:
        raw_id = data.get('milestoneId')
        return ActionItem(
            milestone_id=str(raw_id) if raw_id is not None else None,
            title=coerce_text(data.get('title')),
            reason=coerce_text(data.get('reason')),
            priority=round_half_up(clamp(data.get('priority'), 0, 100)),
        )


@dataclass(frozen=True)
class TensionFlag:
    """Structured warning for a detected risk pattern."""
    id: str
    label: str
    severity: str
    detail: str
    category: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'label': self.label,
            'severity': self.severity,
            'detail': self.detail,
            'category': self.category,
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> TensionFlag:
        return TensionFlag(
            id=coerce_text(data.get('id')),
            label=coerce_text(data.get('label')),
            severity=coerce_text(data.get('severity')) or 'low',
            detail=coerce_text(data.get('detail')),
            category=coerce_text(data.get('category')),
        )


@dataclass(frozen=True)
class RiskSignal:
    id: str
    label: str
    severity: str
    detail: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'label': self.label,
            'severity': self.severity,
            'detail': self.detail,
        }

    @staticmethod
    def stable() -> RiskSignal:
        return RiskSignal('risk-stable', STABLE_RISK_LABEL, 'low', STABLE_RISK_DETAIL)

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> RiskSignal:
        return RiskSignal(
            id=coerce_text(data.get('id')),
            label=coerce_text(data.get('label')),
            severity=coerce_text(data.get('severity')) or 'low',
            detail=coerce_text(data.get('detail')),
        )


@dataclass(frozen=True)
class Momentum:
    """Composite momentum, every component within [0, 100]."""
    milestones: int = NEUTRAL_MOMENTUM
    decisions: int = NEUTRAL_MOMENTUM
    habits: int = NEUTRAL_MOMENTUM
    overall: int = NEUTRAL_MOMENTUM

    def to_dict(self) -> Dict[str, int]:
        return {
            'milestones': self.milestones,
            'decisions': self.decisions,
            'habits': self.habits,
            'overall': self.overall,
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> Momentum:
        def read(key: str) -> int:
            return round_half_up(clamp(data[key], 0, 100)) if key in data else NEUTRAL_MOMENTUM
        return Momentum(read('milestones'), read('decisions'), read('habits'), read('overall'))


@dataclass(frozen=True)
class Explainability:
    overall: Tuple[str, ...] = field(default_factory=tuple)
    dimensions: Tuple[Tuple[str, Tuple[str, ...]], ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'overall': list(self.overall),
            'dimensions': {key: list(lines) for key, lines in self.dimensions},
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> Explainability:
        overall = data.get('overall')
        dimensions = data.get('dimensions')
        return Explainability(
            overall=tuple(str(line) for line in overall) if isinstance(overall, list) else (),
            dimensions=tuple(
                (str(key), tuple(str(line) for line in lines))
                for key, lines in dimensions.items() if isinstance(lines, list)
            ) if isinstance(dimensions, Mapping) else (),
        )


@dataclass(frozen=True)
class Snapshot:
    """
    Immutable result of one Vision Alignment Engine run.

    `alignment` values are within [0, 100]; `drift` values within
    [-100, 100]. Both carry the five dimension keys plus `overall`.
    """
    computed_at: str
    alignment: Tuple[Tuple[str, int], ...]
    drift: Tuple[Tuple[str, int], ...]
    tension_flags: Tuple[TensionFlag, ...]
    risk_signals: Tuple[RiskSignal, ...]
    momentum: Momentum
    action_queue: Tuple[ActionItem, ...]
    suggested_pillars: Tuple[str, ...]
    suggested_commitments: Tuple[str, ...]
    suggested_risks: Tuple[str, ...]
    explainability: Explainability
    metadata: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @property
    def alignment_map(self) -> Dict[str, int]:
        return dict(self.alignment)

    @property
    def drift_map(self) -> Dict[str, int]:
        return dict(self.drift)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            'computedAt': self.computed_at,
            'alignment': dict(self.alignment),
            'drift': dict(self.drift),
            'tensionFlags': [flag.to_dict() for flag in self.tension_flags],
            'riskSignals': [signal.to_dict() for signal in self.risk_signals],
            'momentum': self.momentum.to_dict(),
            'suggestedCommitments': list(self.suggested_commitments),
            'suggestedPillars': list(self.suggested_pillars),
            'suggestedRisks': list(self.suggested_risks),
            'actionQueue': [item.to_dict() for item in self.action_queue],
            'explainability': self.explainability.to_dict(),
        }
        if self.metadata:
            payload['metadata'] = dict(self.metadata)
        return payload

    @staticmethod
    def from_dict(data: Any) -> Snapshot:
        """Rebuild from a stored mapping; missing parts fall back to neutral."""
        if isinstance(data, Snapshot):
            return data
        data = data if isinstance(data, Mapping) else {}

        def items(key: str) -> List[Mapping[str, Any]]:
            value = data.get(key)
            return [v for v in value if isinstance(v, Mapping)] if isinstance(value, list) else []

        def strings(key: str) -> Tuple[str, ...]:
            value = data.get(key)
            return tuple(str(v) for v in value) if isinstance(value, list) else ()

        alignment = data.get('alignment') if isinstance(data.get('alignment'), Mapping) else {}
        drift = data.get('drift') if isinstance(data.get('drift'), Mapping) else {}
        momentum = data.get('momentum') if isinstance(data.get('momentum'), Mapping) else {}
        explainability = data.get('explainability') if isinstance(data.get('explainability'), Mapping) else {}
        metadata = data.get('metadata') if isinstance(data.get('metadata'), Mapping) else {}

        return Snapshot(
            computed_at=coerce_text(data.get('computedAt')),
            alignment=_scores(alignment, 0, 100, NEUTRAL_ALIGNMENT),
            drift=_scores(drift, -100, 100, 0),
            tension_flags=tuple(TensionFlag.from_dict(f) for f in items('tensionFlags')),
            risk_signals=tuple(RiskSignal.from_dict(s) for s in items('riskSignals')),
            momentum=Momentum.from_dict(momentum),
            action_queue=tuple(ActionItem.from_dict(a) for a in items('actionQueue')),
            suggested_pillars=strings('suggestedPillars'),
            suggested_commitments=strings('suggestedCommitments'),
            suggested_risks=strings('suggestedRisks'),
            explainability=Explainability.from_dict(explainability),
            metadata=tuple(sorted(metadata.items())),
        )

    @staticmethod
    def neutral(computed_at: str) -> Snapshot:
        """Shape-compatible snapshot for when no computation is available."""
        return Snapshot(
            computed_at=computed_at,
            alignment=tuple((key, NEUTRAL_ALIGNMENT) for key in SCORE_KEYS),
            drift=tuple((key, 0) for key in SCORE_KEYS),
            tension_flags=(),
            risk_signals=(RiskSignal.stable(),),
            momentum=Momentum(),
            action_queue=(),
            suggested_pillars=('Re-center your direction',) * 3,
            suggested_commitments=('Lean into core focus',) * 3,
            suggested_risks=('Track blockers before adding new commitments.',) * 3,
            explainability=Explainability(
                overall=(
                    f"Overall alignment: {NEUTRAL_ALIGNMENT}.",
                    'Active milestones: 0.',
                    'Add or update milestones to improve action quality.',
                ),
                dimensions=tuple(
                    (key, (
                        f"Target: {NEUTRAL_ALIGNMENT}.",
                        'No completion data yet.',
                        f"Current alignment: {NEUTRAL_ALIGNMENT} (+0 drift).",
                    ))
                    for key in DIMENSION_KEYS
                ),
            ),
        )


@dataclass(frozen=True)
class WeeklyInsights:
    """Aggregates over one Monday-starting ISO week."""
    alignment_delta: int
    drift_delta: int
    decision_count: int
    aligned_count: int
    milestones_moved: int
    milestones_completed: int

    def to_dict(self) -> Dict[str, int]:
        return {
            'alignmentDelta': self.alignment_delta,
            'driftDelta': self.drift_delta,
            'decisionCount': self.decision_count,
            'alignedCount': self.aligned_count,
            'milestonesMoved': self.milestones_moved,
            'milestonesCompleted': self.milestones_completed,
        }
