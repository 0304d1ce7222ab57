"""
Record Contracts

Typed views over the raw JSON records kept by the record accessors.

Raw records are plain mappings with camelCase keys, exactly as they are
persisted. Every `from_record()` here is tolerant: missing or
wrong-shaped fields fall back to neutral values instead of raising, so
malformed storage degrades to a minimal-but-valid view.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .base import (
    clamp, coerce_text, parse_timestamp, to_iso,
)


@dataclass(frozen=True)
class Dimension:
    key: str
    type: str
    label: str


DIMENSIONS: Tuple[Dimension, ...] = (
    Dimension('incomeStability', 'Income', 'Income Stability'),
    Dimension('creativeOutput', 'Creation', 'Creative Output'),
    Dimension('physicalVitality', 'Health', 'Physical Vitality'),
    Dimension('relationshipDepth', 'Relationships', 'Relationship Depth'),
    Dimension('meaningContribution', 'Meaning', 'Meaning & Contribution'),
)

DIMENSION_KEYS: Tuple[str, ...] = tuple(d.key for d in DIMENSIONS)

DEFAULT_TARGET = 50.0

STATUS_PLANNED = 'planned'
STATUS_ACTIVE = 'active'
STATUS_DONE = 'done'


def default_targets() -> Dict[str, float]:
    return {key: DEFAULT_TARGET for key in DIMENSION_KEYS}


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def derive_status(completion: float, explicit: Any = None) -> str:
    """done / active / planned from completion and an explicit flag."""
    if explicit == STATUS_DONE or completion >= 100:
        return STATUS_DONE
    if completion > 0:
        return STATUS_ACTIVE
    return STATUS_PLANNED


# =============================================================================
# THEMES
# =============================================================================

@dataclass(frozen=True)
class Theme:
    """Weighted life theme (weight in [1, 10])."""
    id: str
    label: str
    weight: float = 3.0

    @staticmethod
    def from_record(record: Any) -> Optional[Theme]:
        if isinstance(record, str):
            record = {'label': record}
        data = _as_mapping(record)
        label = coerce_text(data.get('label'))
        if not label:
            return None
        weight = data.get('weight')
        return Theme(
            id=coerce_text(data.get('id')) or f"theme-{label.lower()}",
            label=label,
            weight=clamp(weight, 1, 10) if weight is not None else 3.0,
        )


# =============================================================================
# MILESTONES
# =============================================================================

@dataclass(frozen=True)
class Milestone:
    """
    Planning milestone.

    `completion` is always within [0, 100] and `status` is derived from
    it plus the explicit flag; `due` and the timestamps are parsed UTC
    datetimes (None when absent or unparseable).
    """
    id: Optional[str]
    title: str
    completion: float
    status: str
    vision_type: str = 'Custom'
    due: Optional[datetime] = None
    next_action: str = ''
    blocker: str = ''
    linked_project_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_done(self) -> bool:
        return self.status == STATUS_DONE

    @property
    def is_blocked(self) -> bool:
        return not self.is_done and bool(self.blocker)

    @property
    def last_touched(self) -> Optional[datetime]:
        return self.updated_at or self.created_at

    @staticmethod
    def from_record(record: Any) -> Milestone:
        data = _as_mapping(record)
        completion = clamp(data.get('completionPct'), 0, 100)
        raw_id = data.get('id')
        return Milestone(
            id=str(raw_id) if raw_id is not None and raw_id != '' else None,
            title=coerce_text(data.get('title')),
            completion=completion,
            status=derive_status(completion, data.get('status')),
            vision_type=coerce_text(data.get('visionType')) or 'Custom',
            due=parse_timestamp(data.get('date')),
            next_action=coerce_text(data.get('nextAction')),
            blocker=coerce_text(data.get('blocker')),
            linked_project_id=coerce_text(data.get('linkedProjectId')) or None,
            created_at=parse_timestamp(data.get('createdAt')),
            updated_at=parse_timestamp(data.get('updatedAt')),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'date': self.due.date().isoformat() if self.due else '',
            'visionType': self.vision_type,
            'completionPct': self.completion,
            'status': self.status,
            'nextAction': self.next_action,
            'blocker': self.blocker,
            'linkedProjectId': self.linked_project_id,
            'createdAt': to_iso(self.created_at) if self.created_at else None,
            'updatedAt': to_iso(self.updated_at) if self.updated_at else None,
        }


# =============================================================================
# DECISIONS
# =============================================================================

OUTCOME_YES = 'yes'
OUTCOME_NO = 'no'


@dataclass(frozen=True)
class Decision:
    """A logged yes/no decision with the alignment captured at the time."""
    id: Optional[str]
    created_at: Optional[datetime]
    outcome: str
    context_mode: str = 'vision'
    energy_state: Optional[str] = None
    note: Optional[str] = None
    alignment_at_decision: float = 50.0
    drift_at_decision: float = 0.0
    vision_type: str = 'Custom'

    @property
    def is_yes(self) -> bool:
        return self.outcome == OUTCOME_YES

    @staticmethod
    def from_record(record: Any) -> Decision:
        if isinstance(record, Decision):
            return record
        data = _as_mapping(record)
        alignment = data.get('alignmentAtDecision')
        drift = data.get('driftAtDecision')
        return Decision(
            id=coerce_text(data.get('id')) or None,
            created_at=parse_timestamp(data.get('createdAt', data.get('timestamp'))),
            outcome=OUTCOME_YES if data.get('decision') == OUTCOME_YES else OUTCOME_NO,
            context_mode=coerce_text(data.get('contextMode')) or 'vision',
            energy_state=coerce_text(data.get('energyState')) or None,
            note=coerce_text(data.get('note')) or None,
            alignment_at_decision=clamp(alignment if alignment is not None else 50, 0, 100),
            drift_at_decision=clamp(drift if drift is not None else 0, -100, 100),
            vision_type=coerce_text(data.get('visionType')) or 'Custom',
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'createdAt': to_iso(self.created_at) if self.created_at else None,
            'decision': self.outcome,
            'contextMode': self.context_mode,
            'energyState': self.energy_state,
            'note': self.note,
            'alignmentAtDecision': self.alignment_at_decision,
            'driftAtDecision': self.drift_at_decision,
            'visionType': self.vision_type,
        }


# =============================================================================
# VISION STATE
# =============================================================================

@dataclass(frozen=True)
class VisionState:
    """Typed view of the vision record consumed by the alignment engine."""
    north_star: str = ''
    themes: Tuple[Theme, ...] = field(default_factory=tuple)
    milestones: Tuple[Milestone, ...] = field(default_factory=tuple)
    weekly_commitment_ids: Tuple[str, ...] = field(default_factory=tuple)
    targets: Tuple[Tuple[str, float], ...] = field(default_factory=tuple)

    def target(self, key: str) -> float:
        return dict(self.targets).get(key, DEFAULT_TARGET)

    @staticmethod
    def from_record(record: Any) -> VisionState:
        data = _as_mapping(record)

        themes = tuple(
            theme for theme in (Theme.from_record(t) for t in _as_list(data.get('themes')))
            if theme is not None
        )
        milestones = tuple(
            Milestone.from_record(m) for m in _as_list(data.get('milestones'))
            if isinstance(m, Mapping)
        )

        commitment_ids: List[str] = []
        for raw_id in _as_list(data.get('weeklyCommitmentIds')):
            if raw_id is None:
                continue
            value = str(raw_id)
            if value not in commitment_ids:
                commitment_ids.append(value)

        targets = default_targets()
        raw_targets = _as_mapping(data.get('targets'))
        for key in DIMENSION_KEYS:
            if key in raw_targets:
                targets[key] = clamp(raw_targets[key], 0, 100)

        return VisionState(
            north_star=coerce_text(data.get('northStar')),
            themes=themes,
            milestones=milestones,
            weekly_commitment_ids=tuple(commitment_ids),
            targets=tuple((key, targets[key]) for key in DIMENSION_KEYS),
        )
