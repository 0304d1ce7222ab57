"""
Vision Alignment Engine
=======================

Pure scoring of a vision record into an immutable Snapshot.

PIPELINE:
=========
1. Milestone statistics (completion means, overdue/blocked/due-soon)
2. Alignment per dimension and overall
3. Drift against the latest prior snapshot
4. Ranked action queue (top 8)
5. Tension flags (top 5) and risk signals (top 3)
6. Momentum (milestones, decayed decisions, habits, pressure penalty)
7. Suggestions and explainability lines

DETERMINISM:
============
Given the same inputs and the same `now`, compute() returns equal
snapshots. The engine keeps no state between calls and only reads the
wall clock when `now` is omitted.

The weights and bonus magnitudes are tuned heuristics and are kept
literally.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import logging

import numpy as np

from ..contracts.base import (
    ONE_DAY, clamp, days_between, parse_timestamp, plural,
    round_half_up, start_of_day, to_iso, to_number,
)
from ..contracts.records import DIMENSIONS, Decision, Milestone, VisionState
from ..contracts.snapshot import (
    NEUTRAL_ALIGNMENT, NEUTRAL_MOMENTUM, ActionItem, Explainability, Momentum,
    RiskSignal, Snapshot, TensionFlag,
)

logger = logging.getLogger(__name__)

ENGINE_VERSION = '2.0.0'

# alignment weights
TARGET_WEIGHT = 0.4
TYPE_WEIGHT = 0.35
OVERALL_WEIGHT = 0.15
COMMITTED_WEIGHT = 0.1

DUE_SOON_DAYS = 7
STALE_DAYS = 10
ACTION_QUEUE_LIMIT = 8
TENSION_FLAG_LIMIT = 5
RISK_SIGNAL_LIMIT = 3
SUGGESTION_COUNT = 3
EXPLAINABILITY_LIMIT = 5

DECISION_WINDOW_DAYS = 56
DECISION_DECAY_DAYS = 14
DECISION_FALLBACK_COUNT = 12

PILLAR_FILLER = 'Re-center your direction'
RISK_FILLER = 'Track blockers before adding new commitments.'
UNTITLED = 'Untitled milestone'


@dataclass(frozen=True)
class MilestoneStats:
    total: int = 0
    active: int = 0
    completed: int = 0
    blocked: int = 0
    overdue: int = 0
    due_soon: int = 0
    committed_count: int = 0
    committed_completion: float = 0.0
    overall_completion: float = 0.0
    type_completion: Tuple[Tuple[str, float], ...] = field(default_factory=tuple)

    def completion_for(self, vision_type: str) -> float:
        """Mean completion for a type, or the overall mean if it has none."""
        value = dict(self.type_completion).get(vision_type)
        return clamp(value if value is not None else self.overall_completion, 0, 100)


@dataclass(frozen=True)
class _RankedAction:
    item: ActionItem
    due: Optional[datetime]
    updated: datetime

    def sort_key(self):
        return (
            -self.item.priority,
            self.due is None,
            self.due.timestamp() if self.due else 0.0,
            -self.updated.timestamp(),
            self.item.title.casefold(),
        )


def _resolve_now(now: Any) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    parsed = parse_timestamp(now)
    if parsed is None:
        logger.debug("Unparseable 'now' %r, using the wall clock", now)
        return datetime.now(timezone.utc)
    return parsed


# =============================================================================
# STATISTICS, ALIGNMENT, DRIFT
# =============================================================================

def build_milestone_stats(state: VisionState, now: datetime) -> MilestoneStats:
    today = start_of_day(now)
    due_soon_cutoff = today + timedelta(days=DUE_SOON_DAYS)
    commitments = set(state.weekly_commitment_ids)

    completion_sum = 0.0
    completed = blocked = overdue = due_soon = 0
    committed: List[float] = []
    by_type: Dict[str, List[float]] = {}

    for milestone in state.milestones:
        completion_sum += milestone.completion
        if milestone.is_done:
            completed += 1
        if milestone.is_blocked:
            blocked += 1
        if not milestone.is_done and milestone.due is not None:
            if milestone.due < today:
                overdue += 1
            elif milestone.due <= due_soon_cutoff:
                due_soon += 1
        if milestone.id is not None and milestone.id in commitments:
            committed.append(milestone.completion)
        by_type.setdefault(milestone.vision_type, []).append(milestone.completion)

    total = len(state.milestones)
    overall = completion_sum / total if total else 0.0
    return MilestoneStats(
        total=total,
        active=max(0, total - completed),
        completed=completed,
        blocked=blocked,
        overdue=overdue,
        due_soon=due_soon,
        committed_count=len(committed),
        committed_completion=sum(committed) / len(committed) if committed else overall,
        overall_completion=overall,
        type_completion=tuple(
            (vision_type, sum(values) / len(values)) for vision_type, values in sorted(by_type.items())
        ),
    )


def build_alignment(state: VisionState, stats: MilestoneStats) -> Dict[str, int]:
    alignment: Dict[str, int] = {}
    for dimension in DIMENSIONS:
        value = (
            clamp(state.target(dimension.key), 0, 100) * TARGET_WEIGHT
            + stats.completion_for(dimension.type) * TYPE_WEIGHT
            + stats.overall_completion * OVERALL_WEIGHT
            + stats.committed_completion * COMMITTED_WEIGHT
        )
        alignment[dimension.key] = round_half_up(clamp(value, 0, 100))
    mean = sum(alignment[d.key] for d in DIMENSIONS) / len(DIMENSIONS)
    alignment['overall'] = round_half_up(clamp(mean, 0, 100))
    return alignment


def _prior_value(prior: Mapping[str, Any], key: str) -> float:
    # only a missing or non-numeric prior falls back to the neutral baseline
    raw = prior.get(key)
    value = to_number(raw) if raw is not None else None
    return clamp(value if value is not None else NEUTRAL_ALIGNMENT, -100, 100)


def build_drift(alignment: Mapping[str, int], prior: Optional[Mapping[str, Any]]) -> Dict[str, int]:
    prior = prior if isinstance(prior, Mapping) else {}
    return {
        key: round_half_up(clamp(value - _prior_value(prior, key), -100, 100))
        for key, value in alignment.items()
    }


def _prior_alignment(snapshots: Sequence[Any]) -> Optional[Mapping[str, Any]]:
    if not snapshots:
        return None
    last = snapshots[-1]
    if isinstance(last, Snapshot):
        return last.alignment_map
    if isinstance(last, Mapping) and isinstance(last.get('alignment'), Mapping):
        return last['alignment']
    return None


# =============================================================================
# ACTION QUEUE
# =============================================================================

def _score_milestone(
    milestone: Milestone,
    today: datetime,
    now: datetime,
    commitments: Iterable[str]
) -> _RankedAction:
    reasons: List[str] = []
    raw = 0.0
    due = milestone.due
    updated = milestone.last_touched or now
    stale_days = max(0, days_between(today, start_of_day(updated)))

    if due is not None and due < today:
        days_late = max(1, abs(days_between(due, today)))
        reasons.append(f"Overdue by {plural(days_late, 'day')}")
        raw += clamp(70 + days_late * 4, 70, 95)
    elif due is not None and due <= today + timedelta(days=DUE_SOON_DAYS):
        days_left = max(0, days_between(due, today))
        reasons.append('Due today' if days_left == 0 else f"Due in {plural(days_left, 'day')}")
        raw += clamp(32 + (7 - days_left) * 4, 32, 60)

    if milestone.blocker:
        reasons.append('Blocked')
        raw += 34
    if not milestone.next_action:
        reasons.append('Missing next action')
        raw += 26
    if milestone.id is not None and milestone.id in commitments:
        reasons.append('Weekly commitment')
        raw += 18
    if milestone.completion < 30:
        reasons.append('Low progress')
        raw += clamp(round_half_up((30 - milestone.completion) * 0.45) + 6, 6, 20)
    if stale_days >= STALE_DAYS:
        reasons.append('Stale update')
        raw += 8

    if raw == 0:
        reasons.append('Maintain momentum')
        raw = 12

    item = ActionItem(
        milestone_id=milestone.id,
        title=milestone.title or UNTITLED,
        reason=' · '.join(reasons),
        priority=int(clamp(round_half_up(raw), 10, 100)),
    )
    return _RankedAction(item=item, due=due, updated=updated)


def build_action_queue(state: VisionState, now: datetime) -> List[ActionItem]:
    """Non-done milestones ranked by priority, then due date, recency, title."""
    today = start_of_day(now)
    commitments = set(state.weekly_commitment_ids)
    ranked = [
        _score_milestone(milestone, today, now, commitments)
        for milestone in state.milestones
        if not milestone.is_done
    ]
    ranked.sort(key=_RankedAction.sort_key)
    return [entry.item for entry in ranked[:ACTION_QUEUE_LIMIT]]


# =============================================================================
# TENSION, RISK
# =============================================================================

def _tension_severity(value: float, high: float, medium: float) -> str:
    if value >= high:
        return 'high'
    if value >= medium:
        return 'medium'
    return 'low'


def _finance_flag(finance: Optional[Mapping[str, Any]]) -> Optional[TensionFlag]:
    if not isinstance(finance, Mapping):
        return None
    pipeline = clamp(to_number(finance.get('pipeline')) or 0, 0, 1_000_000)
    runway = clamp(
        to_number(finance.get('runwayMonths')) or to_number(finance.get('runway')) or 0, 0, 24
    )
    if 0 < runway < 4:
        return TensionFlag(
            id='tension-income-instability',
            label='Runway pressure',
            severity='high' if runway < 2 else 'medium',
            detail=f"Runway is {runway:.1f} months.",
            category='Income',
        )
    expected = to_number(finance.get('monthlyIncome')) or 1
    if pipeline and pipeline < expected * 0.8:
        return TensionFlag(
            id='tension-income-pipeline',
            label='Pipeline under target',
            severity='medium',
            detail='Pipeline is below expected monthly demand.',
            category='Income',
        )
    return None


def build_tension_flags(
    alignment: Mapping[str, int],
    drift: Mapping[str, int],
    stats: MilestoneStats,
    finance: Optional[Mapping[str, Any]],
    action_queue: Sequence[ActionItem]
) -> List[TensionFlag]:
    flags: List[TensionFlag] = []

    if stats.blocked > 0:
        flags.append(TensionFlag(
            id='tension-blocked-milestones',
            label='Execution blockers active',
            severity='high' if stats.blocked >= 2 else 'medium',
            detail=f"{plural(stats.blocked, 'milestone')} blocked right now.",
            category='Execution',
        ))
    if stats.overdue > 0:
        flags.append(TensionFlag(
            id='tension-overdue-milestones',
            label='Deadlines slipping',
            severity='high' if stats.overdue >= 2 else 'medium',
            detail=f"{stats.overdue} overdue {'milestone' if stats.overdue == 1 else 'milestones'} need triage.",
            category='Execution',
        ))
    if drift['overall'] < -10 and alignment['physicalVitality'] < 45:
        flags.append(TensionFlag(
            id='tension-burnout',
            label='Burnout trajectory',
            severity='high',
            detail='Vitality is low while overall drift trends down.',
            category='Health',
        ))
    if stats.active >= 4 and stats.overall_completion < 40:
        flags.append(TensionFlag(
            id='tension-overextension',
            label='Overextension',
            severity=_tension_severity(100 - stats.overall_completion, 60, 35),
            detail='Too many active milestones with limited completion.',
            category='Operations',
        ))

    finance_flag = _finance_flag(finance)
    if finance_flag is not None:
        flags.append(finance_flag)

    if action_queue and action_queue[0].priority >= 80:
        flags.append(TensionFlag(
            id='tension-urgent-actions',
            label='Urgent action queue',
            severity='high',
            detail=f"Top action: {action_queue[0].title}.",
            category='Execution',
        ))

    return flags[:TENSION_FLAG_LIMIT]


def build_risk_signals(flags: Sequence[TensionFlag]) -> List[RiskSignal]:
    if not flags:
        return [RiskSignal.stable()]
    return [
        RiskSignal(id=f"risk-{flag.id}", label=flag.label, severity=flag.severity, detail=flag.detail)
        for flag in flags[:RISK_SIGNAL_LIMIT]
    ]


# =============================================================================
# MOMENTUM
# =============================================================================

def decision_momentum(decisions: Sequence[Decision], now: datetime) -> int:
    """
    Yes-ratio weighted by exp(-age/14) over the last 56 days.

    Falls back to the plain ratio of the last 12 decisions when nothing
    is recent, and to 55 when there are no decisions.
    """
    if not decisions:
        return NEUTRAL_MOMENTUM

    ages = []
    outcomes = []
    for decision in decisions:
        if decision.created_at is None:
            continue
        age_days = max(0.0, (now - decision.created_at) / ONE_DAY)
        if age_days > DECISION_WINDOW_DAYS:
            continue
        ages.append(age_days)
        outcomes.append(1.0 if decision.is_yes else 0.0)

    if ages:
        weights = np.exp(-np.asarray(ages, dtype=float) / DECISION_DECAY_DAYS)
        total = float(weights.sum())
        if total > 0.0001:
            weighted_yes = float(np.dot(weights, np.asarray(outcomes, dtype=float)))
            return int(clamp(round_half_up(weighted_yes / total * 100), 0, 100))

    recent = decisions[-DECISION_FALLBACK_COUNT:]
    yes_count = sum(1 for d in recent if d.is_yes)
    return int(clamp(round_half_up(yes_count / max(1, len(recent)) * 100), 0, 100))


def _habit_rate(store: Any) -> Optional[float]:
    reader = getattr(store, 'get_habit_completion_rate', None)
    if not callable(reader):
        return None
    rate = reader()
    if isinstance(rate, Mapping):
        total = to_number(rate.get('total')) or 0
        return (to_number(rate.get('done')) or 0) / total if total else None
    return to_number(rate) if rate is not None else None


def build_momentum(
    stats: MilestoneStats,
    decisions: Sequence[Decision],
    habit_rate: Optional[float],
    now: datetime
) -> Momentum:
    base = stats.committed_completion if stats.committed_count > 0 else stats.overall_completion
    milestones = int(clamp(round_half_up(base), 0, 100))
    decisions_score = decision_momentum(decisions, now)
    habits = NEUTRAL_MOMENTUM if habit_rate is None else int(clamp(round_half_up(habit_rate * 100), 0, 100))

    pool = max(1, stats.active)
    overdue_rate = clamp(stats.overdue / pool, 0, 1)
    blocked_rate = clamp(stats.blocked / pool, 0, 1)
    penalty = clamp(round_half_up((overdue_rate * 0.6 + blocked_rate * 0.4) * 30), 0, 30)
    overall = clamp(
        round_half_up(milestones * 0.45 + decisions_score * 0.3 + habits * 0.25 - penalty), 0, 100
    )
    return Momentum(milestones=milestones, decisions=decisions_score, habits=habits, overall=int(overall))


# =============================================================================
# SUGGESTIONS, EXPLAINABILITY
# =============================================================================

def _pad(values: List[str], filler) -> List[str]:
    while len(values) < SUGGESTION_COUNT:
        values.append(filler(len(values)))
    return values


def build_suggestions(
    state: VisionState,
    risk_signals: Sequence[RiskSignal],
    action_queue: Sequence[ActionItem]
) -> Tuple[List[str], List[str], List[str]]:
    themes = sorted(state.themes, key=lambda theme: -theme.weight)
    pillars = _pad([theme.label for theme in themes[:SUGGESTION_COUNT]], lambda _: PILLAR_FILLER)

    commitments: List[str] = []
    seen = set()

    def add(title: str) -> None:
        label = f"Advance {title or UNTITLED}".strip()
        if label.lower() in seen:
            return
        seen.add(label.lower())
        commitments.append(label)

    by_id = {m.id: m for m in state.milestones if m.id is not None}
    queue_priority = {item.milestone_id: item.priority for item in action_queue}
    weekly = [
        by_id[milestone_id] for milestone_id in state.weekly_commitment_ids
        if milestone_id in by_id and not by_id[milestone_id].is_done
    ]
    weekly.sort(key=lambda m: (-queue_priority.get(m.id, 0), m.title.casefold()))
    for milestone in weekly:
        add(milestone.title)
    for item in action_queue:
        add(item.title)
    if len(commitments) < SUGGESTION_COUNT:
        remaining = sorted((m for m in state.milestones if not m.is_done), key=lambda m: m.completion)
        for milestone in remaining:
            add(milestone.title)

    commitments = _pad(
        commitments[:SUGGESTION_COUNT],
        lambda index: f"Lean into {pillars[index] if index < len(pillars) else 'core focus'}",
    )

    risks = _pad(
        [f"{signal.label} · {signal.detail}" for signal in risk_signals[:SUGGESTION_COUNT]],
        lambda _: RISK_FILLER,
    )
    return pillars, commitments, risks


def _signed(value: int) -> str:
    return f"+{value}" if value >= 0 else str(value)


def build_explainability(
    state: VisionState,
    stats: MilestoneStats,
    alignment: Mapping[str, int],
    drift: Mapping[str, int],
    action_queue: Sequence[ActionItem]
) -> Explainability:
    drivers: List[Tuple[float, str]] = []

    if action_queue:
        top = action_queue[0]
        drivers.append((100, f"Top priority: {top.title} ({top.reason})."))
    if stats.overdue > 0:
        drivers.append((92, f"{stats.overdue} overdue {'milestone' if stats.overdue == 1 else 'milestones'} requiring immediate triage."))
    if stats.blocked > 0:
        drivers.append((88, f"{stats.blocked} blocked {'milestone' if stats.blocked == 1 else 'milestones'} creating execution drag."))
    if stats.active > 0 and stats.committed_count == 0:
        drivers.append((74, 'No weekly commitments selected from active milestones.'))
    else:
        drivers.append((62, f"Weekly commitments: {stats.committed_count} active."))
    if stats.total > 0:
        completed_pct = round_half_up(stats.completed / stats.total * 100)
        drivers.append((60, f"{stats.completed}/{stats.total} milestones completed ({completed_pct}%)."))
    if abs(drift['overall']) >= 4:
        drivers.append((58, f"Overall drift {_signed(drift['overall'])} since last compute."))

    overall: List[str] = []
    seen = set()
    for _, text in sorted(drivers, key=lambda row: (-row[0], row[1])):
        if text.lower() in seen:
            continue
        seen.add(text.lower())
        overall.append(text)
    overall = overall[:EXPLAINABILITY_LIMIT]

    fallbacks = (
        f"Overall alignment: {alignment['overall']}.",
        f"Active milestones: {stats.active}.",
        'Add or update milestones to improve action quality.',
    )
    while len(overall) < 3:
        overall.append(fallbacks[len(overall)])

    dimensions = tuple(
        (dimension.key, (
            f"Target: {round_half_up(clamp(state.target(dimension.key), 0, 100))}.",
            f"{dimension.type} completion: {round_half_up(stats.completion_for(dimension.type))}%.",
            f"Current alignment: {alignment[dimension.key]} ({_signed(drift[dimension.key])} drift).",
        ))
        for dimension in DIMENSIONS
    )
    return Explainability(overall=tuple(overall), dimensions=dimensions)


# =============================================================================
# ENTRY POINT
# =============================================================================

def compute(
    vision_state: Any,
    now: Any = None,
    store: Any = None,
    snapshots: Sequence[Any] = (),
    decisions: Sequence[Any] = ()
) -> Snapshot:
    """
    Score a vision record into a Snapshot.

    Args:
        vision_state: Raw vision mapping or VisionState
        now: Reference instant (datetime, ISO string or epoch ms)
        store: Optional accessor for finance and habit signals
        snapshots: Prior snapshot history, oldest first
        decisions: Decision log (raw mappings or Decision)

    Malformed input degrades to a minimal-but-valid snapshot.
    """
    state = vision_state if isinstance(vision_state, VisionState) else VisionState.from_record(vision_state)
    moment = _resolve_now(now)
    history = list(snapshots) if isinstance(snapshots, (list, tuple)) else []
    decision_list = [
        Decision.from_record(entry)
        for entry in (decisions if isinstance(decisions, (list, tuple)) else [])
        if isinstance(entry, (Mapping, Decision))
    ]

    finance_reader = getattr(store, 'get_finance_snapshot', None)
    finance = finance_reader() if callable(finance_reader) else None

    stats = build_milestone_stats(state, moment)
    alignment = build_alignment(state, stats)
    drift = build_drift(alignment, _prior_alignment(history))
    action_queue = build_action_queue(state, moment)
    tension_flags = build_tension_flags(alignment, drift, stats, finance, action_queue)
    risk_signals = build_risk_signals(tension_flags)
    momentum = build_momentum(stats, decision_list, _habit_rate(store), moment)
    pillars, commitments, risks = build_suggestions(state, risk_signals, action_queue)
    explainability = build_explainability(state, stats, alignment, drift, action_queue)

    return Snapshot(
        computed_at=to_iso(moment),
        alignment=tuple(alignment.items()),
        drift=tuple(drift.items()),
        tension_flags=tuple(tension_flags),
        risk_signals=tuple(risk_signals),
        momentum=momentum,
        action_queue=tuple(action_queue),
        suggested_pillars=tuple(pillars),
        suggested_commitments=tuple(commitments),
        suggested_risks=tuple(risks),
        explainability=explainability,
    )
