"""
Weekly Insights

Aggregates over the Monday-starting week containing a reference date.
The week is [Monday 00:00 UTC, next Monday 00:00 UTC); an entry stamped
exactly at the next Monday belongs to the following week.
"""

from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from ..contracts.base import clamp, parse_timestamp, round_half_up, start_of_week, to_number
from ..contracts.records import Decision, Milestone
from ..contracts.snapshot import WeeklyInsights


def week_bounds(reference_date: Any = None) -> Tuple[datetime, datetime]:
    """Start (inclusive) and end (exclusive) of the week containing the date."""
    reference = parse_timestamp(reference_date) or datetime.now(timezone.utc)
    start = start_of_week(reference)
    return start, start + timedelta(days=7)


def _in_week(moment: Optional[datetime], bounds: Tuple[datetime, datetime]) -> bool:
    return moment is not None and bounds[0] <= moment < bounds[1]


def _overall(snapshot: Mapping[str, Any], section: str) -> float:
    values = snapshot.get(section)
    if not isinstance(values, Mapping):
        return 0.0
    return to_number(values.get('overall')) or 0.0


def get_weekly_insights(
    decisions: Sequence[Any],
    snapshots: Sequence[Any],
    milestones: Sequence[Any],
    reference_date: Any = None
) -> WeeklyInsights:
    """Deltas and counts for the week containing `reference_date`."""
    bounds = week_bounds(reference_date)

    dated: List[Tuple[datetime, Mapping[str, Any]]] = []
    for snapshot in snapshots or ():
        record = snapshot.to_dict() if hasattr(snapshot, 'to_dict') else snapshot
        if not isinstance(record, Mapping):
            continue
        computed_at = parse_timestamp(record.get('computedAt'))
        if _in_week(computed_at, bounds):
            dated.append((computed_at, record))
    dated.sort(key=lambda pair: pair[0])

    alignment_delta = drift_delta = 0
    if dated:
        earliest, latest = dated[0][1], dated[-1][1]
        alignment_delta = int(clamp(
            round_half_up(_overall(latest, 'alignment') - _overall(earliest, 'alignment')), -100, 100
        ))
        drift_delta = int(clamp(
            round_half_up(_overall(latest, 'drift') - _overall(earliest, 'drift')), -100, 100
        ))

    week_decisions = [
        decision for decision in (
            Decision.from_record(entry) for entry in (decisions or ())
            if isinstance(entry, (Mapping, Decision))
        )
        if _in_week(decision.created_at, bounds)
    ]

    moved = [
        milestone for milestone in (
            Milestone.from_record(entry) for entry in (milestones or ())
            if isinstance(entry, Mapping)
        )
        if _in_week(milestone.last_touched, bounds)
    ]

    return WeeklyInsights(
        alignment_delta=alignment_delta,
        drift_delta=drift_delta,
        decision_count=len(week_decisions),
        aligned_count=sum(1 for d in week_decisions if d.is_yes),
        milestones_moved=len(moved),
        milestones_completed=sum(1 for m in moved if m.is_done),
    )
