"""
Time Intelligence Producer

Momentum slopes, burnout risk, trend and life phase over a daily series.

DAILY SERIES:
=============
One point per UTC day, taken from the persisted snapshot history (the
last snapshot of a day wins) and closed by today's live vision snapshot.
Each point carries:
- lifePulse: overall alignment (0..100)
- energy / creativeMomentum / financeScore: the physicalVitality,
  creativeOutput and incomeStability alignments (0..1)
- rhythm: habit momentum (0..1)
- stress: the derived layer's stress signal (0..1)

Slopes compare the mean of the second half of a window with the mean
of the first half.
"""

from __future__ import annotations
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np

from ..contracts.base import clamp, parse_timestamp, round_half_up
from ..reactive.cache import LayerContext, StateProducer

DAILY_SERIES_LIMIT = 370

TREND_THRESHOLD = 0.08


def _section(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _round3(value: float) -> float:
    return round_half_up(value * 1000) / 1000


def _share(value: Any) -> float:
    return clamp(value, 0, 100) / 100


def stress_reading(derived: Any) -> float:
    """Stress signal of a derived-state payload, falling back to metrics.stressScore."""
    derived = _section(derived)
    raw = _section(derived.get('signals')).get('stress')
    if raw is None:
        raw = _section(derived.get('metrics')).get('stressScore')
    return clamp(raw, 0, 1)


def day_record(snapshot: Mapping[str, Any], stress: float) -> Optional[Dict[str, Any]]:
    """Series point for one snapshot, or None when it carries no usable date."""
    computed_at = parse_timestamp(snapshot.get('computedAt'))
    if computed_at is None:
        return None
    alignment = _section(snapshot.get('alignment'))
    momentum = _section(snapshot.get('momentum'))
    return {
        'date': computed_at.date().isoformat(),
        'lifePulse': clamp(alignment.get('overall'), 0, 100),
        'stress': clamp(stress, 0, 1),
        'energy': _share(alignment.get('physicalVitality')),
        'rhythm': _share(momentum.get('habits')),
        'creativeMomentum': _share(alignment.get('creativeOutput')),
        'financeScore': _share(alignment.get('incomeStability')),
    }


def daily_series(
    snapshots: Sequence[Any],
    current: Mapping[str, Any],
    stress: float
) -> List[Dict[str, Any]]:
    by_date: Dict[str, Dict[str, Any]] = {}
    for snapshot in list(snapshots) + [current]:
        record = day_record(_section(snapshot), stress)
        if record is not None:
            by_date[record['date']] = record
    series = [by_date[key] for key in sorted(by_date)]
    return series[-DAILY_SERIES_LIMIT:]


def composite_point(record: Mapping[str, Any]) -> float:
    life = clamp(record['lifePulse'] / 100, 0, 1)
    return clamp(
        life * 0.38
        + record['creativeMomentum'] * 0.22
        + record['financeScore'] * 0.2
        + (1 - record['stress']) * 0.2,
        0, 1
    )


def slice_window(series: Sequence[Any], days: int) -> List[Any]:
    if not series:
        return []
    count = max(2, min(days, len(series)))
    return list(series[-count:])


def window_slope(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    if len(values) < 3:
        return clamp(values[-1] - values[0], -1, 1)
    mid = len(values) // 2
    return clamp(float(np.mean(values[mid:])) - float(np.mean(values[:mid])), -1, 1)


def momentum_for_window(series: Sequence[Mapping[str, Any]], days: int) -> float:
    return _round3(window_slope([composite_point(r) for r in slice_window(series, days)]))


def feature_slope(series: Sequence[Mapping[str, Any]], days: int, key: str) -> float:
    return _round3(window_slope([clamp(r[key], 0, 1) for r in slice_window(series, days)]))


def burnout_risk(series: Sequence[Mapping[str, Any]], stress: float) -> float:
    risk = (
        clamp(stress, 0, 1) * 0.58
        + max(0.0, -feature_slope(series, 30, 'energy')) * 0.24
        + max(0.0, -feature_slope(series, 30, 'rhythm')) * 0.18
    )
    return _round3(clamp(risk, 0, 1))


def classify_trend(momentum30: float, momentum90: float) -> str:
    weighted = momentum30 * 0.6 + momentum90 * 0.4
    if weighted >= TREND_THRESHOLD:
        return 'UP'
    if weighted <= -TREND_THRESHOLD:
        return 'DOWN'
    return 'FLAT'


def classify_phase(
    burnout: float,
    momentum30: float,
    momentum90: float,
    finance_now: float,
    life_pulse_now: float
) -> str:
    if burnout >= 0.72:
        return 'RECOVER'
    if momentum30 >= 0.24 and finance_now >= 0.62:
        return 'HARVEST'
    if momentum90 >= 0.1 or (momentum30 > 0.06 and life_pulse_now >= 60):
        return 'BUILD'
    if momentum30 <= -0.14 or life_pulse_now <= 42:
        return 'RECOVER'
    return 'EXPLORE'


class TimeStateProducer(StateProducer[Dict[str, Any]]):
    """Reads `vision` through its memoized getter and the snapshot history."""

    def compute(self, context: LayerContext) -> Dict[str, Any]:
        stress = stress_reading(context.prior_derived)
        series = daily_series(
            context.history.get('snapshots') or [],
            _section(context.layer_state('vision')),
            stress,
        )

        momentum30 = momentum_for_window(series, 30)
        momentum90 = momentum_for_window(series, 90)
        momentum365 = momentum_for_window(series, 365)
        burnout = burnout_risk(series, stress)

        latest = series[-1] if series else {}
        return {
            'phase': classify_phase(
                burnout, momentum30, momentum90,
                clamp(latest.get('financeScore'), 0, 1),
                clamp(latest.get('lifePulse'), 0, 100),
            ),
            'momentum30': clamp(momentum30, -1, 1),
            'momentum90': clamp(momentum90, -1, 1),
            'momentum365': clamp(momentum365, -1, 1),
            'burnoutRisk': burnout,
            'trend': classify_trend(momentum30, momentum90),
        }
