"""
Narrative Producer

Chapter label, trajectory, key themes and a one-line summary composed
from the time, alignment, attention and relationship layers.
"""

from __future__ import annotations
from typing import Any, Dict, List, Mapping
import re

from ..contracts.base import to_number
from ..reactive.cache import LayerContext, StateProducer
from .time_layer import stress_reading

FALLING_STRESS = 0.62
THEME_LIMIT = 4
SUMMARY_LIMIT = 200


def _section(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def pick_trajectory(time_state: Mapping[str, Any], alignment: Mapping[str, Any], stress: float) -> str:
    trend = time_state.get('trend')
    mode = alignment.get('mode')
    if trend == 'UP' and mode == 'ALIGNED':
        return 'RISING'
    if trend == 'DOWN' and stress >= FALLING_STRESS:
        return 'FALLING'
    if mode in ('SURVIVAL', 'OVERLOAD'):
        return 'TURNING'
    return 'STABLE'


def build_themes(
    time_state: Mapping[str, Any],
    alignment: Mapping[str, Any],
    attention: Mapping[str, Any],
    relationship: Mapping[str, Any]
) -> List[str]:
    themes = []
    if time_state.get('phase') == 'RECOVER':
        themes.append('recovery')
    if time_state.get('phase') == 'BUILD':
        themes.append('building')
    if alignment.get('mode') == 'SURVIVAL':
        themes.append('stability')
    if alignment.get('mode') == 'ALIGNED':
        themes.append('alignment')
    if attention.get('leakSource') == 'CONTEXT':
        themes.append('focus integrity')
    if attention.get('leakSource') == 'STIMULUS':
        themes.append('stimulus hygiene')
    if (to_number(relationship.get('neglectedCount')) or 0) > 0:
        themes.append('connection repair')

    unique: List[str] = []
    for theme in themes:
        if theme.lower() not in (t.lower() for t in unique):
            unique.append(theme)
    return unique[:THEME_LIMIT]


def chapter_label(time_state: Mapping[str, Any], trajectory: str) -> str:
    phase = time_state.get('phase') or 'EXPLORE'
    if phase == 'RECOVER' and trajectory == 'TURNING':
        return 'Reset and Reframe'
    if phase == 'RECOVER':
        return 'Recovery Arc'
    if phase == 'BUILD' and trajectory == 'RISING':
        return 'Compounding Build'
    if phase == 'HARVEST':
        return 'Harvest Window'
    if trajectory == 'FALLING':
        return 'Stabilization Needed'
    return 'Exploration Season'


def compact_summary(raw: str) -> str:
    text = re.sub(r'\s+', ' ', raw).strip()
    if len(text) <= SUMMARY_LIMIT:
        return text
    return text[:SUMMARY_LIMIT - 3].strip() + '...'


def build_summary(chapter: str, time_state: Mapping[str, Any], alignment: Mapping[str, Any]) -> str:
    trend = time_state.get('trend')
    if trend == 'UP':
        momentum = 'Momentum is improving.'
    elif trend == 'DOWN':
        momentum = 'Momentum is under pressure.'
    else:
        momentum = 'Momentum is stable.'
    if alignment.get('mode') == 'ALIGNED':
        direction = 'Work remains aligned with North Star.'
    else:
        direction = 'Alignment needs correction.'
    return compact_summary(f"{chapter}: {momentum} {direction}")


class NarrativeStateProducer(StateProducer[Dict[str, Any]]):
    """Reads its sibling layers through their memoized getters."""

    def compute(self, context: LayerContext) -> Dict[str, Any]:
        time_state = _section(context.layer_state('time'))
        alignment = _section(context.layer_state('alignment'))

        trajectory = pick_trajectory(time_state, alignment, stress_reading(context.prior_derived))
        chapter = chapter_label(time_state, trajectory)
        return {
            'chapterLabel': chapter,
            'trajectory': trajectory,
            'keyThemes': build_themes(
                time_state,
                alignment,
                _section(context.layer_state('attention')),
                _section(context.layer_state('relationship')),
            ),
            'summary': build_summary(chapter, time_state, alignment),
        }
