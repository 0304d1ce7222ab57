"""
Layer Defaults

Hardcoded, shape-compatible payloads returned when a layer has no
producer or its producer fails. Unknown values sit at neutral mid-scale
(0.5 on 0..1 axes) so "no data yet" never reads as "definitively bad".

Callers always receive a deep copy.
"""

from __future__ import annotations
from typing import Any, Dict, Tuple
import copy

from ..contracts.snapshot import Snapshot

LAYER_NAMES: Tuple[str, ...] = (
    'derived',
    'cognitive',
    'time',
    'attention',
    'alignment',
    'relationship',
    'creative_phase',
    'narrative',
    'system',
    'vision',
)

NEUTRAL = 0.5
DEFAULTS_VERSION = 1
EPOCH_ISO = '1970-01-01T00:00:00.000Z'


_DEFAULTS: Dict[str, Any] = {
    'derived': {
        'version': DEFAULTS_VERSION,
        'computedAt': None,
        'nodes': {},
        'metrics': {
            'lifePulse': NEUTRAL,
            'momentum': NEUTRAL,
            'healthScore': NEUTRAL,
            'rhythmScore': NEUTRAL,
            'financeScore': NEUTRAL,
        },
        'signals': {
            'stress': NEUTRAL,
            'recovery': NEUTRAL,
        },
        'influence': {},
    },
    'cognitive': {
        'version': DEFAULTS_VERSION,
        'computedAt': None,
        'states': {
            'riskLevel': 'MEDIUM',
            'systemMode': None,
            'primaryConstraint': None,
        },
        'signals': {
            'lifePulse': NEUTRAL,
            'stress': NEUTRAL,
            'energy': NEUTRAL,
            'rhythm': NEUTRAL,
            'finance': NEUTRAL,
        },
    },
    'time': {
        'phase': 'EXPLORE',
        'momentum30': NEUTRAL,
        'momentum90': NEUTRAL,
        'momentum365': NEUTRAL,
        'burnoutRisk': NEUTRAL,
        'trend': 'FLAT',
    },
    'attention': {
        'integrity': NEUTRAL,
        'deepWorkRatio': NEUTRAL,
        'contextSwitchRisk': NEUTRAL,
        'lateStimulusRisk': NEUTRAL,
        'leakSource': 'NONE',
    },
    'alignment': {
        'score': NEUTRAL,
        'mode': 'DRIFT',
        'milestoneRatio': NEUTRAL,
        'decisionRatio': NEUTRAL,
        'habitRatio': NEUTRAL,
    },
    'relationship': {
        'warmth': NEUTRAL,
        'isolationRisk': NEUTRAL,
        'neglectedCount': 0,
        'lastContactDaysMedian': 14,
    },
    'creative_phase': {
        'phase': 'EXPLORATION',
        'stagnationRisk': NEUTRAL,
        'outputVelocity': NEUTRAL,
        'ideaDensity': NEUTRAL,
    },
    'narrative': {
        'chapterLabel': 'Exploration Season',
        'trajectory': 'STABLE',
        'keyThemes': ['continuity'],
        'summary': 'System is stable with limited historical narrative context.',
    },
    'system': {
        'systemMode': 'EXPLORE',
        'dominantConstraint': 'CLARITY',
        'overallRisk': NEUTRAL,
        'lifeDirection': 'FLAT',
    },
    'vision': Snapshot.neutral(EPOCH_ISO).to_dict(),
}


def default_for(layer: str) -> Any:
    """Fresh deep copy of the default payload for `layer` (None if unknown)."""
    return copy.deepcopy(_DEFAULTS.get(layer))
