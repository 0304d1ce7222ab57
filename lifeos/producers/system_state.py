"""
Master System State

Aggregate composer over the sibling layers: system mode, dominant
constraint, overall risk and life direction. Siblings are read through
their memoized getters only.
"""

from __future__ import annotations
from typing import Any, Dict, Mapping

from ..contracts.base import clamp, to_number
from ..reactive.cache import LayerContext, StateProducer

COGNITIVE_RISK = {'HIGH': 0.82, 'MEDIUM': 0.52}
LOW_COGNITIVE_RISK = 0.22

ALIGNMENT_RISK = {'SURVIVAL': 0.6, 'OVERLOAD': 0.7, 'DRIFT': 0.45}
ALIGNED_RISK = 0.2

RISK_WEIGHTS = {
    'cognitive': 0.28,
    'burnout': 0.22,
    'stress': 0.16,
    'attention': 0.14,
    'alignment': 0.1,
    'isolation': 0.06,
    'stagnation': 0.04,
}


def _section(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _unit(value: Any) -> float:
    """0..1 reading; absent or non-numeric counts as 0."""
    num = to_number(value) if value is not None else None
    return clamp(num, 0, 1) if num is not None else 0.0


def _deficit(value: Any) -> float:
    num = to_number(value) if value is not None else None
    return clamp(1 - num, 0, 1) if num is not None else 0.0


def map_cognitive_risk(level: Any) -> float:
    return COGNITIVE_RISK.get(str(level or 'LOW').upper(), LOW_COGNITIVE_RISK)


def pick_constraint(layers: Mapping[str, Any]) -> str:
    states = _section(_section(layers['cognitive']).get('states'))
    if states.get('primaryConstraint'):
        return str(states['primaryConstraint']).upper()

    metrics = _section(_section(layers['derived']).get('metrics'))
    attention = _section(layers['attention'])
    relationship = _section(layers['relationship'])
    alignment = _section(layers['alignment'])

    deficits = {
        'ENERGY': _deficit(metrics.get('healthScore')),
        'TIME': _deficit(metrics.get('rhythmScore')),
        'MONEY': _deficit(metrics.get('financeScore')),
        'CLARITY': _unit(attention.get('contextSwitchRisk')),
        'SOCIAL': _unit(relationship.get('isolationRisk')),
    }
    if alignment.get('mode') == 'SURVIVAL':
        deficits['MONEY'] = clamp(deficits['MONEY'] + 0.1, 0, 1)

    winner, best = 'CLARITY', -1.0
    for key, value in deficits.items():
        if value > best:
            winner, best = key, value
    return winner


def pick_system_mode(layers: Mapping[str, Any]) -> str:
    states = _section(_section(layers['cognitive']).get('states'))
    if states.get('systemMode'):
        return str(states['systemMode'])

    phase = _section(layers['time']).get('phase')
    stress = _unit(_section(_section(layers['derived']).get('signals')).get('stress'))
    if phase == 'RECOVER' or stress >= 0.8:
        return 'RECOVER'
    if phase == 'BUILD':
        return 'BUILD'
    if phase == 'HARVEST':
        return 'FLOW'
    return 'EXPLORE'


def pick_direction(layers: Mapping[str, Any]) -> str:
    trend = _section(layers['time']).get('trend')
    trajectory = _section(layers['narrative']).get('trajectory')
    if trend == 'UP' or trajectory == 'RISING':
        return 'UP'
    if trend == 'DOWN' or trajectory == 'FALLING':
        return 'DOWN'
    return 'FLAT'


def overall_risk(layers: Mapping[str, Any]) -> float:
    attention = _section(layers['attention'])
    components = {
        'cognitive': map_cognitive_risk(
            _section(_section(layers['cognitive']).get('states')).get('riskLevel')
        ),
        'burnout': _unit(_section(layers['time']).get('burnoutRisk')),
        'stress': _unit(_section(_section(layers['derived']).get('signals')).get('stress')),
        'attention': clamp(
            _unit(attention.get('contextSwitchRisk')) * 0.55
            + _unit(attention.get('lateStimulusRisk')) * 0.45,
            0, 1
        ),
        'alignment': ALIGNMENT_RISK.get(_section(layers['alignment']).get('mode'), ALIGNED_RISK),
        'isolation': _unit(_section(layers['relationship']).get('isolationRisk')),
        'stagnation': _unit(_section(layers['creative_phase']).get('stagnationRisk')),
    }
    total = sum(components[name] * weight for name, weight in RISK_WEIGHTS.items())
    return round(clamp(total, 0, 1), 3)


class SystemStateProducer(StateProducer[Dict[str, Any]]):

    SIBLINGS = (
        'derived', 'cognitive', 'time', 'attention', 'alignment',
        'relationship', 'creative_phase', 'narrative',
    )

    def compute(self, context: LayerContext) -> Dict[str, Any]:
        layers = {name: context.layer_state(name) for name in self.SIBLINGS}
        return {
            'systemMode': pick_system_mode(layers),
            'dominantConstraint': pick_constraint(layers),
            'overallRisk': overall_risk(layers),
            'lifeDirection': pick_direction(layers),
        }
