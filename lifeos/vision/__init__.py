"""
Vision Alignment Engine

- engine: compute(), the pure snapshot scorer
- insights: get_weekly_insights() over a Monday-starting week
"""

from .engine import ENGINE_VERSION, compute
from .insights import get_weekly_insights, week_bounds

__all__ = [
    'ENGINE_VERSION',
    'compute',
    'get_weekly_insights',
    'week_bounds',
]
