"""
Temporal Layer
==============

Injectable time source for deterministic runs.

Modules:
- clock: LogicalClock (live and fixed modes)
"""

from .clock import LogicalClock

__all__ = [
    'LogicalClock',
]
