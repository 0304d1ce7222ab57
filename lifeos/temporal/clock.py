"""
Logical Clock for Deterministic Execution
=========================================

Injectable clock shared by the store, the interceptor and the vision
engine so that every timestamp in a run can be reproduced.

MODES:
- LIVE: reads system time
- FIXED: returns a pinned instant until advanced explicitly
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..contracts.base import ensure_utc


@dataclass
class LogicalClock:
    """
    Injectable clock for deterministic execution.

    GUARANTEES:
    ===========
    - A fixed clock produces identical results on every run
    - All time reads in lifeos go through a clock instance
    - Reading the clock holds no per-call state
    """
    _pinned: Optional[datetime] = None
    _start_time: Optional[datetime] = None

    def now(self) -> datetime:
        """
        Get current logical time.

        In LIVE mode: reads system time (UTC)
        In FIXED mode: returns the pinned instant
        """
        if self._pinned is not None:
            return self._pinned
        return datetime.now(timezone.utc)

    def advance(self, delta: timedelta) -> datetime:
        """Move a FIXED clock forward."""
        if self._pinned is None:
            raise ValueError("Only a fixed clock can be advanced")
        self._pinned = self._pinned + delta
        return self._pinned

    def is_live(self) -> bool:
        return self._pinned is None

    def get_start_time(self) -> Optional[datetime]:
        return self._start_time

    @classmethod
    def live(cls) -> 'LogicalClock':
        """Create clock in LIVE mode (uses system time)."""
        return cls(_start_time=datetime.now(timezone.utc))

    @classmethod
    def fixed(cls, instant: datetime) -> 'LogicalClock':
        """Create clock pinned at `instant` (naive values are UTC)."""
        pinned = ensure_utc(instant)
        return cls(_pinned=pinned, _start_time=pinned)

    def __repr__(self) -> str:
        if self._pinned is not None:
            return f"LogicalClock(FIXED, at={self._pinned.isoformat()})"
        return "LogicalClock(LIVE)"
