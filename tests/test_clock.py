"""
Logical Clock Tests

Fixed and live modes.
"""

from datetime import datetime, timedelta, timezone

import pytest

from lifeos.temporal import LogicalClock

from .fixtures import NOW


class TestFixedClock:

    def test_returns_pinned_instant(self):
        clock = LogicalClock.fixed(NOW)
        assert clock.now() == NOW
        assert clock.now() == NOW
        assert not clock.is_live()
        assert clock.get_start_time() == NOW

    def test_naive_instant_is_utc(self):
        clock = LogicalClock.fixed(datetime(2026, 3, 11, 15, 30))
        assert clock.now() == NOW

    def test_advance_keeps_start_time(self):
        clock = LogicalClock.fixed(NOW)
        clock.advance(timedelta(days=2))
        assert clock.now() == NOW + timedelta(days=2)
        assert clock.get_start_time() == NOW

    def test_live_clock_cannot_advance(self):
        with pytest.raises(ValueError):
            LogicalClock.live().advance(timedelta(seconds=1))


class TestLiveClock:

    def test_live_ticks_are_utc(self):
        clock = LogicalClock.live()
        assert clock.is_live()
        assert clock.now().tzinfo == timezone.utc
        assert clock.get_start_time() <= clock.now()

    def test_reading_holds_no_state(self):
        clock = LogicalClock.live()
        for _ in range(5000):
            clock.now()
        assert vars(clock) == {'_pinned': None, '_start_time': clock.get_start_time()}
