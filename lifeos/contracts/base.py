"""
Base Contracts and Shared Types

Foundational types and coercion helpers used across all layers.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all layers
- No I/O, no side effects, no imports from other lifeos modules
- Every coercion helper is total: malformed input maps to a fallback,
  never to an exception
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum, auto
from typing import Any, Optional, Tuple
import math


MS_PER_DAY = 24 * 60 * 60 * 1000
ONE_DAY = timedelta(days=1)


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes.

    The first three are absorbed inside the core and only surface as
    audit data; the configuration codes are raised as exceptions.
    """
    # Absorbed failures
    COMPUTATION_FAILURE = auto()
    SUBSCRIBER_FAILURE = auto()
    MALFORMED_INPUT = auto()

    # Configuration errors
    UNCLASSIFIED_OPERATION = auto()
    UNKNOWN_LAYER = auto()
    UNKNOWN_RECORD = auto()


@dataclass(frozen=True)
class Error:
    """
    Immutable error representation with full context.
    Errors are data, not exceptions - they can be stored and queried.
    """
    code: ErrorCode
    message: str
    timestamp: datetime
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def with_context(self, key: str, value: str) -> Error:
        """Return new Error with additional context (immutable)."""
        return Error(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            context=self.context + ((key, value),)
        )


class LifeOSError(Exception):
    """Base class for configuration errors raised by the core."""
    code: ErrorCode = ErrorCode.MALFORMED_INPUT

    def to_error(self, timestamp: datetime) -> Error:
        return Error(code=self.code, message=str(self), timestamp=timestamp)


class UnclassifiedOperationError(LifeOSError):
    """A public store operation is missing from the operation table."""
    code = ErrorCode.UNCLASSIFIED_OPERATION


class UnknownLayerError(LifeOSError, KeyError):
    """A cache layer name that the context does not know about."""
    code = ErrorCode.UNKNOWN_LAYER

    def __str__(self) -> str:
        return Exception.__str__(self)


class UnknownRecordError(LifeOSError, LookupError):
    """A record id that does not exist in the store."""
    code = ErrorCode.UNKNOWN_RECORD


# =============================================================================
# NUMERIC COERCION
# =============================================================================

def to_number(value: Any) -> Optional[float]:
    """Coerce to a finite float, or None."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        num = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            num = float(text)
        except ValueError:
            return None
    elif value is None:
        return 0.0
    else:
        return None
    return num if math.isfinite(num) else None


def clamp(value: Any, minimum: float, maximum: float) -> float:
    """Clamp to [minimum, maximum]; non-numeric input maps to minimum."""
    num = to_number(value)
    if num is None:
        return minimum
    return min(maximum, max(minimum, num))


def round_half_up(value: float) -> int:
    """Round .5 away from negative infinity (floor(x + 0.5))."""
    return int(math.floor(value + 0.5))


def coerce_text(value: Any) -> str:
    """Stripped string form of a scalar; containers and None map to ''."""
    if value is None or isinstance(value, (dict, list, tuple, set)):
        return ""
    return str(value).strip()


def plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


# =============================================================================
# TEMPORAL HELPERS (All UTC)
# =============================================================================

def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse ISO strings, epoch milliseconds, dates and datetimes.

    Date-only strings resolve to midnight UTC. Unparseable input
    returns None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
        except ValueError:
            return None
        return ensure_utc(parsed)
    return None


def start_of_day(value: datetime) -> datetime:
    value = ensure_utc(value)
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week(value: datetime) -> datetime:
    """Monday 00:00 UTC of the week containing `value`."""
    day = start_of_day(value)
    return day - timedelta(days=day.weekday())


def days_between(target: datetime, base: datetime) -> int:
    """Whole days from base to target, floored."""
    delta_ms = (target - base) / timedelta(milliseconds=1)
    return int(math.floor(delta_ms / MS_PER_DAY))


def to_iso(value: datetime) -> str:
    """Millisecond-precision UTC ISO string with a trailing Z."""
    value = ensure_utc(value)
    return value.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def to_input_date(value: Any) -> str:
    """Normalise a due date to YYYY-MM-DD, or '' when absent/invalid."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return ""
    return parsed.date().isoformat()
