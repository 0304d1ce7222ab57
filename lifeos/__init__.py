"""
Life OS Derived-State Engine

This package implements the reactive core of a personal life-tracking
dashboard. Raw planning records live behind a flat accessor API; every
derived view is computed lazily, memoized, and invalidated wholesale on
any mutation.

LAYER STRUCTURE:
================

1. RECORD ACCESSORS (storage/)
   - Responsibility: Read/write raw JSON records by key
   - Allowed inputs: Plain mappings from callers
   - Outputs: Sanitised copies of stored records
   - MUST NOT: Compute derived views or notify observers

2. MUTATION INTERCEPTOR (reactive/interceptor.py)
   - Responsibility: Wrap mutating accessors with invalidate + notify
   - Allowed inputs: An explicit operation table
   - Outputs: StateChangeEvent on the subscriber bus
   - MUST NOT: Change the result of the wrapped operation

3. COMPUTED-STATE CACHE LAYERS (reactive/cache.py, reactive/context.py)
   - Responsibility: Memoize one derived view per named layer
   - Allowed inputs: Registered StateProducers
   - Outputs: Layer payloads, or shape-compatible defaults on failure
   - MUST NOT: Raise to the caller

4. SUBSCRIBER BUS (reactive/bus.py)
   - Responsibility: Synchronous fan-out of change notifications
   - MUST NOT: Batch, coalesce or reorder for correctness

5. VISION ALIGNMENT ENGINE (vision/)
   - Responsibility: Pure scoring of vision records into a Snapshot
   - MUST NOT: Hold hidden mutable state or read the wall clock when
     `now` is injected

6. OBSERVABILITY & AUDIT LAYER (observability/)
   - Responsibility: Audit entries and metrics for every layer
   - MUST NOT: Modify system behavior

CONSTRAINTS ENFORCED:
=====================
- A cache entry is never read after a mutation without recomputation
- Snapshot history is append-only
- Identical inputs (including `now`) produce identical snapshots
- Data problems degrade to neutral output, never to an exception
"""

from .engine import LifeDashboard, DashboardConfig

__version__ = "0.3.0"

__all__ = [
    'LifeDashboard',
    'DashboardConfig',
]
