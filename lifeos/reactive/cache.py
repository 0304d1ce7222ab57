"""
Computed-State Cache Layers

One memoized entry per named layer, filled by a pluggable producer.

CONTRACT:
=========
- get() returns the memoized value unless it is absent or a recompute
  is forced
- A successful producer run replaces the entry wholesale
- A failed (or missing) producer returns a fresh copy of the layer
  default and leaves the entry unset, so the next read retries
- get() never raises because of a producer
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Generic, Mapping, Optional, TypeVar
import copy
import logging

from ..contracts.base import Error, ErrorCode
from ..observability import ObservabilityEngine

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class LayerContext:
    """
    Inputs handed to a producer.

    `layers` reads a sibling layer through its memoized getter;
    `prior_derived` is None when the `derived` layer itself is computed.
    """
    layer: str
    domain_state: Mapping[str, Any]
    prior_derived: Optional[Mapping[str, Any]]
    history: Mapping[str, Any]
    layers: Callable[[str], Any]
    now: datetime

    def layer_state(self, name: str) -> Any:
        return self.layers(name)


class StateProducer(ABC, Generic[T]):
    """Computes one layer's payload from a LayerContext."""

    @abstractmethod
    def compute(self, context: LayerContext) -> T:
        pass


class CallableProducer(StateProducer[Any]):
    """Adapts a plain `(domain_state, prior_derived, history)` callable."""

    def __init__(self, fn: Callable[[Any, Any, Any], Any]):
        self._fn = fn

    def compute(self, context: LayerContext) -> Any:
        return self._fn(context.domain_state, context.prior_derived, context.history)

    def __repr__(self) -> str:
        return f"CallableProducer({getattr(self._fn, '__name__', self._fn)!r})"


def as_producer(producer: Any) -> StateProducer:
    if isinstance(producer, StateProducer):
        return producer
    if callable(producer):
        return CallableProducer(producer)
    raise TypeError(f"Producer must be a StateProducer or callable, got {type(producer).__name__}")


class CacheLayer(Generic[T]):
    """
    Memoized entry for one layer.

    Callers get deep copies so no reader can edit the stored entry.
    """

    _UNSET = object()

    def __init__(
        self,
        name: str,
        default_factory: Callable[[], T],
        context_factory: Callable[[str], LayerContext],
        observability: Optional[ObservabilityEngine] = None
    ):
        self._name = name
        self._default_factory = default_factory
        self._context_factory = context_factory
        self._observability = observability
        self._producer: Optional[StateProducer[T]] = None
        self._entry: Any = self._UNSET
        self._computing = False
        self._compute_count = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def producer(self) -> Optional[StateProducer[T]]:
        return self._producer

    @property
    def is_cached(self) -> bool:
        return self._entry is not self._UNSET

    @property
    def compute_count(self) -> int:
        """Producer invocations so far (successful or not)."""
        return self._compute_count

    def set_producer(self, producer: Optional[StateProducer[T]]) -> None:
        self._producer = producer
        self.invalidate()

    def invalidate(self) -> None:
        self._entry = self._UNSET

    def get(self, force_recompute: bool = False) -> T:
        if self.is_cached and not force_recompute:
            self._metric("cache_hits_total")
            return copy.deepcopy(self._entry)

        self._metric("cache_misses_total")
        if self._producer is None:
            logger.debug("No producer registered for layer %s", self._name)
            return self._default_factory()
        if self._computing:
            logger.warning("Layer %s read itself while computing", self._name)
            return self._default_factory()

        self._computing = True
        self._compute_count += 1
        try:
            context = self._context_factory(self._name)
            value = self._producer.compute(context)
        except Exception as exc:
            logger.exception("Producer for layer %s failed", self._name)
            self._record_failure(exc)
            return self._default_factory()
        finally:
            self._computing = False

        self._entry = value
        return copy.deepcopy(value)

    def _metric(self, name: str, value: float = 1) -> None:
        if self._observability:
            self._observability.collect_metric(name, value, {"layer": self._name})

    def _record_failure(self, exc: Exception) -> None:
        self._metric("producer_failures_total")
        if not self._observability:
            return
        error = Error(
            code=ErrorCode.COMPUTATION_FAILURE,
            message=f"{type(exc).__name__}: {exc}",
            timestamp=self._observability.now(),
        ).with_context("layer", self._name)
        self._observability.record_error(error, layer='cache', entity_id=self._name)
