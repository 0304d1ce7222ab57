"""
State Context

The explicit object that owns the record store, the named cache layers
and the subscriber bus. Everything reactive is reached through one
StateContext instance; there is no module-level singleton.
"""

from __future__ import annotations
from typing import Any, Callable, Dict, Optional
import logging

from ..contracts.base import UnknownLayerError
from ..observability import ObservabilityEngine
from ..storage import RecordStore
from ..temporal.clock import LogicalClock
from .bus import Listener, SubscriberBus
from .cache import CacheLayer, LayerContext, StateProducer, as_producer
from .defaults import LAYER_NAMES, default_for
from .interceptor import MutationInterceptor

logger = logging.getLogger(__name__)


class StateContext:
    """
    Reactive core over one RecordStore.

    On construction the store's mutating operations are intercepted so
    that any mutation invalidates every layer and notifies the bus.
    """

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        bus: Optional[SubscriberBus] = None,
        clock: Optional[LogicalClock] = None,
        observability: Optional[ObservabilityEngine] = None
    ):
        self._clock = clock or (store.clock if store is not None else LogicalClock.live())
        self._store = store or RecordStore(clock=self._clock)
        self._observability = observability
        self._bus = bus or SubscriberBus(observability)

        self._layers: Dict[str, CacheLayer] = {
            name: CacheLayer(
                name,
                default_factory=self._default_factory(name),
                context_factory=self._build_layer_context,
                observability=observability,
            )
            for name in LAYER_NAMES
        }
        self._domain_state: Optional[Dict[str, Any]] = None
        self._history: Optional[Dict[str, Any]] = None

        self._interceptor = MutationInterceptor(
            invalidate_all=self.invalidate_all,
            bus=self._bus,
            clock=self._clock,
            observability=observability,
        )
        self._interceptor.install(self._store)

    @classmethod
    def with_default_producers(cls, *args, **kwargs) -> 'StateContext':
        """Context with the built-in vision, alignment and system producers."""
        from ..producers import register_default_producers
        context = cls(*args, **kwargs)
        register_default_producers(context)
        return context

    @staticmethod
    def _default_factory(name: str) -> Callable[[], Any]:
        def factory() -> Any:
            return default_for(name)
        return factory

    # -------------------------------------------------------------------------
    # collaborators
    # -------------------------------------------------------------------------

    @property
    def store(self) -> RecordStore:
        return self._store

    @property
    def bus(self) -> SubscriberBus:
        return self._bus

    @property
    def clock(self) -> LogicalClock:
        return self._clock

    @property
    def observability(self) -> Optional[ObservabilityEngine]:
        return self._observability

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._bus.subscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        self._bus.unsubscribe(listener)

    # -------------------------------------------------------------------------
    # producers
    # -------------------------------------------------------------------------

    def layer(self, name: str) -> CacheLayer:
        try:
            return self._layers[name]
        except KeyError:
            raise UnknownLayerError(f"Unknown state layer: {name}") from None

    def register_producer(self, layer: str, producer: Any) -> StateProducer:
        """
        Register a StateProducer (or plain callable) for `layer`.

        Replacing a producer drops that layer's memoized entry.
        """
        adapted = as_producer(producer)
        self.layer(layer).set_producer(adapted)
        logger.debug("Registered producer %r for layer %s", adapted, layer)
        return adapted

    def unregister_producer(self, layer: str) -> None:
        self.layer(layer).set_producer(None)

    # -------------------------------------------------------------------------
    # producer inputs
    # -------------------------------------------------------------------------

    def domain_state(self) -> Dict[str, Any]:
        """Raw input records, read once per invalidation cycle."""
        if self._domain_state is None:
            self._domain_state = {
                'vision': self._store.get_vision_state(),
                'decisions': self._store.get_decision_log(),
                'finance': self._store.get_finance_snapshot(),
                'habits': self._store.get_habits(),
                'habitCompletionRate': self._store.get_habit_completion_rate(),
            }
        return self._domain_state

    def history(self) -> Dict[str, Any]:
        if self._history is None:
            self._history = {
                'snapshots': self._store.get_snapshots(),
                'decisions': self._store.get_decision_log(),
            }
        return self._history

    def _build_layer_context(self, layer: str) -> LayerContext:
        return LayerContext(
            layer=layer,
            domain_state=self.domain_state(),
            prior_derived=None if layer == 'derived' else self.get_derived_state(),
            history=self.history(),
            layers=self.get_state,
            now=self._clock.now(),
        )

    # -------------------------------------------------------------------------
    # memoized getters
    # -------------------------------------------------------------------------

    def get_state(self, layer: str, force_recompute: bool = False) -> Any:
        return self.layer(layer).get(force_recompute)

    def get_derived_state(self, force_recompute: bool = False) -> Any:
        return self.get_state('derived', force_recompute)

    def get_cognitive_state(self, force_recompute: bool = False) -> Any:
        return self.get_state('cognitive', force_recompute)

    def get_time_state(self, force_recompute: bool = False) -> Any:
        return self.get_state('time', force_recompute)

    def get_attention_state(self, force_recompute: bool = False) -> Any:
        return self.get_state('attention', force_recompute)

    def get_alignment_state(self, force_recompute: bool = False) -> Any:
        return self.get_state('alignment', force_recompute)

    def get_relationship_state(self, force_recompute: bool = False) -> Any:
        return self.get_state('relationship', force_recompute)

    def get_creative_phase_state(self, force_recompute: bool = False) -> Any:
        return self.get_state('creative_phase', force_recompute)

    def get_narrative_state(self, force_recompute: bool = False) -> Any:
        return self.get_state('narrative', force_recompute)

    def get_system_state(self, force_recompute: bool = False) -> Any:
        return self.get_state('system', force_recompute)

    def get_vision_state(self, force_recompute: bool = False) -> Any:
        """Latest computed vision snapshot (mapping form)."""
        return self.get_state('vision', force_recompute)

    # -------------------------------------------------------------------------
    # invalidation (driven by the mutation interceptor)
    # -------------------------------------------------------------------------

    def invalidate_all(self) -> None:
        self._domain_state = None
        self._history = None
        for cache in self._layers.values():
            cache.invalidate()

    def invalidate_derived_cache(self) -> None:
        self._layers['derived'].invalidate()

    def invalidate_cognitive_cache(self) -> None:
        self._layers['cognitive'].invalidate()

    def invalidate_time_cache(self) -> None:
        self._layers['time'].invalidate()

    def invalidate_attention_cache(self) -> None:
        self._layers['attention'].invalidate()

    def invalidate_alignment_cache(self) -> None:
        self._layers['alignment'].invalidate()

    def invalidate_relationship_cache(self) -> None:
        self._layers['relationship'].invalidate()

    def invalidate_creative_phase_cache(self) -> None:
        self._layers['creative_phase'].invalidate()

    def invalidate_narrative_cache(self) -> None:
        self._layers['narrative'].invalidate()

    def invalidate_system_cache(self) -> None:
        self._layers['system'].invalidate()

    def invalidate_vision_cache(self) -> None:
        self._layers['vision'].invalidate()
