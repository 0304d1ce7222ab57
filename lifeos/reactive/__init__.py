"""
Reactive Core

- bus: SubscriberBus (synchronous change fan-out)
- cache: CacheLayer, StateProducer, LayerContext
- interceptor: MutationInterceptor and the explicit OPERATION_TABLE
- context: StateContext, the object that owns all of the above
"""

from .bus import SubscriberBus
from .cache import CacheLayer, CallableProducer, LayerContext, StateProducer
from .context import StateContext
from .defaults import LAYER_NAMES, default_for
from .interceptor import OPERATION_TABLE, MutationInterceptor

__all__ = [
    'SubscriberBus',
    'CacheLayer',
    'CallableProducer',
    'LayerContext',
    'StateProducer',
    'StateContext',
    'LAYER_NAMES',
    'default_for',
    'OPERATION_TABLE',
    'MutationInterceptor',
]
