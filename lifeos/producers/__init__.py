"""
Built-in Producers

Registered per layer name by `register_default_producers`. Layers with
no built-in producer serve their neutral default until one is plugged
in with `StateContext.register_producer`.
"""

from .narrative_layer import NarrativeStateProducer
from .system_state import SystemStateProducer
from .time_layer import TimeStateProducer
from .vision_layer import AlignmentProducer, DomainSignals, VisionSnapshotProducer


def register_default_producers(context) -> None:
    context.register_producer('vision', VisionSnapshotProducer())
    context.register_producer('alignment', AlignmentProducer())
    context.register_producer('time', TimeStateProducer())
    context.register_producer('narrative', NarrativeStateProducer())
    context.register_producer('system', SystemStateProducer())


__all__ = [
    'AlignmentProducer',
    'DomainSignals',
    'NarrativeStateProducer',
    'SystemStateProducer',
    'TimeStateProducer',
    'VisionSnapshotProducer',
    'register_default_producers',
]
