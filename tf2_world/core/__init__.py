# Core tracking components
#
# Import WorldState from .world_state directly; it is not re-exported here so
# that tf2_world.data can import the domain package without a cycle.

from .events import ConsoleLineListener, EventListenerBus, WorldEventListener

__all__ = [
    'ConsoleLineListener',
    'EventListenerBus',
    'WorldEventListener',
]
