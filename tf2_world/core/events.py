"""
Listener interfaces and the bus that fans notifications out to them.

Two independent listener sets are kept: console-line listeners see every raw
line (parsed or not) and world-event listeners see the higher level events
the world state derives from them. One object may implement both.

Thread-safe for registration; delivery iterates over a snapshot so listeners
may add or remove themselves (or others) from inside a callback.
"""
import logging
import threading
from typing import Any, Dict

logger = logging.getLogger(__name__)


class ConsoleLineListener:
    """Receives every console line. Override what you need; defaults do nothing."""

    def on_console_line_parsed(self, world, parsed):
        pass

    def on_console_line_unparsed(self, world, text: str):
        pass


class WorldEventListener:
    """Receives world-level events derived from console lines."""

    def on_player_status_update(self, world, player):
        pass

    def on_chat_msg(self, world, player, message: str):
        pass

    def on_player_dropped_from_server(self, world, player, reason: str):
        pass

    def on_local_player_spawned(self, world, player_class):
        pass

    def on_local_player_initialized(self, world, initialized: bool):
        pass


class EventListenerBus:
    """
    Registry of console-line and world-event listeners.

    Registration has set semantics: adding a listener twice keeps a single
    entry and removing an unknown listener is a no-op. Listeners are invoked
    in registration order. If a listener raises, the error is logged and the
    remaining listeners still run.

    Example usage:
        >>> bus = EventListenerBus()
        >>> bus.add_world_event_listener(my_listener)
        >>> bus.invoke_world_event("on_chat_msg", world, player, "hello")
    """

    def __init__(self):
        # dicts as insertion-ordered sets
        self._console_line_listeners: Dict[ConsoleLineListener, None] = {}
        self._world_event_listeners: Dict[WorldEventListener, None] = {}
        self._listener_lock = threading.Lock()

    def add_console_line_listener(self, listener: ConsoleLineListener):
        with self._listener_lock:
            self._console_line_listeners[listener] = None
        logger.debug(f"Added console line listener {listener!r}")

    def remove_console_line_listener(self, listener: ConsoleLineListener):
        with self._listener_lock:
            self._console_line_listeners.pop(listener, None)

    def add_world_event_listener(self, listener: WorldEventListener):
        with self._listener_lock:
            self._world_event_listeners[listener] = None
        logger.debug(f"Added world event listener {listener!r}")

    def remove_world_event_listener(self, listener: WorldEventListener):
        with self._listener_lock:
            self._world_event_listeners.pop(listener, None)

    @property
    def console_line_listeners(self):
        with self._listener_lock:
            return list(self._console_line_listeners)

    @property
    def world_event_listeners(self):
        with self._listener_lock:
            return list(self._world_event_listeners)

    def invoke_console_line(self, method_name: str, *args: Any):
        """Call `method_name(*args)` on every console-line listener."""
        self._invoke(self.console_line_listeners, method_name, args)

    def invoke_world_event(self, method_name: str, *args: Any):
        """Call `method_name(*args)` on every world-event listener."""
        self._invoke(self.world_event_listeners, method_name, args)

    @staticmethod
    def _invoke(listeners, method_name: str, args):
        # `listeners` is already a snapshot
        for listener in listeners:
            try:
                getattr(listener, method_name)(*args)
            except Exception as e:
                logger.error(f"Error in listener {listener!r} for {method_name}: {e}", exc_info=True)

    def clear(self):
        """Remove all listeners (useful for testing)."""
        with self._listener_lock:
            self._console_line_listeners.clear()
            self._world_event_listeners.clear()
