"""Typed publish/subscribe for simulator components."""

from collections import defaultdict
from typing import Callable, ClassVar, DefaultDict, FrozenSet, List

Listener = Callable[..., None]


class TypedEventEmitter:
    """
    Synchronous event emitter restricted to a fixed set of event names.

    Subclasses declare ``EVENTS``; subscribing to or emitting any other name
    raises ``ValueError`` so a misspelt channel fails loudly instead of
    silently never firing. Listeners run in subscription order on the
    caller's thread.
    """

    EVENTS: ClassVar[FrozenSet[str]] = frozenset()

    def __init__(self):
        self._listeners: DefaultDict[str, List[Listener]] = defaultdict(list)

    def _check_event(self, event: str) -> None:
        if event not in self.EVENTS:
            raise ValueError(
                f"Unknown event {event!r} for {type(self).__name__}; "
                f"expected one of {sorted(self.EVENTS)}"
            )

    def on(self, event: str, listener: Listener) -> "TypedEventEmitter":
        """Register a listener for the given event."""
        self._check_event(event)
        self._listeners[event].append(listener)
        return self

    def once(self, event: str, listener: Listener) -> "TypedEventEmitter":
        """Register a listener that is removed after its first call."""
        self._check_event(event)

        def wrapper(*args):
            self.off(event, wrapper)
            listener(*args)

        wrapper.__wrapped__ = listener  # type: ignore[attr-defined]
        self._listeners[event].append(wrapper)
        return self

    def off(self, event: str, listener: Listener) -> "TypedEventEmitter":
        """Remove a listener (or a ``once`` wrapper around it)."""
        self._check_event(event)
        listeners = self._listeners[event]
        for i, registered in enumerate(listeners):
            if registered == listener or getattr(registered, "__wrapped__", None) == listener:
                del listeners[i]
                break
        return self

    def emit(self, event: str, *args) -> bool:
        """Call every listener of ``event``. Returns whether any was registered."""
        self._check_event(event)
        listeners = list(self._listeners[event])
        for listener in listeners:
            listener(*args)
        return bool(listeners)

    def remove_all_listeners(self, event: str = None) -> "TypedEventEmitter":
        if event is None:
            self._listeners.clear()
        else:
            self._check_event(event)
            self._listeners.pop(event, None)
        return self

    def listener_count(self, event: str) -> int:
        self._check_event(event)
        return len(self._listeners[event])
