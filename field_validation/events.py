"""
Uniqueness policy hook.

After the built-in uniqueDb lookup, the engine dispatches a UniqueUserEvent.
Listeners run synchronously in registration order and may flip the verdict;
whatever `event.is_unique()` returns after the last listener is the rule
result. A deployment layers extra uniqueness policy (e.g. a check against a
second user directory) this way without touching the engine.

Example:
    def reserved_names(event):
        if event.field == "username" and event.value in {"admin", "root"}:
            event.set_unique(False)

    dispatcher = EventDispatcher()
    dispatcher.add_listener(reserved_names)
"""

import logging
from typing import Any, Callable, List, Mapping, Optional

logger = logging.getLogger(__name__)


class UniqueUserEvent:
    """Carries the uniqueness verdict for one field value through the listeners."""

    def __init__(
        self,
        value: Any,
        field: str,
        user: Optional[Mapping[str, Any]],
        unique: bool,
    ):
        self.value = value
        self.field = field
        self.user = user
        self._unique = unique

    def is_unique(self) -> bool:
        return self._unique

    def set_unique(self, unique: bool) -> None:
        self._unique = bool(unique)

    def __repr__(self) -> str:
        return (
            f"UniqueUserEvent(field={self.field!r}, value={self.value!r}, "
            f"unique={self._unique})"
        )


Listener = Callable[[UniqueUserEvent], None]


class EventDispatcher:
    """Synchronous dispatcher; listeners are called in the order they were added"""

    def __init__(self, listeners: Optional[List[Listener]] = None):
        self._listeners: List[Listener] = list(listeners or [])

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._listeners.remove(listener)

    def listeners(self) -> List[Listener]:
        return list(self._listeners)

    def dispatch(self, event: UniqueUserEvent) -> UniqueUserEvent:
        """
        Pass the event to every listener and return it.

        Exceptions raised by a listener propagate to the caller.
        """
        for listener in self._listeners:
            before = event.is_unique()
            listener(event)
            if event.is_unique() != before:
                logger.debug(
                    "Uniqueness verdict changed by listener",
                    extra={
                        "field": event.field,
                        "listener": getattr(listener, "__name__", repr(listener)),
                        "unique": event.is_unique(),
                    },
                )
        return event
