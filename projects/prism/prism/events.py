"""
Named-topic publish/subscribe for model instances.

Every lifecycle wrapper is an ``EventEmitter``: inference methods both return
their result and publish it under an event name, so passive observers (a video
loop drawing overlays, for example) can follow results without holding the
returned awaitable.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List

__all__ = ["EventEmitter", "Listener"]

LOGGER = logging.getLogger(__name__)
LOGGER.addHandler(logging.NullHandler())

Listener = Callable[..., Any]


class EventEmitter:
    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}
        self._pending: set[asyncio.Task[Any]] = set()

    def on(self, event: str, listener: Listener) -> Listener:
        """Register *listener* for *event*; returns it so this can decorate."""
        self._listeners.setdefault(event, []).append(listener)
        return listener

    def once(self, event: str, listener: Listener) -> Listener:
        def _once(*args: Any) -> Any:
            self.off(event, _once)
            return listener(*args)

        self.on(event, _once)
        return _once

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event)
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._listeners[event]

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, *args: Any) -> bool:
        """
        Call every listener of *event* in registration order.

        Returns ``True`` when at least one listener was registered. Coroutine
        listeners are scheduled on the running loop rather than awaited.
        """
        listeners = list(self._listeners.get(event, ()))
        for listener in listeners:
            outcome = listener(*args)
            if inspect.isawaitable(outcome):
                task = asyncio.ensure_future(outcome)
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)
        return bool(listeners)
