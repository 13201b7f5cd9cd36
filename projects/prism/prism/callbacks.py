"""
Dual result delivery: every asynchronous operation returns an awaitable AND,
when the caller passed one, invokes a Node-style ``callback(error, result)``.
"""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Optional, TypeVar

__all__ = ["Callback", "deliver", "maybe_call"]

T = TypeVar("T")

Callback = Callable[[Optional[BaseException], Any], Any]


def maybe_call(callback: Optional[Callable[..., Any]], *args: Any) -> Any:
    """Call *callback* with *args* when it is not ``None``."""
    if callback is None:
        return None
    return callback(*args)


async def _invoke(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    outcome = maybe_call(callback, *args)
    if inspect.isawaitable(outcome):
        await outcome


async def deliver(awaitable: Awaitable[T], callback: Optional[Callback] = None) -> T:
    """
    Await *awaitable* and report the outcome through both channels.

    On success the callback receives ``(None, result)`` and the result is
    returned. On failure the callback receives ``(error, None)`` and the error
    is re-raised, so awaiting callers see it as well. Async callbacks are
    awaited before the task settles.
    """
    try:
        result = await awaitable
    except Exception as exc:
        await _invoke(callback, exc, None)
        raise
    await _invoke(callback, None, result)
    return result
