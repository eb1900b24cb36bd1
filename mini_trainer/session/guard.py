"""
Single-flight guard for UI actions.

Two triggers (Enter key and the "Next" button) can reach the same handler
within one event-loop turn. While a guarded call is in flight any further
call is dropped, not queued, and returns None.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Awaitable, Callable
from typing import Any, ParamSpec, TypeVar

from loguru import logger

P = ParamSpec("P")
T = TypeVar("T")


class SingleFlight:
    """Non-reentrant in-flight flag for one action."""

    def __init__(self, name: str):
        self.name = name
        self._lock = asyncio.Lock()
        self.dropped = 0

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def run(self, fn: Callable[P, Awaitable[T]], *args: P.args, **kwargs: P.kwargs) -> T | None:
        if self._lock.locked():
            self.dropped += 1
            logger.debug(f"Dropped re-entrant call to {self.name}")
            return None
        async with self._lock:
            return await fn(*args, **kwargs)


def single_flight(action: str) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[Any]]]:
    """
    Guard an async method with the instance's SingleFlight for ``action``.

    Methods decorated with the same action name share one flag, so e.g.
    "next" and "finish" cannot overlap either.
    """

    def decorator(method: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(method)
        async def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            guards: dict[str, SingleFlight] = self.__dict__.setdefault("_guards", {})
            guard = guards.get(action)
            if guard is None:
                guard = guards[action] = SingleFlight(f"{type(self).__name__}.{action}")
            return await guard.run(method, self, *args, **kwargs)

        return wrapper

    return decorator
