"""Ordered async middleware with explicit continuation."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from Harmony.awaitables import maybe_await

if TYPE_CHECKING:
    from Harmony.client import HarmonyClient
    from Harmony.commanding import Command
    from Harmony.interop import Interop

Next = Callable[[], Awaitable[None]]
Middleware = Callable[["MiddlewareContext", Next], "Awaitable[None] | None"]


@dataclass(frozen=True)
class MiddlewareContext:
    command: Command
    args: tuple[Any, ...]
    interop: Interop
    client: HarmonyClient
    plugin_args: Mapping[str, Any]


class ChainState(StrEnum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETE = "complete"
    HALTED = "halted"
    FAILED = "failed"


class MiddlewareChain:
    """One run over a fixed list of middleware.

    Each middleware receives a ``next`` bound to its own position; calling it
    invokes the following middleware, and past the end it is a no-op that
    marks the run complete. A middleware that returns without calling
    ``next`` halts the run. Exceptions propagate to the caller.
    """

    def __init__(self, middleware: Sequence[Middleware]) -> None:
        self._middleware = tuple(middleware)
        self.position = -1
        self.state = ChainState.NOT_STARTED

    async def run(self, context: MiddlewareContext) -> ChainState:
        if self.state is not ChainState.NOT_STARTED:
            raise RuntimeError("a middleware chain can only run once")
        self.state = ChainState.RUNNING
        try:
            await self._invoke(0, context)
        except Exception:
            self.state = ChainState.FAILED
            raise
        if self.state is ChainState.RUNNING:
            self.state = ChainState.HALTED
        return self.state

    async def _invoke(self, position: int, context: MiddlewareContext) -> None:
        if position >= len(self._middleware):
            self.state = ChainState.COMPLETE
            return
        self.position = position
        called = False

        async def next_() -> None:
            nonlocal called
            # Repeated calls from the same middleware do not skip ahead
            if called:
                return
            called = True
            await self._invoke(position + 1, context)

        await maybe_await(self._middleware[position](context, next_))


async def execute_middleware(
    middleware: Sequence[Middleware], context: MiddlewareContext
) -> ChainState:
    return await MiddlewareChain(middleware).run(context)
