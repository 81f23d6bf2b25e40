"""Named, observable events raised instead of exceptions at dispatch boundaries."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from Harmony.awaitables import maybe_await
from Harmony.metrics import inc_counter

if TYPE_CHECKING:
    from Harmony.commanding import Command
    from Harmony.interop import Interop

log = structlog.get_logger()


class DispatchEvent(StrEnum):
    COMMAND_NOT_FOUND = "command_not_found"
    INVALID_ARGUMENTS = "invalid_arguments"
    PERMISSION_DENIED = "permission_denied"
    COOLDOWN_ACTIVE = "cooldown_active"
    INVALID_CONTEXT = "invalid_context"
    MIDDLEWARE_ERROR = "middleware_error"
    COMMAND_EXECUTION_ERROR = "command_execution_error"
    COMMAND_COMPLETED = "command_completed"
    DISPATCH_ERROR = "dispatch_error"
    PLUGIN_LOAD_ERROR = "plugin_load_error"
    PLUGIN_INIT_ERROR = "plugin_init_error"
    PLUGIN_DEPENDENCY_ERROR = "plugin_dependency_error"
    PLUGIN_ERROR = "plugin_error"


@dataclass(frozen=True)
class Event:
    name: DispatchEvent
    command_name: str | None = None
    user_id: str | None = None
    guild_id: str | None = None
    command: Command | None = None
    interop: Interop | None = None
    error: BaseException | None = None
    plugin_name: str | None = None
    details: Mapping[str, Any] = field(default_factory=dict)


EventHandler = Callable[[Event], "Awaitable[None] | None"]


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[DispatchEvent, list[EventHandler]] = defaultdict(list)

    def on(self, name: DispatchEvent | str, handler: EventHandler | None = None):
        """Subscribe ``handler``; without one, acts as a decorator."""
        key = DispatchEvent(name)

        def wrap(func: EventHandler) -> EventHandler:
            self._handlers[key].append(func)
            return func

        if handler is not None:
            return wrap(handler)
        return wrap

    def off(self, name: DispatchEvent | str, handler: EventHandler) -> bool:
        handlers = self._handlers.get(DispatchEvent(name), [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def handler_count(self, name: DispatchEvent | str) -> int:
        return len(self._handlers.get(DispatchEvent(name), []))

    async def emit(self, event: Event) -> None:
        inc_counter(f"events.{event.name}")
        for handler in list(self._handlers.get(event.name, ())):
            try:
                await maybe_await(handler(event))
            except Exception:
                log.exception("events.handler_failed", event_name=str(event.name))
