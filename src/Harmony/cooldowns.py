"""Per-command, per-user cooldown ledger with self-expiring entries."""

from __future__ import annotations

import asyncio
import itertools
import time
from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from typing import Any

import structlog

log = structlog.get_logger()

Scheduler = Callable[[float, Callable[[], None]], Any]


def _now_ms() -> float:
    return time.time() * 1000


def _loop_scheduler(delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


@dataclass(frozen=True)
class CooldownStatus:
    on_cooldown: bool
    remaining_seconds: float = 0.0


class CooldownTracker:
    """Ledger of ``command -> user -> last invocation (epoch ms)``.

    Every check stamps the invocation time, including checks that report an
    active cooldown. Each stamp schedules its own removal after the cooldown
    window; the removal is unconditional, so an entry is gone once the window
    opened by an earlier stamp has elapsed.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = _now_ms,
        scheduler: Scheduler = _loop_scheduler,
    ) -> None:
        self._clock = clock
        self._scheduler = scheduler
        self._ledger: dict[str, dict[str, float]] = {}
        self._timers: dict[int, Any] = {}
        self._seq = itertools.count()

    def check(
        self,
        command_name: str,
        user_id: str,
        cooldown_seconds: float,
        now_ms: float | None = None,
    ) -> CooldownStatus:
        if cooldown_seconds <= 0:
            return CooldownStatus(on_cooldown=False)

        now = self._clock() if now_ms is None else now_ms
        window_ms = cooldown_seconds * 1000
        stamps = self._ledger.setdefault(command_name, {})

        status = CooldownStatus(on_cooldown=False)
        last = stamps.get(user_id)
        if last is not None and now < last + window_ms:
            status = CooldownStatus(on_cooldown=True, remaining_seconds=(last + window_ms - now) / 1000)

        stamps[user_id] = now
        key = next(self._seq)
        self._timers[key] = self._scheduler(
            cooldown_seconds, partial(self._expire, command_name, user_id, key)
        )
        return status

    def last_invocation(self, command_name: str, user_id: str) -> float | None:
        return self._ledger.get(command_name, {}).get(user_id)

    def snapshot(self) -> dict[str, dict[str, float]]:
        return {name: dict(stamps) for name, stamps in self._ledger.items()}

    def clear(self) -> None:
        """Drop every entry and cancel pending expiry timers."""
        for handle in self._timers.values():
            cancel = getattr(handle, "cancel", None)
            if cancel is not None:
                cancel()
        self._timers.clear()
        self._ledger.clear()

    def _expire(self, command_name: str, user_id: str, key: int) -> None:
        self._timers.pop(key, None)
        stamps = self._ledger.get(command_name)
        if stamps is None:
            return
        stamps.pop(user_id, None)
        if not stamps:
            del self._ledger[command_name]
        log.debug("cooldown.expired", command=command_name, user_id=user_id)
