from __future__ import annotations

import inspect
from typing import Any


async def maybe_await(value: Any) -> Any:
    """Await ``value`` when a hook returned an awaitable, else pass it through."""
    if inspect.isawaitable(value):
        return await value
    return value
