"""In-process counters and millisecond histograms.

Values live in module state and are read back through ``get_counters`` (a
flat ``dict[str, int]``, histograms flattened to ``histo.<name>.<bucket>``).
"""

from __future__ import annotations

import time
from collections import Counter, defaultdict
from collections.abc import Iterator
from contextlib import contextmanager

DEFAULT_BUCKETS_MS = (1, 2, 5, 10, 20, 50, 100, 250, 500, 1000, 2000, 5000)

_counters: Counter[str] = Counter()
_histograms: defaultdict[str, Counter[str]] = defaultdict(Counter)


def inc_counter(name: str, value: int = 1) -> None:
    _counters[name] += int(value)


def get_counter(name: str) -> int:
    return _counters.get(name, 0)


def reset_counters() -> None:
    _counters.clear()
    _histograms.clear()


def _bucket(value: int, buckets: tuple[int, ...]) -> str:
    for upper in buckets:
        if value <= upper:
            return f"le_{upper}"
    return f"gt_{buckets[-1]}"


def observe_histogram(name: str, value: int, *, buckets: tuple[int, ...] = DEFAULT_BUCKETS_MS) -> None:
    """Record ``value`` in the first ``<=`` bucket; overflow lands in ``gt_<last>``."""
    h = _histograms[name]
    h[_bucket(value, buckets)] += 1
    h["sum"] += int(value)
    h["count"] += 1


def get_histogram(name: str) -> dict[str, int]:
    return dict(_histograms.get(name, {}))


@contextmanager
def timed(name: str) -> Iterator[None]:
    """Observe the wall time of the block, in ms, even when it raises."""
    start = time.perf_counter()
    try:
        yield
    finally:
        observe_histogram(name, int((time.perf_counter() - start) * 1000))


def get_counters() -> dict[str, int]:
    """Return a shallow copy of all counters for diagnostics."""
    out = dict(_counters)
    for name, values in _histograms.items():
        for label, count in values.items():
            out[f"histo.{name}.{label}"] = count
    return out
