from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def bounded_map(fn: Callable[[T], R], items: Sequence[T], *, max_workers: int) -> list[R]:
    """
    Run fn over items on at most max_workers threads and return results in input order.
    The first exception raised by any item propagates once all submitted work has finished.
    """
    if not items:
        return []
    workers = max(1, min(int(max_workers), len(items)))
    if workers == 1:
        return [fn(item) for item in items]
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="engine") as pool:
        return list(pool.map(fn, items))
