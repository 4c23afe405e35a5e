"""Parallel execution helpers for the converter."""
from __future__ import annotations

import concurrent.futures
import logging
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Sequence, TypeVar


LOGGER = logging.getLogger("normal_qlog.parallel")

T = TypeVar("T")
R = TypeVar("R")


def create_thread_pool(max_workers: Optional[int] = None) -> concurrent.futures.ThreadPoolExecutor:
    """Create a thread pool executor with sane defaults."""

    return concurrent.futures.ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="normal_qlog")


def run_parallel(function: Callable[[T], R], items: Sequence[T], *, max_workers: Optional[int] = None) -> List[R]:
    """Run *function* for each element in *items* concurrently.

    Results come back in the order of *items*. The first worker failure is
    re-raised once every submitted task has finished.
    """

    if not items:
        return []
    if len(items) == 1 or max_workers == 1:
        return [function(item) for item in items]
    with create_thread_pool(max_workers=max_workers) as executor:
        futures = [executor.submit(function, item) for item in items]
        concurrent.futures.wait(futures)
    results: List[R] = []
    for future in futures:
        exc = future.exception()
        if exc is not None:
            LOGGER.error("Parallel worker failure: %s", exc)
            raise exc
        results.append(future.result())
    return results


def partition_rows(height: int, rows_per_task: int) -> List[slice]:
    """Split ``range(height)`` into disjoint, contiguous row bands."""

    if rows_per_task <= 0:
        raise ValueError(f"rows_per_task must be positive, got {rows_per_task}")
    return [slice(start, min(start + rows_per_task, height)) for start in range(0, height, rows_per_task)]


@contextmanager
def limited_threads(max_workers: Optional[int]) -> Iterator[None]:
    """Context manager that logs thread usage for diagnostics."""

    LOGGER.debug("Starting thread pool with up to %s workers", max_workers or "default")
    try:
        yield
    finally:
        LOGGER.debug("Thread pool with %s workers completed", max_workers or "default")
