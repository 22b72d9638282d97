from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_jobs(
    jobs: list[tuple[str, Callable[[], T]]],
    *,
    max_workers: int,
    thread_name_prefix: str = "cdnflow",
) -> list[T]:
    """Run labelled jobs on a bounded pool and return results in submission order.

    The first failure cancels every job that has not started and is re-raised.
    Jobs already running are left to finish; their results are discarded.
    """
    if not jobs:
        return []
    if max_workers <= 1 or len(jobs) == 1:
        return [job() for _, job in jobs]

    results: dict[int, T] = {}
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=thread_name_prefix) as executor:
        futures: dict[Future[T], tuple[int, str]] = {
            executor.submit(job): (index, label) for index, (label, job) in enumerate(jobs)
        }
        try:
            for future in as_completed(futures):
                index, _ = futures[future]
                results[index] = future.result()
        except Exception:
            failed = [
                label
                for future, (_, label) in futures.items()
                if future.done() and not future.cancelled() and future.exception() is not None
            ]
            logger.debug("Aborting pool after failure in %s", ", ".join(failed) or "unknown job")
            for future in futures:
                future.cancel()
            raise
    return [results[index] for index in range(len(jobs))]


def split_list(items: list[T], size: int) -> list[list[T]]:
    return [items[start : start + size] for start in range(0, len(items), size)]
