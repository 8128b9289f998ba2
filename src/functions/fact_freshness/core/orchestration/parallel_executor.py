"""Bounded concurrent execution for the member writes of one cluster."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Sequence, TypeVar

T = TypeVar("T")


class BatchAborted(RuntimeError):
    """Raised when one call in a batch failed; carries the items that did complete."""

    def __init__(self, cause: BaseException, completed: List[T]) -> None:
        super().__init__(str(cause))
        self.cause = cause
        self.completed = completed


class ParallelExecutor:
    """Wrapper around ThreadPoolExecutor with fail-fast batch semantics."""

    def __init__(self, max_workers: int) -> None:
        self._max_workers = max(1, max_workers)

    def run_all(self, items: Sequence[T], func: Callable[[T], object]) -> List[T]:
        """Apply *func* to every item concurrently.

        On the first failure calls that have not started yet are cancelled,
        running calls are awaited, and ``BatchAborted`` is raised listing every
        item whose call completed successfully.
        """

        completed: List[T] = []
        failure: Optional[BaseException] = None
        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            futures = {executor.submit(func, item): item for item in items}
            for future in as_completed(futures):
                if future.cancelled():
                    continue
                exc = future.exception()
                if exc is None:
                    completed.append(futures[future])
                    continue
                if failure is None:
                    failure = exc
                    for pending in futures:
                        pending.cancel()

        if failure is not None:
            raise BatchAborted(failure, completed)
        return completed
