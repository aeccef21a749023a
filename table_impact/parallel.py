import itertools
import threading
from collections import deque
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from typing import Callable, Iterator, Optional, Sequence, TypeVar

from table_impact.errors import IndexingCancelledError

T = TypeVar('T')
R = TypeVar('R')


def check_cancelled(cancel_event: Optional[threading.Event]):
    if cancel_event is not None and cancel_event.is_set():
        raise IndexingCancelledError("Indexing was cancelled")


def map_in_order(func: Callable[[T], R], items: Sequence[T], workers: int = 1,
                 executor: str = 'process', cancel_event: Optional[threading.Event] = None) -> Iterator[R]:
    """Applies ``func`` to every item and yields the results in input order.

    With more than one worker the items run on a pool with a bounded number of pending
    futures; the caller stays the single consumer of the results. ``func`` and the items
    must be picklable when ``executor`` is 'process'.
    """
    if workers <= 1 or len(items) < 2:
        for item in items:
            check_cancelled(cancel_event)
            yield func(item)
        return

    pool_class = ProcessPoolExecutor if executor == 'process' else ThreadPoolExecutor
    pool: Executor = pool_class(max_workers=workers)
    remaining = iter(items)
    pending = deque(pool.submit(func, item) for item in itertools.islice(remaining, workers * 4))
    try:
        while pending:
            check_cancelled(cancel_event)
            result = pending.popleft().result()
            for item in itertools.islice(remaining, 1):
                pending.append(pool.submit(func, item))
            yield result
    finally:
        pool.shutdown(wait=True, cancel_futures=True)
