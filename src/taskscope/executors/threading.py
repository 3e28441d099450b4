from __future__ import annotations

import atexit
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from typing import Any

_WORKER_POOL: BoundedWorkerPool | None = None
_LOCK = Lock()
_DEFAULT_PREFIX = "taskscope-worker"
_ATEXIT_REGISTERED = False


class BoundedWorkerPool(ThreadPoolExecutor):
    """Fixed-size thread pool that counts how many workers are occupied.

    A worker counts as busy from the moment it picks up a callable until the
    callable returns, so a worker stuck in a blocking wait stays busy for the
    whole wait.
    """

    def __init__(self, max_workers: int, *, thread_name_prefix: str = _DEFAULT_PREFIX) -> None:
        if max_workers <= 0:
            raise ValueError("max_workers must be greater than 0")
        super().__init__(max_workers=max_workers, thread_name_prefix=thread_name_prefix)
        self.max_workers = max_workers
        self._counter_lock = Lock()
        self._busy = 0
        self._peak_busy = 0

    @property
    def busy(self) -> int:
        return self._busy

    @property
    def peak_busy(self) -> int:
        """Highest number of simultaneously busy workers seen so far."""

        return self._peak_busy

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future[Any]:
        return super().submit(self._track, fn, *args, **kwargs)

    def _track(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        with self._counter_lock:
            self._busy += 1
            self._peak_busy = max(self._peak_busy, self._busy)
        try:
            return fn(*args, **kwargs)
        finally:
            with self._counter_lock:
                self._busy -= 1


def get_worker_pool(*, max_workers: int) -> BoundedWorkerPool:
    """Return the process-wide worker pool, rebuilding it on a size change."""

    global _WORKER_POOL
    with _LOCK:
        stale = _WORKER_POOL
        if stale is not None and stale.max_workers == max_workers:
            return stale
        _WORKER_POOL = None

    if stale is not None:
        stale.shutdown(wait=False, cancel_futures=True)

    with _LOCK:
        if _WORKER_POOL is None:
            _WORKER_POOL = BoundedWorkerPool(max_workers)
            _register_atexit()
        return _WORKER_POOL


def current_worker_pool() -> BoundedWorkerPool | None:
    """Return the shared pool without creating one."""

    return _WORKER_POOL


def reset_worker_pool(*, wait: bool = True) -> None:
    """Tear down the shared worker pool if it has been created."""

    global _WORKER_POOL
    with _LOCK:
        pool = _WORKER_POOL
        _WORKER_POOL = None
    if pool is not None:
        pool.shutdown(wait=wait, cancel_futures=True)


def _register_atexit() -> None:
    global _ATEXIT_REGISTERED
    if _ATEXIT_REGISTERED:
        return
    atexit.register(reset_worker_pool, wait=False)
    _ATEXIT_REGISTERED = True
