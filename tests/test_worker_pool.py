from __future__ import annotations

import threading

import pytest

from taskscope.executors.threading import (
    BoundedWorkerPool,
    current_worker_pool,
    get_worker_pool,
    reset_worker_pool,
)


def test_worker_pool_returns_singleton() -> None:
    first = get_worker_pool(max_workers=2)
    second = get_worker_pool(max_workers=2)
    assert first is second
    assert current_worker_pool() is first


def test_worker_pool_rebuilds_on_size_change() -> None:
    baseline = get_worker_pool(max_workers=1)
    updated = get_worker_pool(max_workers=3)
    assert baseline is not updated
    assert updated.max_workers == 3
    with pytest.raises(RuntimeError):
        baseline.submit(lambda: None)


def test_worker_pool_tracks_busy_workers() -> None:
    pool = get_worker_pool(max_workers=2)
    release = threading.Event()
    futures = [pool.submit(release.wait, 5) for _ in range(3)]

    try:
        while pool.busy < 2:
            threading.Event().wait(0.001)
        assert pool.busy == 2
    finally:
        release.set()
    assert all(future.result(timeout=5) for future in futures)
    assert pool.busy == 0
    assert pool.peak_busy == 2


def test_worker_threads_carry_prefix() -> None:
    pool = get_worker_pool(max_workers=1)
    name = pool.submit(lambda: threading.current_thread().name).result(timeout=5)
    assert name.startswith("taskscope-worker")


def test_reset_worker_pool_discards_pool() -> None:
    get_worker_pool(max_workers=1)
    reset_worker_pool()
    assert current_worker_pool() is None


def test_bounded_pool_rejects_non_positive_size() -> None:
    with pytest.raises(ValueError):
        BoundedWorkerPool(0)
