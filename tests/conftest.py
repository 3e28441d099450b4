from __future__ import annotations

import time
from collections.abc import Callable, Iterator

import pytest

from taskscope import HarnessConfig, configure, reset

# 1 nominal second lasts 20 ms under test.
FAST_CONFIG = HarnessConfig(max_workers=4, time_scale=0.02, fan_out=20, long_delay=1.0)

Eventually = Callable[..., bool]


@pytest.fixture(autouse=True)
def restore_runtime() -> Iterator[None]:
    configure(FAST_CONFIG)
    yield
    reset()


@pytest.fixture
def eventually() -> Eventually:
    """Poll a predicate until it holds or the timeout passes."""

    def _poll(predicate: Callable[[], bool], *, timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.005)
        return predicate()

    return _poll
