from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from concurrent.futures import Executor, Future
from functools import partial
from typing import Any, ParamSpec, TypeVar

T = TypeVar("T")
P = ParamSpec("P")


async def run_on(
    executor: Executor, func: Callable[P, T], /, *args: P.args, **kwargs: P.kwargs
) -> T:
    """Await ``func`` executed on ``executor`` from the running loop.

    The awaiting coroutine suspends while ``func`` occupies one of the
    executor's threads, so the loop stays free for other tasks.
    """

    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(executor, partial(func, *args, **kwargs))


def wrap_future(
    future: Future[Any], *, loop: asyncio.AbstractEventLoop | None = None
) -> Awaitable[Any]:
    """Expose :func:`asyncio.wrap_future` behind a consistent import path."""

    return asyncio.wrap_future(future, loop=loop)
