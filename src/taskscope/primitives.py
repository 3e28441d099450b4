"""Building blocks that put a flow into one specific scheduling situation.

Every asynchronous primitive starts immediately on the scheduler loop and
returns a :class:`~taskscope.runtime.PendingComputation`. By the time the call
returns, the primitive's first log line has been written and it is suspended
at its first await. Durations are nominal seconds; the configured
``time_scale`` decides how long they really take.
"""

from __future__ import annotations

import asyncio
import time
from typing import TypeVar

from . import runtime, trace
from .runtime import PendingComputation

T = TypeVar("T")

FAILURE_MESSAGE = "some exception"


class DemonstrationError(RuntimeError):
    """The fixed failure raised by the throwing primitives."""

    def __init__(self, message: str = FAILURE_MESSAGE) -> None:
        super().__init__(message)


def _seconds(nominal: float) -> float:
    return runtime.get_config().scaled(nominal)


def _format_seconds(seconds: float) -> str:
    return f"{seconds:g}s"


def thread_block_sleep(seconds: float) -> None:
    """Occupy the calling thread for ``seconds``; nothing else can use it."""

    trace.log("sleeping", "thread_block_sleep")
    time.sleep(_seconds(seconds))
    trace.log("finished sleeping", "thread_block_sleep")


async def _async_delay(seconds: float) -> None:
    trace.log(f"delaying by {_format_seconds(seconds)}", "async_delay")
    await asyncio.sleep(_seconds(seconds))
    trace.log(f"finished delaying by {_format_seconds(seconds)}", "async_delay")


def async_delay(seconds: float) -> PendingComputation[None]:
    """Settle after ``seconds`` without holding any thread while waiting."""

    return runtime.start(_async_delay(seconds), name="async_delay")


async def _async_delay_then_fail(seconds: float) -> None:
    await async_delay(seconds)
    raise DemonstrationError()


def async_delay_then_fail(seconds: float) -> PendingComputation[None]:
    """Delay, then fail with :class:`DemonstrationError`."""

    return runtime.start(_async_delay_then_fail(seconds), name="async_delay_then_fail")


def async_delay_then_fail_detached(seconds: float) -> None:
    """Fire-and-forget variant of :func:`async_delay_then_fail`.

    There is no handle to observe: the failure is handled by the runtime's
    detached failure policy, never by the caller.
    """

    runtime.spawn_detached(
        _async_delay_then_fail(seconds), name="async_delay_then_fail_detached"
    )


async def _async_delay_then_return(seconds: float, value: T) -> T:
    trace.log(f"start {value}", "async_delay_then_return")
    await asyncio.sleep(_seconds(seconds))
    trace.log(f"finished {value}", "async_delay_then_return")
    return value


def async_delay_then_return(seconds: float, value: T) -> PendingComputation[T]:
    return runtime.start(
        _async_delay_then_return(seconds, value), name="async_delay_then_return"
    )


def _block_on_long_delay(seconds: float) -> None:
    trace.log("waiting", "yield_then_block_wait")
    runtime.start(asyncio.sleep(seconds), name="sleep").wait()


async def _yield_then_block_wait() -> None:
    trace.log_start("yield_then_block_wait")
    await asyncio.sleep(0)
    # The continuation runs on a worker, which stays blocked for the whole delay.
    await runtime.to_worker(_block_on_long_delay, _seconds(runtime.get_config().long_delay))
    trace.log_end("yield_then_block_wait")


def yield_then_block_wait() -> PendingComputation[None]:
    """Yield once, then hold a worker thread in a blocking wait."""

    return runtime.start(_yield_then_block_wait(), name="yield_then_block_wait")


async def _yield_then_async_delay() -> None:
    trace.log_start("yield_then_async_delay")
    await asyncio.sleep(0)
    trace.log("awaiting", "yield_then_async_delay")
    await asyncio.sleep(_seconds(runtime.get_config().long_delay))
    trace.log_end("yield_then_async_delay")


def yield_then_async_delay() -> PendingComputation[None]:
    """Yield once, then suspend on a long delay without holding a thread."""

    return runtime.start(_yield_then_async_delay(), name="yield_then_async_delay")


async def _conditionally_context_bound_delay(seconds: float, preserve_context: bool) -> None:
    caller = "conditionally_context_bound_delay"
    trace.log(f"start with preserve_context={preserve_context}", caller)
    await asyncio.sleep(_seconds(seconds))

    def _resume() -> None:
        trace.log(f"end with preserve_context={preserve_context}", caller)

    if preserve_context:
        _resume()
    else:
        await runtime.to_worker(_resume)


def conditionally_context_bound_delay(
    seconds: float, preserve_context: bool
) -> PendingComputation[None]:
    """Delay, then continue on the captured task or on a context-free worker."""

    return runtime.start(
        _conditionally_context_bound_delay(seconds, preserve_context),
        name="conditionally_context_bound_delay",
    )


async def _inner_step(index: int) -> None:
    trace.log(f"start {index}", "inner_step")
    await asyncio.sleep(_seconds(0.1))
    trace.log(f"end {index}", "inner_step")


def inner_step(index: int) -> PendingComputation[None]:
    return runtime.start(_inner_step(index), name="inner_step")


async def _outer_step() -> None:
    trace.log_start("outer_step")
    await asyncio.sleep(_seconds(0.2))
    trace.log("after delay", "outer_step")
    await inner_step(2)
    trace.log_end("outer_step")


def outer_step() -> PendingComputation[None]:
    """Delay, then run :func:`inner_step` as a nested flow."""

    return runtime.start(_outer_step(), name="outer_step")


def long_running_task() -> PendingComputation[None]:
    """Do all the work synchronously, then hand back a settled computation."""

    trace.log_start("long_running_task")
    time.sleep(_seconds(1))
    trace.log_end("long_running_task")
    return runtime.completed(None)


async def _yield_then_long_running_task() -> None:
    trace.log_start("yield_then_long_running_task")
    await asyncio.sleep(0)
    # Resumes on the scheduler thread, so the loop is blocked for the duration.
    time.sleep(_seconds(1))
    trace.log_end("yield_then_long_running_task")


def yield_then_long_running_task() -> PendingComputation[None]:
    return runtime.start(
        _yield_then_long_running_task(), name="yield_then_long_running_task"
    )


def _long_running_section() -> None:
    time.sleep(_seconds(1))


async def _offloaded_long_running_task() -> None:
    trace.log_start("offloaded_long_running_task")
    await asyncio.sleep(0)
    await runtime.to_worker(_long_running_section)
    trace.log_end("offloaded_long_running_task")


def offloaded_long_running_task() -> PendingComputation[None]:
    """Yield once, then run the blocking section on the worker pool."""

    return runtime.start(
        _offloaded_long_running_task(), name="offloaded_long_running_task"
    )


__all__ = [
    "DemonstrationError",
    "FAILURE_MESSAGE",
    "async_delay",
    "async_delay_then_fail",
    "async_delay_then_fail_detached",
    "async_delay_then_return",
    "conditionally_context_bound_delay",
    "inner_step",
    "long_running_task",
    "offloaded_long_running_task",
    "outer_step",
    "thread_block_sleep",
    "yield_then_async_delay",
    "yield_then_block_wait",
    "yield_then_long_running_task",
]
