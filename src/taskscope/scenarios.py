"""Catalog of named scenarios, each exhibiting one scheduling behaviour.

Scenarios are registered in declaration order by the :func:`scenario`
decorator. Asynchronous scenarios are coroutine functions that the dispatcher
starts on the scheduler loop and waits for; synchronous ones run on the
dispatcher's calling thread and may leave detached work behind.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from . import primitives, runtime, trace
from .primitives import DemonstrationError
from .runtime import BlockingWaitDeadlock, PendingComputation


@dataclass(frozen=True, slots=True)
class ScenarioDescriptor:
    """One catalog entry.

    Attributes:
        name: Catalog identifier, also used as the caller name in traces.
        body: Zero-argument callable running the scenario.
        yields_pending: ``True`` when ``body()`` returns a coroutine the
            dispatcher must start and wait for.
        summary: First line of the body's docstring.
    """

    name: str
    body: Callable[[], Any]
    yields_pending: bool
    summary: str = ""

    @property
    def display_name(self) -> str:
        return self.name.replace("_", " ")


_CATALOG: list[ScenarioDescriptor] = []


def scenario(*, pending: bool) -> Callable[[Callable[[], Any]], Callable[[], Any]]:
    """Register the decorated function as the next catalog entry."""

    def _register(body: Callable[[], Any]) -> Callable[[], Any]:
        doc = (body.__doc__ or "").strip()
        _CATALOG.append(
            ScenarioDescriptor(
                name=body.__name__,
                body=body,
                yields_pending=pending,
                summary=doc.splitlines()[0] if doc else "",
            )
        )
        return body

    return _register


def catalog() -> tuple[ScenarioDescriptor, ...]:
    return tuple(_CATALOG)


def lookup(name: str) -> ScenarioDescriptor | None:
    """Find an entry by identifier or by display name."""

    for descriptor in _CATALOG:
        if name in (descriptor.name, descriptor.display_name):
            return descriptor
    return None


@scenario(pending=True)
async def method_execution_flow_example() -> None:
    """Await splits a routine and hands control back to its caller.

    While ``outer_step`` is suspended, ``inner_step(1)`` runs to completion;
    every flow resumes on the single scheduler thread.
    """

    caller = "method_execution_flow_example"
    await asyncio.sleep(0)
    trace.log("after yield", caller)

    outer = primitives.outer_step()
    trace.log("after outer_step", caller)

    await primitives.inner_step(1)
    trace.log("after inner_step", caller)

    await outer


@scenario(pending=True)
async def thread_sleep_vs_async_delay() -> None:
    """A blocking sleep holds the thread; an async delay releases it."""

    primitives.thread_block_sleep(1)
    await primitives.async_delay(1)


@scenario(pending=True)
async def multiple_delays_awaited_consecutively() -> None:
    """Await pauses the routine until the awaited computation settles."""

    await primitives.async_delay(1)
    await primitives.async_delay(1)


@scenario(pending=True)
async def asynchronous_execution_of_tasks() -> None:
    """Computations started before any await run concurrently."""

    caller = "asynchronous_execution_of_tasks"
    first = primitives.async_delay(1)
    trace.log("after task1", caller)
    second = primitives.async_delay(3)
    trace.log("after task2", caller)
    third = primitives.async_delay(2)
    trace.log("after task3", caller)

    await first
    trace.log("awaited task1", caller)
    await second
    trace.log("awaited task2", caller)
    await third
    trace.log("awaited task3", caller)


@scenario(pending=True)
async def multiple_delays_with_when_all() -> None:
    """when_all settles once every computation has settled."""

    caller = "multiple_delays_with_when_all"
    first = primitives.async_delay(1)
    trace.log("after task1", caller)
    second = primitives.async_delay(3)
    trace.log("after task2", caller)
    third = primitives.async_delay(2)
    trace.log("after task3", caller)

    await runtime.when_all([first, second, third])
    trace.log("after when_all", caller)


def _returning_delays() -> list[PendingComputation[str]]:
    return [
        primitives.async_delay_then_return(3, "text1"),
        primitives.async_delay_then_return(1, "text2"),
        primitives.async_delay_then_return(2, "text3"),
    ]


@scenario(pending=True)
async def simple_looping_vs_when_any() -> None:
    """when_any processes results in settlement order, not start order."""

    caller = "simple_looping_vs_when_any"
    trace.log("simple loop", caller)
    for pending in _returning_delays():
        trace.log(f"finished {await pending}", caller)

    trace.log("now with when_any", caller)
    remaining = _returning_delays()
    while remaining:
        finished = await runtime.when_any(remaining)
        trace.log(f"finished {await finished}", caller)
        remaining.remove(finished)


@scenario(pending=True)
async def processing_long_running_tasks() -> None:
    """Yielding only slices a blocking routine; offloading frees the loop.

    Both flavours of yielded work resume on the scheduler thread and block
    it, so they still run one after another. Work offloaded to the worker
    pool runs side by side.
    """

    caller = "processing_long_running_tasks"
    first = primitives.long_running_task()
    second = primitives.yield_then_long_running_task()
    trace.log("awaiting task1", caller)
    await first
    trace.log("awaiting task2", caller)
    await second

    trace.log("waiting for all", caller)
    await runtime.when_all(
        [
            primitives.yield_then_long_running_task(),
            primitives.yield_then_long_running_task(),
        ]
    )

    trace.log("waiting for all offloaded", caller)
    await runtime.when_all(
        [
            primitives.offloaded_long_running_task(),
            primitives.offloaded_long_running_task(),
        ]
    )


@scenario(pending=False)
def not_awaited_tasks_will_still_finish() -> None:
    """Awaiting is not what makes a computation run.

    The scenario ends before the delay it started does.
    """

    primitives.async_delay(1)


@scenario(pending=False)
def not_awaited_tasks_and_exceptions() -> None:
    """Without an await there is nowhere to catch the failure."""

    caller = "not_awaited_tasks_and_exceptions"
    try:
        primitives.async_delay_then_fail(1)
        trace.log("no exception!", caller)
    except DemonstrationError as exc:
        trace.log(f"Exception caught: {exc}", caller)


@scenario(pending=True)
async def await_and_exceptions() -> None:
    """Awaiting a failing computation raises its error at the await."""

    caller = "await_and_exceptions"
    try:
        await primitives.async_delay_then_fail(1)
    except DemonstrationError as exc:
        trace.log(f"Exception caught: {exc}", caller)


@scenario(pending=False)
def detached_failure_may_kill_application() -> None:
    """A detached failure skips the caller and goes to the runtime policy.

    Under the ``terminate`` policy this ends the process.
    """

    caller = "detached_failure_may_kill_application"
    try:
        primitives.async_delay_then_fail_detached(1)
        trace.log("no exception!", caller)
    except DemonstrationError as exc:
        trace.log(f"Exception caught: {exc}", caller)


def _wait_and_result(caller: str) -> None:
    primitives.async_delay(1).wait()
    primitives.async_delay(1).wait()
    primitives.async_delay(1).wait()
    trace.log(primitives.async_delay_then_return(1, "abc").wait(), caller)


@scenario(pending=True)
async def blocking_waits_block_threads_and_may_cause_deadlocks() -> None:
    """Blocking waits hold a thread; on the scheduler thread they deadlock."""

    caller = "blocking_waits_block_threads_and_may_cause_deadlocks"
    trace.log("Performing wait and result on a worker...", caller)
    await runtime.to_worker(_wait_and_result, caller)

    trace.log("Performing wait on the scheduler thread...", caller)
    try:
        primitives.async_delay(1).wait()
    except BlockingWaitDeadlock as exc:
        trace.log(f"Exception caught: {exc}", caller)

    trace.log("Performing await...", caller)
    await primitives.async_delay(1)
    await primitives.async_delay(1)
    await primitives.async_delay(1)
    trace.log(await primitives.async_delay_then_return(1, "abc"), caller)


@scenario(pending=False)
def blocking_waits_may_starve_the_worker_pool() -> None:
    """Many blocking waits exhaust the bounded worker pool.

    Each unit holds a worker for the whole delay, so the units complete in
    rounds of ``max_workers``.
    """

    caller = "blocking_waits_may_starve_the_worker_pool"
    primitives.yield_then_block_wait().wait()
    trace.log("survived", caller)

    pending = [primitives.yield_then_block_wait() for _ in range(runtime.get_config().fan_out)]
    runtime.when_all(pending).wait()
    trace.log("survived", caller)


@scenario(pending=True)
async def awaiting_large_amount_of_tasks() -> None:
    """The same fan-out with awaits finishes in about one delay."""

    caller = "awaiting_large_amount_of_tasks"
    await primitives.yield_then_async_delay()
    trace.log("survived", caller)

    pending = [primitives.yield_then_async_delay() for _ in range(runtime.get_config().fan_out)]
    await runtime.when_all(pending)
    trace.log("survived", caller)


@scenario(pending=False)
def context_capture_example() -> None:
    """A continuation resumes on the captured task or on any free worker."""

    caller = "context_capture_example"
    primitives.conditionally_context_bound_delay(1, False).wait()
    trace.log("survived", caller)
    primitives.conditionally_context_bound_delay(1, True).wait()
    trace.log("survived", caller)


__all__ = [
    "ScenarioDescriptor",
    "catalog",
    "lookup",
    "scenario",
]
