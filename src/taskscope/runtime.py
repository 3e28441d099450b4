from __future__ import annotations

import asyncio
import concurrent.futures
import enum
import itertools
import logging
import os
import threading
from collections.abc import Callable, Coroutine, Generator, Sequence
from typing import Any, Generic, ParamSpec, TypeVar

from . import trace
from .config import HarnessConfig
from .executors import async_bridge
from .executors.loop import get_scheduler_loop, reset_scheduler_loop, scheduler_thread
from .executors.threading import BoundedWorkerPool, get_worker_pool, reset_worker_pool

T = TypeVar("T")
P = ParamSpec("P")

_LOGGER = logging.getLogger("taskscope.runtime")
_TERMINATE_EXIT_CODE = 70


class BlockingWaitDeadlock(RuntimeError):
    """A blocking wait was issued on the thread that must settle it."""


class DetachedFailure(RuntimeError):
    """Wrap an error raised by a task nobody holds a handle to."""

    def __init__(self, task_name: str, error: BaseException) -> None:
        super().__init__(f"detached task {task_name} failed: {error}")
        self.task_name = task_name
        self.error = error


class State(enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PendingComputation(Generic[T]):
    """Handle to a task running on the scheduler loop.

    The task is already running when the handle is created. It can be awaited
    from a coroutine, which suspends the awaiting flow, or waited on from a
    plain thread, which blocks that thread until the task settles.
    """

    __slots__ = ("_loop", "_task")

    def __init__(self, task: asyncio.Future[T], loop: asyncio.AbstractEventLoop) -> None:
        self._task = task
        self._loop = loop

    @property
    def name(self) -> str:
        if isinstance(self._task, asyncio.Task):
            return self._task.get_name()
        return repr(self._task)

    @property
    def future(self) -> asyncio.Future[T]:
        """The underlying asyncio future, bound to the scheduler loop."""

        return self._task

    @property
    def state(self) -> State:
        if not self._task.done():
            return State.PENDING
        if self._task.cancelled():
            return State.CANCELLED
        if self._task.exception() is not None:
            return State.FAILED
        return State.COMPLETED

    def done(self) -> bool:
        return self._task.done()

    def result(self) -> T:
        """Return the value of a settled computation without blocking."""

        return self._task.result()

    def exception(self) -> BaseException | None:
        return self._task.exception()

    def wait(self, timeout: float | None = None) -> T:
        """Block the calling thread until the computation settles.

        Raises :class:`BlockingWaitDeadlock` when called on the scheduler
        thread, where the wait would stop the loop that has to settle it.
        """

        if self._task.done():
            return self._task.result()
        if _on_loop_thread(self._loop):
            raise BlockingWaitDeadlock(
                f"blocking wait on {self.name} from the scheduler thread would never settle"
            )
        return self._as_concurrent().result(timeout=timeout)

    def __await__(self) -> Generator[Any, None, T]:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            return (yield from self._task.__await__())
        bridged = async_bridge.wrap_future(self._as_concurrent(), loop=running)
        return (yield from bridged.__await__())

    def __repr__(self) -> str:
        return f"PendingComputation(name={self.name!r}, state={self.state.value})"

    def _as_concurrent(self) -> concurrent.futures.Future[T]:
        settled: concurrent.futures.Future[T] = concurrent.futures.Future()

        def _copy(task: asyncio.Future[T]) -> None:
            if task.cancelled():
                settled.cancel()
                return
            error = task.exception()
            if error is not None:
                settled.set_exception(error)
            else:
                settled.set_result(task.result())

        self._loop.call_soon_threadsafe(self._task.add_done_callback, _copy)
        return settled


class Runtime:
    """Owns the scheduler loop, the worker pool and task bookkeeping."""

    def __init__(self, *, config: HarnessConfig | None = None) -> None:
        self._config = config or HarnessConfig.from_env()
        # Only touched on the scheduler thread; asyncio keeps weak references.
        self._in_flight: set[asyncio.Future[Any]] = set()
        self._names = itertools.count(1)

    @property
    def config(self) -> HarnessConfig:
        return self._config

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return get_scheduler_loop(exception_handler=self._handle_loop_exception)

    def worker_pool(self) -> BoundedWorkerPool:
        return get_worker_pool(max_workers=self._config.max_workers)

    def configure(self, config: HarnessConfig) -> None:
        """Replace the configuration and tear down resources sized by it."""

        self.reset()
        self._config = config

    def reset(self) -> None:
        reset_scheduler_loop()
        reset_worker_pool(wait=False)
        self._in_flight.clear()

    def on_scheduler_thread(self) -> bool:
        return threading.current_thread() is scheduler_thread()

    def start(
        self, coro: Coroutine[Any, Any, T], *, name: str | None = None
    ) -> PendingComputation[T]:
        """Start ``coro`` on the scheduler loop and return its handle.

        The coroutine runs eagerly up to its first suspension point before
        this call returns, whichever thread calls it.
        """

        return self._launch(coro, name=name, detached=False)

    def spawn_detached(
        self, coro: Coroutine[Any, Any, Any], *, name: str | None = None
    ) -> None:
        """Start ``coro`` and discard its handle.

        A failure inside the task cannot reach the caller; it goes to the
        detached failure policy once the task settles.
        """

        self._launch(coro, name=name, detached=True)

    def completed(self, value: T) -> PendingComputation[T]:
        """Return a computation that has already settled with ``value``."""

        return self.start(_completed(value), name="completed")

    def when_all(self, pending: Sequence[PendingComputation[T]]) -> PendingComputation[list[T]]:
        """Settle once every computation settles, with their values in order."""

        futures = [item.future for item in pending]
        return self.start(_gather(futures), name="when_all")

    def when_any(
        self, pending: Sequence[PendingComputation[T]]
    ) -> PendingComputation[PendingComputation[T]]:
        """Settle with the first computation of ``pending`` to settle."""

        if not pending:
            raise ValueError("when_any requires at least one computation")
        return self.start(_first_settled(list(pending)), name="when_any")

    async def to_worker(self, func: Callable[P, T], /, *args: P.args, **kwargs: P.kwargs) -> T:
        """Run ``func`` on the bounded worker pool and await its result."""

        return await async_bridge.run_on(self.worker_pool(), func, *args, **kwargs)

    # ------------------------------------------------------------------

    def _launch(
        self, coro: Coroutine[Any, Any, T], *, name: str | None, detached: bool
    ) -> PendingComputation[T]:
        loop = self.loop
        task_name = self._task_name(coro, name)
        if _on_loop_thread(loop):
            task = self._create_task(loop, coro, task_name, detached)
        else:
            task = asyncio.run_coroutine_threadsafe(
                self._create_task_from_thread(coro, task_name, detached), loop
            ).result()
        return PendingComputation(task, loop)

    async def _create_task_from_thread(
        self, coro: Coroutine[Any, Any, T], name: str, detached: bool
    ) -> asyncio.Task[T]:
        return self._create_task(asyncio.get_running_loop(), coro, name, detached)

    def _create_task(
        self,
        loop: asyncio.AbstractEventLoop,
        coro: Coroutine[Any, Any, T],
        name: str,
        detached: bool,
    ) -> asyncio.Task[T]:
        task = loop.create_task(coro, name=name)
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        if detached:
            task.add_done_callback(self._report_detached)
        return task

    def _task_name(self, coro: Coroutine[Any, Any, Any], name: str | None) -> str:
        base = name or getattr(coro, "__name__", "task").lstrip("_")
        return f"{base}-{next(self._names)}"

    def _report_detached(self, task: asyncio.Future[Any]) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        name = task.get_name() if isinstance(task, asyncio.Task) else repr(task)
        self._handle_detached_failure(DetachedFailure(name, error))

    def _handle_detached_failure(self, failure: DetachedFailure) -> None:
        trace.log(f"unhandled exception: {failure.error}", failure.task_name)
        if self._config.detached_failures == "terminate":
            _LOGGER.critical("terminating process: %s", failure, exc_info=failure.error)
            for handler in logging.getLogger().handlers:
                handler.flush()
            os._exit(_TERMINATE_EXIT_CODE)
        _LOGGER.error("%s", failure, exc_info=failure.error)

    def _handle_loop_exception(
        self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
    ) -> None:
        error = context.get("exception")
        _LOGGER.warning(
            "scheduler loop reported: %s",
            context.get("message", "unhandled exception"),
            exc_info=error,
        )


def _on_loop_thread(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


async def _completed(value: T) -> T:
    return value


async def _gather(futures: list[asyncio.Future[T]]) -> list[T]:
    return list(await asyncio.gather(*futures))


async def _first_settled(
    pending: list[PendingComputation[T]],
) -> PendingComputation[T]:
    done, _ = await asyncio.wait(
        [item.future for item in pending], return_when=asyncio.FIRST_COMPLETED
    )
    return next(item for item in pending if item.future in done)


_GLOBAL_RUNTIME = Runtime()


def get_runtime() -> Runtime:
    return _GLOBAL_RUNTIME


def get_config() -> HarnessConfig:
    return _GLOBAL_RUNTIME.config


def configure(config: HarnessConfig) -> None:
    """Replace the global runtime configuration."""

    _GLOBAL_RUNTIME.configure(config)


def reset() -> None:
    """Tear down the scheduler loop and worker pool; both restart lazily."""

    _GLOBAL_RUNTIME.reset()


def start(coro: Coroutine[Any, Any, T], *, name: str | None = None) -> PendingComputation[T]:
    return _GLOBAL_RUNTIME.start(coro, name=name)


def spawn_detached(coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> None:
    _GLOBAL_RUNTIME.spawn_detached(coro, name=name)


def completed(value: T) -> PendingComputation[T]:
    return _GLOBAL_RUNTIME.completed(value)


def when_all(pending: Sequence[PendingComputation[T]]) -> PendingComputation[list[T]]:
    return _GLOBAL_RUNTIME.when_all(pending)


def when_any(
    pending: Sequence[PendingComputation[T]],
) -> PendingComputation[PendingComputation[T]]:
    return _GLOBAL_RUNTIME.when_any(pending)


async def to_worker(func: Callable[P, T], /, *args: P.args, **kwargs: P.kwargs) -> T:
    return await _GLOBAL_RUNTIME.to_worker(func, *args, **kwargs)


def worker_pool() -> BoundedWorkerPool:
    return _GLOBAL_RUNTIME.worker_pool()


def on_scheduler_thread() -> bool:
    return _GLOBAL_RUNTIME.on_scheduler_thread()


__all__ = [
    "BlockingWaitDeadlock",
    "DetachedFailure",
    "PendingComputation",
    "Runtime",
    "State",
    "completed",
    "configure",
    "get_config",
    "get_runtime",
    "on_scheduler_thread",
    "reset",
    "spawn_detached",
    "start",
    "to_worker",
    "when_all",
    "when_any",
    "worker_pool",
]
