from __future__ import annotations

import asyncio
import atexit
import threading
from collections.abc import Callable
from typing import Any

_LOOP: asyncio.AbstractEventLoop | None = None
_THREAD: threading.Thread | None = None
_LOCK = threading.Lock()
_THREAD_NAME = "taskscope-loop"
_ATEXIT_REGISTERED = False
_SHUTDOWN_TIMEOUT = 5.0

ExceptionHandler = Callable[[asyncio.AbstractEventLoop, dict[str, Any]], None]


def get_scheduler_loop(
    *, exception_handler: ExceptionHandler | None = None
) -> asyncio.AbstractEventLoop:
    """Return the shared scheduler loop, starting its thread on first use.

    The loop uses :func:`asyncio.eager_task_factory`, so a new task runs
    synchronously up to its first suspension point before ``create_task``
    returns.
    """

    global _LOOP, _THREAD
    with _LOCK:
        if _LOOP is not None:
            return _LOOP
        loop = asyncio.new_event_loop()
        loop.set_task_factory(asyncio.eager_task_factory)
        if exception_handler is not None:
            loop.set_exception_handler(exception_handler)
        ready = threading.Event()
        thread = threading.Thread(
            target=_serve,
            args=(loop, ready),
            name=_THREAD_NAME,
            daemon=True,
        )
        thread.start()
        ready.wait()
        _LOOP = loop
        _THREAD = thread
        _register_atexit()
        return loop


def scheduler_thread() -> threading.Thread | None:
    """Return the thread driving the scheduler loop, if it is running."""

    return _THREAD


def reset_scheduler_loop() -> None:
    """Cancel outstanding tasks, stop the loop and join its thread."""

    global _LOOP, _THREAD
    with _LOCK:
        loop, thread = _LOOP, _THREAD
        _LOOP = None
        _THREAD = None
    if loop is None or thread is None:
        return
    if loop.is_running():
        future = asyncio.run_coroutine_threadsafe(_cancel_outstanding(), loop)
        try:
            future.result(timeout=_SHUTDOWN_TIMEOUT)
        except TimeoutError:
            # The loop thread is blocked; leave the daemon thread behind.
            return
        loop.call_soon_threadsafe(loop.stop)
    thread.join(timeout=_SHUTDOWN_TIMEOUT)
    if not thread.is_alive():
        loop.close()


def _serve(loop: asyncio.AbstractEventLoop, ready: threading.Event) -> None:
    asyncio.set_event_loop(loop)
    loop.call_soon(ready.set)
    loop.run_forever()


async def _cancel_outstanding() -> None:
    current = asyncio.current_task()
    tasks = [task for task in asyncio.all_tasks() if task is not current]
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


def _register_atexit() -> None:
    global _ATEXIT_REGISTERED
    if _ATEXIT_REGISTERED:
        return
    atexit.register(reset_scheduler_loop)
    _ATEXIT_REGISTERED = True
