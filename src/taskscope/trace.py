"""Timestamped, thread-tagged trace of every observation point.

The trace is process-wide: :func:`init` resets the elapsed clock for a new
scenario and every :func:`log` call measures against it. Lines go to the
``taskscope.trace`` logger and to any registered listeners.
"""

from __future__ import annotations

import asyncio
import logging
import re
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

NO_CONTEXT = "none"

_LOGGER = logging.getLogger("taskscope.trace")
# Fields are delimited by the fixed separators, so thread and task names may
# contain spaces and parentheses. A thread name must not contain
# " (context: ", a context must not contain ")> " and a caller must not
# contain ":".
_LINE_PATTERN = re.compile(
    r"^(?P<elapsed>\d+)ms Thread (?P<thread>.+?) \(context: (?P<context>.+?)\)> "
    r"(?P<caller>[^:]+): (?P<message>.*)$",
    re.DOTALL,
)


@dataclass(frozen=True, slots=True)
class LogEvent:
    elapsed_ms: int
    thread: str
    context: str
    caller: str
    message: str

    def render(self) -> str:
        """Format the event as a single trace line."""

        return (
            f"{self.elapsed_ms}ms Thread {self.thread} "
            f"(context: {self.context})> {self.caller}: {self.message}"
        )

    @classmethod
    def parse(cls, line: str) -> LogEvent:
        """Recover an event from a line produced by :meth:`render`."""

        match = _LINE_PATTERN.match(line)
        if match is None:
            raise ValueError(f"not a trace line: {line!r}")
        return cls(
            elapsed_ms=int(match["elapsed"]),
            thread=match["thread"],
            context=match["context"],
            caller=match["caller"],
            message=match["message"],
        )


Listener = Callable[[LogEvent], None]


class _Clock:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started = time.perf_counter()

    def restart(self) -> None:
        with self._lock:
            self._started = time.perf_counter()

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self._started) * 1000)


_CLOCK = _Clock()
_LISTENERS: list[Listener] = []
_LISTENERS_LOCK = threading.Lock()


def init(scenario_name: str) -> None:
    """Reset the elapsed clock and emit the scenario header."""

    _CLOCK.restart()
    _LOGGER.info("\nScenario: %s", scenario_name)


def log(message: str, caller: str) -> LogEvent:
    """Record ``message`` on behalf of ``caller`` and return the event."""

    event = LogEvent(
        elapsed_ms=_CLOCK.elapsed_ms(),
        thread=threading.current_thread().name,
        context=current_context(),
        caller=caller,
        message=message,
    )
    _LOGGER.info("%s", event.render())
    with _LISTENERS_LOCK:
        listeners = tuple(_LISTENERS)
    for listener in listeners:
        try:
            listener(event)
        except Exception:
            _LOGGER.exception("trace listener %r failed", listener)
    return event


def log_start(caller: str) -> LogEvent:
    return log("start", caller)


def log_end(caller: str) -> LogEvent:
    return log("end", caller)


def current_context() -> str:
    """Name of the asyncio task running on this thread, or ``"none"``."""

    try:
        task = asyncio.current_task()
    except RuntimeError:
        # No running loop on this thread.
        return NO_CONTEXT
    if task is None:
        return NO_CONTEXT
    return task.get_name()


def add_listener(listener: Listener) -> None:
    """Register a callback invoked for every emitted event."""

    with _LISTENERS_LOCK:
        _LISTENERS.append(listener)


def remove_listener(listener: Listener) -> None:
    """Remove a previously registered listener."""

    with _LISTENERS_LOCK:
        try:
            _LISTENERS.remove(listener)
        except ValueError:
            pass


@contextmanager
def capture_events() -> Iterator[list[LogEvent]]:
    """Collect every event emitted while the block is active."""

    events: list[LogEvent] = []
    add_listener(events.append)
    try:
        yield events
    finally:
        remove_listener(events.append)


__all__ = [
    "NO_CONTEXT",
    "LogEvent",
    "add_listener",
    "capture_events",
    "current_context",
    "init",
    "log",
    "log_end",
    "log_start",
    "remove_listener",
]
