"""Discover and run catalog scenarios one at a time.

>>> [entry.display_name for entry in list_scenarios()][:2]
['method execution flow example', 'thread sleep vs async delay']
>>> invoke("does-not-exist")
Traceback (most recent call last):
...
taskscope.dispatcher.UnknownScenario: unknown scenario 'does-not-exist'
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Literal

from . import runtime, trace
from .scenarios import ScenarioDescriptor, catalog, lookup

RunOutcome = Literal["running", "succeeded", "failed"]

_LOGGER = logging.getLogger("taskscope.dispatcher")
_SINGLE_FLIGHT = threading.Lock()
_LAST_RUN: ScenarioRun | None = None


class UnknownScenario(LookupError):
    """The requested name is not in the catalog."""

    def __init__(self, name: str) -> None:
        super().__init__(f"unknown scenario {name!r}")
        self.name = name

    def __str__(self) -> str:
        # LookupError would otherwise render the message with extra quotes.
        return str(self.args[0])


class ScenarioFailure(RuntimeError):
    """A scenario, or the computation it handed back, failed."""

    def __init__(self, run: ScenarioRun) -> None:
        super().__init__(f"scenario {run.descriptor.name} failed: {run.error}")
        self.run = run


@dataclass(frozen=True, slots=True)
class ScenarioListing:
    index: int
    name: str
    display_name: str


@dataclass(slots=True)
class ScenarioRun:
    descriptor: ScenarioDescriptor
    started_at: float
    finished_at: float | None = None
    outcome: RunOutcome = "running"
    error: BaseException | None = None

    @property
    def duration(self) -> float | None:
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at


def list_scenarios() -> list[ScenarioListing]:
    """Return every catalog entry in declaration order."""

    return [
        ScenarioListing(index=index, name=entry.name, display_name=entry.display_name)
        for index, entry in enumerate(catalog())
    ]


def names() -> list[str]:
    return [entry.name for entry in catalog()]


def invoke(name: str) -> ScenarioRun:
    """Run the scenario called ``name`` and return once it has settled.

    Asynchronous scenarios are started on the scheduler loop and waited for;
    synchronous ones run on the calling thread. The end event is written even
    when the scenario fails, after which :class:`ScenarioFailure` is raised.
    Runs never overlap: a second caller waits for the first run to finish.
    """

    descriptor = lookup(name)
    if descriptor is None:
        raise UnknownScenario(name)

    global _LAST_RUN
    with _SINGLE_FLIGHT:
        run = ScenarioRun(descriptor=descriptor, started_at=time.perf_counter())
        _LAST_RUN = run
        _LOGGER.debug("starting scenario %s", descriptor.name)
        trace.init(descriptor.display_name)
        trace.log_start(descriptor.name)
        try:
            _execute(descriptor)
        except Exception as exc:
            run.outcome = "failed"
            run.error = exc
        else:
            run.outcome = "succeeded"
        finally:
            run.finished_at = time.perf_counter()
            trace.log_end(descriptor.name)

    if run.error is not None:
        _LOGGER.warning("scenario %s failed: %s", descriptor.name, run.error)
        raise ScenarioFailure(run) from run.error
    _LOGGER.info("scenario %s finished in %.3fs", descriptor.name, run.duration)
    return run


def last_run() -> ScenarioRun | None:
    """Return the most recent run, finished or not."""

    return _LAST_RUN


def _execute(descriptor: ScenarioDescriptor) -> None:
    outcome = descriptor.body()
    if descriptor.yields_pending:
        runtime.start(outcome, name=descriptor.name).wait()


__all__ = [
    "ScenarioFailure",
    "ScenarioListing",
    "ScenarioRun",
    "UnknownScenario",
    "invoke",
    "last_run",
    "list_scenarios",
    "names",
]
