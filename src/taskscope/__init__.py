"""Reproducible traces of asyncio scheduling behaviour.

`taskscope` runs small, named scenarios on a dedicated scheduler loop backed
by a bounded worker pool, and records every observation point with elapsed
time, thread and task context. See :mod:`taskscope.scenarios` for the catalog
and :mod:`taskscope.dispatcher` for the entry points.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from . import primitives, trace
from .config import HarnessConfig
from .dispatcher import (
    ScenarioFailure,
    ScenarioListing,
    ScenarioRun,
    UnknownScenario,
    invoke,
    last_run,
    list_scenarios,
    names,
)
from .runtime import (
    BlockingWaitDeadlock,
    DetachedFailure,
    PendingComputation,
    State,
    configure,
    get_config,
    reset,
)
from .scenarios import ScenarioDescriptor
from .trace import LogEvent, capture_events

__all__ = [
    "BlockingWaitDeadlock",
    "DetachedFailure",
    "HarnessConfig",
    "LogEvent",
    "PendingComputation",
    "ScenarioDescriptor",
    "ScenarioFailure",
    "ScenarioListing",
    "ScenarioRun",
    "State",
    "UnknownScenario",
    "capture_events",
    "configure",
    "get_config",
    "invoke",
    "last_run",
    "list_scenarios",
    "names",
    "primitives",
    "reset",
    "trace",
]

try:
    __version__ = version("taskscope")
except PackageNotFoundError:  # pragma: no cover - during local dev
    __version__ = "0.0.0"
