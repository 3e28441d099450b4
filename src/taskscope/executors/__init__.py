"""Execution resources shared by every scenario.

``loop`` owns the scheduler thread and its event loop, ``threading`` owns the
bounded worker pool, and ``async_bridge`` moves work between the two.
"""

from . import async_bridge, loop, threading

__all__ = [
    "async_bridge",
    "loop",
    "threading",
]
