from __future__ import annotations

import doctest

import taskscope.dispatcher


def test_dispatcher_doctests() -> None:
    failure_count, _ = doctest.testmod(
        taskscope.dispatcher,
        optionflags=doctest.NORMALIZE_WHITESPACE,
    )
    assert failure_count == 0
