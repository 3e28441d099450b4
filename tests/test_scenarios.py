from __future__ import annotations

from collections.abc import Callable

import pytest

from taskscope import dispatcher, scenarios, trace
from taskscope.trace import LogEvent

EXPECTED_ORDER = [
    "method_execution_flow_example",
    "thread_sleep_vs_async_delay",
    "multiple_delays_awaited_consecutively",
    "asynchronous_execution_of_tasks",
    "multiple_delays_with_when_all",
    "simple_looping_vs_when_any",
    "processing_long_running_tasks",
    "not_awaited_tasks_will_still_finish",
    "not_awaited_tasks_and_exceptions",
    "await_and_exceptions",
    "detached_failure_may_kill_application",
    "blocking_waits_block_threads_and_may_cause_deadlocks",
    "blocking_waits_may_starve_the_worker_pool",
    "awaiting_large_amount_of_tasks",
    "context_capture_example",
]

SYNCHRONOUS = {
    "not_awaited_tasks_will_still_finish",
    "not_awaited_tasks_and_exceptions",
    "detached_failure_may_kill_application",
    "blocking_waits_may_starve_the_worker_pool",
    "context_capture_example",
}


def _run(name: str) -> list[LogEvent]:
    with trace.capture_events() as events:
        dispatcher.invoke(name)
    return list(events)


def _messages(events: list[LogEvent], caller: str) -> list[str]:
    return [event.message for event in events if event.caller == caller]


def test_catalog_is_declared_in_order() -> None:
    assert [entry.name for entry in scenarios.catalog()] == EXPECTED_ORDER


def test_pending_flag_matches_scenario_shape() -> None:
    for entry in scenarios.catalog():
        assert entry.yields_pending is (entry.name not in SYNCHRONOUS), entry.name
        assert entry.summary


def test_lookup_accepts_display_name() -> None:
    entry = scenarios.lookup("await and exceptions")
    assert entry is not None
    assert entry.name == "await_and_exceptions"
    assert scenarios.lookup("missing") is None


@pytest.mark.parametrize("name", EXPECTED_ORDER)
def test_every_scenario_brackets_its_trace(name: str) -> None:
    events = _run(name)

    own = [event for event in events if event.caller == name]
    assert own[0].message == "start"
    assert events[0] == own[0]
    assert [event.message for event in own].count("end") == 1
    if name not in SYNCHRONOUS:
        assert events[-1].caller == name
        assert events[-1].message == "end"


def test_method_execution_flow_returns_to_caller_at_await() -> None:
    events = _run("method_execution_flow_example")
    flow = [(event.caller, event.message) for event in events]

    assert flow.index(("method_execution_flow_example", "after outer_step")) < flow.index(
        ("outer_step", "after delay")
    )
    assert flow.index(("inner_step", "end 1")) < flow.index(("outer_step", "end"))


def test_thread_sleep_stays_on_thread_while_delay_releases_it() -> None:
    events = _run("thread_sleep_vs_async_delay")

    sleeping = [event for event in events if event.caller == "thread_block_sleep"]
    assert len({event.thread for event in sleeping}) == 1
    assert _messages(events, "async_delay") == ["delaying by 1s", "finished delaying by 1s"]


def test_consecutive_delays_do_not_overlap() -> None:
    events = _run("multiple_delays_awaited_consecutively")

    assert _messages(events, "async_delay") == [
        "delaying by 1s",
        "finished delaying by 1s",
        "delaying by 1s",
        "finished delaying by 1s",
    ]


def test_delays_started_before_awaiting_overlap() -> None:
    events = _run("asynchronous_execution_of_tasks")
    delays = _messages(events, "async_delay")

    assert delays[:3] == ["delaying by 1s", "delaying by 3s", "delaying by 2s"]
    assert delays[3:] == [
        "finished delaying by 1s",
        "finished delaying by 2s",
        "finished delaying by 3s",
    ]
    assert _messages(events, "asynchronous_execution_of_tasks")[1:4] == [
        "after task1",
        "after task2",
        "after task3",
    ]


def test_when_all_waits_for_slowest() -> None:
    events = _run("multiple_delays_with_when_all")
    flow = [event.message for event in events]

    assert flow.index("finished delaying by 3s") < flow.index("after when_all")


def test_when_any_processes_in_settlement_order() -> None:
    events = _run("simple_looping_vs_when_any")
    messages = _messages(events, "simple_looping_vs_when_any")

    split = messages.index("now with when_any")
    assert [m for m in messages[:split] if m.startswith("finished")] == [
        "finished text1",
        "finished text2",
        "finished text3",
    ]
    assert [m for m in messages[split:] if m.startswith("finished")] == [
        "finished text2",
        "finished text3",
        "finished text1",
    ]


def test_not_awaited_delay_finishes_after_scenario_ends(
    eventually: Callable[..., bool],
) -> None:
    name = "not_awaited_tasks_will_still_finish"
    with trace.capture_events() as events:
        dispatcher.invoke(name)
        assert eventually(lambda: "finished delaying by 1s" in [e.message for e in events])

    flow = [(event.caller, event.message) for event in events]
    assert flow.index((name, "end")) < flow.index(("async_delay", "finished delaying by 1s"))


def test_not_awaited_failure_is_invisible_to_caller() -> None:
    events = _run("not_awaited_tasks_and_exceptions")

    assert _messages(events, "not_awaited_tasks_and_exceptions") == [
        "start",
        "no exception!",
        "end",
    ]


def test_awaited_failure_is_caught() -> None:
    events = _run("await_and_exceptions")

    assert "Exception caught: some exception" in _messages(events, "await_and_exceptions")


def test_detached_failure_surfaces_after_caller_moves_on(
    eventually: Callable[..., bool],
) -> None:
    name = "detached_failure_may_kill_application"
    with trace.capture_events() as events:
        dispatcher.invoke(name)
        assert eventually(
            lambda: any(e.message.startswith("unhandled exception") for e in events)
        )

    messages = [event.message for event in events]
    assert _messages(events, name) == ["start", "no exception!", "end"]
    assert messages.index("no exception!") < messages.index(
        "unhandled exception: some exception"
    )


def test_blocking_wait_on_scheduler_thread_is_reported() -> None:
    name = "blocking_waits_block_threads_and_may_cause_deadlocks"
    events = _run(name)
    messages = _messages(events, name)

    assert any(m.startswith("Exception caught: blocking wait") for m in messages)
    results = [event for event in events if event.caller == name and event.message == "abc"]
    assert len(results) == 2
    # The first result comes from a worker stuck in blocking waits, the second from an await.
    assert results[0].thread.startswith("taskscope-worker")
    assert results[0].context == trace.NO_CONTEXT
    assert results[1].thread == "taskscope-loop"


def test_starvation_and_suspension_both_survive() -> None:
    for name in ("blocking_waits_may_starve_the_worker_pool", "awaiting_large_amount_of_tasks"):
        events = _run(name)
        assert _messages(events, name) == ["start", "survived", "survived", "end"]


def test_context_capture_example_switches_threads() -> None:
    events = _run("context_capture_example")
    ends = [
        event
        for event in events
        if event.caller == "conditionally_context_bound_delay"
        and event.message.startswith("end")
    ]

    assert [event.message for event in ends] == [
        "end with preserve_context=False",
        "end with preserve_context=True",
    ]
    assert ends[0].thread.startswith("taskscope-worker")
    assert ends[0].context == trace.NO_CONTEXT
    assert ends[1].thread == "taskscope-loop"
