from __future__ import annotations

import io

import pytest

from taskscope import cli, dispatcher, runtime, trace


def test_list_prints_menu(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["--list"]) == cli.EXIT_OK

    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "0: method execution flow example"
    assert len(lines) == len(dispatcher.list_scenarios())


@pytest.mark.parametrize(
    ("selector", "expected"),
    [
        ("1", "thread_sleep_vs_async_delay"),
        ("thread_sleep_vs_async_delay", "thread_sleep_vs_async_delay"),
        ("thread sleep vs async delay", "thread_sleep_vs_async_delay"),
        ("999", None),
        ("nope", None),
    ],
)
def test_resolve(selector: str, expected: str | None) -> None:
    assert cli.resolve(selector) == expected


def test_selected_scenarios_run_in_order() -> None:
    with trace.capture_events() as events:
        code = cli.main(["--time-scale", "0.02", "2", "await_and_exceptions"])

    assert code == cli.EXIT_OK
    starts = [event.caller for event in events if event.message == "start"]
    assert starts == ["multiple_delays_awaited_consecutively", "await_and_exceptions"]
    assert runtime.get_config().time_scale == 0.02


def test_unknown_selector_exit_code(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["999"]) == cli.EXIT_UNKNOWN_SCENARIO
    assert "unknown scenario: 999" in capsys.readouterr().err


def test_overrides_reconfigure_runtime() -> None:
    assert cli.main(["--max-workers", "3", "--fan-out", "5", "--list"]) == cli.EXIT_OK
    # --list exits before touching the runtime.
    assert runtime.get_config().max_workers == 4

    cli.main(["--max-workers", "3", "--fan-out", "5", "2"])
    config = runtime.get_config()
    assert config.max_workers == 3
    assert config.fan_out == 5
    assert config.time_scale == 0.02


def test_non_positive_override_is_rejected() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--time-scale", "0"])
    assert excinfo.value.code == 2


def test_menu_runs_selection_until_quit() -> None:
    stdout = io.StringIO()
    with trace.capture_events() as events:
        code = cli.run_menu(io.StringIO("2\nbogus\nq\n"), stdout)

    assert code == cli.EXIT_OK
    assert "Select scenario to run:" in stdout.getvalue()
    assert [event.caller for event in events if event.message == "start"] == [
        "multiple_delays_awaited_consecutively"
    ]


def test_menu_stops_at_end_of_input() -> None:
    assert cli.run_menu(io.StringIO(""), io.StringIO()) == cli.EXIT_OK


def test_non_ascii_digit_selector_is_unknown(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.resolve("²") is None
    assert cli.main(["²"]) == cli.EXIT_UNKNOWN_SCENARIO
    assert "unknown scenario: ²" in capsys.readouterr().err


def test_menu_ignores_non_ascii_digits() -> None:
    with trace.capture_events() as events:
        code = cli.run_menu(io.StringIO("²\nq\n"), io.StringIO())

    assert code == cli.EXIT_OK
    assert events == []
