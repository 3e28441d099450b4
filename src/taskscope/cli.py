from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from collections.abc import Iterable
from typing import TextIO

from . import dispatcher, runtime

EXIT_OK = 0
EXIT_SCENARIO_FAILED = 1
EXIT_UNKNOWN_SCENARIO = 2


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the console front end."""

    parser = argparse.ArgumentParser(
        prog="taskscope",
        description="Run asyncio scheduling scenarios and print their traces.",
    )
    parser.add_argument(
        "selectors",
        nargs="*",
        help="Scenario index, identifier or display name; omit for a menu",
    )
    parser.add_argument("--list", action="store_true", help="List scenarios and exit")
    parser.add_argument(
        "--time-scale",
        type=float,
        default=None,
        help="Multiply every nominal delay by this factor",
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        default=None,
        help="Size of the bounded worker pool",
    )
    parser.add_argument(
        "--fan-out",
        type=int,
        default=None,
        help="Concurrent units in the large fan-out scenarios",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def resolve(selector: str) -> str | None:
    """Map an index, identifier or display name onto a catalog identifier."""

    listings = dispatcher.list_scenarios()
    if selector.isdecimal():
        index = int(selector)
        if index < len(listings):
            return listings[index].name
        return None
    for listing in listings:
        if selector in (listing.name, listing.display_name):
            return listing.name
    return None


def format_menu() -> str:
    lines = ["Select scenario to run:"]
    lines.extend(
        f"{listing.index}: {listing.display_name}"
        for listing in dispatcher.list_scenarios()
    )
    return "\n".join(lines)


def run_selected(selectors: Iterable[str]) -> int:
    """Invoke each selected scenario in order, stopping at the first problem."""

    for selector in selectors:
        name = resolve(selector)
        if name is None:
            print(f"unknown scenario: {selector}", file=sys.stderr)
            return EXIT_UNKNOWN_SCENARIO
        try:
            dispatcher.invoke(name)
        except dispatcher.ScenarioFailure as exc:
            print(str(exc), file=sys.stderr)
            return EXIT_SCENARIO_FAILED
    return EXIT_OK


def run_menu(stdin: TextIO, stdout: TextIO) -> int:
    """Prompt for scenario indexes until EOF or ``q``."""

    while True:
        print(f"\n{format_menu()}", file=stdout)
        print("> ", end="", file=stdout, flush=True)
        line = stdin.readline()
        if not line:
            return EXIT_OK
        selection = line.strip()
        if selection.lower() in {"q", "quit"}:
            return EXIT_OK
        name = resolve(selection) if selection.isdecimal() else None
        if name is None:
            continue
        try:
            dispatcher.invoke(name)
        except dispatcher.ScenarioFailure as exc:
            print(str(exc), file=stdout)


def _apply_overrides(args: argparse.Namespace) -> None:
    overrides = {
        "time_scale": args.time_scale,
        "max_workers": args.max_workers,
        "fan_out": args.fan_out,
    }
    changes = {key: value for key, value in overrides.items() if value is not None}
    if changes:
        runtime.configure(dataclasses.replace(runtime.get_config(), **changes))


def main(argv: list[str] | None = None) -> int:
    """CLI entry point used by ``python -m taskscope``."""

    parser = build_parser()
    args = parser.parse_args(argv)
    for option in ("time_scale", "max_workers", "fan_out"):
        value = getattr(args, option)
        if value is not None and value <= 0:
            parser.error(f"--{option.replace('_', '-')} must be greater than 0")
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )
    if args.list:
        for listing in dispatcher.list_scenarios():
            print(f"{listing.index}: {listing.display_name}")
        return EXIT_OK
    _apply_overrides(args)
    if args.selectors:
        return run_selected(args.selectors)
    return run_menu(sys.stdin, sys.stdout)


if __name__ == "__main__":  # pragma: no cover - manual invocation
    raise SystemExit(main())
