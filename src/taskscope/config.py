from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

DetachedFailurePolicy = Literal["report", "terminate"]

DEFAULT_MAX_WORKERS = 8
DEFAULT_FAN_OUT = 1000
DEFAULT_LONG_DELAY = 5.0


@dataclass(slots=True)
class HarnessConfig:
    """Knobs that shape how scenarios are scheduled and timed.

    ``time_scale`` multiplies every nominal duration so the same scenario can
    run in seconds for a human or in milliseconds under test. The worker pool
    has a fixed size so starvation reproduces by configuration rather than by
    machine load.
    """

    max_workers: int = DEFAULT_MAX_WORKERS
    time_scale: float = 1.0
    fan_out: int = DEFAULT_FAN_OUT
    long_delay: float = DEFAULT_LONG_DELAY
    detached_failures: DetachedFailurePolicy = "report"

    def scaled(self, seconds: float) -> float:
        """Return the wall-clock duration for a nominal ``seconds`` value."""

        return seconds * self.time_scale

    @classmethod
    def from_env(cls) -> HarnessConfig:
        """Load overrides from environment variables.

        Supported variables (all optional):

        ``TASKSCOPE_MAX_WORKERS``
            Positive integer sizing the shared worker pool.
        ``TASKSCOPE_TIME_SCALE``
            Positive float applied to every nominal delay.
        ``TASKSCOPE_FAN_OUT``
            Positive integer, concurrent units in the large fan-out scenarios.
        ``TASKSCOPE_LONG_DELAY``
            Non-negative float, nominal seconds each fan-out unit waits.
        ``TASKSCOPE_DETACHED_FAILURES``
            ``report`` or ``terminate``.
        """

        def _parse_int(value: str | None) -> int | None:
            if value is None:
                return None
            try:
                parsed = int(value)
            except ValueError:
                return None
            return parsed if parsed > 0 else None

        def _parse_float(value: str | None, *, allow_zero: bool) -> float | None:
            if value is None:
                return None
            try:
                parsed = float(value)
            except ValueError:
                return None
            if parsed < 0 or (parsed == 0 and not allow_zero):
                return None
            return parsed

        env = os.environ

        policy_raw = env.get("TASKSCOPE_DETACHED_FAILURES", "report").strip().lower()
        policy: DetachedFailurePolicy
        if policy_raw in {"report", "terminate"}:
            policy = policy_raw  # type: ignore[assignment]
        else:
            policy = "report"

        max_workers = _parse_int(env.get("TASKSCOPE_MAX_WORKERS"))
        fan_out = _parse_int(env.get("TASKSCOPE_FAN_OUT"))
        time_scale = _parse_float(env.get("TASKSCOPE_TIME_SCALE"), allow_zero=False)
        long_delay = _parse_float(env.get("TASKSCOPE_LONG_DELAY"), allow_zero=True)

        return cls(
            max_workers=max_workers if max_workers is not None else DEFAULT_MAX_WORKERS,
            time_scale=time_scale if time_scale is not None else 1.0,
            fan_out=fan_out if fan_out is not None else DEFAULT_FAN_OUT,
            long_delay=long_delay if long_delay is not None else DEFAULT_LONG_DELAY,
            detached_failures=policy,
        )
