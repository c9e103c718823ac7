"""
Trading-session calendar used to stamp future bars.

Sessions default to the two daily blocks 09:30-11:30 and 13:00-15:00;
both ends are inclusive.
"""

from __future__ import annotations

import math
from datetime import datetime, time, timedelta

from quant_forecast_system.core.exceptions import InvalidInputError


DEFAULT_SESSIONS: tuple[tuple[time, time], ...] = (
    (time(9, 30), time(11, 30)),
    (time(13, 0), time(15, 0)),
)

WEEK_US = 7 * 24 * 3600 * 1_000_000


class TradingCalendar:
    """Decides which wall-clock instants fall inside a trading session."""

    def __init__(
        self,
        sessions: tuple[tuple[time, time], ...] = DEFAULT_SESSIONS,
        skip_weekends: bool = True,
    ):
        self.sessions = sessions
        self.skip_weekends = skip_weekends

    def is_trading_time(self, ts: datetime) -> bool:
        if self.skip_weekends and ts.weekday() >= 5:
            return False
        moment = ts.time()
        return any(start <= moment <= end for start, end in self.sessions)

    def next_times(self, after: datetime, step: timedelta, count: int) -> list[datetime]:
        """The next ``count`` in-session instants on the ``step`` grid after ``after``.

        Out-of-session grid points are skipped rather than returned, so the
        result always has exactly ``count`` entries.

        Raises:
            InvalidInputError: If ``step`` is not positive, or if no grid point
                can ever land inside a session (e.g. a weekly step from a
                Saturday).
        """
        if step <= timedelta(0):
            raise InvalidInputError(f"step must be positive, got {step}", field_name="step")

        # The grid repeats modulo one week after this many steps
        step_us = step // timedelta(microseconds=1)
        cycle = WEEK_US // math.gcd(step_us, WEEK_US)

        times: list[datetime] = []
        ts = after
        misses = 0
        # Daily bars land on midnight; treat every weekday as a session day.
        daily = step >= timedelta(days=1)
        while len(times) < count:
            ts = ts + step
            if daily:
                hit = not (self.skip_weekends and ts.weekday() >= 5)
            else:
                hit = self.is_trading_time(ts)
            if hit:
                times.append(ts)
                misses = 0
                continue
            misses += 1
            if misses >= cycle:
                raise InvalidInputError(
                    f"No in-session time is reachable from {after.isoformat()} in steps of {step}",
                    field_name="step",
                    details={"after": after.isoformat(), "step_seconds": step.total_seconds()},
                )
        return times
