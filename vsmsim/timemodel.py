# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# timemodel.py
# -----------------------------------------------------------------------------
# Purpose:
#   Single source of truth for simulated time math. 1 tick = 1 simulated
#   minute; a working day is 8 hours and a working week is 5 days.
#
# Design notes:
#   - Working-hours schedules are weekly: the first `days_per_week` days of
#     each 2400-tick week are open for the first `hours_per_day` hours.
#   - Processing-time jitter uses a symmetric triangular draw around the base
#     time so the mean stays at the configured value.
#
# Usage:
#   from vsmsim.timemodel import is_working_tick, transit_duration
# -----------------------------------------------------------------------------

from __future__ import annotations
import math
import random
from typing import Optional

from .entities import WorkingHours

TICKS_PER_MINUTE = 1
TICKS_PER_HOUR = 60
TICKS_PER_WORKDAY = 480      # 8 hours
TICKS_PER_WEEK = 2400        # 5 working days
WORKING_DAYS_PER_MONTH = 22
WORKING_DAYS_PER_YEAR = 264

MAX_HOURS_PER_DAY = 8
MAX_DAYS_PER_WEEK = 5

MIN_TRANSIT_TICKS = 5
MAX_TRANSIT_TICKS = 30
DISTANCE_PER_TICK = 25.0

# key -> (ticks per unit, singular, plural, abbreviation)
TIME_UNITS = {
    "ticks": (1, "tick", "ticks", "t"),
    "seconds": (1, "second", "seconds", "s"),
    "minutes": (1, "minute", "minutes", "min"),
    "hours": (60, "hour", "hours", "hr"),
    "days": (480, "day", "days", "d"),
}
DEFAULT_TIME_UNIT = "minutes"


def _clamp(value: float, lo: float, hi: float) -> float:
    if value is None or not math.isfinite(value):
        return lo
    return min(hi, max(lo, value))


def normalize_working_hours(config: Optional[WorkingHours]) -> WorkingHours:
    """Return a copy of `config` with hours/days rounded into their valid ranges."""
    config = config or WorkingHours()
    return WorkingHours(
        enabled=bool(config.enabled),
        hours_per_day=int(_clamp(round(config.hours_per_day), 0, MAX_HOURS_PER_DAY)),
        days_per_week=int(_clamp(round(config.days_per_week), 0, MAX_DAYS_PER_WEEK)),
    )


def is_working_tick(tick: int, config: Optional[WorkingHours]) -> bool:
    """
    Whether a station with this schedule is open at `tick`.

    Stations without a schedule (or with a disabled one) are always open.
    """
    if config is None or not config.enabled:
        return True
    working = normalize_working_hours(config)
    if working.hours_per_day <= 0 or working.days_per_week <= 0:
        return False
    tick_in_week = tick % TICKS_PER_WEEK
    day_index = tick_in_week // TICKS_PER_WORKDAY
    if day_index >= working.days_per_week:
        return False
    minute_in_day = tick_in_week % TICKS_PER_WORKDAY
    return minute_in_day < working.hours_per_day * TICKS_PER_HOUR


def open_ticks_for_period(total_ticks: float, config: Optional[WorkingHours]) -> int:
    """
    Count the open ticks in [0, total_ticks) for the given schedule.

    Parameters
    ----------
    total_ticks : float
        Horizon length; rounded and floored at 0.
    config : WorkingHours | None
        Station schedule. None or disabled means every tick is open.
    """
    if total_ticks is None or not math.isfinite(total_ticks):
        return 0
    safe_total = max(0, int(round(total_ticks)))
    if safe_total == 0:
        return 0
    if config is None or not config.enabled:
        return safe_total
    working = normalize_working_hours(config)
    if working.hours_per_day <= 0 or working.days_per_week <= 0:
        return 0

    open_per_day = working.hours_per_day * TICKS_PER_HOUR
    open_per_week = open_per_day * working.days_per_week

    full_weeks, remainder = divmod(safe_total, TICKS_PER_WEEK)
    open_ticks = full_weeks * open_per_week
    full_days, partial = divmod(remainder, TICKS_PER_WORKDAY)
    open_ticks += min(full_days, working.days_per_week) * open_per_day
    if partial > 0 and full_days < working.days_per_week:
        open_ticks += min(open_per_day, partial)
    return min(open_ticks, safe_total)


def transit_duration(distance: float, override: Optional[int] = None) -> int:
    """
    Transit time in ticks between two stations.

    A positive override wins; otherwise the distance is scaled and clamped to
    5..30 ticks so several items can be seen in flight on a canvas.
    """
    if override is not None and override > 0:
        return int(override)
    return int(max(MIN_TRANSIT_TICKS, min(MAX_TRANSIT_TICKS, round(distance / DISTANCE_PER_TICK))))


def manhattan(a, b) -> float:
    return abs(a[0] - b[0]) + abs(a[1] - b[1])


def apply_variability(base_time: int, variability: float, rng: Optional[random.Random] = None) -> int:
    """
    Draw a processing duration around `base_time`.

    Zero (or negative) variability and non-positive base times pass through
    unchanged. Otherwise the draw is triangular on
    [base*(1-v), base*(1+v)] with its mode at base, rounded, floor 1 tick.
    """
    if variability is None or variability <= 0 or base_time <= 0:
        return base_time
    rng = rng or random
    spread = base_time * min(1.0, variability)
    value = rng.triangular(base_time - spread, base_time + spread, base_time)
    return max(1, int(round(value)))


def time_unit_abbrev(unit: str) -> str:
    return TIME_UNITS.get(unit, TIME_UNITS[DEFAULT_TIME_UNIT])[3]


def time_unit_plural(unit: str) -> str:
    return TIME_UNITS.get(unit, TIME_UNITS[DEFAULT_TIME_UNIT])[2]


def format_time_value(ticks: float, unit: str) -> str:
    """Render a tick count in `unit`; unknown units show raw ticks."""
    preset = TIME_UNITS.get(unit)
    if preset is None or preset[0] == 1:
        return str(int(round(ticks)))
    return f"{ticks / preset[0]:.1f}"
