# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# scheduler.py
# -----------------------------------------------------------------------------
# Purpose:
#   Convert a target ticks-per-second rate into a driving cadence for an
#   external timer: interval length plus (possibly fractional) ticks per
#   interval. Not part of tick semantics.
#
# Design notes:
#   - Timer frequency is capped at 60 Hz; faster rates batch several ticks
#     into one interval. Fractions are carried by TickPacer.
#
# Usage:
#   sched = compute_schedule(600)
#   pacer = TickPacer(sched.ticks_per_interval)
# -----------------------------------------------------------------------------

from __future__ import annotations
from dataclasses import dataclass

MAX_TIMER_HZ = 60.0


@dataclass(frozen=True)
class Schedule:
    interval_ms: float
    ticks_per_interval: float
    base_hz: float


def compute_schedule(ticks_per_second: float) -> Schedule:
    target = max(1.0, float(ticks_per_second))
    base_hz = MAX_TIMER_HZ if target >= MAX_TIMER_HZ else target
    return Schedule(
        interval_ms=1000.0 / base_hz,
        ticks_per_interval=target / base_hz,
        base_hz=base_hz,
    )


class TickPacer:
    """Fractional accumulator: how many whole ticks to run on each timer fire."""
    def __init__(self, ticks_per_interval: float):
        self.ticks_per_interval = ticks_per_interval
        self.accumulator = 0.0

    def next_batch(self) -> int:
        self.accumulator += self.ticks_per_interval
        whole = int(self.accumulator)
        self.accumulator -= whole
        return whole
