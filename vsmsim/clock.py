# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# clock.py
# -----------------------------------------------------------------------------
# Purpose:
#   Elapsed-time bookkeeping: the raw tick counter, the cumulative count of
#   transit-only ticks, and the user-facing display clock derived from both.
#
# Design notes:
#   - A tick is transit-only when at least one item is in TRANSIT and none is
#     PROCESSING or QUEUED. Only those ticks are dropped from the display
#     clock, so it keeps moving whenever any item is being worked or waits.
#   - Run progress is a percentage of a bounded target duration (0 if the
#     run is unbounded).
#
# Usage:
#   clock = SimClock(ClockPolicy(count_transit_in_clock=False))
#   clock.advance(transit_only=True)
# -----------------------------------------------------------------------------

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Iterable

from .entities import Item, ItemStatus


@dataclass
class ClockPolicy:
    count_transit_in_clock: bool = False


def display_tick_count(tick_count: int, cumulative_transit_ticks: int, policy: ClockPolicy) -> int:
    if policy.count_transit_in_clock:
        return tick_count
    return max(0, tick_count - cumulative_transit_ticks)


def is_transit_only(items: Iterable[Item]) -> bool:
    """True if some item is in TRANSIT and nothing is PROCESSING or QUEUED."""
    in_transit = False
    for item in items:
        if item.status == ItemStatus.TRANSIT:
            in_transit = True
        elif item.status in (ItemStatus.PROCESSING, ItemStatus.QUEUED):
            return False
    return in_transit


def progress_percent(tick_count: int, target_duration: float) -> float:
    if target_duration is None or not math.isfinite(target_duration) or target_duration <= 0:
        return 0.0
    return min(100.0, tick_count / target_duration * 100.0)


class SimClock:
    """Raw and display clocks for one run.

    Attributes
    ----------
    tick_count : int
        Ground-truth tick counter, +1 per engine tick.
    cumulative_transit_ticks : int
        Number of transit-only ticks seen so far.
    """
    def __init__(self, policy: ClockPolicy | None = None):
        self.policy = policy or ClockPolicy()
        self.tick_count = 0
        self.cumulative_transit_ticks = 0

    @property
    def display_tick_count(self) -> int:
        return display_tick_count(self.tick_count, self.cumulative_transit_ticks, self.policy)

    def advance(self, transit_only: bool):
        if transit_only:
            self.cumulative_transit_ticks += 1
        self.tick_count += 1

    def progress(self, target_duration: float) -> float:
        return progress_percent(self.tick_count, target_duration)

    def reset(self):
        self.tick_count = 0
        self.cumulative_transit_ticks = 0
