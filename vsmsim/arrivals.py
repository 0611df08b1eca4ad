# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# arrivals.py
# -----------------------------------------------------------------------------
# Purpose:
#   Generate exogenous arrivals at source stations, either rate-based
#   (a batch every `interval` ticks) or exact-demand (a target count spread
#   smoothly over the open ticks of a bounded horizon).
#
# Design notes:
#   - Exact demand keeps a fractional accumulator per station. Each open tick
#     adds target / open_ticks_in_horizon; the whole part spawns and the
#     remainder carries forward. The last open tick tops up to the target.
#   - Both modes only ever spawn at a station that is open this tick.
#
# Usage:
#   demand = DemandGenerator(total_ticks=2400)
#   plan = schedule_arrivals(stations, tick, open_now, "target", demand)
# -----------------------------------------------------------------------------

from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from .entities import Station
from .timemodel import open_ticks_for_period

logger = logging.getLogger(__name__)


@dataclass
class DemandState:
    accumulator: float = 0.0
    open_ticks_seen: int = 0
    generated: int = 0


class DemandGenerator:
    """Exact-count arrival generator over a bounded horizon.

    Parameters
    ----------
    total_ticks : int
        Horizon length in ticks; no arrivals are produced at or after it.
    """
    def __init__(self, total_ticks: int):
        self.total_ticks = total_ticks
        self.by_station: Dict[str, DemandState] = {}

    @property
    def total_generated(self) -> int:
        return sum(st.generated for st in self.by_station.values())

    def generated_for(self, station_id: str) -> int:
        state = self.by_station.get(station_id)
        return state.generated if state else 0

    def reset(self, total_ticks: int | None = None):
        if total_ticks is not None:
            self.total_ticks = total_ticks
        self.by_station.clear()

    def open_ticks_in_horizon(self, station: Station) -> int:
        return open_ticks_for_period(self.total_ticks, station.working_hours)

    def exhausted(self, station: Station, tick: int) -> bool:
        target = station.demand_target or 0
        if target <= 0 or tick >= self.total_ticks:
            return True
        return self.generated_for(station.id) >= target

    def arrivals(self, station: Station, tick: int, is_open: bool) -> int:
        """Number of items `station` should spawn at `tick`."""
        if not is_open or self.exhausted(station, tick):
            return 0
        target = int(station.demand_target)
        total_open = self.open_ticks_in_horizon(station)
        if total_open <= 0:
            return 0

        state = self.by_station.setdefault(station.id, DemandState())
        state.open_ticks_seen += 1
        state.accumulator += target / total_open
        spawn = int(math.floor(state.accumulator))
        state.accumulator -= spawn

        if state.generated + spawn > target:
            spawn = target - state.generated
        if state.open_ticks_seen >= total_open:
            # Last open tick in the horizon: catch up to the exact total.
            spawn = max(0, target - state.generated)
        state.generated += spawn
        if state.generated >= target:
            logger.debug("Demand target %d reached at %s (tick %d)", target, station.id, tick)
        return spawn


def rate_arrivals(station: Station, tick: int, is_open: bool) -> int:
    if not station.generates_arrivals or not is_open:
        return 0
    cfg = station.source_config
    interval = max(1, int(cfg.interval))
    if tick % interval != 0:
        return 0
    return max(0, int(cfg.batch_size))


def schedule_arrivals(stations: Iterable[Station], tick: int, open_now: Dict[str, bool],
                      demand_mode: str, demand: DemandGenerator,
                      rate_enabled: bool = True) -> List[Tuple[str, int]]:
    """
    Plan this tick's arrivals as (station_id, count) pairs.

    Only enabled sources spawn. In "target" mode they need a positive demand
    target; otherwise they follow their interval (when `rate_enabled`).
    """
    plan: List[Tuple[str, int]] = []
    for st in stations:
        is_open = open_now.get(st.id, True)
        if not st.generates_arrivals:
            count = 0
        elif demand_mode == "target":
            count = demand.arrivals(st, tick, is_open)
        elif rate_enabled:
            count = rate_arrivals(st, tick, is_open)
        else:
            count = 0
        if count > 0:
            plan.append((st.id, count))
    return plan
