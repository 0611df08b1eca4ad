# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# metrics.py
# -----------------------------------------------------------------------------
# Purpose:
#   VSM KPIs over a rolling window of the most recent completions: average
#   lead time, value-added time, process-cycle efficiency and throughput.
#   Also the derived per-station index and status counts for collaborators.
#
# Design notes:
#   - Lead time is active + waiting; transit is excluded from both lead time
#     and PCE.
#   - Throughput uses each item's "effective completion tick"
#     (spawn + active + waiting) so transit length does not dilute it.
#   - Summaries return JSON-serializable dicts for easy tabulation.
#
# Usage:
#   from vsmsim.metrics import lead_metrics, throughput_from_completions
# -----------------------------------------------------------------------------

from __future__ import annotations
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set

from .entities import Item, ItemCounts, ItemStatus
from .timemodel import TICKS_PER_HOUR

DEFAULT_COMPLETION_WINDOW = 50


def completion_window(items: Iterable[Item], window_size: int = DEFAULT_COMPLETION_WINDOW,
                      metrics_epoch: Optional[int] = None) -> List[Item]:
    """Most recent `window_size` COMPLETED items, newest first."""
    completed = [
        it for it in items
        if it.status == ItemStatus.COMPLETED
        and it.completion_tick is not None
        and (metrics_epoch is None or it.metrics_epoch == metrics_epoch)
    ]
    completed.sort(key=lambda it: it.completion_tick, reverse=True)
    return completed[:max(0, window_size)]


def lead_metrics(items: Iterable[Item], window_size: int = DEFAULT_COMPLETION_WINDOW,
                 metrics_epoch: Optional[int] = None) -> Dict:
    window = completion_window(items, window_size, metrics_epoch)
    total_lead = sum(it.lead_time for it in window)
    total_vat = sum(it.time_active for it in window)
    n = len(window)
    avg_lead = total_lead / n if n else 0.0
    avg_vat = total_vat / n if n else 0.0
    pce = (avg_vat / avg_lead) * 100.0 if avg_lead > 0 else 0.0
    return {
        "avg_lead_time": avg_lead,
        "avg_vat": avg_vat,
        "pce": pce,
        "sample_size": n,
        "window_size": window_size,
    }


def throughput_from_completions(items: Iterable[Item], window_size: int = DEFAULT_COMPLETION_WINDOW,
                                metrics_epoch: Optional[int] = None) -> Dict:
    """
    Completions per hour over the window.

    Fewer than two samples yields 0. The span between the oldest and newest
    effective completion is floored at one tick.
    """
    window = completion_window(items, window_size, metrics_epoch)
    n = len(window)
    if n < 2:
        return {"throughput": 0.0, "sample_size": n, "window_size": window_size, "span_ticks": 0}
    effective = [it.spawn_tick + it.time_active + it.time_waiting for it in window]
    span = max(1, max(effective) - min(effective))
    return {
        "throughput": (n / span) * TICKS_PER_HOUR,
        "sample_size": n,
        "window_size": window_size,
        "span_ticks": span,
    }


def completion_window_label(window_size: int) -> str:
    return f"last {window_size} completions"


def items_by_station(items: Iterable[Item]) -> Dict[str, List[Item]]:
    """Non-terminal items grouped by the station they are at (or heading to)."""
    index: Dict[str, List[Item]] = defaultdict(list)
    for it in items:
        if not it.is_terminal and it.current_station_id is not None:
            index[it.current_station_id].append(it)
    return dict(index)


def count_items(items: Iterable[Item], flagged_stations: Optional[Set[str]] = None) -> ItemCounts:
    flagged_stations = flagged_stations or set()
    counts = ItemCounts()
    for it in items:
        if it.status == ItemStatus.COMPLETED:
            counts.completed += 1
            continue
        if it.status == ItemStatus.FAILED:
            counts.failed += 1
            continue
        counts.wip += 1
        if it.status == ItemStatus.QUEUED:
            counts.queued += 1
            if it.current_station_id in flagged_stations:
                counts.stuck += 1
        elif it.status == ItemStatus.PROCESSING:
            counts.processing += 1
        elif it.status == ItemStatus.TRANSIT:
            counts.transit += 1
    return counts
