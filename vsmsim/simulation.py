# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# simulation.py
# -----------------------------------------------------------------------------
# Purpose:
#   The tick engine. Owns stations, edges, items and run counters and
#   advances all of them by exactly one logical tick per `tick()` call.
#   `run_scenario(cfg)` drives one seeded headless run and returns metrics.
#
# Design notes:
#   - Phases run in a fixed order: open-ness, arrivals, advance items,
#     resource assignment, station stats, history, retention, clock. Phase 4
#     only sees the occupancy left after phase 3 has finished.
#   - All randomness (quality, routing, processing jitter) comes from one
#     injectable random.Random so runs replay exactly for a seed.
#   - Editing methods that change timing, quality, capacity, routing, demand
#     or working hours start a new metrics epoch.
#
# Usage:
#   engine = SimulationEngine.from_config(cfg)
#   engine.start(); engine.tick()
# -----------------------------------------------------------------------------

from __future__ import annotations
import logging
import random
from collections import defaultdict, deque
from dataclasses import asdict
from typing import Deque, Dict, List, Optional

from .arrivals import DemandGenerator, schedule_arrivals
from .clock import ClockPolicy, SimClock, is_transit_only
from .entities import (
    Edge, HistoryEntry, Item, ItemCounts, ItemStatus, SourceConfig, Station,
    StationKind, StationStats, WorkingHours,
)
from .metrics import count_items, items_by_station, lead_metrics, throughput_from_completions
from .network import Router
from .runconfig import DEMAND_MODES, RunConfiguration
from .stations import load_graph, make_station
from .timemodel import apply_variability, is_working_tick

logger = logging.getLogger(__name__)

HISTORY_INTERVAL = 5
HISTORY_LIMIT = 500
MAX_FINISHED_ITEMS = 200

# Station fields whose change invalidates historical comparability.
EPOCH_FIELDS = {
    "processing_time", "capacity", "quality", "variability", "working_hours",
    "routing_weights", "source_config", "demand_target",
}


class SimulationEngine:
    """Turn-based VSM simulation over a station graph.

    Parameters
    ----------
    stations : dict[str, Station]
        Station id -> station. Iteration order is the assignment order.
    edges : list[Edge]
        Directed edges between stations.
    run : RunConfiguration
        Run settings; defaults to an unbounded auto-demand run.
    rng : random.Random
        Source of all randomness. Seeded from `run.seed` when omitted.
    """
    def __init__(self, stations: Dict[str, Station], edges: List[Edge],
                 run: Optional[RunConfiguration] = None, rng: Optional[random.Random] = None):
        self.S = stations
        self.edges = list(edges)
        self.run = run or RunConfiguration()
        self.rng = rng or random.Random(self.run.seed)
        self.router = Router(self.S, self.edges)
        self.clock = SimClock(ClockPolicy(self.run.count_transit_in_clock))
        self.demand = DemandGenerator(self.run.demand_total_ticks)

        self.items: List[Item] = []
        self.history: Deque[HistoryEntry] = deque(maxlen=HISTORY_LIMIT)
        self.is_running = False
        self.simulation_progress = 0.0
        self.metrics_epoch = 0
        self.metrics_epoch_tick = 0
        self.cumulative_completed = 0
        self.throughput = 0.0
        self.items_by_station: Dict[str, List[Item]] = {}
        self.item_counts = ItemCounts()
        self._next_item_id = 1

    @classmethod
    def from_config(cls, cfg: Dict, rng: Optional[random.Random] = None) -> "SimulationEngine":
        """Build an engine from a config dict with `graph` and `run` sections."""
        stations, edges = load_graph(cfg.get("graph", {}))
        run = RunConfiguration.from_dict(cfg.get("run"))
        if run.seed is None:
            run.seed = cfg.get("sim", {}).get("seed")
        return cls(stations, edges, run, rng)

    # ---- Clock views ----------------------------------------------------
    @property
    def tick_count(self) -> int:
        return self.clock.tick_count

    @property
    def cumulative_transit_ticks(self) -> int:
        return self.clock.cumulative_transit_ticks

    @property
    def display_tick_count(self) -> int:
        return self.clock.display_tick_count

    # ---- Controls -------------------------------------------------------
    def start(self):
        self.is_running = True

    def pause(self):
        self.is_running = False

    def step(self):
        """Manual step: pause first, then advance one tick."""
        self.is_running = False
        self.tick()

    def reset(self):
        """Clear items, counters and history; keep the graph."""
        self.items = []
        self.history.clear()
        self.clock.reset()
        self.demand.reset(self.run.demand_total_ticks)
        self.is_running = False
        self.simulation_progress = 0.0
        self.metrics_epoch_tick = 0
        self.cumulative_completed = 0
        self.throughput = 0.0
        for st in self.S.values():
            st.stats = StationStats()
            st.validation_error = None
        self._refresh_derived()
        logger.info("Simulation reset (%d stations, %d edges)", len(self.S), len(self.edges))

    def clear(self):
        """Drop the graph as well as all run state."""
        self.S.clear()
        self.edges = []
        self.router.rebuild(self.edges)
        self.reset()

    # ---- Items ----------------------------------------------------------
    def _spawn(self, station_id: str, tick: int) -> Item:
        item = Item(
            id=self._next_item_id,
            current_station_id=station_id,
            spawn_tick=tick,
            metrics_epoch=self.metrics_epoch,
            queue_entry_tick=tick,
        )
        self._next_item_id += 1
        return item

    def add_item(self, station_id: str) -> Optional[Item]:
        """Inject one QUEUED item at `station_id` at the current tick."""
        if station_id not in self.S:
            logger.warning("add_item: unknown station %r", station_id)
            return None
        item = self._spawn(station_id, self.tick_count)
        self.items.append(item)
        self._refresh_derived()
        return item

    def clear_items(self):
        self.items = []
        self._refresh_derived()

    # ---- Run settings ---------------------------------------------------
    def set_count_transit_in_clock(self, enabled: bool):
        self.run.count_transit_in_clock = bool(enabled)
        self.clock.policy.count_transit_in_clock = bool(enabled)

    def set_duration_preset(self, key: str) -> bool:
        changed = self.run.set_duration_preset(key)
        if changed:
            self.simulation_progress = self.clock.progress(self.run.target_duration)
        return changed

    def set_speed_preset(self, key: str) -> bool:
        return self.run.set_speed_preset(key)

    def set_auto_stop(self, enabled: bool):
        self.run.auto_stop_enabled = bool(enabled)

    def set_metrics_window(self, completions: int):
        self.run.metrics_window_completions = max(1, int(completions))

    def set_demand_mode(self, mode: str) -> bool:
        if mode not in DEMAND_MODES:
            logger.warning("Unknown demand mode %r; keeping %r", mode, self.run.demand_mode)
            return False
        if mode != self.run.demand_mode:
            self.run.demand_mode = mode
            self.demand.reset(self.run.demand_total_ticks)
            self.bump_metrics_epoch("demand mode -> %s" % mode)
        return True

    def set_demand_unit(self, key: str) -> bool:
        if not self.run.set_demand_unit(key):
            return False
        self.demand.reset(self.run.demand_total_ticks)
        self.bump_metrics_epoch("demand unit -> %s" % key)
        return True

    def bump_metrics_epoch(self, reason: str = ""):
        """Start a new metrics epoch and zero the rolling counters."""
        self.metrics_epoch += 1
        self.metrics_epoch_tick = self.tick_count
        self.cumulative_completed = 0
        self.throughput = 0.0
        self.history.clear()
        logger.info("Metrics epoch %d started at tick %d (%s)", self.metrics_epoch, self.tick_count, reason)

    # ---- Graph editing --------------------------------------------------
    def _coerce_station_field(self, key: str, value):
        if key == "source_config" and isinstance(value, dict):
            return SourceConfig(**value)
        if key == "working_hours" and isinstance(value, dict):
            return WorkingHours(**value)
        if key == "kind" and not isinstance(value, StationKind):
            return StationKind(value)
        if key == "stats" and isinstance(value, dict):
            return StationStats(**value)
        return value

    def update_station(self, station_id: str, **changes) -> bool:
        st = self.S.get(station_id)
        if st is None:
            logger.warning("update_station: unknown station %r", station_id)
            return False
        epoch_change = []
        for key, value in changes.items():
            if key == "id" or not hasattr(st, key):
                logger.warning("update_station: ignoring field %r", key)
                continue
            try:
                value = self._coerce_station_field(key, value)
            except (TypeError, ValueError) as exc:
                logger.warning("update_station: invalid %r for %s (%s); keeping %r",
                               key, station_id, exc, getattr(st, key))
                continue
            if getattr(st, key) == value:
                continue
            setattr(st, key, value)
            if key in EPOCH_FIELDS:
                epoch_change.append(key)
            if key in ("demand_target", "working_hours"):
                self.demand.by_station.pop(station_id, None)
        if epoch_change:
            self.bump_metrics_epoch("%s: %s" % (station_id, ", ".join(epoch_change)))
        return True

    def update_edge(self, edge_id: str, **changes) -> bool:
        edge = next((e for e in self.edges if e.id == edge_id), None)
        if edge is None:
            logger.warning("update_edge: unknown edge %r", edge_id)
            return False
        changed = []
        for key, value in changes.items():
            if key == "id" or not hasattr(edge, key):
                logger.warning("update_edge: ignoring field %r", key)
                continue
            if key in ("source", "target") and value not in self.S:
                logger.warning("update_edge: unknown station %r", value)
                continue
            if getattr(edge, key) != value:
                setattr(edge, key, value)
                changed.append(key)
        if changed:
            self.router.rebuild(self.edges)
            self.bump_metrics_epoch("edge %s: %s" % (edge_id, ", ".join(changed)))
        return True

    def add_station(self, spec) -> Station:
        st = spec if isinstance(spec, Station) else make_station(spec)
        self.S[st.id] = st
        return st

    def add_edge(self, source: str, target: str, transit_time: Optional[int] = None,
                 edge_id: Optional[str] = None) -> Optional[Edge]:
        if source not in self.S or target not in self.S:
            logger.warning("add_edge: unknown endpoint %r -> %r", source, target)
            return None
        edge = Edge(id=edge_id or f"e-{source}-{target}", source=source, target=target,
                    transit_time=transit_time)
        self.edges.append(edge)
        self.router.rebuild(self.edges)
        self.bump_metrics_epoch("edge %s added" % edge.id)
        return edge

    def delete_edge(self, edge_id: str) -> bool:
        before = len(self.edges)
        self.edges = [e for e in self.edges if e.id != edge_id]
        if len(self.edges) == before:
            return False
        self.router.rebuild(self.edges)
        self.bump_metrics_epoch("edge %s deleted" % edge_id)
        return True

    def delete_station(self, station_id: str) -> bool:
        """Remove a station, its edges, and items at or travelling from it."""
        if station_id not in self.S:
            return False
        del self.S[station_id]
        self.edges = [e for e in self.edges if e.source != station_id and e.target != station_id]
        self.items = [it for it in self.items
                      if it.current_station_id != station_id and it.from_station_id != station_id]
        self.demand.by_station.pop(station_id, None)
        self.router.rebuild(self.edges)
        self.bump_metrics_epoch("station %s deleted" % station_id)
        self._refresh_derived()
        return True

    # ---- Tick -----------------------------------------------------------
    def _resolve(self, item: Item, st: Station, tick: int, resolved: Dict[str, List[int]]) -> int:
        """Quality check then route or finish. Returns 1 if the item COMPLETED."""
        if self.rng.random() >= st.quality:
            resolved[st.id][1] += 1
            item.finish(ItemStatus.FAILED, tick)
            logger.debug("Item %d failed at %s (t=%d)", item.id, st.id, tick)
            return 0
        resolved[st.id][0] += 1
        edge = self.router.pick_edge(st, self.rng)
        if edge is None:
            item.finish(ItemStatus.COMPLETED, tick, st.id if st.is_sink else None)
            logger.debug("Item %d completed at %s (t=%d)", item.id, st.id, tick)
            return 1
        duration = self.router.transit_ticks(edge)
        item.status = ItemStatus.TRANSIT
        item.from_station_id = st.id
        item.current_station_id = edge.target
        item.remaining_time = duration
        item.assigned_duration = duration
        item.transit_progress = 0.0
        return 0

    def _advance(self, item: Item, open_now: Dict[str, bool], tick: int,
                 resolved: Dict[str, List[int]]) -> int:
        if item.status == ItemStatus.PROCESSING:
            st = self.S.get(item.current_station_id)
            if st is None or not open_now.get(st.id, True):
                return 0
            item.total_time += 1
            item.remaining_time -= 1
            item.time_active += 1
            duration = item.assigned_duration or st.processing_time
            item.progress = min(100.0, (duration - item.remaining_time) / duration * 100.0) if duration > 0 else 100.0
            if item.remaining_time <= 0:
                return self._resolve(item, st, tick, resolved)
        elif item.status == ItemStatus.TRANSIT:
            item.total_time += 1
            item.remaining_time -= 1
            item.time_transit += 1
            if item.assigned_duration > 0:
                item.transit_progress = min(1.0, 1.0 - item.remaining_time / item.assigned_duration)
            else:
                item.transit_progress = 1.0
            if item.remaining_time <= 0:
                item.status = ItemStatus.QUEUED
                item.from_station_id = None
                item.remaining_time = 0
                item.progress = 0.0
                item.transit_progress = 0.0
                item.queue_entry_tick = tick
        elif item.status == ItemStatus.QUEUED:
            # Closed stations neither penalize nor advance their queue.
            if open_now.get(item.current_station_id, True) and item.current_station_id in self.S:
                item.total_time += 1
                item.time_waiting += 1
        return 0

    def _assign(self, open_now: Dict[str, bool], tick: int, resolved: Dict[str, List[int]]) -> int:
        occupancy: Dict[str, int] = defaultdict(int)
        queues: Dict[str, List[Item]] = defaultdict(list)
        for item in self.items:
            if item.status == ItemStatus.PROCESSING:
                occupancy[item.current_station_id] += 1
            elif item.status == ItemStatus.QUEUED:
                queues[item.current_station_id].append(item)

        completed = 0
        for st in self.S.values():
            queue = queues.get(st.id, [])
            queue.sort(key=lambda it: (it.queue_entry_tick, it.id))
            started = 0
            if open_now.get(st.id, True):
                free = max(0, st.capacity) - occupancy[st.id]
                for item in queue[:max(0, free)]:
                    started += 1
                    if st.processing_time <= 0:
                        item.assigned_duration = 0
                        item.remaining_time = 0
                        item.progress = 100.0
                        completed += self._resolve(item, st, tick, resolved)
                    else:
                        duration = apply_variability(st.processing_time, st.variability, self.rng)
                        item.status = ItemStatus.PROCESSING
                        item.remaining_time = duration
                        item.assigned_duration = duration
                        item.progress = 0.0
            st.stats.max_queue = max(st.stats.max_queue, len(queue) - started)
        return completed

    def _retain(self):
        cap = max(MAX_FINISHED_ITEMS, self.run.metrics_window_completions)
        active = [it for it in self.items if not it.is_terminal]
        finished = [it for it in self.items if it.is_terminal]
        if len(finished) > cap:
            finished.sort(key=lambda it: it.completion_tick or 0, reverse=True)
            self.items = active + finished[:cap]

    def _refresh_derived(self):
        flagged = {sid for sid, st in self.S.items() if st.validation_error}
        self.items_by_station = items_by_station(self.items)
        self.item_counts = count_items(self.items, flagged)

    def tick(self):
        """Advance the whole system by one logical tick."""
        run = self.run
        tick = self.tick_count
        if run.auto_stop_enabled and run.bounded and tick >= run.target_duration:
            if self.is_running:
                logger.info("Target duration %d reached; stopping", int(run.target_duration))
            self.is_running = False
            self.simulation_progress = 100.0
            return

        # 1. Open-ness
        open_now = {sid: is_working_tick(tick, st.working_hours) for sid, st in self.S.items()}

        # 2. Arrivals
        for sid, count in schedule_arrivals(self.S.values(), tick, open_now, run.demand_mode,
                                            self.demand, run.auto_injection_enabled):
            for _ in range(count):
                self.items.append(self._spawn(sid, tick))
            logger.debug("Spawned %d item(s) at %s (t=%d)", count, sid, tick)

        # Judged before anything moves: what the system is doing this tick.
        transit_only = is_transit_only(self.items)

        # 3. Advance active items
        resolved: Dict[str, List[int]] = defaultdict(lambda: [0, 0])
        completed = 0
        for item in self.items:
            if not item.is_terminal:
                completed += self._advance(item, open_now, tick, resolved)

        # 4. Resource assignment
        completed += self._assign(open_now, tick, resolved)

        # 5. Station stats and advisories
        for sid, (processed, failed) in resolved.items():
            st = self.S.get(sid)
            if st is not None:
                st.stats.processed += processed
                st.stats.failed += failed
        for st in self.S.values():
            self.router.validate(st)
        self.cumulative_completed += completed
        self.throughput = throughput_from_completions(
            self.items, run.metrics_window_completions, self.metrics_epoch)["throughput"]

        # 6. History
        if tick % HISTORY_INTERVAL == 0:
            wip = sum(1 for it in self.items if not it.is_terminal)
            self.history.append(HistoryEntry(tick, wip, self.cumulative_completed, self.throughput))

        # 7. Retention
        self._retain()

        # 8. Clock and progress
        self.clock.policy.count_transit_in_clock = run.count_transit_in_clock
        self.clock.advance(transit_only)
        self.simulation_progress = self.clock.progress(run.target_duration)
        self._refresh_derived()

    # ---- Outputs --------------------------------------------------------
    def lead_metrics(self) -> Dict:
        return lead_metrics(self.items, self.run.metrics_window_completions, self.metrics_epoch)

    def snapshot(self) -> Dict:
        """JSON-serializable view of the current state for collaborators."""
        return {
            "tick_count": self.tick_count,
            "display_tick_count": self.display_tick_count,
            "cumulative_transit_ticks": self.cumulative_transit_ticks,
            "simulation_progress": self.simulation_progress,
            "is_running": self.is_running,
            "metrics_epoch": self.metrics_epoch,
            "metrics_epoch_tick": self.metrics_epoch_tick,
            "items": [it.to_dict() for it in self.items],
            "stations": {sid: st.to_dict() for sid, st in self.S.items()},
            "items_by_station": {sid: [it.id for it in its] for sid, its in self.items_by_station.items()},
            "item_counts": asdict(self.item_counts),
            "history": [asdict(h) for h in self.history],
            "lead_metrics": self.lead_metrics(),
            "throughput": self.throughput,
            "cumulative_completed": self.cumulative_completed,
            "demand_arrivals_generated": self.demand.total_generated,
        }


def run_scenario(cfg: Dict) -> Dict:
    """
    Simulate one seeded run and return its summary.

    The run lasts `sim.ticks` ticks, or the run's target duration when that
    is bounded.
    """
    engine = SimulationEngine.from_config(cfg)
    sim_cfg = cfg.get("sim", {})
    ticks = sim_cfg.get("ticks")
    if ticks is None:
        if not engine.run.bounded:
            raise ValueError("unbounded run needs sim.ticks")
        ticks = int(engine.run.target_duration)

    engine.start()
    while engine.is_running and engine.tick_count < ticks:
        engine.tick()
    engine.pause()

    lead = engine.lead_metrics()
    return {
        "ticks": engine.tick_count,
        "display_ticks": engine.display_tick_count,
        "avg_lead_time": lead["avg_lead_time"],
        "avg_vat": lead["avg_vat"],
        "pce": lead["pce"],
        "sample_size": lead["sample_size"],
        "throughput_per_hour": engine.throughput,
        "completed": engine.cumulative_completed,
        "item_counts": asdict(engine.item_counts),
        "station_stats": {sid: asdict(st.stats) for sid, st in engine.S.items()},
        "advisories": {sid: st.validation_error for sid, st in engine.S.items() if st.validation_error},
        "demand_arrivals": engine.demand.total_generated,
        "history": [asdict(h) for h in engine.history],
    }
