# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# entities.py
# -----------------------------------------------------------------------------
# Purpose:
#   Entity definitions for the VSM tick simulation: Station, Edge, Item and
#   the small records hung off them (source config, working hours, stats).
#
# Design notes:
#   - Stations share one configuration shape; `kind` makes "is this a sink"
#     and "can this generate arrivals" explicit instead of label-sniffing.
#   - Items carry three time buckets (active/waiting/transit) whose sum is
#     the item's totalTime once it reaches a terminal status.
#
# Usage:
#   from vsmsim.entities import Station, Edge, Item, ItemStatus
# -----------------------------------------------------------------------------

from __future__ import annotations
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, Optional, Tuple


class ItemStatus(str, Enum):
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    TRANSIT = "TRANSIT"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def terminal(self) -> bool:
        return self in (ItemStatus.COMPLETED, ItemStatus.FAILED)


class StationKind(str, Enum):
    SOURCE = "source"
    PROCESS = "process"
    SINK = "sink"


NO_OUTPUT_PATH = "No Output Path"
ZERO_CAPACITY = "Zero Capacity"


@dataclass
class SourceConfig:
    enabled: bool = False
    interval: int = 20               # ticks between batches
    batch_size: int = 1              # items per batch


@dataclass
class WorkingHours:
    enabled: bool = False
    hours_per_day: int = 8           # 0..8
    days_per_week: int = 5           # 0..5


@dataclass
class StationStats:
    processed: int = 0
    failed: int = 0
    max_queue: int = 0


@dataclass
class Station:
    id: str
    label: str = ""
    kind: StationKind = StationKind.PROCESS
    processing_time: int = 10        # ticks per item, 0 = instant
    capacity: int = 1                # concurrent PROCESSING slots
    quality: float = 1.0             # pass probability
    variability: float = 0.0         # 0..1 spread of the processing time
    routing_weights: Dict[str, float] = field(default_factory=dict)
    source_config: Optional[SourceConfig] = None
    demand_target: Optional[int] = None
    working_hours: Optional[WorkingHours] = None
    position: Tuple[float, float] = (0.0, 0.0)
    stats: StationStats = field(default_factory=StationStats)
    validation_error: Optional[str] = None

    @property
    def is_sink(self) -> bool:
        return self.kind == StationKind.SINK

    @property
    def generates_arrivals(self) -> bool:
        """True when rate-based generation is switched on for this station."""
        return self.source_config is not None and self.source_config.enabled

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data


@dataclass
class Edge:
    id: str
    source: str
    target: str
    transit_time: Optional[int] = None   # explicit override in ticks


@dataclass
class Item:
    id: int
    current_station_id: Optional[str]
    spawn_tick: int
    metrics_epoch: int = 0
    status: ItemStatus = ItemStatus.QUEUED
    from_station_id: Optional[str] = None   # set only while TRANSIT
    remaining_time: int = 0
    assigned_duration: int = 0              # duration chosen when the phase began
    progress: float = 0.0                   # 0..100 while PROCESSING
    transit_progress: float = 0.0           # 0..1 while TRANSIT
    queue_entry_tick: int = 0
    completion_tick: Optional[int] = None
    terminal_station_id: Optional[str] = None
    time_active: int = 0
    time_waiting: int = 0
    time_transit: int = 0
    total_time: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status.terminal

    @property
    def lead_time(self) -> int:
        # Transit is neither value-adding nor queue-waiting.
        return max(0, self.time_active + self.time_waiting)

    def finish(self, status: ItemStatus, tick: int, terminal_station_id: Optional[str] = None):
        self.status = status
        self.current_station_id = None
        self.from_station_id = None
        self.remaining_time = 0
        self.completion_tick = tick
        self.terminal_station_id = terminal_station_id

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass
class HistoryEntry:
    tick: int
    wip: int
    total_completed: int
    throughput: float


@dataclass
class ItemCounts:
    wip: int = 0
    completed: int = 0
    failed: int = 0
    queued: int = 0
    processing: int = 0
    transit: int = 0
    stuck: int = 0
