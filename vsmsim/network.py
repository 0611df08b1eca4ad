# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# network.py
# -----------------------------------------------------------------------------
# Purpose:
#   Router and network wiring. Indexes outgoing edges per station, decides
#   where an item goes after a successful processing step, and flags
#   stations whose configuration stops items from progressing.
#
# Design notes:
#   - Routing weights default to 1 for targets without an explicit weight and
#     are clamped to >= 0. An all-zero weight set falls back to a uniform
#     choice instead of dividing by zero.
#   - Advisories never stop the run; they are strings on the station.
#
# Usage:
#   router = Router(stations, edges)
#   edge = router.pick_edge(station, rng)
# -----------------------------------------------------------------------------

from __future__ import annotations
import logging
import random
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from .entities import Edge, Station, NO_OUTPUT_PATH, ZERO_CAPACITY
from .timemodel import manhattan, transit_duration

logger = logging.getLogger(__name__)


class Router:
    def __init__(self, stations: Dict[str, Station], edges: Iterable[Edge]):
        self.S = stations
        self.rebuild(edges)

    def rebuild(self, edges: Iterable[Edge]):
        """Re-index outgoing edges; call after the graph is edited."""
        self.by_source: Dict[str, List[Edge]] = defaultdict(list)
        for edge in edges:
            self.by_source[edge.source].append(edge)

    def outgoing(self, station_id: str) -> List[Edge]:
        return self.by_source.get(station_id, [])

    def pick_edge(self, station: Station, rng: random.Random) -> Optional[Edge]:
        """
        Weighted choice among the station's outgoing edges.

        Single-edge stations skip sampling so they consume no random draw.
        """
        outgoing = self.outgoing(station.id)
        if not outgoing:
            return None
        if len(outgoing) == 1:
            return outgoing[0]

        weights = [max(0.0, float(station.routing_weights.get(e.target, 1.0))) for e in outgoing]
        total = sum(weights)
        if total <= 0:
            return rng.choice(outgoing)
        r = rng.random() * total
        for edge, w in zip(outgoing, weights):
            if r < w:
                return edge
            r -= w
        return outgoing[-1]

    def transit_ticks(self, edge: Edge) -> int:
        src = self.S.get(edge.source)
        dst = self.S.get(edge.target)
        distance = manhattan(src.position, dst.position) if src and dst else 0.0
        return transit_duration(distance, edge.transit_time)

    def validation_error(self, station: Station) -> Optional[str]:
        if station.capacity == 0:
            return ZERO_CAPACITY
        if not station.is_sink and not self.outgoing(station.id):
            return NO_OUTPUT_PATH
        return None

    def validate(self, station: Station):
        error = self.validation_error(station)
        if error != station.validation_error and error is not None:
            logger.warning("Station %s flagged: %s", station.id, error)
        station.validation_error = error
