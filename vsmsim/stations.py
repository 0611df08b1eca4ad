# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# stations.py
# -----------------------------------------------------------------------------
# Purpose:
#   Build Station and Edge instances from the serializable graph section of
#   a config (as parsed from YAML or JSON).
#
# Design notes:
#   - Defaults depend on the station kind: sinks are instant with effectively
#     unlimited capacity, sources come with rate-based generation enabled.
#   - Malformed graphs are rejected here with ValueError, before any engine
#     state exists; the engine itself never raises for graph problems.
#
# Usage:
#   from vsmsim.stations import load_graph
#   stations, edges = load_graph(cfg["graph"])
# -----------------------------------------------------------------------------

from __future__ import annotations
from typing import Dict, List, Tuple

from .entities import Edge, SourceConfig, Station, StationKind, StationStats, WorkingHours

SINK_CAPACITY = 999

KIND_DEFAULTS = {
    StationKind.SOURCE: {"processing_time": 2, "capacity": 1},
    StationKind.PROCESS: {"processing_time": 10, "capacity": 1},
    StationKind.SINK: {"processing_time": 0, "capacity": SINK_CAPACITY},
}


def make_station(spec: Dict) -> Station:
    """
    Create one station from a dict.

    Parameters
    ----------
    spec : dict
        Needs `id`; everything else falls back to kind-specific defaults.
        Nested `source_config` and `working_hours` are plain dicts.
    """
    if not isinstance(spec, dict) or not spec.get("id"):
        raise ValueError(f"station entry without an id: {spec!r}")
    try:
        kind = StationKind(spec.get("kind", StationKind.PROCESS.value))
    except ValueError:
        raise ValueError(f"station {spec['id']!r} has unknown kind {spec.get('kind')!r}") from None
    defaults = KIND_DEFAULTS[kind]

    src = spec.get("source_config")
    if src is None and kind == StationKind.SOURCE:
        src = {"enabled": True}
    wh = spec.get("working_hours")
    pos = spec.get("position") or (0.0, 0.0)
    stats = spec.get("stats") or {}

    return Station(
        id=str(spec["id"]),
        label=spec.get("label", str(spec["id"])),
        kind=kind,
        processing_time=int(spec.get("processing_time", defaults["processing_time"])),
        capacity=int(spec.get("capacity", defaults["capacity"])),
        quality=float(spec.get("quality", 1.0)),
        variability=float(spec.get("variability", 0.0)),
        routing_weights={str(k): float(v) for k, v in (spec.get("routing_weights") or {}).items()},
        source_config=SourceConfig(**src) if src is not None else None,
        demand_target=spec.get("demand_target"),
        working_hours=WorkingHours(**wh) if wh is not None else None,
        position=(float(pos[0]), float(pos[1])),
        stats=StationStats(**stats),
    )


def make_stations(graph: Dict) -> Dict[str, Station]:
    S: Dict[str, Station] = {}
    for spec in graph.get("stations", []):
        st = make_station(spec)
        if st.id in S:
            raise ValueError(f"duplicate station id {st.id!r}")
        S[st.id] = st
    return S


def make_edges(graph: Dict, stations: Dict[str, Station]) -> List[Edge]:
    edges: List[Edge] = []
    for idx, spec in enumerate(graph.get("edges", [])):
        source, target = spec.get("source"), spec.get("target")
        if source not in stations or target not in stations:
            raise ValueError(f"edge {spec!r} references an unknown station")
        transit = spec.get("transit_time")
        edges.append(Edge(
            id=str(spec.get("id", f"e-{source}-{target}-{idx}")),
            source=source,
            target=target,
            transit_time=int(transit) if transit is not None else None,
        ))
    return edges


def load_graph(graph: Dict) -> Tuple[Dict[str, Station], List[Edge]]:
    """Validate and build a graph dict with `stations` and `edges` lists."""
    if not isinstance(graph, dict) or "stations" not in graph or "edges" not in graph:
        raise ValueError("graph must provide 'stations' and 'edges'")
    stations = make_stations(graph)
    return stations, make_edges(graph, stations)
