"""
experiments/scenarios.py

Holds scenario definitions (decision variables) to sweep during experiments.
Each scenario overrides the baseline config; `stations` patches individual
stations by id and `graph_file` swaps in another bundled graph.
"""

from __future__ import annotations

BASELINE = {
    "name": "baseline",
    "overrides": {},  # override config keys here per scenario
}

# Extra reviewer and developer capacity on the devops flow.
STAFFED_UP = {
    "name": "staffed_up",
    "overrides": {},
    "stations": {
        "dev": {"capacity": 6},
        "review": {"capacity": 3},
    },
}

# Exact weekly demand instead of a fixed arrival interval.
EXACT_DEMAND = {
    "name": "exact_demand",
    "overrides": {
        "run": {
            "demand_mode": "target",
            "demand_unit": "week",
        },
    },
    "stations": {
        "start": {"demand_target": 120},
    },
}

# Front door only open 6h/day; reported clock includes transit.
SHORT_DAYS = {
    "name": "short_days",
    "overrides": {
        "run": {"count_transit_in_clock": True},
    },
    "stations": {
        "start": {"working_hours": {"enabled": True, "hours_per_day": 6, "days_per_week": 5}},
        "deploy": {"working_hours": {"enabled": True, "hours_per_day": 4, "days_per_week": 4}},
    },
}

HOSPITAL = {
    "name": "hospital",
    "graph_file": "hospital.yaml",
    "overrides": {
        "sim": {"ticks": 480},
        "run": {"duration_preset": "1day"},
    },
}

MANUFACTURING = {
    "name": "manufacturing",
    "graph_file": "manufacturing.yaml",
    "overrides": {
        "sim": {"ticks": 480},
        "run": {"duration_preset": "1day", "metrics_window_completions": 100},
    },
}

SCENARIOS = [BASELINE, STAFFED_UP, EXACT_DEMAND, SHORT_DAYS, HOSPITAL, MANUFACTURING]
