# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# runconfig.py
# -----------------------------------------------------------------------------
# Purpose:
#   Run-level configuration: target duration, speed, clock policy, metrics
#   window, demand mode/unit, plus the named presets those are picked from.
#
# Design notes:
#   - Setters taking a preset key ignore unknown keys (logged, prior value
#     kept) rather than raising.
#   - from_dict() accepts the `run` section of a YAML config.
#
# Usage:
#   run = RunConfiguration.from_dict(cfg.get("run", {}))
#   run.set_duration_preset("1week")
# -----------------------------------------------------------------------------

from __future__ import annotations
import logging
import math
from dataclasses import dataclass, fields
from typing import Dict, Optional

from .metrics import DEFAULT_COMPLETION_WINDOW
from .timemodel import TIME_UNITS, TICKS_PER_HOUR, TICKS_PER_WORKDAY, TICKS_PER_WEEK, WORKING_DAYS_PER_MONTH

logger = logging.getLogger(__name__)

DURATION_PRESETS: Dict[str, float] = {
    "1day": 480,
    "1week": 2400,
    "1month": 10560,
    "3months": 31680,
    "12months": 126720,
    "unlimited": math.inf,
}

# key -> ticks per second; -1 means "as fast as possible"
SPEED_PRESETS: Dict[str, int] = {
    "0.1x": 6,
    "1x": 60,
    "10x": 600,
    "60x": 3600,
    "max": -1,
}

DEMAND_UNITS: Dict[str, int] = {
    "hour": TICKS_PER_HOUR,
    "day": TICKS_PER_WORKDAY,
    "week": TICKS_PER_WEEK,
    "month": TICKS_PER_WORKDAY * WORKING_DAYS_PER_MONTH,
}

DEMAND_MODES = ("auto", "target")


@dataclass
class RunConfiguration:
    duration_preset: str = "unlimited"
    target_duration: float = math.inf
    speed_preset: str = "1x"
    ticks_per_second: int = 60
    auto_stop_enabled: bool = True
    auto_injection_enabled: bool = True
    count_transit_in_clock: bool = False
    metrics_window_completions: int = DEFAULT_COMPLETION_WINDOW
    demand_mode: str = "auto"
    demand_unit: str = "week"
    demand_total_ticks: int = TICKS_PER_WEEK
    time_unit: str = "minutes"
    seed: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "RunConfiguration":
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        for key in list(data):
            if key not in known:
                logger.warning("Ignoring unknown run setting %r", key)
                data.pop(key)
        cfg = cls(**{k: v for k, v in data.items()
                     if k not in ("duration_preset", "speed_preset", "demand_unit")})
        # Presets drive their derived values; explicit numbers still win.
        if "duration_preset" in data:
            cfg.set_duration_preset(data["duration_preset"])
        if "speed_preset" in data:
            cfg.set_speed_preset(data["speed_preset"])
        if "demand_unit" in data:
            cfg.set_demand_unit(data["demand_unit"])
        for key in ("target_duration", "ticks_per_second", "demand_total_ticks"):
            if key in data:
                setattr(cfg, key, data[key])
        if cfg.target_duration is None:
            cfg.target_duration = math.inf
        if cfg.demand_mode not in DEMAND_MODES:
            logger.warning("Unknown demand mode %r; using 'auto'", cfg.demand_mode)
            cfg.demand_mode = "auto"
        return cfg

    @property
    def bounded(self) -> bool:
        return math.isfinite(self.target_duration)

    def set_duration_preset(self, key: str) -> bool:
        if key not in DURATION_PRESETS:
            logger.warning("Unknown duration preset %r; keeping %r", key, self.duration_preset)
            return False
        self.duration_preset = key
        self.target_duration = DURATION_PRESETS[key]
        return True

    def set_speed_preset(self, key: str) -> bool:
        if key not in SPEED_PRESETS:
            logger.warning("Unknown speed preset %r; keeping %r", key, self.speed_preset)
            return False
        self.speed_preset = key
        self.ticks_per_second = SPEED_PRESETS[key]
        return True

    def set_demand_unit(self, key: str) -> bool:
        if key not in DEMAND_UNITS:
            logger.warning("Unknown demand unit %r; keeping %r", key, self.demand_unit)
            return False
        self.demand_unit = key
        self.demand_total_ticks = DEMAND_UNITS[key]
        return True

    def set_time_unit(self, key: str) -> bool:
        if key not in TIME_UNITS:
            logger.warning("Unknown time unit %r; keeping %r", key, self.time_unit)
            return False
        self.time_unit = key
        return True
