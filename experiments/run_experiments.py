"""
experiments/run_experiments.py

Experiment harness that loads the baseline config, applies scenario overrides,
runs multiple seeded replications, and reports VSM KPIs with confidence
intervals. A WIP/throughput curve per scenario is saved under
experiments/output/.
"""

from __future__ import annotations
import argparse
import copy
import logging
import math
import os
from statistics import mean, stdev
from typing import Callable, Dict, List, Optional

import yaml
from scipy.stats import t

from experiments.scenarios import SCENARIOS
from vsmsim.simulation import run_scenario
from vsmsim.timemodel import DEFAULT_TIME_UNIT, format_time_value, time_unit_abbrev

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
CONFIG_DIR = os.path.join(ROOT, "config")

logger = logging.getLogger("experiments")


def load_cfg(path: Optional[str] = None) -> Dict:
    with open(path or os.path.join(CONFIG_DIR, "baseline.yaml"), "r") as f:
        return yaml.safe_load(f)


def apply_overrides(cfg: Dict, overrides: Dict) -> Dict:
    """Apply scenario overrides (recursive merge) on top of the base config."""
    new = copy.deepcopy(cfg)

    def _merge(dst: Dict, src: Dict):
        for key, val in src.items():
            if isinstance(val, dict) and isinstance(dst.get(key), dict):
                _merge(dst[key], val)
            else:
                dst[key] = copy.deepcopy(val)

    _merge(new, overrides)
    return new


def apply_scenario(cfg: Dict, scenario: Dict) -> Dict:
    """
    Build the config for one scenario: optional graph swap, recursive
    overrides, then per-station patches keyed by station id.
    """
    new = copy.deepcopy(cfg)
    graph_file = scenario.get("graph_file")
    if graph_file:
        new["graph"] = load_cfg(os.path.join(CONFIG_DIR, graph_file))["graph"]
    new = apply_overrides(new, scenario.get("overrides", {}))
    patches = scenario.get("stations", {})
    if patches:
        by_id = {st["id"]: st for st in new["graph"]["stations"]}
        for sid, patch in patches.items():
            if sid not in by_id:
                raise KeyError(f"scenario {scenario['name']!r} patches unknown station {sid!r}")
            by_id[sid].update(copy.deepcopy(patch))
    return new


def mean_ci(values: List[float], confidence_level: float) -> tuple[float, float]:
    """Return (mean, half-width) using a Student t critical value."""
    if not values:
        return 0.0, 0.0
    mu = mean(values)
    n = len(values)
    if n < 2:
        return mu, 0.0
    level = min(max(confidence_level, 0.0), 0.999999)
    alpha = 1.0 - level
    tcrit = t.ppf(1 - alpha / 2.0, n - 1)
    return mu, tcrit * (stdev(values) / math.sqrt(n))


def series(results: List[Dict], extractor: Callable[[Dict], float]) -> List[float]:
    """Collect a numeric series from each replication result."""
    return [float(extractor(res)) for res in results]


def average_history(results: List[Dict]) -> List[Dict[str, float]]:
    """Average the sampled history across replications, tick by tick."""
    by_tick: Dict[int, List[Dict]] = {}
    for res in results:
        for entry in res.get("history", []):
            by_tick.setdefault(entry["tick"], []).append(entry)
    out = []
    for tick in sorted(by_tick):
        rows = by_tick[tick]
        out.append({
            "tick": tick,
            "wip": sum(r["wip"] for r in rows) / len(rows),
            "throughput": sum(r["throughput"] for r in rows) / len(rows),
        })
    return out


def plot_history(history: List[Dict[str, float]], scenario_name: str) -> Optional[str]:
    """Save WIP and throughput over time for one scenario as a PNG."""
    if not history:
        return None
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    x = [pt["tick"] for pt in history]
    fig, ax_wip = plt.subplots(figsize=(9, 5))
    ax_wip.plot(x, [pt["wip"] for pt in history], label="WIP", color="#d97706")
    ax_wip.set_xlabel("Time (ticks)")
    ax_wip.set_ylabel("Work in progress (items)")
    ax_tp = ax_wip.twinx()
    ax_tp.plot(x, [pt["throughput"] for pt in history], label="Throughput", color="#2563eb")
    ax_tp.set_ylabel("Throughput (items/hour)")
    ax_wip.set_xlim(left=0)
    ax_wip.grid(True, linestyle="--", alpha=0.4)
    fig.legend(loc="upper left")
    ax_wip.set_title(f"{scenario_name}: WIP and throughput")
    out_dir = os.path.join(ROOT, "experiments", "output")
    os.makedirs(out_dir, exist_ok=True)
    out_path = os.path.join(out_dir, f"{scenario_name.lower().replace(' ', '_')}_wip.png")
    fig.tight_layout()
    fig.savefig(out_path, dpi=160)
    plt.close(fig)
    return out_path


def run_replications(sc_cfg: Dict, replications: int) -> List[Dict]:
    base_seed = sc_cfg.get("sim", {}).get("seed", 0)
    results = []
    for rep in range(replications):
        rep_cfg = copy.deepcopy(sc_cfg)
        rep_cfg.setdefault("sim", {})["seed"] = base_seed + rep
        rep_cfg.setdefault("run", {})["seed"] = base_seed + rep
        results.append(run_scenario(rep_cfg))
    return results


def report(name: str, results: List[Dict], confidence: float, time_unit: str = DEFAULT_TIME_UNIT):
    level_pct = confidence * 100.0
    unit = time_unit_abbrev(time_unit)
    lead = mean_ci(series(results, lambda r: r["avg_lead_time"]), confidence)
    vat = mean_ci(series(results, lambda r: r["avg_vat"]), confidence)
    pce = mean_ci(series(results, lambda r: r["pce"]), confidence)
    tp = mean_ci(series(results, lambda r: r["throughput_per_hour"]), confidence)
    done = mean_ci(series(results, lambda r: r["completed"]), confidence)
    failed = mean_ci(series(results, lambda r: r["item_counts"]["failed"]), confidence)
    wip = mean_ci(series(results, lambda r: r["item_counts"]["wip"]), confidence)
    print(f"Scenario: {name} (replications={len(results)}, {level_pct:.1f}% CI)")
    print(f"  Avg lead time: {format_time_value(lead[0], time_unit)} "
          f"± {format_time_value(lead[1], time_unit)} {unit}")
    print(f"  Avg value-added time: {format_time_value(vat[0], time_unit)} "
          f"± {format_time_value(vat[1], time_unit)} {unit}")
    print(f"  PCE: {pce[0]:.1f}% ± {pce[1]:.1f}%")
    print(f"  Throughput: {tp[0]:.2f} ± {tp[1]:.2f} items/hour")
    print(f"  Completed: {done[0]:.1f} ± {done[1]:.1f}")
    print(f"  Failed (retained window): {failed[0]:.1f} ± {failed[1]:.1f}")
    print(f"  WIP at end: {wip[0]:.1f} ± {wip[1]:.1f}")
    advisories = {k: v for res in results for k, v in res.get("advisories", {}).items()}
    if advisories:
        print(f"  Advisories: {advisories}")


def main(argv: Optional[List[str]] = None):
    """Entry point: drive scenarios and replications, report KPIs."""
    parser = argparse.ArgumentParser(description="Run VSM simulation scenarios.")
    parser.add_argument("--config", help="baseline YAML (default: config/baseline.yaml)")
    parser.add_argument("--scenario", action="append", help="scenario name; repeatable")
    parser.add_argument("--replications", type=int, help="override experiments.replications")
    parser.add_argument("--no-plot", action="store_true", help="skip PNG output")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    cfg = load_cfg(args.config)
    exp_cfg = cfg.get("experiments", {})
    replications = max(1, int(args.replications or exp_cfg.get("replications", 1)))
    confidence = float(exp_cfg.get("confidence_level", 0.95))

    scenarios = SCENARIOS
    if args.scenario:
        index = {sc["name"]: sc for sc in SCENARIOS}
        missing = [name for name in args.scenario if name not in index]
        if missing:
            raise KeyError(f"unknown scenario(s): {', '.join(missing)}")
        scenarios = [index[name] for name in args.scenario]

    for sc in scenarios:
        sc_cfg = apply_scenario(cfg, sc)
        logger.info("Running %s x%d", sc["name"], replications)
        results = run_replications(sc_cfg, replications)
        report(sc["name"], results, confidence, sc_cfg.get("run", {}).get("time_unit", DEFAULT_TIME_UNIT))
        if not args.no_plot:
            path = plot_history(average_history(results), sc["name"])
            if path:
                print(f"  WIP/throughput plot saved to: {path}")
        print("-")


if __name__ == "__main__":
    main()
