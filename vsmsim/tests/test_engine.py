import json
import random
import unittest

from vsmsim.entities import NO_OUTPUT_PATH, ZERO_CAPACITY, ItemStatus, StationKind
from vsmsim.runconfig import RunConfiguration
from vsmsim.simulation import SimulationEngine
from vsmsim.stations import load_graph


def build_engine(stations, edges, seed=1, **run_settings):
    S, E = load_graph({"stations": stations, "edges": edges})
    run = RunConfiguration.from_dict(run_settings)
    return SimulationEngine(S, E, run, random.Random(seed))


def line(processing_time=3, capacity=1, quality=1.0, transit_time=1, **station_extra):
    """One process station `a` feeding a sink `b`."""
    a = {"id": "a", "processing_time": processing_time, "capacity": capacity, "quality": quality}
    a.update(station_extra)
    stations = [a, {"id": "b", "kind": "sink"}]
    edges = [{"id": "ab", "source": "a", "target": "b", "transit_time": transit_time}]
    return stations, edges


class CapacityTest(unittest.TestCase):
    def test_never_more_processing_than_capacity(self) -> None:
        engine = build_engine(*line(processing_time=10, capacity=1))
        for _ in range(3):
            engine.add_item("a")
        engine.tick()
        self.assertEqual(engine.item_counts.processing, 1)
        self.assertEqual(engine.item_counts.queued, 2)
        self.assertEqual(engine.S["a"].stats.max_queue, 2)
        # FIFO: the first injected item got the slot.
        first = min(engine.items, key=lambda it: it.id)
        self.assertEqual(first.status, ItemStatus.PROCESSING)
        for _ in range(5):
            engine.tick()
            busy = [it for it in engine.items if it.status == ItemStatus.PROCESSING]
            self.assertLessEqual(len(busy), 1)


class LifecycleTest(unittest.TestCase):
    def test_transit_then_complete_at_sink(self) -> None:
        engine = build_engine(*line(processing_time=3, transit_time=1))
        item = engine.add_item("a")
        for _ in range(5):
            engine.tick()

        self.assertEqual(item.status, ItemStatus.COMPLETED)
        self.assertEqual(item.terminal_station_id, "b")
        self.assertIsNone(item.current_station_id)
        self.assertEqual(item.time_active, 3)
        self.assertEqual(item.time_waiting, 1)
        self.assertEqual(item.time_transit, 1)
        self.assertEqual(item.total_time, 5)
        self.assertEqual(item.lead_time, 4)
        self.assertEqual(engine.S["a"].stats.processed, 1)
        self.assertEqual(engine.S["b"].stats.processed, 1)

    def test_display_clock_excludes_transit_only_ticks(self) -> None:
        engine = build_engine(*line(processing_time=3, transit_time=1))
        engine.add_item("a")
        for _ in range(5):
            engine.tick()
        self.assertEqual(engine.tick_count, 5)
        self.assertEqual(engine.cumulative_transit_ticks, 1)
        self.assertEqual(engine.display_tick_count, 4)
        engine.set_count_transit_in_clock(True)
        self.assertEqual(engine.display_tick_count, 5)

    def test_quality_zero_fails_item(self) -> None:
        engine = build_engine(*line(processing_time=1, quality=0.0))
        item = engine.add_item("a")
        engine.tick()
        engine.tick()
        self.assertEqual(item.status, ItemStatus.FAILED)
        self.assertIsNone(item.terminal_station_id)
        self.assertEqual(engine.S["a"].stats.failed, 1)
        self.assertEqual(engine.item_counts.failed, 1)
        self.assertEqual(engine.item_counts.wip, 0)

    def test_instant_station_resolves_on_assignment(self) -> None:
        engine = build_engine(*line(processing_time=0, quality=0.0))
        item = engine.add_item("a")
        engine.tick()
        self.assertEqual(item.status, ItemStatus.FAILED)
        self.assertEqual(item.completion_tick, 0)

    def test_time_buckets_sum_to_total(self) -> None:
        stations = [
            {"id": "src", "kind": "source", "processing_time": 2,
             "source_config": {"enabled": True, "interval": 3, "batch_size": 2}},
            {"id": "work", "processing_time": 7, "capacity": 2, "quality": 0.9, "variability": 0.4,
             "working_hours": {"enabled": True, "hours_per_day": 2, "days_per_week": 5},
             "position": [300, 0]},
            {"id": "end", "kind": "sink", "position": [600, 0]},
        ]
        edges = [
            {"source": "src", "target": "work"},
            {"source": "work", "target": "end"},
        ]
        engine = build_engine(stations, edges, seed=11)
        for _ in range(700):
            engine.tick()
        self.assertTrue(engine.items)
        for it in engine.items:
            self.assertEqual(it.time_active + it.time_waiting + it.time_transit, it.total_time)


class WorkingHoursTest(unittest.TestCase):
    def test_closed_station_holds_queue_without_waiting(self) -> None:
        engine = build_engine(*line(working_hours={"enabled": True, "hours_per_day": 0, "days_per_week": 5}))
        item = engine.add_item("a")
        for _ in range(10):
            engine.tick()
        self.assertEqual(item.status, ItemStatus.QUEUED)
        self.assertEqual(item.time_waiting, 0)
        self.assertEqual(item.total_time, 0)


class InjectionTest(unittest.TestCase):
    def source_line(self):
        stations = [
            {"id": "src", "kind": "source", "processing_time": 2},
            {"id": "end", "kind": "sink"},
        ]
        return stations, [{"source": "src", "target": "end", "transit_time": 1}]

    def test_rate_based_source_spawns_every_interval(self) -> None:
        engine = build_engine(*self.source_line())
        for _ in range(100):
            engine.tick()
        self.assertEqual(sorted(it.spawn_tick for it in engine.items), [0, 20, 40, 60, 80])

    def test_auto_injection_switch(self) -> None:
        engine = build_engine(*self.source_line(), auto_injection_enabled=False)
        for _ in range(100):
            engine.tick()
        self.assertEqual(engine.items, [])


class DemandTest(unittest.TestCase):
    def test_exact_hourly_demand(self) -> None:
        stations = [
            {"id": "src", "kind": "source", "processing_time": 0, "capacity": 100, "demand_target": 60},
            {"id": "end", "kind": "sink"},
        ]
        edges = [{"source": "src", "target": "end"}]
        engine = build_engine(stations, edges, demand_mode="target", demand_unit="hour")
        for _ in range(100):
            engine.tick()
        self.assertEqual(engine.demand.generated_for("src"), 60)
        self.assertEqual(len(engine.items), 60)
        self.assertTrue(all(it.spawn_tick < 60 for it in engine.items))

    def test_demand_spread_over_open_ticks(self) -> None:
        stations = [
            {"id": "src", "kind": "source", "processing_time": 0, "capacity": 100, "demand_target": 10,
             "working_hours": {"enabled": True, "hours_per_day": 1, "days_per_week": 5}},
            {"id": "end", "kind": "sink"},
        ]
        edges = [{"source": "src", "target": "end"}]
        engine = build_engine(stations, edges, demand_mode="target", demand_unit="day")
        for _ in range(600):
            engine.tick()
        self.assertEqual(engine.demand.total_generated, 10)
        self.assertEqual(len(engine.items), 10)
        self.assertTrue(all(it.spawn_tick < 60 for it in engine.items))

    def test_demand_target_needs_enabled_source(self) -> None:
        stations = [
            {"id": "off", "kind": "source", "processing_time": 0, "demand_target": 60,
             "source_config": {"enabled": False}},
            {"id": "work", "processing_time": 0, "demand_target": 60},
            {"id": "end", "kind": "sink"},
        ]
        edges = [{"source": "off", "target": "work"}, {"source": "work", "target": "end"}]
        engine = build_engine(stations, edges, demand_mode="target", demand_unit="hour")
        for _ in range(60):
            engine.tick()
        self.assertEqual(engine.items, [])
        self.assertEqual(engine.demand.total_generated, 0)

    def test_rate_sources_silent_in_target_mode(self) -> None:
        stations = [
            {"id": "src", "kind": "source", "processing_time": 0},
            {"id": "end", "kind": "sink"},
        ]
        engine = build_engine(stations, [{"source": "src", "target": "end"}], demand_mode="target")
        for _ in range(100):
            engine.tick()
        self.assertEqual(engine.items, [])


class RoutingTest(unittest.TestCase):
    def test_weighted_split(self) -> None:
        stations = [
            {"id": "r", "processing_time": 1, "capacity": 1000, "routing_weights": {"x": 1, "y": 4}},
            {"id": "x", "kind": "sink"},
            {"id": "y", "kind": "sink"},
        ]
        edges = [
            {"source": "r", "target": "x", "transit_time": 1},
            {"source": "r", "target": "y", "transit_time": 1},
        ]
        engine = build_engine(stations, edges, seed=42)
        for _ in range(1000):
            engine.add_item("r")
        for _ in range(10):
            engine.tick()
        to_x = engine.S["x"].stats.processed
        to_y = engine.S["y"].stats.processed
        self.assertEqual(to_x + to_y, 1000)
        self.assertGreater(to_x, 150)
        self.assertLess(to_x, 250)


class ThroughputTest(unittest.TestCase):
    def run_feed(self, transit_time):
        stations = [
            {"id": "src", "kind": "source", "processing_time": 0, "capacity": 10,
             "source_config": {"enabled": True, "interval": 1, "batch_size": 1}},
            {"id": "end", "kind": "sink"},
        ]
        edges = [{"source": "src", "target": "end", "transit_time": transit_time}]
        engine = build_engine(stations, edges)
        for _ in range(120):
            engine.tick()
        return engine

    def test_steady_feed_near_sixty_per_hour(self) -> None:
        engine = self.run_feed(5)
        self.assertAlmostEqual(engine.throughput, 50 / 49 * 60, places=6)
        self.assertGreaterEqual(engine.throughput, 60)
        self.assertLessEqual(engine.throughput, 63)

    def test_transit_time_does_not_change_throughput(self) -> None:
        short = self.run_feed(5).throughput
        long = self.run_feed(20).throughput
        self.assertLessEqual(abs(short - long), 1.0)

    def test_epoch_bump_resets_rolling_metrics(self) -> None:
        engine = self.run_feed(5)
        self.assertTrue(engine.history)
        self.assertGreater(engine.cumulative_completed, 0)

        self.assertTrue(engine.update_station("src", processing_time=1))
        self.assertEqual(engine.metrics_epoch, 1)
        self.assertEqual(engine.throughput, 0.0)
        self.assertEqual(engine.cumulative_completed, 0)
        self.assertEqual(len(engine.history), 0)
        engine.tick()
        self.assertEqual(engine.throughput, 0.0)
        self.assertEqual(engine.lead_metrics()["sample_size"], 0)

    def test_each_timing_field_bumps_epoch(self) -> None:
        changes = {
            "capacity": 2,
            "quality": 0.5,
            "variability": 0.3,
            "routing_weights": {"end": 2.0},
            "source_config": {"enabled": True, "interval": 5, "batch_size": 1},
            "demand_target": 10,
        }
        for field_name, value in changes.items():
            with self.subTest(field=field_name):
                engine = self.run_feed(5)
                self.assertTrue(engine.update_station("src", **{field_name: value}))
                self.assertEqual(engine.metrics_epoch, 1)
                self.assertEqual(engine.metrics_epoch_tick, 120)
                self.assertEqual(engine.snapshot()["metrics_epoch_tick"], 120)
                self.assertEqual(engine.throughput, 0.0)
                self.assertEqual(len(engine.history), 0)

    def test_update_with_same_value_keeps_epoch(self) -> None:
        engine = self.run_feed(5)
        engine.update_station("src", processing_time=0, label="Intake")
        self.assertEqual(engine.metrics_epoch, 0)
        self.assertEqual(engine.S["src"].label, "Intake")


class ClockContractTest(unittest.TestCase):
    def busy_line(self, **run_settings):
        stations = [
            {"id": "src", "kind": "source", "processing_time": 0, "capacity": 10,
             "source_config": {"enabled": True, "interval": 3, "batch_size": 1}},
            {"id": "a", "processing_time": 3, "capacity": 1},
            {"id": "b", "kind": "sink"},
        ]
        edges = [
            {"source": "src", "target": "a", "transit_time": 1},
            {"source": "a", "target": "b", "transit_time": 1},
        ]
        return build_engine(stations, edges, **run_settings)

    def test_display_clock_never_decreases_or_freezes(self) -> None:
        engine = self.busy_line()
        previous = engine.display_tick_count
        for _ in range(50):
            engine.tick()
            self.assertGreaterEqual(engine.display_tick_count, previous)
            previous = engine.display_tick_count
        self.assertGreater(engine.display_tick_count, 10)

    def test_transit_inclusive_clock_tracks_raw_ticks(self) -> None:
        engine = build_engine(*line(processing_time=3, transit_time=1), count_transit_in_clock=True)
        engine.add_item("a")
        for _ in range(20):
            engine.tick()
            self.assertEqual(engine.display_tick_count, engine.tick_count)
        self.assertEqual(engine.cumulative_transit_ticks, 1)


class RunControlTest(unittest.TestCase):
    def test_history_sampled_every_five_ticks(self) -> None:
        engine = build_engine(*line())
        engine.tick()
        self.assertEqual([h.tick for h in engine.history], [0])
        for _ in range(10):
            engine.tick()
        self.assertEqual([h.tick for h in engine.history], [0, 5, 10])

    def test_auto_stop_at_target_duration(self) -> None:
        engine = build_engine(*line(), duration_preset="1day")
        engine.start()
        for _ in range(240):
            engine.tick()
        self.assertEqual(engine.simulation_progress, 50.0)
        for _ in range(300):
            engine.tick()
        self.assertEqual(engine.tick_count, 480)
        self.assertFalse(engine.is_running)
        self.assertEqual(engine.simulation_progress, 100.0)

    def test_unbounded_run_reports_no_progress(self) -> None:
        engine = build_engine(*line())
        for _ in range(50):
            engine.tick()
        self.assertEqual(engine.simulation_progress, 0.0)

    def test_step_pauses(self) -> None:
        engine = build_engine(*line())
        engine.start()
        engine.step()
        self.assertFalse(engine.is_running)
        self.assertEqual(engine.tick_count, 1)

    def test_reset_keeps_graph(self) -> None:
        engine = build_engine(*line())
        engine.add_item("a")
        for _ in range(20):
            engine.tick()
        engine.reset()
        self.assertEqual(engine.items, [])
        self.assertEqual(engine.tick_count, 0)
        self.assertEqual(len(engine.history), 0)
        self.assertEqual(engine.S["a"].stats.processed, 0)
        self.assertEqual(set(engine.S), {"a", "b"})

    def test_clear_drops_graph(self) -> None:
        engine = build_engine(*line())
        engine.clear()
        self.assertEqual(engine.S, {})
        self.assertEqual(engine.edges, [])
        engine.tick()
        self.assertEqual(engine.tick_count, 1)

    def test_invalid_presets_are_ignored(self) -> None:
        engine = build_engine(*line(), duration_preset="1week")
        self.assertFalse(engine.set_duration_preset("1fortnight"))
        self.assertEqual(engine.run.target_duration, 2400)
        self.assertFalse(engine.set_speed_preset("warp"))
        self.assertEqual(engine.run.ticks_per_second, 60)
        self.assertFalse(engine.set_demand_unit("decade"))
        self.assertFalse(engine.set_demand_mode("sometimes"))
        self.assertEqual(engine.metrics_epoch, 0)


class AdvisoryTest(unittest.TestCase):
    def test_no_output_path_and_zero_capacity(self) -> None:
        stations = [
            {"id": "dead-end"},
            {"id": "blocked", "capacity": 0},
            {"id": "end", "kind": "sink"},
        ]
        edges = [{"source": "blocked", "target": "end"}]
        engine = build_engine(stations, edges)
        engine.add_item("blocked")
        engine.tick()
        self.assertEqual(engine.S["dead-end"].validation_error, NO_OUTPUT_PATH)
        self.assertEqual(engine.S["blocked"].validation_error, ZERO_CAPACITY)
        self.assertIsNone(engine.S["end"].validation_error)
        self.assertEqual(engine.item_counts.stuck, 1)

    def test_adding_an_edge_clears_advisory(self) -> None:
        stations = [{"id": "a"}, {"id": "end", "kind": "sink"}]
        engine = build_engine(stations, [])
        engine.tick()
        self.assertEqual(engine.S["a"].validation_error, NO_OUTPUT_PATH)
        self.assertIsNotNone(engine.add_edge("a", "end"))
        self.assertEqual(engine.metrics_epoch, 1)
        engine.tick()
        self.assertIsNone(engine.S["a"].validation_error)


class EditingTest(unittest.TestCase):
    def test_delete_station_drops_edges_and_items(self) -> None:
        engine = build_engine(*line())
        engine.add_item("a")
        engine.add_item("b")
        self.assertTrue(engine.delete_station("a"))
        self.assertNotIn("a", engine.S)
        self.assertEqual(engine.edges, [])
        self.assertEqual([it.current_station_id for it in engine.items], ["b"])
        self.assertEqual(engine.metrics_epoch, 1)
        self.assertFalse(engine.delete_station("a"))

    def test_unknown_ids_are_noops(self) -> None:
        engine = build_engine(*line())
        self.assertIsNone(engine.add_item("nowhere"))
        self.assertFalse(engine.update_station("nowhere", capacity=3))
        self.assertFalse(engine.update_edge("nowhere", transit_time=3))
        self.assertIsNone(engine.add_edge("a", "nowhere"))
        self.assertFalse(engine.delete_edge("nowhere"))
        self.assertEqual(engine.metrics_epoch, 0)

    def test_invalid_station_values_are_ignored(self) -> None:
        engine = build_engine(*line())
        self.assertTrue(engine.update_station("a", kind="warehouse"))
        self.assertTrue(engine.update_station("a", source_config={"interval": 5, "colour": "red"}))
        self.assertTrue(engine.update_station("a", working_hours={"shifts": 2}, capacity=3))
        st = engine.S["a"]
        self.assertEqual(st.kind, StationKind.PROCESS)
        self.assertIsNone(st.source_config)
        self.assertIsNone(st.working_hours)
        self.assertEqual(st.capacity, 3)
        self.assertEqual(engine.metrics_epoch, 1)

    def test_update_edge_transit_bumps_epoch(self) -> None:
        engine = build_engine(*line(transit_time=1))
        self.assertTrue(engine.update_edge("ab", transit_time=9))
        self.assertEqual(engine.metrics_epoch, 1)
        self.assertEqual(engine.router.transit_ticks(engine.edges[0]), 9)

    def test_working_hours_dict_is_coerced(self) -> None:
        engine = build_engine(*line())
        engine.update_station("a", working_hours={"enabled": True, "hours_per_day": 4, "days_per_week": 5})
        self.assertEqual(engine.S["a"].working_hours.hours_per_day, 4)
        self.assertEqual(engine.metrics_epoch, 1)

    def test_snapshot_is_json_serializable(self) -> None:
        engine = build_engine(*line())
        engine.add_item("a")
        for _ in range(6):
            engine.tick()
        snap = engine.snapshot()
        json.dumps(snap)
        self.assertEqual(snap["tick_count"], 6)
        self.assertEqual(snap["item_counts"]["completed"], 1)
        self.assertEqual(snap["stations"]["b"]["kind"], "sink")


if __name__ == "__main__":
    unittest.main()
