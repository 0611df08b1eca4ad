import unittest

from vsmsim.entities import Item, ItemStatus
from vsmsim.metrics import (
    completion_window, completion_window_label, count_items, items_by_station,
    lead_metrics, throughput_from_completions,
)


def done(item_id, spawn, active, waiting, transit=0, epoch=0, status=ItemStatus.COMPLETED):
    it = Item(id=item_id, current_station_id=None, spawn_tick=spawn, metrics_epoch=epoch,
              time_active=active, time_waiting=waiting, time_transit=transit)
    it.total_time = active + waiting + transit
    it.status = status
    it.completion_tick = spawn + it.total_time
    return it


class LeadMetricsTest(unittest.TestCase):
    def test_empty_window(self) -> None:
        m = lead_metrics([])
        self.assertEqual((m["avg_lead_time"], m["avg_vat"], m["pce"], m["sample_size"]), (0.0, 0.0, 0.0, 0))

    def test_transit_excluded_from_lead_time(self) -> None:
        items = [done(1, 0, 10, 30, transit=50), done(2, 5, 20, 20, transit=5)]
        m = lead_metrics(items)
        self.assertEqual(m["avg_lead_time"], 40.0)
        self.assertEqual(m["avg_vat"], 15.0)
        self.assertAlmostEqual(m["pce"], 37.5)
        self.assertEqual(m["sample_size"], 2)

    def test_window_keeps_newest_and_skips_failures(self) -> None:
        items = [done(i, i * 10, 5, 5) for i in range(10)]
        items.append(done(99, 500, 1, 1, status=ItemStatus.FAILED))
        window = completion_window(items, 3)
        self.assertEqual([it.id for it in window], [9, 8, 7])
        self.assertEqual(completion_window_label(3), "last 3 completions")

    def test_epoch_filter(self) -> None:
        items = [done(1, 0, 5, 5, epoch=0), done(2, 0, 50, 0, epoch=1)]
        m = lead_metrics(items, metrics_epoch=1)
        self.assertEqual(m["sample_size"], 1)
        self.assertEqual(m["pce"], 100.0)


class ThroughputTest(unittest.TestCase):
    def test_single_completion_is_zero(self) -> None:
        self.assertEqual(throughput_from_completions([done(1, 0, 5, 5)])["throughput"], 0.0)

    def test_rate_from_effective_completion(self) -> None:
        # Effective completions at 10 and 40, whatever the transit.
        items = [done(1, 0, 5, 5, transit=25), done(2, 30, 5, 5, transit=1)]
        result = throughput_from_completions(items)
        self.assertEqual(result["span_ticks"], 30)
        self.assertAlmostEqual(result["throughput"], 4.0)

    def test_span_floor(self) -> None:
        items = [done(1, 0, 5, 5), done(2, 0, 5, 5)]
        self.assertAlmostEqual(throughput_from_completions(items)["throughput"], 120.0)


class DerivedStateTest(unittest.TestCase):
    def test_counts_and_index(self) -> None:
        queued = Item(id=1, current_station_id="a", spawn_tick=0)
        stuck = Item(id=2, current_station_id="z", spawn_tick=0)
        busy = Item(id=3, current_station_id="a", spawn_tick=0, status=ItemStatus.PROCESSING)
        moving = Item(id=4, current_station_id="b", spawn_tick=0, status=ItemStatus.TRANSIT)
        items = [queued, stuck, busy, moving, done(5, 0, 1, 1), done(6, 0, 1, 1, status=ItemStatus.FAILED)]

        counts = count_items(items, {"z"})
        self.assertEqual(counts.wip, 4)
        self.assertEqual(counts.queued, 2)
        self.assertEqual(counts.processing, 1)
        self.assertEqual(counts.transit, 1)
        self.assertEqual(counts.completed, 1)
        self.assertEqual(counts.failed, 1)
        self.assertEqual(counts.stuck, 1)

        index = items_by_station(items)
        self.assertEqual([it.id for it in index["a"]], [1, 3])
        self.assertEqual(set(index), {"a", "b", "z"})


if __name__ == "__main__":
    unittest.main()
