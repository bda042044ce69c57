import tempfile
import unittest
from pathlib import Path

from core.config import thresholds_for_preset
from core.engine import SignalEngine
from engine_fixtures import BULL_MARKET, StubFeed, confirmed_series_15m, sweep_config, sweep_series_5m
from utils.snapshot_writer import read_snapshots, snapshot_row, write_snapshot


class TestSnapshotWriter(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "nested" / "snapshots.jsonl"
        self.thresholds = thresholds_for_preset("BALANCED")
        engine = SignalEngine(config=sweep_config(), feed=StubFeed())
        self.result = engine.classify_detailed(
            "ETHUSDT", sweep_series_5m(), confirmed_series_15m(), self.thresholds, BULL_MARKET
        )

    def tearDown(self):
        self.tmp.cleanup()

    def test_row_shape(self):
        row = snapshot_row(self.result, self.thresholds, "abc123")
        self.assertEqual(row["symbol"], "ETHUSDT")
        self.assertEqual(row["category"], "BEST_ENTRY")
        self.assertEqual(row["configHash"], "abc123")
        self.assertEqual(row["thresholds"]["vwap_distance_pct"], 0.30)
        self.assertEqual(row["confirm15"]["used"], "strict")
        self.assertIn("vwap_dist_pct", row["features"])
        self.assertAlmostEqual(row["features"]["abs_risk"], self.result.features.price - self.result.features.stop)
        self.assertTrue(row["gateSnapshot"]["best"]["ok"])

    def test_append_and_read_back(self):
        row = snapshot_row(self.result, self.thresholds)
        write_snapshot(row, self.path)
        write_snapshot(row, self.path)

        rows = list(read_snapshots(self.path))
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0]["features"]["price"], self.result.features.price)
        self.assertEqual(rows[1]["barTime"], self.result.features.bar_time)

    def test_blank_lines_skipped(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text('{"symbol": "A"}\n\n{"symbol": "B"}\n', encoding="utf-8")
        self.assertEqual([r["symbol"] for r in read_snapshots(self.path)], ["A", "B"])


if __name__ == "__main__":
    unittest.main()
