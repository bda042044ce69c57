import json
import unittest

from core.config import EngineConfig, thresholds_for_preset
from core.engine import SignalEngine
from core.replay import replay_many, replay_snapshot
from engine_fixtures import BULL_MARKET, StubFeed, confirmed_series_15m, ready_features, sweep_config, sweep_series_5m
from models.types import Category
from utils.snapshot_writer import snapshot_row


class TestReplay(unittest.TestCase):
    def setUp(self):
        self.thresholds = thresholds_for_preset("BALANCED")
        self.engine = SignalEngine(config=sweep_config(), feed=StubFeed())
        self.result = self.engine.classify_detailed(
            "ETHUSDT", sweep_series_5m(), confirmed_series_15m(), self.thresholds, BULL_MARKET
        )
        row = snapshot_row(self.result, self.thresholds, self.engine.config.config_hash())
        # Through JSON, the way rows come back from disk
        self.row = json.loads(json.dumps(row))

    def test_replay_matches_live_run(self):
        replayed = replay_snapshot(self.row, self.engine.config, self.thresholds)
        self.assertEqual(replayed.category, Category.BEST_ENTRY)
        self.assertEqual(replayed.gate_snapshot, self.result.gate_snapshot)
        self.assertFalse(replayed.changed)
        self.assertEqual(replayed.symbol, "ETHUSDT")
        self.assertEqual(replayed.bar_time, self.result.features.bar_time)

    def test_stored_thresholds_win_over_default(self):
        replayed = replay_snapshot(self.row, self.engine.config, thresholds_for_preset("CONSERVATIVE"))
        self.assertEqual(replayed.gate_snapshot, self.result.gate_snapshot)

    def test_override_changes_category(self):
        replayed = replay_snapshot(self.row, self.engine.config, self.thresholds, {"RSI_BEST_MIN": 59})
        self.assertEqual(replayed.category, Category.READY_TO_BUY)
        self.assertTrue(replayed.changed)
        self.assertFalse(replayed.gate_snapshot["best"]["rsiBestOk"])
        self.assertEqual(replayed.debug["best"].first_failed_gate, "rsiBestOk")

    def test_threshold_override(self):
        overrides = {"thresholds": {"atrGuardPct": 0.5}}
        replayed = replay_snapshot(self.row, self.engine.config, self.thresholds, overrides)
        self.assertFalse(replayed.gate_snapshot["best"]["atrOkBest"])
        self.assertFalse(replayed.gate_snapshot["ready"]["atrOkReady"])

    def test_replay_bare_feature_snapshot(self):
        replayed = replay_snapshot(ready_features(), EngineConfig(), self.thresholds)
        self.assertEqual(replayed.category, Category.READY_TO_BUY)
        self.assertIsNone(replayed.stored_category)
        self.assertTrue(replayed.changed)

    def test_replay_many_reports_window_warning(self):
        summary = replay_many([self.row], self.engine.config, self.thresholds, {"READY_VWAP_TOUCH_BARS": 45})
        self.assertEqual(summary.total, 1)
        self.assertEqual(len(summary.report.override_warnings), 1)
        self.assertIn("READY_VWAP_TOUCH_BARS=45", summary.report.override_warnings[0])

    def test_replay_many_summary(self):
        overrides = {"RSI_BEST_MIN": 59, "NOT_A_KNOB": 1, "READY_MIN_RR": "abc"}
        summary = replay_many([self.row, ready_features()], self.engine.config, self.thresholds, overrides)
        self.assertEqual(summary.total, 2)
        self.assertEqual(summary.categories["READY_TO_BUY"], 2)
        self.assertEqual(summary.changed, 2)
        self.assertEqual(summary.report.unknown_override_keys, ["NOT_A_KNOB"])
        self.assertIn("READY_MIN_RR", summary.report.override_type_errors)
        self.assertEqual(len(summary.results), 2)


if __name__ == "__main__":
    unittest.main()
