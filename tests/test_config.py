import unittest
from dataclasses import replace
from unittest.mock import patch

from config import settings
from core.config import (
    ConfigError,
    EngineConfig,
    apply_overrides,
    parse_sessions,
    thresholds_for_preset,
)


class TestPresets(unittest.TestCase):
    def test_presets(self):
        balanced = thresholds_for_preset("balanced")
        self.assertEqual((balanced.vwap_distance_pct, balanced.vol_spike_x, balanced.atr_guard_pct), (0.30, 1.5, 2.5))
        self.assertTrue(balanced.is_balanced)
        self.assertFalse(thresholds_for_preset("CONSERVATIVE").is_balanced)
        self.assertEqual(thresholds_for_preset("AGGRESSIVE").vwap_distance_pct, 1.0)

    def test_unknown_preset_is_balanced(self):
        self.assertEqual(thresholds_for_preset("YOLO"), thresholds_for_preset("BALANCED"))
        self.assertEqual(thresholds_for_preset(None), thresholds_for_preset("BALANCED"))

    def test_parse_sessions(self):
        self.assertEqual(parse_sessions("07-11,13-20"), ((7, 11), (13, 20)))
        self.assertEqual(parse_sessions(" 8-12 , bad, x-y,"), ((8, 12),))
        self.assertEqual(parse_sessions(""), ())


class TestEngineConfig(unittest.TestCase):
    def test_from_settings_reads_module_values(self):
        with patch.object(settings, "RSI_BEST_MIN", 56.0), patch.object(settings, "SESSIONS_UTC", "00-24"):
            cfg = EngineConfig.from_settings()
        self.assertEqual(cfg.rsi_best_min, 56.0)
        self.assertEqual(cfg.sessions_utc, ((0, 24),))
        self.assertEqual(cfg.day_anchor_fallback_5m, settings.DAY_ANCHOR_FALLBACK_5M)

    def test_defaults_validate(self):
        self.assertIsInstance(EngineConfig().validate(), EngineConfig)

    def test_validate_reports_every_problem(self):
        cfg = EngineConfig(rsi_best_min=50.0, best_body_atr_mult=0.1, rr_min_best=1.2)
        with self.assertRaises(ConfigError) as ctx:
            cfg.validate()
        msg = str(ctx.exception)
        self.assertIn("BEST RSI band", msg)
        self.assertIn("BEST body requirement", msg)
        self.assertIn("RR_MIN_BEST must be at least 1.5", msg)

    def test_validate_vwap_windows(self):
        with self.assertRaises(ConfigError):
            EngineConfig(best_vwap_max_pct=0.5, ready_vwap_max_pct=0.3).validate()
        EngineConfig(best_vwap_max_pct=0.2, ready_vwap_max_pct=0.3).validate()

    def test_vwap_window_falls_back_to_thresholds(self):
        thr = thresholds_for_preset("BALANCED")
        self.assertEqual(EngineConfig().ready_vwap_max(thr), 0.30)
        self.assertEqual(EngineConfig(best_vwap_max_pct=0.15).best_vwap_max(thr), 0.15)

    def test_config_hash(self):
        a = EngineConfig()
        self.assertEqual(a.config_hash(), EngineConfig().config_hash())
        self.assertEqual(len(a.config_hash()), 12)
        self.assertNotEqual(a.config_hash(), replace(a, rsi_best_min=56.0).config_hash())
        self.assertEqual(a.snapshot()["sessions_utc"], "07-11,13-20")


class TestOverrides(unittest.TestCase):
    def setUp(self):
        self.config = EngineConfig()
        self.thresholds = thresholds_for_preset("BALANCED")

    def test_no_overrides(self):
        report = apply_overrides(self.config, self.thresholds, None)
        self.assertIs(report.config, self.config)
        self.assertIs(report.thresholds, self.thresholds)

    def test_typed_overrides(self):
        report = apply_overrides(self.config, self.thresholds, {
            "RSI_BEST_MIN": "57",
            "READY_VWAP_TOUCH_BARS": 7.0,
            "READY_SWEEP_REQUIRED": "false",
            "READY_VOL_SPIKE_MAX": 3,
            "SESSIONS_UTC": "00-24",
        })
        cfg = report.config
        self.assertEqual(cfg.rsi_best_min, 57.0)
        self.assertEqual(cfg.ready_vwap_touch_bars, 7)
        self.assertIsInstance(cfg.ready_vwap_touch_bars, int)
        self.assertFalse(cfg.ready_sweep_required)
        self.assertEqual(cfg.ready_vol_spike_max, 3.0)
        self.assertEqual(cfg.sessions_utc, ((0, 24),))
        self.assertEqual(report.unknown_override_keys, [])
        self.assertEqual(report.override_type_errors, {})
        # Original untouched
        self.assertEqual(self.config.rsi_best_min, 55.0)

    def test_optional_knob_reset_to_none(self):
        cfg = replace(self.config, ready_vwap_max_pct=0.25)
        report = apply_overrides(cfg, self.thresholds, {"READY_VWAP_MAX_PCT": None})
        self.assertIsNone(report.config.ready_vwap_max_pct)

    def test_threshold_overrides(self):
        report = apply_overrides(self.config, self.thresholds, {
            "THRESHOLD_VOL_SPIKE_X": 2,
            "thresholds": {"vwapDistancePct": 0.4, "bogus": 1},
        })
        self.assertEqual(report.thresholds.vol_spike_x, 2.0)
        self.assertEqual(report.thresholds.vwap_distance_pct, 0.4)
        self.assertIn("thresholds.bogus", report.unknown_override_keys)

    def test_window_overrides_beyond_snapshot_warn(self):
        report = apply_overrides(self.config, self.thresholds, {
            "READY_VWAP_TOUCH_BARS": 40,
            "BEAR_GATE_HOLD_CANDLES": 3,
        })
        self.assertEqual(report.config.ready_vwap_touch_bars, 40)
        self.assertEqual(report.applied_overrides["READY_VWAP_TOUCH_BARS"], 40)
        self.assertEqual(len(report.override_warnings), 1)
        self.assertIn("READY_VWAP_TOUCH_BARS=40", report.override_warnings[0])
        self.assertIn("30 bars", report.override_warnings[0])

        report = apply_overrides(self.config, self.thresholds, {"BEAR_GATE_HOLD_CANDLES": 31})
        self.assertEqual(len(report.override_warnings), 1)
        self.assertIn("BEAR_GATE_HOLD_CANDLES", report.override_warnings[0])

    def test_bad_values_reported(self):
        report = apply_overrides(self.config, self.thresholds, {
            "RSI_BEST_MIN": "high",
            "READY_BTC_REQUIRED": "maybe",
            "MIN_RISK_PCT": float("nan"),
            "NOPE": 1,
        })
        self.assertEqual(set(report.override_type_errors), {"RSI_BEST_MIN", "READY_BTC_REQUIRED", "MIN_RISK_PCT"})
        self.assertEqual(report.unknown_override_keys, ["NOPE"])
        self.assertEqual(report.config, self.config)


if __name__ == "__main__":
    unittest.main()
