import unittest
from dataclasses import replace

import numpy as np

from core.confirmation import confirm15_soft, confirm15_strict, evaluate_confirmation
from core.config import EngineConfig
from engine_fixtures import StubFeed, confirmed_series_15m


class EmaAboveFeed(StubFeed):
    def ema(self, closes, period):
        return np.asarray(closes, dtype=float) * 1.01


class TestConfirm15(unittest.TestCase):
    def setUp(self):
        self.config = EngineConfig()
        self.feed = StubFeed()

    def test_strict_pass(self):
        ok, reason = confirm15_strict(confirmed_series_15m(), self.config, self.feed)
        self.assertTrue(ok)
        self.assertEqual(reason, "pass")

    def test_short_history_is_not_confirmed(self):
        candles = confirmed_series_15m(100)
        self.assertEqual(confirm15_strict(candles, self.config, self.feed), (False, "len"))
        self.assertEqual(confirm15_soft(candles, self.config, self.feed), (False, "len"))

    def test_strict_fails_on_ema(self):
        ok, reason = confirm15_strict(confirmed_series_15m(), self.config, EmaAboveFeed())
        self.assertFalse(ok)
        self.assertEqual(reason, "ema")

    def test_strict_fails_on_overbought_rsi(self):
        ok, reason = confirm15_strict(confirmed_series_15m(), self.config, StubFeed(rsi_tail=(57.0, 85.0)))
        self.assertFalse(ok)
        self.assertEqual(reason, "rsi")

    def test_strict_fails_on_falling_rsi(self):
        ok, reason = confirm15_strict(confirmed_series_15m(), self.config, StubFeed(rsi_tail=(60.0, 58.0)))
        self.assertFalse(ok)
        self.assertEqual(reason, "rsi")

    def test_soft_passes_when_strict_held_one_bar_ago(self):
        candles = confirmed_series_15m()
        candles[-2] = replace(candles[-2], high=100.6, low=100.0, close=100.5)
        candles[-1] = replace(candles[-1], open=100.0, high=100.0, low=99.8, close=99.9)

        strict_ok, strict_reason = confirm15_strict(candles, self.config, self.feed)
        self.assertFalse(strict_ok)
        self.assertEqual(strict_reason, "vwap")
        self.assertEqual(confirm15_soft(candles, self.config, self.feed), (True, "strict_prev"))

    def test_soft_rolling_vwap_path(self):
        candles = confirmed_series_15m()
        candles[-1] = replace(candles[-1], open=100.0, high=100.0, low=99.8, close=99.9)
        feed = StubFeed(rsi_tail=(50.0, 52.0))

        debug = evaluate_confirmation(candles, self.config, feed)
        self.assertFalse(debug.strict_ok)
        self.assertEqual(debug.strict_reason, "vwap")
        self.assertTrue(debug.soft_ok)
        self.assertEqual(debug.soft_reason, "soft")
        self.assertEqual(debug.used, "soft")

    def test_soft_fails_below_rsi_floor(self):
        candles = confirmed_series_15m()
        candles[-1] = replace(candles[-1], open=100.0, high=100.0, low=99.8, close=99.9)
        ok, reason = confirm15_soft(candles, self.config, StubFeed(rsi_tail=(50.0, 45.0)))
        self.assertFalse(ok)
        self.assertEqual(reason, "rsi")

    def test_soft_skipped_when_strict_passes(self):
        debug = evaluate_confirmation(confirmed_series_15m(), self.config, self.feed)
        self.assertTrue(debug.ok)
        self.assertEqual(debug.used, "strict")
        self.assertEqual(debug.to_dict()["soft"], {"ok": False, "reason": "skipped"})


if __name__ == "__main__":
    unittest.main()
