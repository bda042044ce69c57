import unittest
from unittest.mock import MagicMock

from core.lookahead import (
    LookAheadViolation,
    candle_close_ms,
    enforce_no_lookahead,
    entry_time_ms,
)
from models.types import Candle

FIVE_MIN = 5 * 60 * 1000
FIFTEEN_MIN = 15 * 60 * 1000
BASE = 1704186000000  # 2024-01-02 09:00 UTC


def _bar(ts, close_time=None):
    return Candle(symbol="ETHUSDT", timestamp=ts, open=1, high=1, low=1, close=1, volume=1, close_time=close_time)


class TestCloseAndEntryTimes(unittest.TestCase):
    def test_close_time_preferred(self):
        self.assertEqual(candle_close_ms(_bar(BASE, close_time=BASE + 123), FIVE_MIN), BASE + 123)

    def test_close_time_from_open(self):
        self.assertEqual(candle_close_ms(_bar(BASE), FIVE_MIN), BASE + FIVE_MIN - 1)

    def test_close_time_unknown(self):
        self.assertEqual(candle_close_ms(_bar(None), FIVE_MIN), 0)

    def test_entry_is_next_open(self):
        candles = [_bar(BASE - FIVE_MIN), _bar(BASE)]
        self.assertEqual(entry_time_ms(candles, FIVE_MIN), BASE + FIVE_MIN)

    def test_entry_from_close_time_only(self):
        candles = [_bar(None, close_time=BASE + FIVE_MIN - 1)]
        self.assertEqual(entry_time_ms(candles, FIVE_MIN), BASE + FIVE_MIN)

    def test_entry_unknown(self):
        self.assertEqual(entry_time_ms([], FIVE_MIN), 0)
        self.assertEqual(entry_time_ms([_bar(None)], FIVE_MIN), 0)


class TestEnforceNoLookahead(unittest.TestCase):
    def setUp(self):
        self.entry = BASE + FIVE_MIN  # 09:05
        # 15m bars opening 08:30, 08:45, 09:00; the last closes 09:14:59.999
        self.c15 = [_bar(BASE - 2 * FIFTEEN_MIN), _bar(BASE - FIFTEEN_MIN), _bar(BASE)]

    def test_relaxed_trims_forming_candle(self):
        sampler = MagicMock()
        out = enforce_no_lookahead(self.c15, FIFTEEN_MIN, self.entry, "C15", symbol="ETHUSDT", sampler=sampler)
        self.assertEqual(len(out), 2)
        self.assertEqual(out[-1].timestamp, BASE - FIFTEEN_MIN)
        # Input untouched
        self.assertEqual(len(self.c15), 3)
        sampler.log.assert_called_once()
        self.assertEqual(sampler.log.call_args[0][0], "no_lookahead")
        self.assertIn("removed=1", sampler.log.call_args[0][1])

    def test_strict_raises(self):
        with self.assertRaises(LookAheadViolation) as ctx:
            enforce_no_lookahead(self.c15, FIFTEEN_MIN, self.entry, "C15", strict=True)
        self.assertEqual(ctx.exception.label, "C15")
        self.assertIn("C15_LOOKAHEAD", str(ctx.exception))

    def test_close_equal_to_entry_is_removed(self):
        candles = [_bar(BASE - FIVE_MIN), _bar(BASE, close_time=self.entry)]
        out = enforce_no_lookahead(candles, FIVE_MIN, self.entry, "C5")
        self.assertEqual(len(out), 1)

    def test_clean_series_untouched(self):
        sampler = MagicMock()
        clean = self.c15[:2]
        out = enforce_no_lookahead(clean, FIFTEEN_MIN, self.entry, "C15", strict=True, sampler=sampler)
        self.assertEqual(out, clean)
        sampler.log.assert_not_called()

    def test_unknown_entry_skips_guard(self):
        out = enforce_no_lookahead(self.c15, FIFTEEN_MIN, 0, "C15", strict=True)
        self.assertEqual(len(out), 3)

    def test_unknown_close_is_kept(self):
        candles = [_bar(BASE - FIVE_MIN), _bar(None)]
        out = enforce_no_lookahead(candles, FIVE_MIN, self.entry, "C5", strict=True)
        self.assertEqual(len(out), 2)


if __name__ == "__main__":
    unittest.main()
