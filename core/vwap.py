from datetime import datetime, timezone
from typing import Optional, Sequence, Tuple

import numpy as np

from models.types import Candle
from utils.log_sampler import NullLogSampler

_NULL_SAMPLER = NullLogSampler()


def typical_prices(candles: Sequence[Candle]) -> np.ndarray:
    return np.array([c.typical_price for c in candles], dtype=float)


def build_cum(tp: Sequence[float], vol: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    """Prefix sums of price*volume and volume, built once per series."""
    tp_arr = np.asarray(tp, dtype=float)
    vol_arr = np.asarray(vol, dtype=float)
    return np.cumsum(tp_arr * vol_arr), np.cumsum(vol_arr)


def build_cum_for(candles: Sequence[Candle]) -> Tuple[np.ndarray, np.ndarray]:
    return build_cum(typical_prices(candles), [c.volume for c in candles])


def _normalize_ms(ts: int) -> int:
    # Second-resolution timestamps show up from some feeds
    return ts * 1000 if 0 < ts < 10**12 else ts


def _date_key(ts: Optional[int]) -> Tuple[int, int, int]:
    dt = datetime.fromtimestamp(_normalize_ms(int(ts or 0)) / 1000.0, tz=timezone.utc)
    return dt.year, dt.month, dt.day


def day_anchor_index(
    candles: Sequence[Candle],
    j: int,
    fallback_bars: int,
    symbol: Optional[str] = None,
    sampler=None,
) -> int:
    """
    Earliest index a <= j whose bars [a, j] all share j's UTC calendar day.
    Without timestamps falls back to a fixed window of `fallback_bars`.
    """
    if j <= 0:
        return 0
    if candles[j].timestamp is None:
        return max(0, j - fallback_bars + 1)

    end_key = _date_key(candles[j].timestamp)
    anchor = j
    while anchor > 0:
        prev_key = _date_key(candles[anchor - 1].timestamp)
        if prev_key != end_key:
            if symbol:
                (sampler or _NULL_SAMPLER).log(
                    "vwap_day_flip",
                    f"[vwap] day flip {symbol} {'%04d-%02d-%02d' % prev_key} -> "
                    f"{'%04d-%02d-%02d' % end_key} anchor={anchor} barsIntoDay={j - anchor}",
                )
            break
        anchor -= 1
    return anchor


def anchored_vwap(cum_pv: np.ndarray, cum_v: np.ndarray, start: int, j: int) -> float:
    """VWAP over [start, j] from prefix sums. NaN when the range carries no volume."""
    if j < 0:
        return float("nan")
    s = min(start, j)
    num = cum_pv[j] - (cum_pv[s - 1] if s > 0 else 0.0)
    den = cum_v[j] - (cum_v[s - 1] if s > 0 else 0.0)
    if not den:
        return float("nan")
    return float(num / den)


def day_vwap_at(
    candles: Sequence[Candle],
    cum_pv: np.ndarray,
    cum_v: np.ndarray,
    j: int,
    fallback_bars: int,
    symbol: Optional[str] = None,
    sampler=None,
) -> Tuple[float, int]:
    """(anchored VWAP at j, anchor index)."""
    anchor = day_anchor_index(candles, j, fallback_bars, symbol=symbol, sampler=sampler)
    return anchored_vwap(cum_pv, cum_v, anchor, j), anchor
