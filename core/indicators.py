import numpy as np
import pandas as pd
from typing import Sequence

# --- Core Math Helpers ---
# All functions are array-in / array-out and aligned with the input index.


def _as_series(values: Sequence[float]) -> pd.Series:
    return pd.Series(np.asarray(values, dtype=float))


def ema(series: Sequence[float], period: int) -> np.ndarray:
    """Recursive EMA seeded with the first value (k = 2 / (period + 1))."""
    s = _as_series(series)
    if s.empty:
        return np.array([], dtype=float)
    return s.ewm(alpha=2.0 / (period + 1), adjust=False).mean().to_numpy()


def rsi(series: Sequence[float], period: int = 9) -> np.ndarray:
    """RSI from EMA-smoothed up/down moves. A flat-or-rising window (no down moves) reads ~99.9."""
    s = _as_series(series)
    if len(s) < 2:
        return np.full(len(s), 50.0)

    change = s.diff().fillna(0.0)
    ups = change.clip(lower=0.0)
    downs = (-change).clip(lower=0.0)
    avg_up = ema(ups, period)
    avg_down = ema(downs, period)

    with np.errstate(divide="ignore", invalid="ignore"):
        rs = np.where(avg_down == 0, 1000.0, avg_up / avg_down)
    return 100.0 - (100.0 / (1.0 + rs))


def atr_pct(high: Sequence[float], low: Sequence[float], close: Sequence[float], period: int = 14) -> np.ndarray:
    """EMA of true range, as a percentage of close."""
    df = pd.DataFrame({
        "high": np.asarray(high, dtype=float),
        "low": np.asarray(low, dtype=float),
        "close": np.asarray(close, dtype=float),
    })
    if df.empty:
        return np.array([], dtype=float)

    df["prev_close"] = df["close"].shift(1)
    df["tr1"] = df["high"] - df["low"]
    df["tr2"] = (df["high"] - df["prev_close"]).abs()
    df["tr3"] = (df["low"] - df["prev_close"]).abs()
    # First bar has no previous close: plain high - low
    df["tr"] = df[["tr1", "tr2", "tr3"]].max(axis=1, skipna=True)

    atr = ema(df["tr"], period)
    with np.errstate(divide="ignore", invalid="ignore"):
        return atr / df["close"].to_numpy() * 100.0


def sma(series: Sequence[float], period: int) -> np.ndarray:
    """Simple moving average; warmup positions average what is available."""
    s = _as_series(series)
    return s.rolling(window=period, min_periods=1).mean().to_numpy()


def volume_spike(volume: Sequence[float], period: int = 20) -> np.ndarray:
    """Ratio of each bar's volume (or notional) to its trailing SMA."""
    vol = np.asarray(volume, dtype=float)
    base = sma(vol, period)
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(base == 0, 0.0, vol / base)


class PandasIndicatorFeed:
    """Default IndicatorFeed backed by the functions above."""

    def ema(self, closes, period):
        return ema(closes, period)

    def rsi(self, closes, period):
        return rsi(closes, period)

    def atr_pct(self, highs, lows, closes, period):
        return atr_pct(highs, lows, closes, period)

    def volume_spike(self, notional, period):
        return volume_spike(notional, period)
