import math
from typing import Optional, Sequence, Tuple

from core.config import EngineConfig
from models.types import Candle, SweepResult


def swing_low(candles: Sequence[Candle], start: int, end: int) -> Tuple[int, float]:
    """(index, price) of the lowest low in [start, end]."""
    idx, price = start, candles[start].low
    for k in range(start + 1, end + 1):
        if candles[k].low < price:
            idx, price = k, candles[k].low
    return idx, price


def swing_high(candles: Sequence[Candle], start: int, end: int) -> Tuple[int, float]:
    """(index, price) of the highest high in [start, end]."""
    idx, price = start, candles[start].high
    for k in range(start + 1, end + 1):
        if candles[k].high > price:
            idx, price = k, candles[k].high
    return idx, price


def min_sweep_depth_pct(atr_pct: float, config: EngineConfig) -> float:
    """Required undercut depth: scales with ATR%, capped, never below the static floor."""
    return max(config.sweep_min_depth_floor, min(config.sweep_max_depth_cap, atr_pct * config.sweep_min_depth_atr_mult))


def detect_liquidity_sweep_long(
    candles: Sequence[Candle],
    vwap: float,
    atr_pct: float,
    config: EngineConfig,
) -> SweepResult:
    """
    Long-side sweep & reclaim on the latest bars.

    prior     = lowest low over the lookback, ending one bar before the current bar
    swept     = any of the last SWEEP_WINDOW_BARS lows undercut prior
    reclaimed = latest close above both prior and VWAP
    """
    i = len(candles) - 1
    _, prior = swing_low(candles, max(0, i - 1 - config.liq_lookback), max(0, i - 1))

    window = min(config.sweep_window_bars, i + 1)
    swept_low = math.inf
    for k in range(i, max(0, i - window + 1) - 1, -1):
        if candles[k].low < prior:
            swept_low = min(swept_low, candles[k].low)
    swept = swept_low < math.inf

    depth = (prior - swept_low) / prior * 100 if swept else 0.0
    min_depth = min_sweep_depth_pct(atr_pct, config)
    last_close = candles[i].close
    reclaimed = last_close > prior and last_close > vwap

    return SweepResult(
        ok=swept and depth >= min_depth and reclaimed,
        swept=swept,
        swept_low=swept_low if swept else None,
        prior_low=prior,
        sweep_depth_pct=depth,
        min_depth_pct=min_depth,
        reclaimed=reclaimed,
    )


def nearest_upside_liquidity(candles: Sequence[Candle], config: EngineConfig) -> Optional[float]:
    """Highest high over the lookback, excluding the current bar."""
    i = len(candles) - 1
    if i < 1:
        return None
    _, price = swing_high(candles, max(0, i - config.liq_lookback), i - 1)
    return price


def sweep_rr(price: float, sweep: SweepResult, upside: Optional[float]) -> Optional[float]:
    """R:R of a trade stopped at the swept low and targeting upside liquidity."""
    if not sweep.ok or sweep.swept_low is None or upside is None:
        return None
    risk = max(1e-12, price - sweep.swept_low)
    reward = max(0.0, upside - price)
    return reward / risk
