import math
from datetime import datetime, timezone
from typing import Optional, Sequence

import numpy as np

from config.settings import INTERVAL_5M_MS
from core.config import EngineConfig, snapshot_window_bars
from core.lookahead import entry_time_ms
from core.liquidity import detect_liquidity_sweep_long, nearest_upside_liquidity, sweep_rr
from core.trade_plan import build_trade_plan, stop_chain
from core.vwap import build_cum_for, day_vwap_at
from models.types import Candle, Confirm15Debug, FeatureSnapshot, IndicatorFeed, MarketContext
from utils.logger import setup_logger

logger = setup_logger("Features")


def _dist_pct(value: float, ref: float) -> float:
    if not math.isfinite(ref) or ref <= 0:
        return float("nan")
    return (value - ref) / ref * 100


def _hour_utc(ms: Optional[int]) -> Optional[int]:
    if not ms or ms <= 0:
        return None
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc).hour


def extract_features(
    symbol: str,
    candles5: Sequence[Candle],
    confirm: Confirm15Debug,
    config: EngineConfig,
    feed: IndicatorFeed,
    market: Optional[MarketContext] = None,
    entry_ms: Optional[int] = None,
    sampler=None,
) -> Optional[FeatureSnapshot]:
    """
    Everything the gate layer reads, computed once from the (already guarded)
    5m series. Returns None on insufficient data or a degenerate market.
    """
    if len(candles5) < config.min_bars:
        logger.debug(f"{symbol}: insufficient 5m data ({len(candles5)} < {config.min_bars})")
        return None

    closes = np.array([c.close for c in candles5], dtype=float)
    highs = np.array([c.high for c in candles5], dtype=float)
    lows = np.array([c.low for c in candles5], dtype=float)
    notional = np.array([c.volume * c.close for c in candles5], dtype=float)
    cum_pv, cum_v = build_cum_for(candles5)

    ema200 = np.asarray(feed.ema(closes, 200), dtype=float)
    ema50 = np.asarray(feed.ema(closes, 50), dtype=float)
    rsi9 = np.asarray(feed.rsi(closes, 9), dtype=float)
    atrp = np.asarray(feed.atr_pct(highs, lows, closes, 14), dtype=float)
    spike = np.asarray(feed.volume_spike(notional, 20), dtype=float)

    i = len(candles5) - 1
    i1, i2 = i - 1, i - 2
    fallback = config.day_anchor_fallback_5m

    vwap_i2, a2 = day_vwap_at(candles5, cum_pv, cum_v, i2, fallback, symbol=symbol, sampler=sampler)
    vwap_i1, a1 = day_vwap_at(candles5, cum_pv, cum_v, i1, fallback, symbol=symbol, sampler=sampler)
    vwap_i, a0 = day_vwap_at(candles5, cum_pv, cum_v, i, fallback, symbol=symbol, sampler=sampler)

    price = float(closes[i])
    ema_now = float(ema200[i])
    atr_now = float(atrp[i])

    # Dead or broken markets
    if not math.isfinite(atr_now) or atr_now < config.min_atr_pct:
        logger.debug(f"{symbol}: ATR% {atr_now:.3f} below floor {config.min_atr_pct}")
        return None
    if not math.isfinite(vwap_i) or vwap_i <= 0:
        return None
    if not math.isfinite(vwap_i1) or not math.isfinite(vwap_i2):
        return None
    if not math.isfinite(ema_now) or ema_now <= 0:
        return None

    cur = candles5[i]
    rng = cur.high - cur.low
    body_top = max(cur.open, cur.close)

    # Trailing windows: lows against each bar's own VWAP, closes against the current VWAP
    window = snapshot_window_bars(config)
    start = max(0, i - window + 1)
    low_dists = []
    for j in range(start, i + 1):
        vwap_j, _ = day_vwap_at(candles5, cum_pv, cum_v, j, fallback)
        low_dists.append(_dist_pct(float(lows[j]), vwap_j))
    close_dists = [_dist_pct(float(c), vwap_i) for c in closes[start:]]

    sweep = detect_liquidity_sweep_long(candles5, vwap_i, atr_now, config)
    upside = nearest_upside_liquidity(candles5, config)
    plan = build_trade_plan(price, atr_now, stop_chain(candles5, sweep, config), upside)

    if entry_ms is None:
        entry_ms = entry_time_ms(candles5, INTERVAL_5M_MS)

    return FeatureSnapshot(
        symbol=symbol,
        price=price,
        vwap=vwap_i,
        ema200=ema_now,
        ema50=float(ema50[i]),
        rsi=float(rsi9[i]),
        rsi_prev=float(rsi9[i1]),
        atr_pct=atr_now,
        vol_spike=float(spike[i]),
        bar_time=cur.timestamp,
        entry_time=entry_ms or None,
        entry_hour_utc=_hour_utc(entry_ms),
        body_pct=abs(cur.close - cur.open) / cur.close * 100 if cur.close else 0.0,
        close_pos=(cur.close - cur.low) / rng if rng > 0 else 0.0,
        upper_wick_pct=(cur.high - body_top) / rng if rng > 0 else 1.0,
        bullish=cur.close > cur.open,
        ema50_above_ema200=bool(ema50[i] > ema200[i]),
        ema50_rising=bool(ema50[i] >= ema50[max(0, i - 3)]),
        ema200_rising=bool(ema200[i] >= ema200[max(0, i - 3)]),
        prev_close_vwap_dist_pct=_dist_pct(float(closes[i1]), vwap_i1),
        prev2_close_vwap_dist_pct=_dist_pct(float(closes[i2]), vwap_i2),
        prev_low_vwap_dist_pct=_dist_pct(float(lows[i1]), vwap_i1),
        same_day_01=a0 == a1,
        same_day_12=a1 == a2,
        low_vwap_dist_pct_last=low_dists,
        close_vwap_dist_pct_last=close_dists,
        confirm15_strict=confirm.strict_ok,
        confirm15_soft=confirm.soft_ok,
        swept=sweep.swept,
        sweep_depth_pct=sweep.sweep_depth_pct,
        sweep_reclaimed=sweep.reclaimed,
        sweep_ok=sweep.ok,
        sweep_rr=sweep_rr(price, sweep, upside),
        stop=plan.stop if plan else None,
        tp1=plan.tp1 if plan else None,
        tp2=plan.tp2 if plan else None,
        target=plan.target if plan else None,
        rr=plan.rr if plan else None,
        risk_pct=plan.risk_pct if plan else None,
        stop_reason=plan.stop_reason.value if plan else None,
        has_market=market is not None,
        reference_bullish=bool(market and market.reference_bullish),
        reference_bearish=bool(market and market.reference_bearish),
    )
