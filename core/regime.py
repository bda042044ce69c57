import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from config.settings import REFERENCE_SYMBOL
from core.config import EngineConfig
from core.vwap import anchored_vwap, build_cum_for, day_anchor_index
from models.types import BtcGate, Candle, Category, FeatureSnapshot, IndicatorFeed, MarketContext, Thresholds
from utils.logger import setup_logger

logger = setup_logger("Regime")


@dataclass
class BearGateOutcome:
    category: Category
    btc_gate: BtcGate
    would_be: Optional[Category] = None
    reasons: List[str] = field(default_factory=list)


def apply_bear_gate(
    category: Category,
    f: FeatureSnapshot,
    config: EngineConfig,
    thresholds: Thresholds,
) -> BearGateOutcome:
    """
    Reference asset is bearish: the candidate must show its own strength.
    Escapes are checked in order: hold above VWAP, RSI floor, volume surge.
    """
    above_vwap = f.price > f.vwap
    hold_n = max(1, config.bear_gate_hold_candles)
    recent = f.close_vwap_dist_pct_last[-hold_n:]
    held = len(recent) == hold_n and all(d > 0 for d in recent)

    pass_reclaim = held and above_vwap
    pass_rsi = math.isfinite(f.rsi) and f.rsi >= config.bear_gate_rsi_min
    pass_vol = (
        math.isfinite(f.vol_spike)
        and f.vol_spike >= thresholds.vol_spike_x * config.bear_gate_vol_mult
        and above_vwap
    )

    if pass_reclaim:
        return BearGateOutcome(category, BtcGate.PASS_RECLAIM, reasons=["BTC bear gate: pass reclaim"])
    if pass_rsi:
        return BearGateOutcome(category, BtcGate.PASS_RSI, reasons=["BTC bear gate: pass RSI"])
    if pass_vol:
        return BearGateOutcome(category, BtcGate.PASS_VOL, reasons=["BTC bear gate: pass vol"])

    logger.debug(f"{f.symbol}: bear gate failed, {category.value} -> WATCH")
    return BearGateOutcome(
        Category.WATCH,
        BtcGate.FAIL_BEAR,
        would_be=category,
        reasons=["BTC bear gate failed -> WATCH"],
    )


def compute_reference_market(
    candles15: Sequence[Candle],
    config: EngineConfig,
    feed: IndicatorFeed,
    symbol: str = REFERENCE_SYMBOL,
) -> Optional[MarketContext]:
    """
    15m trend state of the reference asset.
    bull: close above day VWAP and EMA200, RSI not falling
    bear: close below day VWAP and (below EMA200 or RSI falling)
    """
    if len(candles15) < config.min_bars:
        return None
    i = len(candles15) - 1

    closes = np.array([c.close for c in candles15], dtype=float)
    cum_pv, cum_v = build_cum_for(candles15)
    e = np.asarray(feed.ema(closes, 200), dtype=float)
    r = np.asarray(feed.rsi(closes, 9), dtype=float)

    vwap = anchored_vwap(cum_pv, cum_v, day_anchor_index(candles15, i, config.day_anchor_fallback_15m), i)
    close, ema_now, rsi_now, rsi_prev = float(closes[i]), float(e[i]), float(r[i]), float(r[i - 1])

    if not math.isfinite(vwap) or vwap <= 0:
        return None
    if not math.isfinite(ema_now) or ema_now <= 0:
        return None
    if not math.isfinite(close) or not math.isfinite(rsi_now):
        return None

    ctx = MarketContext(
        reference_bullish=close > vwap and close > ema_now and rsi_now >= rsi_prev,
        reference_bearish=close < vwap and (close < ema_now or rsi_now < rsi_prev),
        reference_symbol=symbol,
        close=close,
        vwap=vwap,
        ema200=ema_now,
        rsi9=rsi_now,
        delta_vwap_pct=(close - vwap) / vwap * 100,
        computed_at=candles15[i].timestamp,
    )
    logger.info(
        f"[market] {symbol} bull={ctx.reference_bullish} bear={ctx.reference_bearish} "
        f"dvwap={ctx.delta_vwap_pct:.2f}%"
    )
    return ctx
