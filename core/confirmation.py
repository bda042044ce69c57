from typing import Sequence, Tuple

import numpy as np

from core.config import EngineConfig
from core.vwap import anchored_vwap, build_cum_for, day_anchor_index
from models.types import Candle, Confirm15Debug, IndicatorFeed


# --- 15m higher-timeframe alignment ---
# Both checks return (ok, reason). Short history reads as "not confirmed".


def _series(candles15: Sequence[Candle], feed: IndicatorFeed):
    closes = np.array([c.close for c in candles15], dtype=float)
    cum_pv, cum_v = build_cum_for(candles15)
    e = np.asarray(feed.ema(closes, 200), dtype=float)
    r = np.asarray(feed.rsi(closes, 9), dtype=float)
    return closes, cum_pv, cum_v, e, r


def _strict_at(candles15, closes, cum_pv, cum_v, e, r, i: int, config: EngineConfig) -> Tuple[bool, str]:
    anchor = day_anchor_index(candles15, i, config.day_anchor_fallback_15m)
    v_i = anchored_vwap(cum_pv, cum_v, anchor, i)

    if not closes[i] > v_i:
        return False, "vwap"
    if not closes[i] > e[i]:
        return False, "ema"
    rsi_ok = config.confirm15_rsi_min < r[i] < config.confirm15_rsi_max and r[i] >= r[i - 1]
    if not rsi_ok:
        return False, "rsi"
    return True, "pass"


def confirm15_strict(candles15: Sequence[Candle], config: EngineConfig, feed: IndicatorFeed) -> Tuple[bool, str]:
    """Close above day VWAP and EMA200, RSI-9 inside the strict band and not falling."""
    if len(candles15) < config.min_bars:
        return False, "len"
    i = len(candles15) - 1
    if i < 2:
        return False, "i"
    closes, cum_pv, cum_v, e, r = _series(candles15, feed)
    return _strict_at(candles15, closes, cum_pv, cum_v, e, r, i, config)


def confirm15_soft(candles15: Sequence[Candle], config: EngineConfig, feed: IndicatorFeed) -> Tuple[bool, str]:
    """
    Relaxed alignment. Passes when strict held one bar ago, or when the close
    sits within CONFIRM15_VWAP_EPS_PCT of a rolling (not day-anchored) VWAP,
    at or just under EMA200, with RSI above the soft floor and not fading.
    """
    if len(candles15) < config.min_bars:
        return False, "len"
    i = len(candles15) - 1
    if i < 2:
        return False, "i"
    closes, cum_pv, cum_v, e, r = _series(candles15, feed)

    prev_ok, _ = _strict_at(candles15, closes, cum_pv, cum_v, e, r, i - 1, config)
    if prev_ok:
        return True, "strict_prev"

    roll = max(1, config.confirm15_vwap_roll_bars)
    v_i = anchored_vwap(cum_pv, cum_v, max(0, i - roll + 1), i)
    vwap_ok = np.isfinite(v_i) and closes[i] >= v_i * (1 - config.confirm15_vwap_eps_pct / 100)
    if not vwap_ok:
        return False, "vwap"

    near_or_above_ema = closes[i] > e[i] or ((e[i] - closes[i]) / e[i]) * 100 <= config.ema15_soft_tol
    if not near_or_above_ema:
        return False, "ema"

    rsi_ok = (
        r[i] >= config.rsi15_floor_soft
        and r[i] < config.confirm15_rsi_max
        and r[i] >= r[i - 1] - config.rsi15_soft_fall_eps
    )
    if not rsi_ok:
        return False, "rsi"
    return True, "soft"


def evaluate_confirmation(candles15: Sequence[Candle], config: EngineConfig, feed: IndicatorFeed) -> Confirm15Debug:
    strict_ok, strict_reason = confirm15_strict(candles15, config, feed)
    if strict_ok:
        # Soft is only consulted when strict fails
        return Confirm15Debug(True, "pass", False, "skipped")
    soft_ok, soft_reason = confirm15_soft(candles15, config, feed)
    return Confirm15Debug(False, strict_reason, soft_ok, soft_reason)
