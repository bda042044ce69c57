import math
from dataclasses import dataclass
from typing import List, Optional

from core.config import EngineConfig
from models.types import FeatureSnapshot, GateResult, Thresholds, TierEvaluation


@dataclass(frozen=True)
class BodyQuality:
    ok: bool
    score: int
    details: str


def check_body_quality(f: FeatureSnapshot, config: EngineConfig, best: bool) -> BodyQuality:
    """
    ATR-relative body size with a static floor (the stricter wins), close in
    the upper part of the range, limited upper wick, bullish close.
    """
    atr_mult = config.best_body_atr_mult if best else config.ready_body_atr_mult
    min_pct = config.best_body_min_pct if best else config.ready_body_min_pct
    required_pct = max(f.atr_pct * atr_mult, min_pct * 100)

    body_score = min(100.0, (f.body_pct / required_pct) * 50) if required_pct > 0 else 100.0
    close_score = 30.0 if f.close_pos >= config.ready_close_pos_min else f.close_pos * 50
    if f.upper_wick_pct <= config.ready_upper_wick_max:
        wick_score = 20.0
    else:
        wick_score = max(0.0, 20 - (f.upper_wick_pct - config.ready_upper_wick_max) * 100)
    score = int(round(body_score + close_score + wick_score))

    ok = (
        f.bullish
        and f.body_pct >= required_pct
        and f.close_pos >= config.ready_close_pos_min
        and f.upper_wick_pct <= config.ready_upper_wick_max
    )
    details = (
        f"{'PASS' if ok else 'FAIL'} body:{f.body_pct:.2f}% vs req:{required_pct:.2f}% "
        f"closePos:{f.close_pos * 100:.0f}% wick:{f.upper_wick_pct * 100:.0f}% score:{score}"
    )
    return BodyQuality(ok, score, details)


def session_active(hour_utc: Optional[int], config: EngineConfig) -> bool:
    """UTC hour windows [start, end). An unknown hour is outside every session."""
    if not config.session_filter_enabled:
        return True
    if hour_utc is None:
        return False
    return any(a <= hour_utc < b for a, b in config.sessions_utc)


def touched_vwap_recently(f: FeatureSnapshot, config: EngineConfig) -> bool:
    recent = f.low_vwap_dist_pct_last[-max(1, config.ready_vwap_touch_bars):]
    # NaN distances (no VWAP on that bar) never count as a touch
    return any(d <= config.ready_vwap_touch_pct for d in recent)


def reclaim_flags(f: FeatureSnapshot, thresholds: Thresholds):
    """(reclaim, tapped, day_blocked) for the previous two bars against their own VWAP."""
    d1, d2 = f.prev_close_vwap_dist_pct, f.prev2_close_vwap_dist_pct
    reclaim = (
        f.same_day_01
        and f.same_day_12
        and d1 > 0
        and (d2 <= 0 or abs(d2) <= thresholds.vwap_distance_pct)
    )
    tapped = f.same_day_01 and f.prev_low_vwap_dist_pct <= thresholds.vwap_distance_pct and d1 >= 0
    return reclaim, tapped, not (f.same_day_01 and f.same_day_12)


def ready_vol_floor(f: FeatureSnapshot, thresholds: Thresholds, near_vwap_ready: bool, reclaim_ok: bool) -> float:
    if thresholds.is_balanced:
        return 1.2 if near_vwap_ready and reclaim_ok else 1.3
    return max(1.2, thresholds.vol_spike_x)


def rr_guard_min(config: EngineConfig) -> float:
    return max(1.5, config.rr_min_best * 0.75)


def evaluate_tiers(f: FeatureSnapshot, config: EngineConfig, thresholds: Thresholds) -> TierEvaluation:
    """
    Build the four tier gate lists from a feature snapshot. Pure: the live
    engine and the replay tool both come through here.
    """
    price, vwap, ema = f.price, f.vwap, f.ema200
    dist = f.vwap_dist_pct
    abs_dist = abs(dist)

    # --- VWAP proximity ---
    ready_vwap_max = config.ready_vwap_max(thresholds)
    # BEST never reaches further from VWAP than READY
    best_vwap_max = min(config.best_vwap_max(thresholds), ready_vwap_max)
    watch_vwap_max = max(thresholds.vwap_distance_pct, config.vwap_watch_min_pct)
    touched = touched_vwap_recently(f, config)
    near_vwap_ready_dist = abs_dist <= ready_vwap_max
    near_vwap_ready = near_vwap_ready_dist and touched
    near_vwap_buy = abs_dist <= best_vwap_max and touched
    near_vwap_watch = abs_dist <= watch_vwap_max

    reclaim, tapped, day_blocked = reclaim_flags(f, thresholds)
    reclaim_ok = reclaim or tapped
    reclaim_reason = "Reclaim/tap blocked by UTC day boundary" if day_blocked else "No reclaim/tap pattern"

    # --- EMA200 ---
    price_above_ema = price >= ema * (1 - config.ready_ema_eps_pct / 100)
    best_price_above_ema = price >= ema * (1 - config.best_ema_eps_pct / 100)
    ema_watch_ok = (
        price >= ema * (1 - config.watch_ema_eps_pct / 100)
        or (ema - price) / ema * 100 <= config.ema5_watch_soft_tol
    )

    # --- RSI ---
    rsi, delta = f.rsi, f.rsi_delta
    rsi_best_ok = config.rsi_best_min <= rsi <= config.rsi_best_max and delta >= config.rsi_delta_strict
    rsi_ready_ok = config.rsi_ready_min <= rsi <= config.rsi_ready_max and delta >= config.rsi_delta_strict
    rsi_watch_ok = (
        config.rsi_early_min <= rsi <= config.rsi_early_max
        and rsi >= f.rsi_prev - config.rsi_watch_fall_eps
    )

    body_best = check_body_quality(f, config, best=True)
    body_ready = check_body_quality(f, config, best=False)

    confirm_ok = f.confirm15_strict or f.confirm15_soft
    session_ok = session_active(f.entry_hour_utc, config)
    atr_ok_best = f.atr_pct <= thresholds.atr_guard_pct
    atr_ok_ready = f.atr_pct <= thresholds.atr_guard_pct * 1.2

    trend_ok = f.ema50_above_ema200 and f.ema50_rising and f.ema200_rising
    ready_trend_ok = f.ema50_above_ema200 and f.ema200_rising
    ready_trend_req = ready_trend_ok if config.ready_trend_required else True

    # --- price vs VWAP ---
    above_vwap_strict = price > vwap
    relaxed_true = (
        not above_vwap_strict
        and near_vwap_ready
        and price >= vwap * (1 - config.ready_vwap_eps_pct / 100)
    )
    ready_price_above_vwap = above_vwap_strict or relaxed_true or reclaim_ok
    ready_daily_vwap_ok = (f.confirm15_strict or above_vwap_strict) if config.ready_require_daily_vwap else True
    best_price_above_vwap = (
        above_vwap_strict or (near_vwap_buy and price >= vwap * (1 - config.best_vwap_eps_pct / 100))
    ) and ready_daily_vwap_ok

    # --- volume ---
    vol = f.vol_spike
    vol_cap = config.ready_vol_spike_max
    vol_cap_ok = vol_cap is None or vol <= vol_cap
    ready_vol_min_ok = vol >= ready_vol_floor(f, thresholds, near_vwap_ready, reclaim_ok)
    ready_vol_ok = (ready_vol_min_ok if config.ready_vol_spike_required else True) and vol_cap_ok
    best_vol_ok = vol >= max(1.2, thresholds.vol_spike_x, 1.4) and vol_cap_ok

    # --- risk / reward ---
    best_rr_ok = f.sweep_rr is not None and f.sweep_rr >= config.rr_min_best
    ready_rr_ok = f.rr is not None and math.isfinite(f.rr) and f.rr >= config.ready_min_rr
    if config.ready_min_risk_pct > 0:
        ready_risk_ok = f.risk_pct is not None and f.risk_pct >= config.ready_min_risk_pct
    else:
        ready_risk_ok = True
    guard = rr_guard_min(config)
    rr_guard_ok = not f.sweep_ok or (f.sweep_rr is not None and f.sweep_rr >= guard)

    # --- liquidity sweep (with the strict-15m no-sweep fallback) ---
    sweep_fallback_ok = (
        reclaim_ok
        and f.confirm15_strict
        and ready_trend_req
        and abs_dist <= config.ready_no_sweep_vwap_cap
    )
    ready_sweep_ok = f.sweep_ok or sweep_fallback_ok
    ready_sweep_req = ready_sweep_ok if config.ready_sweep_required else True

    # --- reference regime ---
    has_market = f.has_market
    ready_btc_ok = has_market and (
        f.reference_bullish
        or (not f.reference_bearish and f.confirm15_strict)
        or (f.reference_bearish and f.confirm15_strict and trend_ok and body_ready.ok and ready_vol_ok)
    )
    ready_btc_req = ready_btc_ok if config.ready_btc_required else True
    # BEST never gets looser than READY on the regime
    best_btc_req = (has_market and f.reference_bullish) if config.best_btc_required else ready_btc_req

    best = [
        GateResult("price>VWAP", best_price_above_vwap, "Price not above VWAP"),
        GateResult("priceAboveEma", best_price_above_ema, "Price not above EMA200"),
        GateResult("nearVwapBuy", near_vwap_buy, "Too far from VWAP (extended)" if abs_dist > best_vwap_max
                   else f"No VWAP touch in last {config.ready_vwap_touch_bars} candles"),
        GateResult("rsiBestOk", rsi_best_ok, f"RSI not in {config.rsi_best_min:g}-{config.rsi_best_max:g} rising window"),
        GateResult("strongBody", body_best.ok, "" if body_best.ok else body_best.details),
        GateResult("atrOkBest", atr_ok_best, "ATR too high"),
        GateResult("trendOk", trend_ok, "Trend not OK (EMA50>EMA200 + both rising)"),
        GateResult("sessionOK", session_ok, "Session not active"),
        GateResult("confirm15mOk", confirm_ok, "15m confirmation not satisfied"),
        GateResult("liqSweep", f.sweep_ok, "Liquidity sweep not detected"),
        GateResult("reclaimOrTap", reclaim_ok, reclaim_reason),
        GateResult("bestVolOk", best_vol_ok, "Volume spike not met"),
        GateResult("rrOk", best_rr_ok, f"R:R below {config.rr_min_best:.2f}"),
        GateResult("riskOk", ready_risk_ok, f"Risk% below {config.ready_min_risk_pct:.2f}"),
        GateResult("hasMarket", has_market, "BTC market data missing"),
        GateResult("btcBull", best_btc_req, "BTC not bullish (15m)"),
    ]

    ready_core = [
        GateResult("sessionOK", session_ok, "Session not active"),
        GateResult("price>VWAP", ready_price_above_vwap, "Price not above VWAP and no reclaim/tap"),
        GateResult("priceAboveEma", price_above_ema, "Price not above EMA200"),
        GateResult(
            "nearVwapReady",
            near_vwap_ready,
            f"Too far from VWAP (>{ready_vwap_max:.2f}%)" if not near_vwap_ready_dist
            else f"No VWAP touch in last {config.ready_vwap_touch_bars} candles (<={config.ready_vwap_touch_pct:.2f}%)",
        ),
        GateResult("rsiReadyOk", rsi_ready_ok, f"RSI not in {config.rsi_ready_min:g}-{config.rsi_ready_max:g} rising window"),
        GateResult("reclaimOrTap", reclaim_ok if config.ready_reclaim_required else True, reclaim_reason),
        GateResult(
            "readyVolOk",
            ready_vol_ok,
            f"Vol spike > {vol_cap:.2f}x" if not vol_cap_ok else "Volume spike not met",
        ),
        GateResult("atrOkReady", atr_ok_ready, "ATR too high"),
        GateResult("confirm15mOk", confirm_ok if config.ready_confirm15_required else True,
                   "15m confirmation not satisfied"),
        GateResult("dailyVwapOk", ready_daily_vwap_ok, "Price below daily VWAP (soft path blocked)"),
        GateResult("strongBody", body_ready.ok, "" if body_ready.ok else body_ready.details),
        GateResult("rrOk", ready_rr_ok, f"R:R below {config.ready_min_rr:.2f}"),
        GateResult("riskOk", ready_risk_ok, f"Risk% below {config.ready_min_risk_pct:.2f}"),
        GateResult("trendOk", ready_trend_req, "Trend not OK (EMA50>EMA200 + EMA200 rising)"),
    ]
    ready = ready_core + [
        GateResult("readySweep", ready_sweep_req,
                   f"Sweep missing (alt requires strict 15m + trend + <={config.ready_no_sweep_vwap_cap:.2f}% VWAP)"),
        GateResult("rrGuard", rr_guard_ok,
                   f"R:R {f.sweep_rr or 0:.2f} < {guard:.2f} (Ready guard)"),
        GateResult("hasMarket", has_market if config.ready_btc_required else True, "BTC market data missing"),
        GateResult("btcOkReady", ready_btc_req, "BTC regime gate failed (bearish or neutral without strict confirm)"),
    ]

    early = [
        GateResult("sessionOK", session_ok, "Session not active"),
        GateResult("nearVwapWatch", near_vwap_watch, f"Too far from VWAP (>{watch_vwap_max:.2f}%)"),
        GateResult("rsiWatchOk", rsi_watch_ok, f"RSI not in {config.rsi_early_min:g}-{config.rsi_early_max:g} or falling"),
        GateResult("emaWatchOk", ema_watch_ok, "Price too far below EMA200"),
        GateResult("atrOkReady", atr_ok_ready, "ATR too high"),
        GateResult("reclaimOrTap", reclaim_ok, reclaim_reason),
        GateResult("priceAboveVwap", price >= vwap, "Price below VWAP"),
    ]

    watch = [
        GateResult("nearVwapWatch", near_vwap_watch, f"Too far from VWAP (>{watch_vwap_max:.2f}%)"),
        GateResult("rsiWatchOk", rsi_watch_ok, f"RSI not in {config.rsi_early_min:g}-{config.rsi_early_max:g} or falling"),
        GateResult("emaWatchOk", ema_watch_ok, "Price too far below EMA200"),
    ]

    return TierEvaluation(
        best=best,
        ready=ready,
        early=early,
        watch=watch,
        ready_core_ok=all(g.ok for g in ready_core),
        ready_sweep_ok=ready_sweep_ok,
        ready_btc_ok=ready_btc_ok,
        sweep_fallback_ok=sweep_fallback_ok,
    )
