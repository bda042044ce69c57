from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from config.settings import INTERVAL_5M_MS, INTERVAL_15M_MS
from core.config import EngineConfig
from core.confirmation import evaluate_confirmation
from core.debug import build_gate_snapshot, build_tier_debug
from core.features import extract_features
from core.gates import evaluate_tiers, reclaim_flags, rr_guard_min, session_active
from core.indicators import PandasIndicatorFeed
from core.lookahead import candle_close_ms, enforce_no_lookahead, entry_time_ms, fmt_ts
from core.regime import apply_bear_gate
from core.trade_plan import plan_is_valid
from models.types import (
    BtcGate,
    Candle,
    Category,
    ClassifyResult,
    Confirm15Debug,
    FeatureSnapshot,
    IndicatorFeed,
    MarketContext,
    Signal,
    Thresholds,
    TierEvaluation,
)
from utils.log_sampler import NullLogSampler
from utils.logger import setup_logger

logger = setup_logger("SignalEngine")


@dataclass
class Decision:
    category: Optional[Category]
    tiers: TierEvaluation
    reasons: List[str] = field(default_factory=list)
    would_be: Optional[Category] = None
    btc_gate: Optional[BtcGate] = None
    downgraded: bool = False


def _tier_reasons(category: Category, f: FeatureSnapshot, config: EngineConfig, thresholds: Thresholds) -> List[str]:
    reclaim, _, _ = reclaim_flags(f, thresholds)
    reclaim_label = "VWAP reclaim" if reclaim else "VWAP tap & hold"
    watch_window = max(thresholds.vwap_distance_pct, config.vwap_watch_min_pct)
    confirm_any = f.confirm15_strict or f.confirm15_soft

    if category == Category.BEST_ENTRY:
        return [
            "Higher-TF aligned (15m confirm)",
            "Liquidity sweep & reclaim",
            "Price > EMA200 & anchored VWAP (near VWAP)",
            f"ΔVWAP {f.vwap_dist_pct:.2f}%",
            f"RSI-9 rising ({config.rsi_best_min:g}-{config.rsi_best_max:g})",
            "Trend up (EMA50 > EMA200)",
            "Strong-bodied close",
            f"ATR% <= {thresholds.atr_guard_pct:.2f}",
            "Session active",
            "BTC bullish (15m)" if f.reference_bullish else "BTC regime not required",
            f"R:R {f.sweep_rr or 0:.2f}>={config.rr_min_best:.2f}",
        ]
    if category == Category.READY_TO_BUY:
        if f.reference_bullish:
            regime = "BTC bullish (15m)"
        elif f.reference_bearish:
            regime = "BTC bearish (strict+trend+vol override)"
        else:
            regime = "BTC neutral (strict 15m)"
        return [
            "Price > (anchored) VWAP & EMA200",
            f"RSI-9 rising ({config.rsi_ready_min:g}-{config.rsi_ready_max:g})",
            f"Near VWAP (<={config.ready_vwap_max(thresholds):.2f}%)",
            reclaim_label,
            "Trend up (EMA50 > EMA200)",
            "Strong-bodied close",
            "15m confirm" if f.confirm15_strict else "15m soft-confirm",
            f"VolSpike {f.vol_spike:.2f}x",
            f"ATR% <= {thresholds.atr_guard_pct * 1.2:.2f}",
            "Session active",
            regime,
        ]
    if category == Category.EARLY_READY:
        return [
            f"Near VWAP (<={watch_window:.2f}%)",
            reclaim_label,
            "EMA200 ok (soft)",
            "RSI rising (early)",
            f"ATR% <= {thresholds.atr_guard_pct * 1.2:.2f}",
            "15m bias ok" if confirm_any else "15m not required for Early",
        ]
    return [
        f"Near VWAP (<={watch_window:.2f}%)",
        "EMA200 ok (soft)",
        f"RSI rising (>={config.rsi_early_min:g})",
        "15m bias ok" if confirm_any else "15m bias not required",
    ]


def decide_category(f: FeatureSnapshot, config: EngineConfig, thresholds: Thresholds) -> Decision:
    """
    Tier state machine over a feature snapshot: BEST > READY > EARLY > WATCH,
    then the invalid-plan downgrade and the bear override. Shared by the live
    engine and the replay tool.
    """
    tiers = evaluate_tiers(f, config, thresholds)
    decision = Decision(category=None, tiers=tiers)

    if tiers.best_ok:
        decision.category = Category.BEST_ENTRY
    elif tiers.ready_ok:
        decision.category = Category.READY_TO_BUY
    else:
        failing = [g.key for g in tiers.ready if not g.ok]
        if failing == ["rrGuard"]:
            decision.reasons.append(f"R:R {f.sweep_rr or 0:.2f} < {rr_guard_min(config):.2f} (Ready guard)")

        if tiers.early_ok:
            decision.category = Category.EARLY_READY
        elif tiers.watch_ok:
            decision.category = Category.WATCH

    if decision.category is None:
        return decision
    decision.reasons.extend(_tier_reasons(decision.category, f, config, thresholds))

    # Executable categories need a real plan
    if decision.category in (Category.BEST_ENTRY, Category.READY_TO_BUY):
        top = decision.category == Category.BEST_ENTRY
        if not plan_is_valid(f.stop, f.risk_pct, f.rr, config, top_tier=top):
            decision.reasons.append("Downgraded: no valid trade plan")
            decision.downgraded = True
            if tiers.early_ok:
                decision.category = Category.EARLY_READY
            elif tiers.watch_ok:
                decision.category = Category.WATCH
            else:
                logger.debug(f"{f.symbol}: no valid plan and no fallback tier, dropping signal")
                decision.category = None
                return decision

    if tiers.blocked_by_btc:
        decision.would_be = Category.READY_TO_BUY

    if config.bear_gate_enabled and f.reference_bearish and decision.category != Category.WATCH:
        outcome = apply_bear_gate(decision.category, f, config, thresholds)
        decision.category = outcome.category
        decision.btc_gate = outcome.btc_gate
        decision.reasons.extend(outcome.reasons)
        if outcome.would_be is not None and decision.would_be is None:
            decision.would_be = outcome.would_be

    if decision.category in (Category.EARLY_READY, Category.WATCH) and f.has_market and not f.reference_bullish:
        decision.reasons.append("BTC bearish (15m)" if f.reference_bearish else "BTC not supportive (15m)")

    return decision


def build_signal(
    f: FeatureSnapshot,
    decision: Decision,
    config: EngineConfig,
    thresholds: Thresholds,
    market: Optional[MarketContext] = None,
) -> Signal:
    tiers = decision.tiers
    return Signal(
        symbol=f.symbol,
        category=decision.category,
        price=f.price,
        vwap=f.vwap,
        ema200=f.ema200,
        rsi9=f.rsi,
        vol_spike=f.vol_spike,
        atr_pct=f.atr_pct,
        confirm15m=f.confirm15_strict or f.confirm15_soft,
        delta_vwap_pct=f.vwap_dist_pct,
        stop=f.stop,
        tp1=f.tp1,
        tp2=f.tp2,
        target=f.target,
        rr=f.rr,
        risk_pct=f.risk_pct,
        stop_reason=f.stop_reason,
        reasons=[r for r in decision.reasons if r],
        gate_snapshot=build_gate_snapshot(tiers),
        blocked_by_btc=tiers.blocked_by_btc,
        would_be_category=decision.would_be,
        btc_gate=decision.btc_gate,
        thresholds=thresholds,
        debug=build_tier_debug(tiers),
        confirm15m_strict=f.confirm15_strict,
        confirm15m_soft=f.confirm15_soft,
        session_ok=session_active(f.entry_hour_utc, config),
        sweep_ok=f.sweep_ok,
        trend_ok=f.ema50_above_ema200 and f.ema50_rising and f.ema200_rising,
        rr_estimate=f.sweep_rr,
        market=market,
        bar_time=f.bar_time,
        config_hash=config.config_hash(),
    )


class SignalEngine:
    """
    Classifies the latest closed 5m bar of a symbol into a signal tier.
    Holds only its configuration, indicator feed and diagnostic sampler;
    every call is independent.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        feed: Optional[IndicatorFeed] = None,
        sampler=None,
    ):
        self.config = config or EngineConfig.from_settings()
        self.feed = feed or PandasIndicatorFeed()
        self.sampler = sampler or NullLogSampler()

    def classify(
        self,
        symbol: str,
        candles5: Sequence[Candle],
        candles15: Sequence[Candle],
        thresholds: Thresholds,
        market: Optional[MarketContext] = None,
    ) -> Optional[Signal]:
        result = self.classify_detailed(symbol, candles5, candles15, thresholds, market)
        return result.signal if result else None

    def classify_detailed(
        self,
        symbol: str,
        candles5: Sequence[Candle],
        candles15: Sequence[Candle],
        thresholds: Thresholds,
        market: Optional[MarketContext] = None,
    ) -> Optional[ClassifyResult]:
        """
        Full evaluation with the feature snapshot, tier gates and 15m debug.
        None means insufficient data or a degenerate market; a result with
        signal=None means no tier passed.
        """
        cfg = self.config
        if len(candles5) < cfg.min_bars or len(candles15) < cfg.min_bars:
            logger.debug(f"{symbol}: insufficient data 5m={len(candles5)} 15m={len(candles15)}")
            return None

        entry_ms = entry_time_ms(candles5, INTERVAL_5M_MS)
        if entry_ms > 0:
            candles5 = enforce_no_lookahead(
                candles5, INTERVAL_5M_MS, entry_ms, "C5", cfg.strict_no_lookahead, symbol, self.sampler
            )
            candles15 = enforce_no_lookahead(
                candles15, INTERVAL_15M_MS, entry_ms, "C15", cfg.strict_no_lookahead, symbol, self.sampler
            )
            if len(candles5) < cfg.min_bars or len(candles15) < cfg.min_bars:
                logger.debug(f"{symbol}: insufficient data after look-ahead trim")
                return None

        logger.debug(
            f"[signal] {symbol} using 5mClose={fmt_ts(candle_close_ms(candles5[-1], INTERVAL_5M_MS))} "
            f"15mClose={fmt_ts(candle_close_ms(candles15[-1], INTERVAL_15M_MS))} entryTime={fmt_ts(entry_ms)}"
        )

        confirm: Confirm15Debug = evaluate_confirmation(candles15, cfg, self.feed)
        features = extract_features(
            symbol, candles5, confirm, cfg, self.feed, market=market, entry_ms=entry_ms, sampler=self.sampler
        )
        if features is None:
            return None

        decision = decide_category(features, cfg, thresholds)
        signal = None
        if decision.category is not None:
            signal = build_signal(features, decision, cfg, thresholds, market)
            logger.debug(
                f"{symbol}: {signal.category.value} score={signal.gate_score} "
                f"firstFailed={signal.first_failed_gate} btcGate={signal.btc_gate.value if signal.btc_gate else '-'}"
            )

        return ClassifyResult(
            signal=signal,
            features=features,
            tiers=decision.tiers,
            gate_snapshot=build_gate_snapshot(decision.tiers),
            confirm15=confirm,
        )


_DEFAULT_ENGINE: Optional[SignalEngine] = None


def _default_engine() -> SignalEngine:
    global _DEFAULT_ENGINE
    if _DEFAULT_ENGINE is None:
        _DEFAULT_ENGINE = SignalEngine()
    return _DEFAULT_ENGINE


def classify(symbol, candles5, candles15, thresholds, market=None) -> Optional[Signal]:
    return _default_engine().classify(symbol, candles5, candles15, thresholds, market)


def classify_detailed(symbol, candles5, candles15, thresholds, market=None) -> Optional[ClassifyResult]:
    return _default_engine().classify_detailed(symbol, candles5, candles15, thresholds, market)
