import math
from typing import Callable, Iterable, List, Optional, Sequence

from core.config import EngineConfig
from core.liquidity import swing_low
from models.types import Candle, StopCandidate, StopReason, SweepResult, TradePlan

# A stop candidate producer: (price, atr_price) -> candidate or None
CandidateFn = Callable[[float, float], Optional[StopCandidate]]


def _valid(stop: Optional[float], price: float) -> bool:
    return stop is not None and math.isfinite(stop) and 0 < stop < price


def _floored(level: float, price: float, atr_price: float, config: EngineConfig) -> float:
    # Stop distance is capped at ATR_price * floor multiplier: keep the tighter of the two
    return max(level, price - atr_price * config.stop_atr_floor_mult)


def sweep_stop(sweep: Optional[SweepResult], config: EngineConfig) -> CandidateFn:
    def candidate(price: float, atr_price: float) -> Optional[StopCandidate]:
        if sweep is None or not sweep.ok or not _valid(sweep.swept_low, price):
            return None
        stop = _floored(sweep.swept_low, price, atr_price, config)
        reason = StopReason.SWEEP_LOW if stop == sweep.swept_low else StopReason.SWEEP_LOW_ATR_FLOOR
        return StopCandidate(stop, reason)

    return candidate


def swing_stop(candles: Sequence[Candle], config: EngineConfig) -> CandidateFn:
    def candidate(price: float, atr_price: float) -> Optional[StopCandidate]:
        i = len(candles) - 1
        if i < 1:
            return None
        start = max(0, i - config.liq_lookback)
        _, low = swing_low(candles, start, max(start, i - 1))
        if not _valid(low, price):
            return None
        stop = _floored(low, price, atr_price, config)
        return StopCandidate(stop, StopReason.SWING_LOW if stop == low else StopReason.ATR_FLOOR)

    return candidate


def atr_stop(config: EngineConfig) -> CandidateFn:
    def candidate(price: float, atr_price: float) -> Optional[StopCandidate]:
        return StopCandidate(price - atr_price * config.stop_atr_mult, StopReason.ATR)

    return candidate


def select_stop(candidates: Iterable[CandidateFn], price: float, atr_price: float) -> Optional[StopCandidate]:
    """First candidate that is finite, positive and strictly below price."""
    for fn in candidates:
        c = fn(price, atr_price)
        if c is not None and _valid(c.price, price):
            return c
    return None


def stop_chain(candles: Sequence[Candle], sweep: Optional[SweepResult], config: EngineConfig) -> List[CandidateFn]:
    return [sweep_stop(sweep, config), swing_stop(candles, config), atr_stop(config)]


def build_trade_plan(
    price: float,
    atr_pct: float,
    candidates: Iterable[CandidateFn],
    upside: Optional[float] = None,
) -> Optional[TradePlan]:
    """
    1R / 2R plan from the first valid stop. The target is upside liquidity when
    it sits above price, otherwise tp2.
    """
    atr_price = price * (atr_pct / 100)
    chosen = select_stop(candidates, price, atr_price)
    if chosen is None:
        return None

    risk = price - chosen.price
    tp1 = price + risk
    tp2 = price + risk * 2
    target = upside if upside is not None and math.isfinite(upside) and upside > price else tp2
    reward = target - price
    return TradePlan(
        stop=chosen.price,
        tp1=tp1,
        tp2=tp2,
        target=target,
        risk_pct=risk / price * 100,
        rr=reward / risk if reward > 0 else None,
        stop_reason=chosen.reason,
    )


def plan_is_valid(
    stop: Optional[float],
    risk_pct: Optional[float],
    rr: Optional[float],
    config: EngineConfig,
    top_tier: bool,
) -> bool:
    """A plan backs an executable category only with a stop, enough risk and (for BEST) an R:R."""
    if stop is None or risk_pct is None:
        return False
    if config.min_risk_pct > 0 and risk_pct < config.min_risk_pct:
        return False
    return not top_tier or rr is not None
