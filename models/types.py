from enum import Enum
from dataclasses import dataclass, field, fields, asdict
from typing import Protocol, Any, Optional, List, Dict, Sequence

import numpy as np


class IndicatorFeed(Protocol):
    """Array-in / array-out indicator primitives, aligned index-for-index with the input."""

    def ema(self, closes: Sequence[float], period: int) -> np.ndarray:
        ...

    def rsi(self, closes: Sequence[float], period: int) -> np.ndarray:
        ...

    def atr_pct(self, highs: Sequence[float], lows: Sequence[float], closes: Sequence[float], period: int) -> np.ndarray:
        ...

    def volume_spike(self, notional: Sequence[float], period: int) -> np.ndarray:
        ...


class Category(str, Enum):
    WATCH = "WATCH"
    EARLY_READY = "EARLY_READY"
    READY_TO_BUY = "READY_TO_BUY"
    BEST_ENTRY = "BEST_ENTRY"

    @property
    def rank(self) -> int:
        return _CATEGORY_RANK[self]


_CATEGORY_RANK = {
    Category.WATCH: 0,
    Category.EARLY_READY: 1,
    Category.READY_TO_BUY: 2,
    Category.BEST_ENTRY: 3,
}


class BtcGate(str, Enum):
    PASS_RECLAIM = "PASS_RECLAIM"
    PASS_RSI = "PASS_RSI"
    PASS_VOL = "PASS_VOL"
    FAIL_BEAR = "FAIL_BEAR"


class StopReason(str, Enum):
    SWEEP_LOW = "sweep_low"
    SWEEP_LOW_ATR_FLOOR = "sweep_low_atr_floor"
    SWING_LOW = "swing_low"
    ATR_FLOOR = "atr_floor"
    ATR = "atr"


@dataclass(slots=True)
class Candle:
    symbol: str
    timestamp: Optional[int]        # Open time (ms), None when the feed has no timestamps
    open: float
    high: float
    low: float
    close: float
    volume: float
    close_time: Optional[int] = None
    closed: bool = True

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3.0


@dataclass(frozen=True)
class Thresholds:
    vwap_distance_pct: float   # e.g. 0.30 => +/-0.30%
    vol_spike_x: float         # e.g. 1.5  => 1.5x recent avg
    atr_guard_pct: float       # e.g. 2.5  => ATR% must be <= 2.5

    @property
    def is_balanced(self) -> bool:
        return (
            self.vol_spike_x == 1.5
            and self.vwap_distance_pct == 0.30
            and self.atr_guard_pct == 2.5
        )

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class MarketContext:
    """Trend state of the reference asset on 15m. Absence (None) means no regime data."""
    reference_bullish: bool
    reference_bearish: bool
    reference_symbol: str = "BTCUSDT"
    close: Optional[float] = None
    vwap: Optional[float] = None
    ema200: Optional[float] = None
    rsi9: Optional[float] = None
    delta_vwap_pct: Optional[float] = None
    computed_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class GateResult:
    key: str
    ok: bool
    reason: str


@dataclass(frozen=True)
class GateDebug:
    blocked_reasons: List[str]
    first_failed_gate: Optional[str]
    gate_score: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SweepResult:
    ok: bool
    swept: bool
    swept_low: Optional[float]
    prior_low: float
    sweep_depth_pct: float
    min_depth_pct: float
    reclaimed: bool


@dataclass(frozen=True)
class StopCandidate:
    price: float
    reason: StopReason


@dataclass(frozen=True)
class TradePlan:
    stop: float
    tp1: float
    tp2: float
    target: float
    risk_pct: float
    rr: Optional[float]
    stop_reason: StopReason


@dataclass(frozen=True)
class Confirm15Debug:
    strict_ok: bool
    strict_reason: str
    soft_ok: bool
    soft_reason: str

    @property
    def ok(self) -> bool:
        return self.strict_ok or self.soft_ok

    @property
    def used(self) -> str:
        if self.strict_ok:
            return "strict"
        return "soft" if self.soft_ok else "none"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strict": {"ok": self.strict_ok, "reason": self.strict_reason},
            "soft": {"ok": self.soft_ok, "reason": self.soft_reason},
            "ok": self.ok,
            "used": self.used,
        }


@dataclass
class FeatureSnapshot:
    """
    Numeric inputs and pattern flags for one evaluation.
    Everything the gate layer needs lives here, so a stored snapshot can be
    re-evaluated under different thresholds without the raw candles.
    """
    symbol: str
    price: float
    vwap: float
    ema200: float
    ema50: float
    rsi: float
    rsi_prev: float
    atr_pct: float
    vol_spike: float

    bar_time: Optional[int] = None
    entry_time: Optional[int] = None
    entry_hour_utc: Optional[int] = None

    # Candle shape (current bar)
    body_pct: float = 0.0          # |close - open| / close * 100
    close_pos: float = 0.0         # (close - low) / range
    upper_wick_pct: float = 1.0    # (high - max(open, close)) / range
    bullish: bool = False

    # Trend
    ema50_above_ema200: bool = False
    ema50_rising: bool = False
    ema200_rising: bool = False

    # Reclaim / tap inputs: previous bars against their own anchored VWAP
    prev_close_vwap_dist_pct: float = float("nan")
    prev2_close_vwap_dist_pct: float = float("nan")
    prev_low_vwap_dist_pct: float = float("nan")
    same_day_01: bool = False
    same_day_12: bool = False

    # Trailing windows, oldest first
    low_vwap_dist_pct_last: List[float] = field(default_factory=list)
    close_vwap_dist_pct_last: List[float] = field(default_factory=list)

    # Higher timeframe
    confirm15_strict: bool = False
    confirm15_soft: bool = False

    # Liquidity
    swept: bool = False
    sweep_depth_pct: float = 0.0
    sweep_reclaimed: bool = False
    sweep_ok: bool = False
    sweep_rr: Optional[float] = None

    # Trade plan
    stop: Optional[float] = None
    tp1: Optional[float] = None
    tp2: Optional[float] = None
    target: Optional[float] = None
    rr: Optional[float] = None
    risk_pct: Optional[float] = None
    stop_reason: Optional[str] = None

    # Regime
    has_market: bool = False
    reference_bullish: bool = False
    reference_bearish: bool = False

    @property
    def vwap_dist_pct(self) -> float:
        return (self.price - self.vwap) / self.vwap * 100

    @property
    def ema_dist_pct(self) -> float:
        return (self.price - self.ema200) / self.ema200 * 100

    @property
    def rsi_delta(self) -> float:
        return self.rsi - self.rsi_prev

    @property
    def abs_risk(self) -> Optional[float]:
        if self.stop is None:
            return None
        return max(0.0, self.price - self.stop)

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["vwap_dist_pct"] = self.vwap_dist_pct
        out["ema_dist_pct"] = self.ema_dist_pct
        out["rsi_delta"] = self.rsi_delta
        out["abs_risk"] = self.abs_risk
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeatureSnapshot":
        # Derived keys (vwap_dist_pct, ...) and unknown keys are ignored; rows
        # written by older versions fall back to field defaults.
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})


@dataclass(frozen=True)
class TierEvaluation:
    best: List[GateResult]
    ready: List[GateResult]
    early: List[GateResult]
    watch: List[GateResult]
    ready_core_ok: bool
    ready_sweep_ok: bool
    ready_btc_ok: bool
    sweep_fallback_ok: bool

    @staticmethod
    def _all(gates: List[GateResult]) -> bool:
        return all(g.ok for g in gates)

    @property
    def best_ok(self) -> bool:
        return self._all(self.best)

    @property
    def ready_ok(self) -> bool:
        return self._all(self.ready)

    @property
    def early_ok(self) -> bool:
        return self._all(self.early)

    @property
    def watch_ok(self) -> bool:
        return self._all(self.watch)

    @property
    def blocked_by_btc(self) -> bool:
        # READY would have passed on everything except the reference-asset gate
        return self.ready_core_ok and self.ready_sweep_ok and not self.ready_btc_ok


@dataclass(frozen=True)
class Signal:
    symbol: str
    category: Category
    price: float
    vwap: float
    ema200: float
    rsi9: float
    vol_spike: float
    atr_pct: float
    confirm15m: bool
    delta_vwap_pct: float
    stop: Optional[float]
    tp1: Optional[float]
    tp2: Optional[float]
    target: Optional[float]
    rr: Optional[float]
    risk_pct: Optional[float]
    stop_reason: Optional[str]
    reasons: List[str]
    gate_snapshot: Dict[str, Dict[str, bool]]
    blocked_by_btc: bool
    would_be_category: Optional[Category]
    btc_gate: Optional[BtcGate]
    thresholds: Thresholds
    debug: Dict[str, GateDebug]
    confirm15m_strict: bool = False
    confirm15m_soft: bool = False
    session_ok: bool = False
    sweep_ok: bool = False
    trend_ok: bool = False
    rr_estimate: Optional[float] = None
    market: Optional[MarketContext] = None
    bar_time: Optional[int] = None
    config_hash: Optional[str] = None

    @property
    def blocked_reasons(self) -> List[str]:
        return self.debug["ready"].blocked_reasons

    @property
    def first_failed_gate(self) -> Optional[str]:
        return self.debug["ready"].first_failed_gate

    @property
    def gate_score(self) -> int:
        return self.debug["ready"].gate_score

    def to_dict(self) -> Dict[str, Any]:
        """Flat, JSON-serializable record for the persistence layer."""
        return {
            "symbol": self.symbol,
            "category": self.category.value,
            "price": self.price,
            "vwap": self.vwap,
            "ema200": self.ema200,
            "rsi9": self.rsi9,
            "volSpike": self.vol_spike,
            "atrPct": self.atr_pct,
            "confirm15m": self.confirm15m,
            "deltaVwapPct": self.delta_vwap_pct,
            "stop": self.stop,
            "tp1": self.tp1,
            "tp2": self.tp2,
            "target": self.target,
            "rr": self.rr,
            "riskPct": self.risk_pct,
            "stopReason": self.stop_reason,
            "reasons": list(self.reasons),
            "gateSnapshot": self.gate_snapshot,
            "blockedByBtc": self.blocked_by_btc,
            "wouldBeCategory": self.would_be_category.value if self.would_be_category else None,
            "btcGate": self.btc_gate.value if self.btc_gate else None,
            "thresholdVwapDistancePct": self.thresholds.vwap_distance_pct,
            "thresholdVolSpikeX": self.thresholds.vol_spike_x,
            "thresholdAtrGuardPct": self.thresholds.atr_guard_pct,
            "confirm15mStrict": self.confirm15m_strict,
            "confirm15mSoft": self.confirm15m_soft,
            "sessionOk": self.session_ok,
            "sweepOk": self.sweep_ok,
            "trendOk": self.trend_ok,
            "rrEstimate": self.rr_estimate,
            "market": self.market.to_dict() if self.market else None,
            "blockedReasons": self.blocked_reasons,
            "firstFailedGate": self.first_failed_gate,
            "gateScore": self.gate_score,
            "debug": {tier: d.to_dict() for tier, d in self.debug.items()},
            "barTime": self.bar_time,
            "configHash": self.config_hash,
        }


@dataclass(frozen=True)
class ClassifyResult:
    signal: Optional[Signal]
    features: FeatureSnapshot
    tiers: TierEvaluation
    gate_snapshot: Dict[str, Dict[str, bool]]
    confirm15: Confirm15Debug

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signal": self.signal.to_dict() if self.signal else None,
            "features": self.features.to_dict(),
            "gateSnapshot": self.gate_snapshot,
            "confirm15": self.confirm15.to_dict(),
        }
