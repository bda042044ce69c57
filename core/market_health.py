from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Optional

from models.types import ClassifyResult

# Readiness score bands
DORMANT_BELOW = 40
WARMING_BELOW = 70
BLOCKING_HEALTH = 0.6


@dataclass
class GateStats:
    """Per-scan counters over READY gates and 15m confirmation."""
    processed: int = 0
    ready_evaluated: int = 0
    confirm15_strict: int = 0
    confirm15_soft: int = 0
    failed: Counter = field(default_factory=Counter)
    flag_true: Counter = field(default_factory=Counter)

    def record(self, result: Optional[ClassifyResult]):
        self.processed += 1
        if result is None:
            return
        self.ready_evaluated += 1
        if result.confirm15.strict_ok:
            self.confirm15_strict += 1
        elif result.confirm15.soft_ok:
            self.confirm15_soft += 1
        for gate in result.tiers.ready:
            if gate.ok:
                self.flag_true[gate.key] += 1
            else:
                self.failed[gate.key] += 1

    def merge(self, other: "GateStats") -> "GateStats":
        return GateStats(
            processed=self.processed + other.processed,
            ready_evaluated=self.ready_evaluated + other.ready_evaluated,
            confirm15_strict=self.confirm15_strict + other.confirm15_strict,
            confirm15_soft=self.confirm15_soft + other.confirm15_soft,
            failed=self.failed + other.failed,
            flag_true=self.flag_true + other.flag_true,
        )


@dataclass(frozen=True)
class MarketHealth:
    volatility: int
    volume: int
    trend: int
    vwap: int
    readiness: int
    regime: str
    blocking_gate: Optional[str]
    scan_count: int


def market_health(scans: Iterable[GateStats]) -> Optional[MarketHealth]:
    """Aggregate scan stats into health percentages and a DORMANT/WARMING/ACTIVE regime."""
    scans = list(scans)
    if not scans:
        return None
    total = GateStats()
    for s in scans:
        total = total.merge(s)
    if total.ready_evaluated == 0 or total.processed == 0:
        return None

    volatility = max(0.0, 1 - total.failed["atrOkReady"] / total.ready_evaluated)
    volume = max(0.0, 1 - total.failed["readyVolOk"] / total.ready_evaluated)
    trend = min(1.0, (total.confirm15_strict + total.confirm15_soft) / total.processed)
    vwap = min(1.0, total.flag_true["nearVwapReady"] / total.processed)

    readiness = min(100, round((volatility + volume + trend + vwap) * 0.25 * 100))
    if readiness < DORMANT_BELOW:
        regime = "DORMANT"
    elif readiness < WARMING_BELOW:
        regime = "WARMING"
    else:
        regime = "ACTIVE"

    metrics = [("Volatility", volatility), ("Volume", volume), ("Trend", trend), ("VWAP", vwap)]
    name, lowest = min(metrics, key=lambda m: m[1])

    return MarketHealth(
        volatility=round(volatility * 100),
        volume=round(volume * 100),
        trend=round(trend * 100),
        vwap=round(vwap * 100),
        readiness=readiness,
        regime=regime,
        blocking_gate=name if lowest < BLOCKING_HEALTH else None,
        scan_count=len(scans),
    )
