from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from core.config import EngineConfig, OverrideReport, apply_overrides
from core.debug import build_gate_snapshot, build_tier_debug
from core.engine import decide_category
from models.types import Category, FeatureSnapshot, GateDebug, Thresholds
from utils.logger import setup_logger

logger = setup_logger("Replay")


@dataclass
class ReplayResult:
    symbol: str
    category: Optional[Category]
    stored_category: Optional[str]
    gate_snapshot: Dict[str, Dict[str, bool]]
    debug: Dict[str, GateDebug]
    would_be: Optional[Category] = None
    btc_gate: Optional[str] = None
    bar_time: Optional[int] = None

    @property
    def changed(self) -> bool:
        current = self.category.value if self.category else None
        return current != self.stored_category


@dataclass
class ReplaySummary:
    total: int = 0
    changed: int = 0
    categories: Counter = field(default_factory=Counter)
    first_failed_ready: Counter = field(default_factory=Counter)
    results: List[ReplayResult] = field(default_factory=list)
    report: Optional[OverrideReport] = None


def _unpack(row: Union[Dict[str, Any], FeatureSnapshot], thresholds: Thresholds):
    if isinstance(row, FeatureSnapshot):
        return row, thresholds, None
    features = FeatureSnapshot.from_dict(row.get("features", row))
    stored_thr = row.get("thresholds")
    if isinstance(stored_thr, dict):
        thresholds = Thresholds(
            vwap_distance_pct=float(stored_thr.get("vwap_distance_pct", thresholds.vwap_distance_pct)),
            vol_spike_x=float(stored_thr.get("vol_spike_x", thresholds.vol_spike_x)),
            atr_guard_pct=float(stored_thr.get("atr_guard_pct", thresholds.atr_guard_pct)),
        )
    return features, thresholds, row.get("category")


def replay_snapshot(
    row: Union[Dict[str, Any], FeatureSnapshot],
    config: EngineConfig,
    thresholds: Thresholds,
    overrides: Optional[Dict[str, Any]] = None,
) -> ReplayResult:
    """
    Re-run the gate layer on a stored feature snapshot, optionally under
    overrides. Indicators are not recomputed; the stored plan and 15m flags
    are taken as recorded.
    """
    features, thr, stored = _unpack(row, thresholds)
    if overrides:
        report = apply_overrides(config, thr, overrides)
        config, thr = report.config, report.thresholds

    decision = decide_category(features, config, thr)
    return ReplayResult(
        symbol=features.symbol,
        category=decision.category,
        stored_category=stored,
        gate_snapshot=build_gate_snapshot(decision.tiers),
        debug=build_tier_debug(decision.tiers),
        would_be=decision.would_be,
        btc_gate=decision.btc_gate.value if decision.btc_gate else None,
        bar_time=features.bar_time,
    )


def replay_many(
    rows: Iterable[Union[Dict[str, Any], FeatureSnapshot]],
    config: EngineConfig,
    thresholds: Thresholds,
    overrides: Optional[Dict[str, Any]] = None,
) -> ReplaySummary:
    summary = ReplaySummary()
    if overrides:
        summary.report = apply_overrides(config, thresholds, overrides)
        if summary.report.unknown_override_keys:
            logger.warning(f"Unknown override keys: {summary.report.unknown_override_keys}")
        if summary.report.override_type_errors:
            logger.warning(f"Override type errors: {summary.report.override_type_errors}")
        for warning in summary.report.override_warnings:
            logger.warning(f"Override warning: {warning}")

    for row in rows:
        result = replay_snapshot(row, config, thresholds, overrides)
        summary.total += 1
        summary.categories[result.category.value if result.category else "NONE"] += 1
        first_failed = result.debug["ready"].first_failed_gate
        if first_failed:
            summary.first_failed_ready[first_failed] += 1
        if result.changed:
            summary.changed += 1
        summary.results.append(result)

    logger.info(f"Replayed {summary.total} snapshots, {summary.changed} changed category")
    return summary
