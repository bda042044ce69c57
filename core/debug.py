from typing import Dict, List

from models.types import GateDebug, GateResult, TierEvaluation

TIERS = ("best", "ready", "early", "watch")


def build_gate_debug(gates: List[GateResult]) -> GateDebug:
    failed = [g for g in gates if not g.ok]
    passed = len(gates) - len(failed)
    return GateDebug(
        blocked_reasons=[g.reason for g in failed],
        first_failed_gate=failed[0].key if failed else None,
        gate_score=round(100 * passed / len(gates)) if gates else 0,
    )


def build_tier_debug(tiers: TierEvaluation) -> Dict[str, GateDebug]:
    out = {tier: build_gate_debug(getattr(tiers, tier)) for tier in TIERS}
    if tiers.blocked_by_btc and "BTC_BLOCK" not in out["ready"].blocked_reasons:
        ready = out["ready"]
        out["ready"] = GateDebug(ready.blocked_reasons + ["BTC_BLOCK"], ready.first_failed_gate, ready.gate_score)
    return out


def build_gate_snapshot(tiers: TierEvaluation) -> Dict[str, Dict[str, bool]]:
    """Per-tier pass/fail keyed by gate key, plus the tier verdicts."""
    snap: Dict[str, Dict[str, bool]] = {}
    for tier in TIERS:
        gates = getattr(tiers, tier)
        snap[tier] = {g.key: g.ok for g in gates}
        snap[tier]["ok"] = all(g.ok for g in gates)
    snap["ready"]["core"] = tiers.ready_core_ok
    snap["ready"]["sweepFallback"] = tiers.sweep_fallback_ok
    snap["ready"]["blockedByBtc"] = tiers.blocked_by_btc
    return snap
