import hashlib
import json
from dataclasses import dataclass, field, fields, replace, asdict
from typing import Any, Dict, List, Optional, Tuple

from config import settings
from models.types import Thresholds


class ConfigError(ValueError):
    pass


def thresholds_for_preset(preset: str) -> Thresholds:
    """Named sensitivity preset -> Thresholds. Unknown names resolve to BALANCED."""
    key = (preset or "").upper()
    vwap_pct, vol_x, atr_guard = settings.THRESHOLD_PRESETS.get(key, settings.THRESHOLD_PRESETS["BALANCED"])
    return Thresholds(vwap_distance_pct=vwap_pct, vol_spike_x=vol_x, atr_guard_pct=atr_guard)


def parse_sessions(windows: str) -> Tuple[Tuple[int, int], ...]:
    """'07-11,13-20' -> ((7, 11), (13, 20)). Malformed windows are skipped."""
    out = []
    for part in (windows or "").split(","):
        part = part.strip()
        if not part or "-" not in part:
            continue
        a, b = part.split("-", 1)
        try:
            out.append((int(a), int(b)))
        except ValueError:
            continue
    return tuple(out)


@dataclass(frozen=True)
class EngineConfig:
    """
    Every tuning knob the engine reads, as one immutable value.
    Build it once with `from_settings()` and pass it into each call.
    """
    min_bars: int = 210
    min_atr_pct: float = 0.10
    day_anchor_fallback_5m: int = 288
    day_anchor_fallback_15m: int = 96

    rsi_best_min: float = 55.0
    rsi_best_max: float = 72.0
    rsi_ready_min: float = 52.0
    rsi_ready_max: float = 78.0
    rsi_early_min: float = 48.0
    rsi_early_max: float = 80.0
    rsi_delta_strict: float = 0.2
    rsi_watch_fall_eps: float = 0.2

    ready_body_atr_mult: float = 0.40
    best_body_atr_mult: float = 0.80
    ready_body_min_pct: float = 0.008
    best_body_min_pct: float = 0.015
    ready_close_pos_min: float = 0.60
    ready_upper_wick_max: float = 0.40

    min_risk_pct: float = 0.2
    ready_min_risk_pct: float = 0.0
    rr_min_best: float = 2.0
    ready_min_rr: float = 1.0
    stop_atr_mult: float = 1.5
    stop_atr_floor_mult: float = 1.0

    ready_reclaim_required: bool = True
    ready_confirm15_required: bool = True
    ready_trend_required: bool = True
    ready_vol_spike_required: bool = True
    ready_sweep_required: bool = True
    ready_btc_required: bool = True
    best_btc_required: bool = True
    ready_require_daily_vwap: bool = False
    ready_vol_spike_max: Optional[float] = None

    ready_vwap_max_pct: Optional[float] = None
    best_vwap_max_pct: Optional[float] = None
    ready_vwap_eps_pct: float = 0.02
    ready_vwap_touch_pct: float = 0.20
    ready_vwap_touch_bars: int = 5
    best_vwap_eps_pct: float = 0.0
    best_ema_eps_pct: float = 0.0
    ready_ema_eps_pct: float = 0.0
    watch_ema_eps_pct: float = 0.0
    ema5_watch_soft_tol: float = 0.25
    vwap_watch_min_pct: float = 0.80
    ready_no_sweep_vwap_cap: float = 0.20
    vwap_touch_snapshot_bars: int = 30

    confirm15_rsi_min: float = 55.0
    confirm15_rsi_max: float = 80.0
    confirm15_vwap_roll_bars: int = 96
    confirm15_vwap_eps_pct: float = 0.20
    ema15_soft_tol: float = 0.10
    rsi15_floor_soft: float = 50.0
    rsi15_soft_fall_eps: float = 0.3

    liq_lookback: int = 20
    sweep_window_bars: int = 3
    sweep_min_depth_atr_mult: float = 0.35
    sweep_max_depth_cap: float = 0.25
    sweep_min_depth_floor: float = 0.10

    bear_gate_enabled: bool = True
    bear_gate_hold_candles: int = 2
    bear_gate_vol_mult: float = 1.2
    bear_gate_rsi_min: float = 52.0

    session_filter_enabled: bool = True
    sessions_utc: Tuple[Tuple[int, int], ...] = ((7, 11), (13, 20))

    strict_no_lookahead: bool = False

    @classmethod
    def from_settings(cls) -> "EngineConfig":
        """Snapshot the env-backed module defaults into a config value."""
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name == "sessions_utc":
                kwargs[f.name] = parse_sessions(settings.SESSIONS_UTC)
                continue
            if f.name == "day_anchor_fallback_5m":
                kwargs[f.name] = settings.DAY_ANCHOR_FALLBACK_5M
                continue
            if f.name == "day_anchor_fallback_15m":
                kwargs[f.name] = settings.DAY_ANCHOR_FALLBACK_15M
                continue
            env_name = f.name.upper()
            if hasattr(settings, env_name):
                kwargs[f.name] = getattr(settings, env_name)
        return cls(**kwargs)

    def ready_vwap_max(self, thresholds: Thresholds) -> float:
        return self.ready_vwap_max_pct if self.ready_vwap_max_pct is not None else thresholds.vwap_distance_pct

    def best_vwap_max(self, thresholds: Thresholds) -> float:
        return self.best_vwap_max_pct if self.best_vwap_max_pct is not None else thresholds.vwap_distance_pct

    def validate(self) -> "EngineConfig":
        """
        Check the tier relationships that keep BEST_ENTRY a tightening of
        READY_TO_BUY. Raises ConfigError listing every violation.
        """
        problems: List[str] = []
        if self.rsi_best_min < self.rsi_ready_min or self.rsi_best_max > self.rsi_ready_max:
            problems.append("BEST RSI band must lie inside the READY band")
        if self.rsi_ready_min < self.rsi_early_min or self.rsi_ready_max > self.rsi_early_max:
            problems.append("READY RSI band must lie inside the EARLY band")
        if self.best_body_atr_mult < self.ready_body_atr_mult or self.best_body_min_pct < self.ready_body_min_pct:
            problems.append("BEST body requirement must be at least the READY requirement")
        if (
            self.best_vwap_max_pct is not None
            and self.ready_vwap_max_pct is not None
            and self.best_vwap_max_pct > self.ready_vwap_max_pct
        ):
            problems.append("BEST VWAP window must not be wider than READY's")
        if self.best_vwap_eps_pct > self.ready_vwap_eps_pct:
            problems.append("BEST VWAP epsilon must not exceed READY's")
        if self.best_ema_eps_pct > self.ready_ema_eps_pct:
            problems.append("BEST EMA epsilon must not exceed READY's")
        if self.rr_min_best < self.ready_min_rr:
            problems.append("RR_MIN_BEST must be at least READY_MIN_RR")
        if self.rr_min_best < 1.5:
            problems.append("RR_MIN_BEST must be at least 1.5 (READY sweep R:R guard floor)")
        for name in ("stop_atr_mult", "stop_atr_floor_mult", "sweep_min_depth_atr_mult", "bear_gate_vol_mult"):
            if getattr(self, name) < 0:
                problems.append(f"{name} must be non-negative")
        if self.min_bars < 3 or self.liq_lookback < 1 or self.ready_vwap_touch_bars < 1:
            problems.append("bar counts must be positive")
        if problems:
            raise ConfigError("; ".join(problems))
        return self

    def snapshot(self) -> Dict[str, Any]:
        out = asdict(self)
        out["sessions_utc"] = ",".join(f"{a:02d}-{b:02d}" for a, b in self.sessions_utc)
        return out

    def config_hash(self) -> str:
        payload = json.dumps(self.snapshot(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:12]


_THRESHOLD_KEYS = {
    "THRESHOLD_VWAP_DISTANCE_PCT": "vwap_distance_pct",
    "THRESHOLD_VOL_SPIKE_X": "vol_spike_x",
    "THRESHOLD_ATR_GUARD_PCT": "atr_guard_pct",
}

_THRESHOLD_ALIASES = {
    "vwapDistancePct": "vwap_distance_pct",
    "volSpikeX": "vol_spike_x",
    "atrGuardPct": "atr_guard_pct",
}


@dataclass
class OverrideReport:
    config: EngineConfig
    thresholds: Thresholds
    applied_overrides: Dict[str, Any] = field(default_factory=dict)
    unknown_override_keys: List[str] = field(default_factory=list)
    override_type_errors: Dict[str, str] = field(default_factory=dict)
    override_warnings: List[str] = field(default_factory=list)


# Knobs that read the trailing distance windows stored with each snapshot
_WINDOW_KNOBS = ("ready_vwap_touch_bars", "bear_gate_hold_candles")


def snapshot_window_bars(config: EngineConfig) -> int:
    return max(1, config.vwap_touch_snapshot_bars, config.ready_vwap_touch_bars, config.bear_gate_hold_candles)


def _parse_bool(raw: Any) -> Optional[bool]:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        return raw != 0
    if isinstance(raw, str):
        s = raw.strip().lower()
        if s in ("true", "1", "yes", "y"):
            return True
        if s in ("false", "0", "no", "n"):
            return False
    return None


def _parse_number(raw: Any) -> Optional[float]:
    if isinstance(raw, bool):
        return None
    try:
        n = float(raw)
    except (TypeError, ValueError):
        return None
    return n if n == n and n not in (float("inf"), float("-inf")) else None


def apply_overrides(
    config: EngineConfig,
    thresholds: Thresholds,
    overrides: Optional[Dict[str, Any]] = None,
) -> OverrideReport:
    """
    Apply replay overrides to a config/thresholds pair.
    Bad keys and bad values are reported, never raised.
    """
    report = OverrideReport(config=config, thresholds=thresholds)
    if not overrides:
        return report

    cfg_fields = {f.name: f for f in fields(EngineConfig)}
    cfg_changes: Dict[str, Any] = {}
    thr_changes: Dict[str, float] = {}

    nested = overrides.get("thresholds")
    if isinstance(nested, dict):
        for t_key, t_val in nested.items():
            name = _THRESHOLD_ALIASES.get(t_key, t_key)
            if name not in ("vwap_distance_pct", "vol_spike_x", "atr_guard_pct"):
                report.unknown_override_keys.append(f"thresholds.{t_key}")
                continue
            n = _parse_number(t_val)
            if n is None:
                report.override_type_errors[f"thresholds.{t_key}"] = f"Expected number, got {type(t_val).__name__}"
                continue
            thr_changes[name] = n
            report.applied_overrides[f"thresholds.{t_key}"] = n

    for key, raw in overrides.items():
        if key == "thresholds":
            continue

        if key in _THRESHOLD_KEYS:
            n = _parse_number(raw)
            if n is None:
                report.override_type_errors[key] = f"Expected number, got {type(raw).__name__}"
                continue
            thr_changes[_THRESHOLD_KEYS[key]] = n
            report.applied_overrides[key] = n
            continue

        name = key.lower()
        if name not in cfg_fields or name == "sessions_utc":
            if name == "sessions_utc" and isinstance(raw, str):
                cfg_changes[name] = parse_sessions(raw)
                report.applied_overrides[key] = raw
            else:
                report.unknown_override_keys.append(key)
            continue

        current = getattr(config, name)
        if isinstance(current, bool):
            b = _parse_bool(raw)
            if b is None:
                report.override_type_errors[key] = f"Expected boolean, got {type(raw).__name__}"
                continue
            cfg_changes[name] = b
            report.applied_overrides[key] = b
            continue

        if raw is None and cfg_fields[name].default is None:
            cfg_changes[name] = None
            report.applied_overrides[key] = None
            continue

        n = _parse_number(raw)
        if n is None:
            report.override_type_errors[key] = f"Expected number, got {type(raw).__name__}"
            continue
        cfg_changes[name] = int(n) if isinstance(current, int) else n
        report.applied_overrides[key] = cfg_changes[name]

    window = snapshot_window_bars(config)
    for name in _WINDOW_KNOBS:
        if name in cfg_changes and cfg_changes[name] > window:
            report.override_warnings.append(
                f"{name.upper()}={cfg_changes[name]} exceeds the {window} bars stored per snapshot"
            )

    if cfg_changes:
        report.config = replace(config, **cfg_changes)
    if thr_changes:
        report.thresholds = replace(thresholds, **thr_changes)
    return report
