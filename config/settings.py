import os


def _env_float(key: str, default: str) -> float:
    return float(os.getenv(key, default) or default)


def _env_int(key: str, default: str) -> int:
    return int(os.getenv(key, default) or default)


def _env_opt_float(key: str):
    raw = os.getenv(key, "").strip()
    return float(raw) if raw else None


def _env_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "y")


# Reference asset for the market regime (15m trend)
REFERENCE_SYMBOL = os.getenv("REFERENCE_SYMBOL", "BTCUSDT")

# Symbols to scan when none are given on the command line
SYMBOLS = [
    "ETHUSDT", "SOLUSDT", "BNBUSDT", "DOGEUSDT", "XRPUSDT",
    "ADAUSDT", "LTCUSDT", "AVAXUSDT", "LINKUSDT", "NEARUSDT",
]

# Timeframes
TIMEFRAME_5M = "5m"
TIMEFRAME_15M = "15m"
INTERVAL_5M_MS = 5 * 60 * 1000
INTERVAL_15M_MS = 15 * 60 * 1000

# REST
BINANCE_REST_URL = os.getenv("BINANCE_BASE", "https://api.binance.com")
KLINE_LIMIT = _env_int("KLINE_LIMIT", "300")
MIN_QUOTE_VOLUME_USD = _env_float("MIN_QUOTE_VOLUME_USD", "50000000")

# Threshold presets: (vwapDistancePct, volSpikeX, atrGuardPct)
THRESHOLD_PRESETS = {
    "CONSERVATIVE": (0.20, 2.0, 1.8),
    "BALANCED": (0.30, 1.5, 2.5),
    "AGGRESSIVE": (1.00, 1.0, 4.0),
}
DEFAULT_PRESET = os.getenv("PRESET", "BALANCED").upper()

# Data sufficiency
MIN_BARS = _env_int("MIN_BARS", "210")
DAY_ANCHOR_FALLBACK_5M = 288   # ~1 day of 5m bars
DAY_ANCHOR_FALLBACK_15M = 96   # ~1 day of 15m bars
MIN_ATR_PCT = _env_float("MIN_ATR_PCT", "0.10")  # skip dead markets

# RSI bands
RSI_BEST_MIN = _env_float("RSI_BEST_MIN", "55")
RSI_BEST_MAX = _env_float("RSI_BEST_MAX", "72")
RSI_READY_MIN = _env_float("RSI_READY_MIN", "52")
RSI_READY_MAX = _env_float("RSI_READY_MAX", "78")
RSI_EARLY_MIN = _env_float("RSI_EARLY_MIN", "48")
RSI_EARLY_MAX = _env_float("RSI_EARLY_MAX", "80")
RSI_DELTA_STRICT = _env_float("RSI_DELTA_STRICT", "0.2")
RSI_WATCH_FALL_EPS = 0.2

# Body quality (ATR-relative with static floors, fractions of close)
READY_BODY_ATR_MULT = _env_float("READY_BODY_ATR_MULT", "0.40")
BEST_BODY_ATR_MULT = _env_float("BEST_BODY_ATR_MULT", "0.80")
READY_BODY_MIN_PCT = _env_float("READY_BODY_MIN_PCT", "0.008")
BEST_BODY_MIN_PCT = _env_float("BEST_BODY_MIN_PCT", "0.015")
READY_CLOSE_POS_MIN = _env_float("READY_CLOSE_POS_MIN", "0.60")
READY_UPPER_WICK_MAX = _env_float("READY_UPPER_WICK_MAX", "0.40")

# Risk
MIN_RISK_PCT = _env_float("MIN_RISK_PCT", "0.2")
READY_MIN_RISK_PCT = _env_float("READY_MIN_RISK_PCT", "0")
RR_MIN_BEST = _env_float("RR_MIN_BEST", "2.0")
READY_MIN_RR = _env_float("READY_MIN_RR", "1.0")
STOP_ATR_MULT = _env_float("STOP_ATR_MULT", "1.5")
STOP_ATR_FLOOR_MULT = _env_float("STOP_ATR_FLOOR_MULT", "1.0")

# READY requirement toggles
READY_RECLAIM_REQUIRED = _env_bool("READY_RECLAIM_REQUIRED", True)
READY_CONFIRM15_REQUIRED = _env_bool("READY_CONFIRM15_REQUIRED", True)
READY_TREND_REQUIRED = _env_bool("READY_TREND_REQUIRED", True)
READY_VOL_SPIKE_REQUIRED = _env_bool("READY_VOL_SPIKE_REQUIRED", True)
READY_SWEEP_REQUIRED = _env_bool("READY_SWEEP_REQUIRED", True)
READY_BTC_REQUIRED = _env_bool("READY_BTC_REQUIRED", True)
BEST_BTC_REQUIRED = _env_bool("BEST_BTC_REQUIRED", True)
READY_REQUIRE_DAILY_VWAP = _env_bool("READY_REQUIRE_DAILY_VWAP", False)
READY_VOL_SPIKE_MAX = _env_opt_float("READY_VOL_SPIKE_MAX")

# VWAP windows (percent)
READY_VWAP_MAX_PCT = _env_opt_float("READY_VWAP_MAX_PCT")
BEST_VWAP_MAX_PCT = _env_opt_float("BEST_VWAP_MAX_PCT")
READY_VWAP_EPS_PCT = _env_float("READY_VWAP_EPS_PCT", "0.02")
READY_VWAP_TOUCH_PCT = _env_float("READY_VWAP_TOUCH_PCT", "0.20")
READY_VWAP_TOUCH_BARS = _env_int("READY_VWAP_TOUCH_BARS", "5")
BEST_VWAP_EPS_PCT = _env_float("BEST_VWAP_EPS_PCT", "0")
BEST_EMA_EPS_PCT = _env_float("BEST_EMA_EPS_PCT", "0")
READY_EMA_EPS_PCT = _env_float("READY_EMA_EPS_PCT", "0")
WATCH_EMA_EPS_PCT = _env_float("WATCH_EMA_EPS_PCT", "0")
EMA5_WATCH_SOFT_TOL = 0.25     # % below EMA200 allowed on WATCH
VWAP_WATCH_MIN_PCT = _env_float("VWAP_WATCH_MIN_PCT", "0.80")
READY_NO_SWEEP_VWAP_CAP = 0.20
VWAP_TOUCH_SNAPSHOT_BARS = _env_int("VWAP_TOUCH_SNAPSHOT_BARS", "30")

# 15m confirmation
CONFIRM15_RSI_MIN = 55
CONFIRM15_RSI_MAX = 80
CONFIRM15_VWAP_ROLL_BARS = _env_int("CONFIRM15_VWAP_ROLL_BARS", "96")
CONFIRM15_VWAP_EPS_PCT = _env_float("CONFIRM15_VWAP_EPS_PCT", "0.20")
EMA15_SOFT_TOL = 0.10          # % below EMA200 allowed on soft confirm
RSI15_FLOOR_SOFT = 50
RSI15_SOFT_FALL_EPS = 0.3

# Liquidity sweep
LIQ_LOOKBACK = _env_int("LIQ_LOOKBACK", "20")
SWEEP_WINDOW_BARS = 3
SWEEP_MIN_DEPTH_ATR_MULT = _env_float("SWEEP_MIN_DEPTH_ATR_MULT", "0.35")
SWEEP_MAX_DEPTH_CAP = _env_float("SWEEP_MAX_DEPTH_CAP", "0.25")
SWEEP_MIN_DEPTH_FLOOR = 0.10

# Bear gate (reference asset bearish on 15m)
BEAR_GATE_ENABLED = _env_bool("BEAR_GATE_ENABLED", True)
BEAR_GATE_HOLD_CANDLES = _env_int("BEAR_GATE_HOLD_CANDLES", "2")
BEAR_GATE_VOL_MULT = _env_float("BEAR_GATE_VOL_MULT", "1.2")
BEAR_GATE_RSI_MIN = _env_float("BEAR_GATE_RSI_MIN", str(RSI_READY_MIN))

# Session filter (UTC hour windows, "start-end,start-end")
SESSION_FILTER_ENABLED = _env_bool("SESSION_FILTER_ENABLED", True)
SESSIONS_UTC = os.getenv("SESSIONS_UTC", "07-11,13-20")

# Look-ahead guard
STRICT_NO_LOOKAHEAD = _env_bool("STRICT_NO_LOOKAHEAD", False)
NO_LOOKAHEAD_LOG = _env_bool("NO_LOOKAHEAD_LOG", False)
NO_LOOKAHEAD_LOG_BUDGET = max(0, _env_int("NO_LOOKAHEAD_LOG_BUDGET", "0"))
VWAP_DAY_FLIP_LOG_COOLDOWN_S = 60.0

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "logs/engine.log")
DEBUG_LOG_FILE = os.getenv("DEBUG_LOG_FILE", "logs/debug_engine.log")

# Feature snapshots (replay input)
SNAPSHOT_FILE = os.getenv("SNAPSHOT_FILE", "logs/feature_snapshots.jsonl")
