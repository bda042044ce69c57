from datetime import datetime, timezone
from typing import List, Optional, Sequence

from models.types import Candle
from utils.log_sampler import NullLogSampler

_NULL_SAMPLER = NullLogSampler()


class LookAheadViolation(Exception):
    """A candle that closes at or after the assumed entry time reached the engine."""

    def __init__(self, label: str, last_close: int, entry_time: int):
        self.label = label
        self.last_close = last_close
        self.entry_time = entry_time
        super().__init__(f"{label}_LOOKAHEAD: lastClose={last_close} >= entryTime={entry_time}")


def fmt_ts(ms: Optional[int]) -> str:
    if not ms or ms <= 0:
        return str(ms)
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc).isoformat()


def candle_close_ms(candle: Candle, interval_ms: int) -> int:
    """close_time, else open + interval - 1, else 0 (unknown)."""
    if candle.close_time is not None:
        return int(candle.close_time)
    if candle.timestamp is not None:
        return int(candle.timestamp) + interval_ms - 1
    return 0


def entry_time_ms(candles5: Sequence[Candle], interval_ms: int) -> int:
    """Assumed order entry: the next 5m open after the last bar. 0 when unknown."""
    if not candles5:
        return 0
    last = candles5[-1]
    if last.timestamp is not None and last.timestamp > 0:
        return int(last.timestamp) + interval_ms
    close = candle_close_ms(last, interval_ms)
    return close + 1 if close > 0 else 0


def enforce_no_lookahead(
    candles: Sequence[Candle],
    interval_ms: int,
    entry_ms: int,
    label: str,
    strict: bool = False,
    symbol: Optional[str] = None,
    sampler=None,
) -> List[Candle]:
    """
    Drop trailing candles whose close is not strictly before `entry_ms`.
    In strict mode the first such candle raises LookAheadViolation instead.
    """
    out = list(candles)
    if entry_ms <= 0:
        return out

    removed = 0
    while out:
        close = candle_close_ms(out[-1], interval_ms)
        if close > 0 and close >= entry_ms:
            if strict:
                raise LookAheadViolation(label, close, entry_ms)
            out.pop()
            removed += 1
            continue
        break

    if removed:
        last_close = candle_close_ms(out[-1], interval_ms) if out else 0
        (sampler or _NULL_SAMPLER).log(
            "no_lookahead",
            f"[no-lookahead] {symbol or ''} {label} removed={removed} "
            f"entry={entry_ms}({fmt_ts(entry_ms)}) lastClose={last_close}({fmt_ts(last_close)}) len={len(out)}",
        )
    return out
