import logging
import threading
import time
from typing import Callable, Dict, Optional


class NullLogSampler:
    """Default diagnostic port: drops everything, holds no state."""

    def log(self, key: str, message: str) -> bool:
        return False


class CooldownLogSampler:
    """Emit at most one message per key every `cooldown_s` seconds."""

    def __init__(
        self,
        logger: logging.Logger,
        cooldown_s: float = 60.0,
        level: int = logging.INFO,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.logger = logger
        self.cooldown_s = cooldown_s
        self.level = level
        self.clock = clock
        self._last: dict[str, float] = {}
        self._lock = threading.Lock()

    def log(self, key: str, message: str) -> bool:
        now = self.clock()
        with self._lock:
            last = self._last.get(key)
            if last is not None and now - last < self.cooldown_s:
                return False
            self._last[key] = now
        self.logger.log(self.level, message)
        return True


class BudgetLogSampler:
    """
    Emit until a fixed token budget is spent, then go quiet until restart.
    A budget of None (or 0) means unlimited.
    """

    def __init__(self, logger: logging.Logger, budget: Optional[int] = None, level: int = logging.INFO):
        self.logger = logger
        self.level = level
        self.unlimited = not budget
        self.remaining = budget or 0
        self._lock = threading.Lock()

    def log(self, key: str, message: str) -> bool:
        with self._lock:
            if not self.unlimited:
                if self.remaining <= 0:
                    return False
                self.remaining -= 1
            left = None if self.unlimited else self.remaining
        suffix = "" if left is None else f" budgetLeft={left}"
        self.logger.log(self.level, f"{message}{suffix}")
        return True


class RoutingLogSampler:
    """Dispatch by key to per-diagnostic samplers; unknown keys are dropped."""

    def __init__(self, routes: Dict[str, object], default=None):
        self.routes = dict(routes)
        self.default = default or NullLogSampler()

    def log(self, key: str, message: str) -> bool:
        return self.routes.get(key, self.default).log(key, message)
