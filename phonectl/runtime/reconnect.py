# phonectl/runtime/reconnect.py
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class ReconnectPolicy:
    """
    Delay between connection attempts while the device is unreachable.

    The defaults give a fixed 3 s interval with no attempt cap. Setting
    max_delay above base_delay turns on exponential backoff; jitter spreads
    each delay by +/- that fraction.
    """
    base_delay: float = 3.0
    max_delay: float = 3.0
    max_attempts: Optional[int] = None
    jitter: float = 0.0
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.base_delay <= 0:
            raise ValueError(f"base_delay must be > 0 (got {self.base_delay})")
        if self.max_delay < self.base_delay:
            raise ValueError(f"max_delay {self.max_delay} < base_delay {self.base_delay}")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1 or None (got {self.max_attempts})")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError(f"jitter must be within [0, 1] (got {self.jitter})")
        if self.multiplier < 1.0:
            raise ValueError(f"multiplier must be >= 1 (got {self.multiplier})")

    def delay_for(self, attempts: int, rng: Callable[[], float] = random.random) -> float:
        """Delay before the next tick, given `attempts` made since the last connect."""
        exp = max(0, int(attempts) - 1)
        delay = min(self.max_delay, self.base_delay * (self.multiplier ** exp))
        if self.jitter:
            delay *= 1.0 - self.jitter + 2.0 * self.jitter * rng()
        return max(0.0, delay)

    def exhausted(self, attempts: int) -> bool:
        return self.max_attempts is not None and attempts >= self.max_attempts
