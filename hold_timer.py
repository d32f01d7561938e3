"""
Plank hold timer, started and stopped by stability gate events.
"""

import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class HoldTimer:
    """Accumulates plank hold time across acquired/lost cycles"""

    def __init__(self, clock: Callable[[], float] = time.monotonic,
                 target_seconds: Optional[float] = None):
        if target_seconds is not None and target_seconds <= 0:
            raise ValueError(f"target_seconds must be positive, got {target_seconds}")
        self.clock = clock
        self.target_seconds = target_seconds
        self.reset()

    def reset(self):
        self._started_at = None
        self.total_seconds = 0.0
        self.longest_seconds = 0.0
        self.hold_count = 0

    @property
    def running(self) -> bool:
        return self._started_at is not None

    def start(self):
        # A reached target ends the session until reset()
        if self.running or self.completed:
            return
        self._started_at = self.clock()
        self.hold_count += 1
        logger.info("Hold %d started", self.hold_count)

    def stop(self) -> float:
        """End the current hold and return its duration (0 if none was running)"""
        if not self.running:
            return 0.0
        held = self.elapsed()
        self._started_at = None
        self.total_seconds += held
        self.longest_seconds = max(self.longest_seconds, held)
        logger.info("Hold %d ended after %.1fs", self.hold_count, held)
        return held

    def elapsed(self) -> float:
        """Duration of the running hold"""
        if not self.running:
            return 0.0
        return max(0.0, self.clock() - self._started_at)

    def accumulated(self) -> float:
        """Finished holds plus the running one"""
        return self.total_seconds + self.elapsed()

    @property
    def completed(self) -> bool:
        return self.target_seconds is not None and self.accumulated() >= self.target_seconds


def format_duration(seconds: float) -> str:
    seconds = int(max(0, seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"
