"""Monotonic clock helpers used for elapsed-time accounting."""

import asyncio
import time
from typing import Awaitable, Callable, Optional

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]

monotonic: Clock = time.monotonic
sleep: Sleeper = asyncio.sleep


class Stopwatch:
    """
    Measures wall-clock time from start() using a monotonic clock.

    Example:
        >>> watch = Stopwatch()
        >>> watch.start()
        >>> watch.format()
        '0s'
    """

    def __init__(self, clock: Clock = monotonic):
        self.clock = clock
        self.started_at: Optional[float] = None

    def start(self) -> float:
        self.started_at = self.clock()
        return self.started_at

    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        return max(0.0, self.clock() - self.started_at)

    def format(self) -> str:
        return format_duration(self.elapsed())


def format_duration(seconds: float) -> str:
    """Human readable duration, e.g. '1h 02m 05s'"""
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {secs:02d}s"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"
