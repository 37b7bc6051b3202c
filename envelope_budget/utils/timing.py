"""
Timing utilities for the Envelope Budget API.

Wall-clock measurements (perf_counter) around store interactions, used by the
ledger to report how long a posting waited for its envelope lock and how long
the whole unit of work took.

Usage example:
    from envelope_budget.utils.timing import time_block

    with time_block("lock-wait") as stats:
        uow.lock_envelope(envelope_id)

    print(stats.duration_ms)
"""

from __future__ import annotations

import contextlib
import time
from dataclasses import dataclass, field
from typing import Generator


@dataclass
class TimingStats:
    """
    Container for a single timed block.
    """

    label: str
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)

    @property
    def duration_ms(self) -> float:
        return round(self.duration_seconds * 1000.0, 3)


@contextlib.contextmanager
def time_block(label: str) -> Generator[TimingStats, None, None]:
    """
    Context manager measuring the wall-clock duration of a block.

    The stats are filled in even when the block raises, so callers can log the
    duration of failed attempts too.
    """
    stats = TimingStats(label=label)
    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts


__all__ = ["TimingStats", "time_block"]
