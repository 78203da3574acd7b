"""
Extraction context with cancellation and phase statistics.

Provides:
- Cooperative cancellation via token, checked between lines
- Per-phase statistics (duration, lines seen, resident memory)
- Phase timing log lines
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import IntEnum, auto
from threading import Event
from typing import Generator, Optional

import psutil

logger = logging.getLogger(__name__)


class PhaseState(IntEnum):
    """Phase execution states."""
    PENDING = auto()     # Created but not started
    RUNNING = auto()     # Currently executing
    COMPLETED = auto()   # Finished successfully
    CANCELLED = auto()   # Cancelled by caller
    FAILED = auto()      # Failed with error


class ExtractionCancelledException(Exception):
    """Exception raised when an extraction run is cancelled."""
    pass


class CancellationToken:
    """Token for cooperative cancellation of a running extraction."""

    def __init__(self):
        self._cancelled = Event()

    def cancel(self):
        """Request cancellation."""
        self._cancelled.set()

    def is_cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self._cancelled.is_set()

    def check(self):
        """Raise exception if cancelled."""
        if self._cancelled.is_set():
            raise ExtractionCancelledException("Extraction was cancelled")


def resident_memory_mb() -> float:
    """Resident set size of this process in MB."""
    return psutil.Process().memory_info().rss / (1024 * 1024)


@dataclass
class PhaseStats:
    """Statistics for one phase of a run."""
    name: str
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    state: PhaseState = PhaseState.PENDING
    lines_seen: int = 0
    lines_skipped: int = 0
    rss_mb: float = 0.0
    error: Optional[str] = None

    @property
    def duration_seconds(self) -> float:
        """Phase duration in seconds."""
        if self.start_time is None:
            return 0.0
        end = self.end_time or time.time()
        return end - self.start_time

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "duration_seconds": self.duration_seconds,
            "state": self.state.name,
            "lines_seen": self.lines_seen,
            "lines_skipped": self.lines_skipped,
            "rss_mb": self.rss_mb,
            "error": self.error,
        }


@dataclass
class ExtractionContext:
    """
    Execution context for an extraction run.

    Carries the cancellation token and collects one PhaseStats per phase.
    """
    cancellation_token: Optional[CancellationToken] = None
    phases: list[PhaseStats] = field(default_factory=list)

    def check_cancelled(self):
        """Raise if cancellation was requested."""
        if self.cancellation_token is not None:
            self.cancellation_token.check()

    def get_phase(self, name: str) -> Optional[PhaseStats]:
        for stats in self.phases:
            if stats.name == name:
                return stats
        return None

    @contextmanager
    def phase(self, name: str) -> Generator[PhaseStats, None, None]:
        """
        Time a phase and log its outcome.

        Usage:
            with context.phase("first_pass") as stats:
                stats.lines_seen = aggregator.first_pass(source)
        """
        stats = PhaseStats(name=name)
        self.phases.append(stats)
        stats.start_time = time.time()
        stats.state = PhaseState.RUNNING
        logger.info(f"{name} started")
        try:
            yield stats
        except ExtractionCancelledException:
            stats.end_time = time.time()
            stats.state = PhaseState.CANCELLED
            logger.warning(f"{name} cancelled after {stats.duration_seconds:.2f}s")
            raise
        except Exception as e:
            stats.end_time = time.time()
            stats.state = PhaseState.FAILED
            stats.error = str(e)
            logger.error(f"{name} failed after {stats.duration_seconds:.2f}s: {e}")
            raise
        stats.end_time = time.time()
        stats.state = PhaseState.COMPLETED
        stats.rss_mb = resident_memory_mb()
        logger.info(
            f"{name} finished in {stats.duration_seconds:.2f}s "
            f"({stats.lines_seen:,} lines, RSS {stats.rss_mb:.0f} MB)"
        )

    def to_dict(self) -> dict:
        return {"phases": [stats.to_dict() for stats in self.phases]}
