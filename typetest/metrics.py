from __future__ import annotations
import logging
from typing import List, Optional

from .models import Sample

log = logging.getLogger(__name__)

CHARS_PER_WORD = 5.0
MIN_MINUTES = 0.001            # floor for ultra-short sessions
DEFAULT_SAMPLE_INTERVAL = 0.5  # seconds
LIVE_WPM_WARMUP = 1.0          # seconds before live WPM is reported

# ------------------------------
# Formulas
# ------------------------------

def elapsed_minutes(seconds: float) -> float:
    return max(seconds / 60.0, MIN_MINUTES)

def net_wpm(correct_chars: int, seconds: float) -> float:
    return (correct_chars / CHARS_PER_WORD) / elapsed_minutes(seconds)

def raw_wpm(total_typed: int, seconds: float) -> float:
    return (total_typed / CHARS_PER_WORD) / elapsed_minutes(seconds)

def accuracy(correct_chars: int, total_typed: int) -> float:
    if total_typed <= 0:
        return 0.0
    return correct_chars / total_typed * 100.0

# ------------------------------
# Tracker
# ------------------------------

class MetricsTracker:
    """Keystroke counters plus a time series of speed samples.

    Times are plain floats from whatever monotonic clock the caller uses; the
    tracker never reads a clock itself.
    """

    def __init__(self, sample_interval: float = DEFAULT_SAMPLE_INTERVAL):
        if sample_interval <= 0:
            raise ValueError("sample_interval must be positive")
        self.sample_interval = sample_interval
        self.total_typed = 0
        self.correct_chars = 0
        self.started_at: Optional[float] = None
        self.last_sample_at: Optional[float] = None
        self._samples: List[Sample] = []

    @property
    def started(self) -> bool:
        return self.started_at is not None

    @property
    def samples(self) -> List[Sample]:
        return list(self._samples)

    def start(self, now: float):
        if self.started:
            return
        self.started_at = now
        self.last_sample_at = now
        self._samples.append(Sample(elapsed_ms=0, wpm=0.0, raw_wpm=0.0))

    def register_keystroke(self, correct: bool):
        self.total_typed += 1
        if correct:
            self.correct_chars += 1

    def revert_keystroke(self, was_correct: bool):
        self.total_typed = max(0, self.total_typed - 1)
        if was_correct:
            self.correct_chars = max(0, self.correct_chars - 1)

    def elapsed(self, now: float) -> float:
        if self.started_at is None:
            return 0.0
        return max(0.0, now - self.started_at)

    def sample_at(self, now: float) -> Sample:
        seconds = self.elapsed(now)
        return Sample(
            elapsed_ms=int(seconds * 1000),
            wpm=net_wpm(self.correct_chars, seconds),
            raw_wpm=raw_wpm(self.total_typed, seconds),
        )

    def maybe_sample(self, now: float) -> Optional[Sample]:
        if self.last_sample_at is None:
            return None
        if now - self.last_sample_at < self.sample_interval:
            return None
        sample = self._append(now)
        self.last_sample_at = now
        return sample

    def final_sample(self, end: float) -> Optional[Sample]:
        """Append the closing sample at exactly `end`, whatever the interval."""
        if self.started_at is None:
            return None
        return self._append(end)

    def live_wpm(self, now: float) -> float:
        seconds = self.elapsed(now)
        if seconds < LIVE_WPM_WARMUP:
            return 0.0
        return net_wpm(self.correct_chars, seconds)

    def live_raw_wpm(self, now: float) -> float:
        seconds = self.elapsed(now)
        if seconds < LIVE_WPM_WARMUP:
            return 0.0
        return raw_wpm(self.total_typed, seconds)

    def _append(self, now: float) -> Sample:
        sample = self.sample_at(now)
        if self._samples and sample.elapsed_ms < self._samples[-1].elapsed_ms:
            # a late clock read must not make the series go backwards
            sample = Sample(self._samples[-1].elapsed_ms, sample.wpm, sample.raw_wpm)
        self._samples.append(sample)
        log.debug("sample t=%dms wpm=%.1f raw=%.1f", sample.elapsed_ms, sample.wpm, sample.raw_wpm)
        return sample
