from __future__ import annotations
import enum
from dataclasses import dataclass, field
from typing import Optional, Tuple

# ------------------------------
# Enumerations
# ------------------------------

class Mode(str, enum.Enum):
    TIMER = "timer"
    WORDS = "words"
    QUOTE = "quote"

class CharVerdict(enum.IntEnum):
    UNATTEMPTED = 0
    CORRECT = 1
    INCORRECT = 2

class Phase(enum.Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    FINISHED = "finished"
    ABORTED = "aborted"

    @property
    def terminal(self) -> bool:
        return self in (Phase.FINISHED, Phase.ABORTED)

# ------------------------------
# Target (what to type)
# ------------------------------

@dataclass(frozen=True)
class TargetMetadata:
    word_count: int = 0   # words mode, and the provisioned count in timer mode
    seconds: int = 0      # timer mode
    quote_id: str = ""
    source: str = ""

@dataclass(frozen=True)
class Target:
    text: str
    mode: Mode
    metadata: TargetMetadata = field(default_factory=TargetMetadata)

# ------------------------------
# Samples, snapshots and results
# ------------------------------

@dataclass(frozen=True)
class Sample:
    elapsed_ms: int
    wpm: float
    raw_wpm: float

@dataclass(frozen=True)
class SessionSnapshot:
    target: str
    typed: str
    verdicts: Tuple[CharVerdict, ...]
    mode: Mode
    phase: Phase
    elapsed: float          # seconds
    live_wpm: float
    time_limit: float = 0.0

    @property
    def finished(self) -> bool:
        return self.phase is Phase.FINISHED

    @property
    def aborted(self) -> bool:
        return self.phase is Phase.ABORTED

    @property
    def remaining(self) -> Optional[float]:
        if self.mode is not Mode.TIMER or self.time_limit <= 0:
            return None
        return max(0.0, self.time_limit - self.elapsed)

    @property
    def progress(self) -> float:
        if not self.target:
            return 0.0
        return min(100.0, len(self.typed) / len(self.target) * 100.0)

@dataclass(frozen=True)
class SessionResult:
    mode: Mode
    started_at: str          # ISO-8601 UTC wall clock, "" if never started
    duration: float          # seconds
    target_len: int
    total_typed: int
    correct_chars: int
    accuracy: float
    wpm: float
    raw_wpm: float
    samples: Tuple[Sample, ...]
    metadata: TargetMetadata
    aborted: bool = False

    @property
    def duration_ms(self) -> int:
        return int(self.duration * 1000)

    @property
    def incorrect_chars(self) -> int:
        return self.total_typed - self.correct_chars
