from __future__ import annotations
import datetime as dt
import logging
import time
from typing import Callable, List, Optional, Protocol, Tuple

from .errors import ConfigError, SessionError
from .metrics import DEFAULT_SAMPLE_INTERVAL, MetricsTracker, accuracy, net_wpm, raw_wpm
from .models import CharVerdict, Mode, Phase, SessionResult, SessionSnapshot, Target

log = logging.getLogger(__name__)

def now_ts() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat(timespec="seconds")

# ------------------------------
# Duration timer capability
# ------------------------------

class DurationTimer(Protocol):
    def arm(self, seconds: float) -> None: ...
    def cancel(self) -> None: ...

class NullTimer:
    """Timer that never fires; expiry is then driven by calling expire() directly."""

    def __init__(self):
        self.armed_for: Optional[float] = None
        self.cancelled = False

    def arm(self, seconds: float) -> None:
        self.armed_for = seconds

    def cancel(self) -> None:
        self.cancelled = True

# ------------------------------
# Session Engine (state machine)
# ------------------------------

class SessionEngine:
    """Character-level typing state machine.

    NOT_STARTED -> RUNNING -> FINISHED | ABORTED. Every mutator checks the
    phase first and returns False when the event does not apply, so events
    arriving after the session ended are dropped instead of corrupting it.
    """

    def __init__(
        self,
        target: Target,
        *,
        time_limit: Optional[float] = None,
        sample_interval: float = DEFAULT_SAMPLE_INTERVAL,
        timer: Optional[DurationTimer] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], str] = now_ts,
    ):
        if not target.text:
            raise ConfigError("target text must be non-empty")
        if time_limit is None:
            time_limit = float(target.metadata.seconds)
        if target.mode is Mode.TIMER and time_limit <= 0:
            raise ConfigError("timer mode needs a positive duration")
        self.target = target
        self.time_limit = time_limit if target.mode is Mode.TIMER else 0.0
        self.metrics = MetricsTracker(sample_interval)
        self.timer: DurationTimer = timer or NullTimer()
        self._clock = clock
        self._wall_clock = wall_clock
        self._typed: List[str] = []
        self._verdicts: List[CharVerdict] = [CharVerdict.UNATTEMPTED] * len(target.text)
        self._phase = Phase.NOT_STARTED
        self._started_wall = ""
        self.started_at: Optional[float] = None
        self.ended_at: Optional[float] = None
        self._result: Optional[SessionResult] = None

    # --- read side ---------------------------------------------------

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def done(self) -> bool:
        return self._phase.terminal

    @property
    def typed(self) -> str:
        return "".join(self._typed)

    @property
    def verdicts(self) -> Tuple[CharVerdict, ...]:
        return tuple(self._verdicts)

    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.ended_at if self.ended_at is not None else self._clock()
        return max(0.0, end - self.started_at)

    def live_wpm(self) -> float:
        if self.started_at is None:
            return 0.0
        return self.metrics.live_wpm(self.started_at + self.elapsed())

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            target=self.target.text,
            typed=self.typed,
            verdicts=self.verdicts,
            mode=self.target.mode,
            phase=self._phase,
            elapsed=self.elapsed(),
            live_wpm=self.live_wpm(),
            time_limit=self.time_limit,
        )

    # --- transitions -------------------------------------------------

    def attach_timer(self, timer: DurationTimer):
        if self._phase is not Phase.NOT_STARTED:
            raise SessionError("timer must be attached before the session starts")
        self.timer = timer

    def start(self) -> bool:
        if self._phase is not Phase.NOT_STARTED:
            return False
        now = self._clock()
        self._phase = Phase.RUNNING
        self.started_at = now
        self._started_wall = self._wall_clock()
        self.metrics.start(now)
        if self.target.mode is Mode.TIMER:
            self.timer.arm(self.time_limit)
            log.info("timer armed for %.1fs", self.time_limit)
        log.info("session started (mode=%s, %d chars)", self.target.mode.value, len(self.target.text))
        return True

    def handle_rune(self, ch: str) -> bool:
        if len(ch) != 1:
            return False
        if self._phase is Phase.NOT_STARTED:
            self.start()
        if self._phase is not Phase.RUNNING:
            log.debug("rune %r ignored in phase %s", ch, self._phase.value)
            return False
        idx = len(self._typed)
        if idx >= len(self.target.text):
            # under-provisioned target: typing stalls instead of overrunning
            return False
        correct = ch == self.target.text[idx]
        self._typed.append(ch)
        self._verdicts[idx] = CharVerdict.CORRECT if correct else CharVerdict.INCORRECT
        self.metrics.register_keystroke(correct)
        if self.target.mode is not Mode.TIMER and len(self._typed) >= len(self.target.text):
            self.finish()
        else:
            self.metrics.maybe_sample(self._clock())
        return True

    def handle_backspace(self) -> bool:
        if self._phase is not Phase.RUNNING or not self._typed:
            return False
        idx = len(self._typed) - 1
        was_correct = self._verdicts[idx] is CharVerdict.CORRECT
        self._verdicts[idx] = CharVerdict.UNATTEMPTED
        self._typed.pop()
        self.metrics.revert_keystroke(was_correct)
        self.metrics.maybe_sample(self._clock())
        return True

    def tick(self) -> bool:
        if self._phase is not Phase.RUNNING:
            return False
        return self.metrics.maybe_sample(self._clock()) is not None

    def expire(self) -> bool:
        if self._phase is not Phase.RUNNING or self.target.mode is not Mode.TIMER:
            return False
        log.info("timer elapsed")
        return self.finish()

    def finish(self) -> bool:
        if self._phase is not Phase.RUNNING:
            return False
        self._end(Phase.FINISHED)
        log.info("session finished: %d/%d correct in %.2fs",
                 self.metrics.correct_chars, self.metrics.total_typed, self.elapsed())
        return True

    def abort(self) -> bool:
        if self._phase.terminal:
            return False
        self._end(Phase.ABORTED)
        log.info("session aborted after %.2fs", self.elapsed())
        return True

    def _end(self, phase: Phase):
        self._phase = phase
        if self.started_at is not None:
            self.ended_at = max(self._clock(), self.started_at)
            self.metrics.final_sample(self.ended_at)
        self.timer.cancel()

    # --- result ------------------------------------------------------

    def result(self) -> SessionResult:
        if not self._phase.terminal:
            raise SessionError(f"no result while session is {self._phase.value}")
        if self._result is None:
            seconds = self.elapsed()
            total, correct = self.metrics.total_typed, self.metrics.correct_chars
            self._result = SessionResult(
                mode=self.target.mode,
                started_at=self._started_wall,
                duration=seconds,
                target_len=len(self.target.text),
                total_typed=total,
                correct_chars=correct,
                accuracy=accuracy(correct, total),
                wpm=net_wpm(correct, seconds),
                raw_wpm=raw_wpm(total, seconds),
                samples=tuple(self.metrics.samples),
                metadata=self.target.metadata,
                aborted=self._phase is Phase.ABORTED,
            )
        return self._result
