from __future__ import annotations
import asyncio
import curses
import enum
import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Union

from .models import SessionResult, SessionSnapshot
from .session import SessionEngine

log = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 0.2  # seconds

# ------------------------------
# Key events (input contract)
# ------------------------------

class KeyType(enum.Enum):
    RUNE = "rune"
    BACKSPACE = "backspace"
    ENTER = "enter"
    ESCAPE = "escape"
    ABORT = "abort"
    UNKNOWN = "unknown"

@dataclass(frozen=True)
class KeyEvent:
    type: KeyType
    char: str = ""

    @classmethod
    def rune(cls, ch: str) -> "KeyEvent":
        return cls(KeyType.RUNE, ch)

BACKSPACE = KeyEvent(KeyType.BACKSPACE)
ENTER = KeyEvent(KeyType.ENTER)
ESCAPE = KeyEvent(KeyType.ESCAPE)
ABORT = KeyEvent(KeyType.ABORT)
UNKNOWN = KeyEvent(KeyType.UNKNOWN)

_BACKSPACE_CODES = {curses.KEY_BACKSPACE, 127, 8}
_ENTER_CODES = {curses.KEY_ENTER, 10, 13}

def decode_key(raw: Union[str, int]) -> KeyEvent:
    """Map one curses `get_wch()` value to a KeyEvent."""
    if isinstance(raw, str):
        if len(raw) != 1:
            return UNKNOWN
        code = ord(raw)
    else:
        code = raw
    if code == 3:
        return ABORT
    if code == 27:
        return ESCAPE
    if code in _ENTER_CODES:
        return ENTER
    if code in _BACKSPACE_CODES:
        return BACKSPACE
    if isinstance(raw, str) and raw.isprintable():
        return KeyEvent.rune(raw)
    if isinstance(raw, int) and 32 <= code < 127:
        return KeyEvent.rune(chr(code))
    return UNKNOWN

class InputSource(Protocol):
    async def read_key(self) -> KeyEvent: ...
    def flush(self) -> None: ...

class Presenter(Protocol):
    def render(self, snapshot: SessionSnapshot) -> None: ...
    def render_countdown(self, seconds: int) -> None: ...

# ------------------------------
# Loop events
# ------------------------------

class EventKind(enum.Enum):
    KEY = "key"
    TICK = "tick"
    TIMER = "timer"
    INPUT_ERROR = "input_error"

@dataclass(frozen=True)
class LoopEvent:
    kind: EventKind
    key: Optional[KeyEvent] = None
    error: Optional[BaseException] = None

class QueueTimer:
    """One-shot duration timer that posts a TIMER event into the loop queue."""

    def __init__(self, queue: "asyncio.Queue[LoopEvent]"):
        self._queue = queue
        self._task: Optional[asyncio.Task] = None

    @property
    def armed(self) -> bool:
        return self._task is not None and not self._task.done()

    def arm(self, seconds: float) -> None:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._fire(seconds))

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            log.debug("duration timer released")
        self._task = None

    async def _fire(self, seconds: float):
        await asyncio.sleep(seconds)
        self._queue.put_nowait(LoopEvent(EventKind.TIMER))

# ------------------------------
# Event loop
# ------------------------------

class EventLoop:
    """Single consumer that serializes keys, timer expiry and ticks into the engine.

    Producers (input reader, tick, duration timer) only ever put events on
    the queue; the engine is touched from `run()` alone, one event at a time,
    and a snapshot is rendered after each event before the next is taken.
    """

    def __init__(
        self,
        engine: SessionEngine,
        source: InputSource,
        presenter: Optional[Presenter] = None,
        *,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        countdown: int = 0,
    ):
        if tick_interval <= 0:
            raise ValueError("tick_interval must be positive")
        self.engine = engine
        self.source = source
        self.presenter = presenter
        self.tick_interval = tick_interval
        self.countdown = countdown
        self.error: Optional[BaseException] = None
        self.discarded = 0
        self._queue: "asyncio.Queue[LoopEvent]" = asyncio.Queue()
        self.timer = QueueTimer(self._queue)
        engine.attach_timer(self.timer)

    async def run(self) -> SessionResult:
        if self.countdown > 0:
            await self._countdown()
        self.source.flush()
        producer = asyncio.create_task(self._produce(), name="typetest-input")
        ticker = asyncio.create_task(self._tick(), name="typetest-tick")
        try:
            self._render()
            while not self.engine.done:
                event = await self._queue.get()
                self.apply(event)
                self._render()
        finally:
            if not self.engine.done:
                self.engine.abort()
            self.timer.cancel()
            for task in (producer, ticker):
                task.cancel()
            await asyncio.gather(producer, ticker, return_exceptions=True)
            self._drain()
        return self.engine.result()

    def apply(self, event: LoopEvent) -> bool:
        engine = self.engine
        if event.kind is EventKind.KEY and event.key is not None:
            return self._apply_key(event.key)
        if event.kind is EventKind.TICK:
            return engine.tick()
        if event.kind is EventKind.TIMER:
            return engine.expire()
        if event.kind is EventKind.INPUT_ERROR:
            self.error = event.error
            log.error("input source failed: %r", event.error)
            return engine.abort()
        return False

    def _apply_key(self, key: KeyEvent) -> bool:
        engine = self.engine
        if key.type is KeyType.RUNE:
            return engine.handle_rune(key.char)
        if key.type is KeyType.BACKSPACE:
            return engine.handle_backspace()
        if key.type in (KeyType.ESCAPE, KeyType.ABORT):
            return engine.abort()
        return False

    def _render(self):
        if self.presenter is not None:
            self.presenter.render(self.engine.snapshot())

    async def _countdown(self):
        for n in range(self.countdown, 0, -1):
            if self.presenter is not None:
                self.presenter.render_countdown(n)
            await asyncio.sleep(1.0)

    async def _produce(self):
        while True:
            try:
                key = await self.source.read_key()
            except Exception as exc:
                self._queue.put_nowait(LoopEvent(EventKind.INPUT_ERROR, error=exc))
                return
            self._queue.put_nowait(LoopEvent(EventKind.KEY, key=key))

    async def _tick(self):
        while True:
            await asyncio.sleep(self.tick_interval)
            self._queue.put_nowait(LoopEvent(EventKind.TICK))

    def _drain(self):
        while not self._queue.empty():
            self._queue.get_nowait()
            self.discarded += 1
        if self.discarded:
            log.debug("discarded %d events after session end", self.discarded)
