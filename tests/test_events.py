import asyncio
import curses

import pytest

from typetest.errors import InputError
from typetest.events import (
    ABORT,
    BACKSPACE,
    ENTER,
    ESCAPE,
    UNKNOWN,
    EventKind,
    EventLoop,
    KeyEvent,
    KeyType,
    LoopEvent,
    decode_key,
)
from typetest.models import Mode, Phase, Target, TargetMetadata
from typetest.session import SessionEngine


class ScriptedInput:
    """Replays (delay, key-or-exception) pairs, then blocks like an idle user."""

    def __init__(self, script):
        self.script = list(script)
        self.flushed = 0

    def flush(self):
        self.flushed += 1

    async def read_key(self):
        if not self.script:
            await asyncio.Event().wait()
        delay, item = self.script.pop(0)
        await asyncio.sleep(delay)
        if isinstance(item, Exception):
            raise item
        return item


class RecordingPresenter:
    def __init__(self):
        self.snapshots = []
        self.countdowns = []

    def render(self, snapshot):
        self.snapshots.append(snapshot)

    def render_countdown(self, seconds):
        self.countdowns.append(seconds)


def keys(text, delay=0.0):
    return [(delay, KeyEvent.rune(ch)) for ch in text]


def run_loop(engine, source, presenter=None, **kwargs):
    async def go():
        loop = EventLoop(engine, source, presenter, **kwargs)
        result = await loop.run()
        return loop, result
    return asyncio.run(go())


def words_engine(text, **kwargs):
    return SessionEngine(Target(text, Mode.WORDS, TargetMetadata(word_count=len(text.split()))), **kwargs)


def timer_engine(text, time_limit, **kwargs):
    target = Target(text, Mode.TIMER, TargetMetadata(word_count=len(text.split()), seconds=30))
    return SessionEngine(target, time_limit=time_limit, **kwargs)


# ------------------------------
# decode_key
# ------------------------------

@pytest.mark.parametrize("raw, expected", [
    ("a", KeyEvent.rune("a")),
    (" ", KeyEvent.rune(" ")),
    ("é", KeyEvent.rune("é")),
    (97, KeyEvent.rune("a")),
    ("\x7f", BACKSPACE),
    ("\x08", BACKSPACE),
    (curses.KEY_BACKSPACE, BACKSPACE),
    ("\n", ENTER),
    (curses.KEY_ENTER, ENTER),
    ("\x1b", ESCAPE),
    ("\x03", ABORT),
    ("\t", UNKNOWN),
    ("ab", UNKNOWN),
    (curses.KEY_UP, UNKNOWN),
])
def test_decode_key(raw, expected):
    assert decode_key(raw) == expected


# ------------------------------
# apply()
# ------------------------------

def test_apply_ignores_enter_and_unknown_keys():
    engine = words_engine("abc")
    loop = EventLoop(engine, ScriptedInput([]))
    assert not loop.apply(LoopEvent(EventKind.KEY, key=ENTER))
    assert not loop.apply(LoopEvent(EventKind.KEY, key=UNKNOWN))
    assert not loop.apply(LoopEvent(EventKind.TICK))
    assert engine.phase is Phase.NOT_STARTED
    assert loop.apply(LoopEvent(EventKind.KEY, key=KeyEvent.rune("a")))
    assert loop.apply(LoopEvent(EventKind.KEY, key=BACKSPACE))
    assert engine.typed == ""


def test_rejects_non_positive_tick_interval():
    with pytest.raises(ValueError):
        EventLoop(words_engine("abc"), ScriptedInput([]), tick_interval=0)


# ------------------------------
# run()
# ------------------------------

def test_typing_whole_target_finishes():
    presenter = RecordingPresenter()
    source = ScriptedInput(keys("hi"))
    loop, result = run_loop(words_engine("hi"), source, presenter)
    assert not result.aborted
    assert (result.total_typed, result.correct_chars) == (2, 2)
    assert presenter.snapshots[0].phase is Phase.NOT_STARTED
    assert presenter.snapshots[-1].finished
    assert source.flushed == 1
    assert loop.error is None


def test_enter_and_unknown_keys_are_ignored_in_loop():
    script = [(0, ENTER), (0, UNKNOWN)] + keys("ok")
    loop, result = run_loop(words_engine("ok"), ScriptedInput(script))
    assert loop.engine.typed == "ok"
    assert result.total_typed == 2


@pytest.mark.parametrize("key", [ESCAPE, ABORT])
def test_escape_or_interrupt_aborts(key):
    script = keys("h") + [(0, key)]
    loop, result = run_loop(words_engine("hello"), ScriptedInput(script))
    assert result.aborted
    assert result.total_typed == 1
    assert loop.engine.phase is Phase.ABORTED


def test_timer_expiry_finishes_session():
    engine = timer_engine("abcdef ghijk", time_limit=0.3)
    loop, result = run_loop(engine, ScriptedInput(keys("a")), tick_interval=0.05)
    assert engine.phase is Phase.FINISHED
    assert not result.aborted
    assert 0.25 <= result.duration < 2.0
    assert result.total_typed == 1
    assert not loop.timer.armed


def test_timer_released_when_session_aborted():
    engine = timer_engine("ab", time_limit=5)
    script = keys("ab") + [(0.05, ESCAPE)]
    loop, result = run_loop(engine, ScriptedInput(script))
    assert result.aborted
    assert engine.typed == "ab"
    assert not loop.timer.armed


def test_input_error_aborts_and_is_reported():
    script = keys("a") + [(0, InputError("terminal closed"))]
    loop, result = run_loop(words_engine("abc"), ScriptedInput(script))
    assert result.aborted
    assert isinstance(loop.error, InputError)
    assert result.total_typed == 1


def test_events_after_finish_are_discarded():
    loop, result = run_loop(words_engine("ab"), ScriptedInput(keys("abcdef")))
    assert loop.engine.typed == "ab"
    assert result.total_typed == 2
    assert not result.aborted


def test_ticks_and_keys_build_sample_series():
    engine = words_engine("abcdefghij", sample_interval=0.1)
    loop, result = run_loop(engine, ScriptedInput(keys("abcdefghij", delay=0.08)), tick_interval=0.05)
    times = [s.elapsed_ms for s in result.samples]
    assert len(times) >= 3
    assert times[0] == 0
    assert times == sorted(times)
    assert times[-1] == result.duration_ms


def test_countdown_renders_before_input():
    presenter = RecordingPresenter()
    loop, result = run_loop(words_engine("a"), ScriptedInput(keys("a")), presenter, countdown=1)
    assert presenter.countdowns == [1]
    assert presenter.snapshots[-1].finished
