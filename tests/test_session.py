import random

import pytest

from typetest.errors import ConfigError, SessionError
from typetest.models import CharVerdict, Mode, Phase, Target, TargetMetadata
from typetest.session import NullTimer, SessionEngine


def words_target(text):
    return Target(text, Mode.WORDS, TargetMetadata(word_count=len(text.split())))


def timer_target(text, seconds=30):
    return Target(text, Mode.TIMER, TargetMetadata(word_count=len(text.split()), seconds=seconds))


def make_engine(target, clock, **kwargs):
    return SessionEngine(target, clock=clock, wall_clock=lambda: "2024-01-01T00:00:00+00:00", **kwargs)


def type_text(engine, clock, text, step=0.2):
    for i, ch in enumerate(text):
        if i:
            clock.advance(step)
        engine.handle_rune(ch)


def assert_consistent(engine):
    verdicts = engine.verdicts
    attempted = [v for v in verdicts if v is not CharVerdict.UNATTEMPTED]
    assert len(attempted) == len(engine.typed)
    assert all(v is not CharVerdict.UNATTEMPTED for v in verdicts[:len(engine.typed)])
    assert all(v is CharVerdict.UNATTEMPTED for v in verdicts[len(engine.typed):])
    assert engine.metrics.total_typed == len(engine.typed)
    assert engine.metrics.correct_chars == verdicts.count(CharVerdict.CORRECT)


# ------------------------------
# Construction
# ------------------------------

def test_empty_target_rejected(clock):
    with pytest.raises(ConfigError):
        make_engine(words_target(""), clock)


def test_timer_mode_needs_duration(clock):
    with pytest.raises(ConfigError):
        make_engine(timer_target("abc", seconds=0), clock)


def test_time_limit_only_applies_to_timer_mode(clock):
    assert make_engine(timer_target("abc", seconds=15), clock).time_limit == 15
    assert make_engine(words_target("abc"), clock, time_limit=10).time_limit == 0


# ------------------------------
# Typing
# ------------------------------

def test_exact_typing_finishes_with_full_accuracy(clock):
    engine = make_engine(words_target("cat dog"), clock)
    type_text(engine, clock, "cat dog")
    assert engine.phase is Phase.FINISHED
    result = engine.result()
    assert result.accuracy == pytest.approx(100.0)
    assert (result.total_typed, result.correct_chars) == (7, 7)
    assert result.duration == pytest.approx(1.2)
    assert result.wpm == pytest.approx(70.0)
    assert not result.aborted


def test_correction_with_backspace(clock):
    engine = make_engine(words_target("cat"), clock)
    engine.handle_rune("c")
    clock.advance(0.1)
    engine.handle_rune("b")
    assert engine.verdicts[1] is CharVerdict.INCORRECT
    assert engine.handle_backspace()
    assert engine.verdicts[1] is CharVerdict.UNATTEMPTED
    clock.advance(0.1)
    engine.handle_rune("a")
    clock.advance(0.1)
    engine.handle_rune("t")
    assert engine.phase is Phase.FINISHED
    assert engine.verdicts == (CharVerdict.CORRECT,) * 3
    result = engine.result()
    assert result.accuracy == pytest.approx(100.0)
    assert (result.total_typed, result.correct_chars) == (3, 3)


def test_backspace_of_correct_char_reverts_correct_count(clock):
    engine = make_engine(words_target("abc"), clock)
    engine.handle_rune("a")
    engine.handle_rune("b")
    engine.handle_backspace()
    assert (engine.metrics.total_typed, engine.metrics.correct_chars) == (1, 1)
    engine.handle_backspace()
    assert (engine.metrics.total_typed, engine.metrics.correct_chars) == (0, 0)


def test_backspace_on_empty_input_is_noop(clock):
    engine = make_engine(words_target("abc"), clock)
    assert not engine.handle_backspace()
    assert engine.phase is Phase.NOT_STARTED
    engine.handle_rune("a")
    engine.handle_backspace()
    assert not engine.handle_backspace()
    assert engine.phase is Phase.RUNNING


def test_multi_char_input_ignored(clock):
    engine = make_engine(words_target("abc"), clock)
    assert not engine.handle_rune("ab")
    assert not engine.handle_rune("")
    assert engine.phase is Phase.NOT_STARTED


def test_random_keystrokes_keep_state_consistent(clock):
    rng = random.Random(7)
    engine = make_engine(timer_target("the quick brown fox " * 10), clock)
    for _ in range(300):
        clock.advance(rng.uniform(0.01, 0.3))
        if rng.random() < 0.25:
            engine.handle_backspace()
        else:
            engine.handle_rune(rng.choice("the quick brown fox xz"))
        assert_consistent(engine)
        engine.tick()


def test_timer_mode_stalls_at_end_of_target(clock):
    engine = make_engine(timer_target("ab"), clock)
    engine.handle_rune("a")
    engine.handle_rune("b")
    assert not engine.handle_rune("c")
    assert engine.phase is Phase.RUNNING
    assert engine.typed == "ab"
    assert_consistent(engine)


# ------------------------------
# Lifecycle
# ------------------------------

def test_first_rune_starts_session_and_arms_timer(clock):
    timer = NullTimer()
    engine = make_engine(timer_target("abc", seconds=20), clock, timer=timer)
    assert engine.phase is Phase.NOT_STARTED
    engine.handle_rune("a")
    assert engine.phase is Phase.RUNNING
    assert timer.armed_for == 20


def test_words_mode_never_arms_timer(clock):
    timer = NullTimer()
    engine = make_engine(words_target("abc"), clock, timer=timer)
    engine.handle_rune("a")
    assert timer.armed_for is None
    assert not engine.expire()


def test_timer_expiry_with_nothing_typed(clock):
    engine = make_engine(timer_target("some words here", seconds=5), clock)
    engine.start()
    clock.advance(5)
    assert engine.expire()
    result = engine.result()
    assert engine.phase is Phase.FINISHED
    assert not result.aborted
    assert result.accuracy == 0.0
    assert result.wpm == 0.0
    assert result.raw_wpm == 0.0


def test_timer_expiry_after_backspacing_everything(clock):
    engine = make_engine(timer_target("abc", seconds=5), clock)
    engine.handle_rune("x")
    engine.handle_backspace()
    clock.advance(5)
    engine.expire()
    result = engine.result()
    assert result.total_typed == 0
    assert result.accuracy == 0.0


def test_end_cancels_timer(clock):
    timer = NullTimer()
    engine = make_engine(words_target("ab"), clock, timer=timer)
    type_text(engine, clock, "ab")
    assert timer.cancelled


def test_events_after_finish_are_ignored(clock):
    engine = make_engine(words_target("ab"), clock)
    type_text(engine, clock, "ab")
    result = engine.result()
    clock.advance(1)
    assert not engine.handle_rune("x")
    assert not engine.handle_backspace()
    assert not engine.tick()
    assert not engine.expire()
    assert not engine.finish()
    assert not engine.abort()
    assert engine.typed == "ab"
    assert engine.phase is Phase.FINISHED
    assert engine.result() is result


def test_abort_keeps_partial_result(clock):
    engine = make_engine(words_target("abcdef"), clock)
    type_text(engine, clock, "abx")
    clock.advance(0.3)
    assert engine.abort()
    result = engine.result()
    assert result.aborted
    assert (result.total_typed, result.correct_chars) == (3, 2)
    assert result.duration == pytest.approx(0.7)


def test_abort_before_start(clock):
    engine = make_engine(words_target("abc"), clock)
    assert engine.abort()
    result = engine.result()
    assert result.aborted
    assert result.samples == ()
    assert result.duration == 0.0
    assert result.started_at == ""


def test_result_before_end_raises(clock):
    engine = make_engine(words_target("abc"), clock)
    with pytest.raises(SessionError):
        engine.result()
    engine.handle_rune("a")
    with pytest.raises(SessionError):
        engine.result()


def test_attach_timer_after_start_raises(clock):
    engine = make_engine(words_target("abc"), clock)
    engine.handle_rune("a")
    with pytest.raises(SessionError):
        engine.attach_timer(NullTimer())


# ------------------------------
# Samples and snapshots
# ------------------------------

def test_samples_start_at_zero_and_end_at_duration(clock):
    engine = make_engine(words_target("cat dog"), clock)
    type_text(engine, clock, "cat dog")
    result = engine.result()
    first, last = result.samples[0], result.samples[-1]
    assert (first.elapsed_ms, first.wpm, first.raw_wpm) == (0, 0.0, 0.0)
    assert last.elapsed_ms == result.duration_ms
    assert last.wpm == pytest.approx(result.wpm)
    times = [s.elapsed_ms for s in result.samples]
    assert times == sorted(times)
    assert len(result.samples) == 3


def test_raw_wpm_never_below_net(clock):
    engine = make_engine(words_target("hello world"), clock)
    type_text(engine, clock, "hxllo wzrld", step=0.15)
    result = engine.result()
    assert result.raw_wpm >= result.wpm
    assert 0.0 <= result.accuracy <= 100.0
    assert all(s.raw_wpm >= s.wpm for s in result.samples)


def test_tick_samples_while_idle(clock):
    engine = make_engine(words_target("abcdef"), clock)
    engine.handle_rune("a")
    clock.advance(0.3)
    assert not engine.tick()
    clock.advance(0.3)
    assert engine.tick()


def test_snapshot_is_detached_from_engine(clock):
    engine = make_engine(timer_target("abc", seconds=10), clock)
    engine.handle_rune("a")
    clock.advance(2)
    snap = engine.snapshot()
    engine.handle_rune("x")
    assert snap.typed == "a"
    assert snap.verdicts == (CharVerdict.CORRECT, CharVerdict.UNATTEMPTED, CharVerdict.UNATTEMPTED)
    assert snap.remaining == pytest.approx(8.0)
    assert snap.live_wpm == pytest.approx(6.0)
    assert snap.progress == pytest.approx(100 / 3)


def test_elapsed_freezes_after_end(clock):
    engine = make_engine(words_target("ab"), clock)
    type_text(engine, clock, "ab", step=0.5)
    clock.advance(10)
    assert engine.elapsed() == pytest.approx(0.5)
