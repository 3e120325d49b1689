from __future__ import annotations
import asyncio
import curses
import logging
import os
import select
import sys
from typing import Dict, List, Optional, Sequence

from .errors import InputError
from .events import KeyEvent, decode_key
from .models import CharVerdict, Mode, SessionResult, SessionSnapshot

log = logging.getLogger(__name__)

# ------------------------------
# Text helpers
# ------------------------------

def human_duration(seconds: float) -> str:
    seconds = int(seconds)
    h, rem = divmod(seconds, 3600)
    m, s = divmod(rem, 60)
    if h:
        return f"{h}h{m:02d}m"
    return f"{m}m{s:02d}s" if m else f"{s}s"

def wrap_text(text: str, width: int) -> List[str]:
    """Whitespace wrap that keeps every character, so "".join(lines) == text."""
    width = max(1, width)
    lines: List[str] = []
    line = ""
    word = ""
    for ch in text:
        word += ch
        if ch == " ":
            line, word = _place(lines, line, word, width), ""
    if word:
        line = _place(lines, line, word, width)
    if line:
        lines.append(line)
    return lines

def _place(lines: List[str], line: str, word: str, width: int) -> str:
    if line and len(line) + len(word.rstrip(" ")) > width:
        lines.append(line)
        line = ""
    while len(word) > width and not line:
        lines.append(word[:width])
        word = word[width:]
    return line + word

def count_words(text: str) -> int:
    return len(text.split())

# ------------------------------
# Curses presentation
# ------------------------------

class CursesPresenter:
    COLOR_OK = 1
    COLOR_ERR = 2
    COLOR_DIM = 3
    COLOR_INFO = 4

    MARGIN = 2

    def __init__(self, stdscr, no_color: bool = False, wrap: int = 0):
        self.stdscr = stdscr
        self.wrap = wrap
        self.color = not no_color and curses.has_colors()
        if self.color:
            self.init_colors()
        try:
            curses.curs_set(0)
        except curses.error:
            pass

    def init_colors(self):
        curses.start_color()
        curses.use_default_colors()
        curses.init_pair(self.COLOR_OK, curses.COLOR_GREEN, -1)
        curses.init_pair(self.COLOR_ERR, curses.COLOR_RED, -1)
        curses.init_pair(self.COLOR_DIM, curses.COLOR_CYAN, -1)
        curses.init_pair(self.COLOR_INFO, curses.COLOR_YELLOW, -1)

    @property
    def width(self) -> int:
        _, maxx = self.stdscr.getmaxyx()
        return min(self.wrap, maxx) if self.wrap else maxx

    def _attr(self, verdict: CharVerdict) -> int:
        if not self.color:
            return {CharVerdict.CORRECT: curses.A_BOLD,
                    CharVerdict.INCORRECT: curses.A_REVERSE}.get(verdict, curses.A_DIM)
        if verdict is CharVerdict.CORRECT:
            return curses.color_pair(self.COLOR_OK)
        if verdict is CharVerdict.INCORRECT:
            return curses.color_pair(self.COLOR_ERR) | curses.A_BOLD
        return curses.color_pair(self.COLOR_DIM) | curses.A_DIM

    def _put(self, y: int, x: int, text: str, attr: int = 0):
        maxy, maxx = self.stdscr.getmaxyx()
        if y >= maxy or x >= maxx - 1:
            return
        try:
            self.stdscr.addstr(y, x, text[:maxx - 1 - x], attr)
        except curses.error:
            pass

    def render_countdown(self, seconds: int):
        self.stdscr.erase()
        maxy, maxx = self.stdscr.getmaxyx()
        attr = curses.A_BOLD | (curses.color_pair(self.COLOR_INFO) if self.color else 0)
        self._put(maxy // 2, max(0, maxx // 2 - 1), str(seconds), attr)
        self.stdscr.refresh()

    def render(self, snapshot: SessionSnapshot):
        self.stdscr.erase()
        self.draw_header(snapshot)
        y = self.draw_target(snapshot, 2)
        self.draw_status(snapshot, y + 2)
        self.stdscr.refresh()

    def draw_header(self, snapshot: SessionSnapshot):
        if snapshot.mode is Mode.TIMER:
            info = f"{int(snapshot.remaining or 0)}s remaining"
        elif snapshot.mode is Mode.WORDS:
            info = f"{count_words(snapshot.target)} words"
        else:
            info = "quote mode"
        title = snapshot.mode.value.upper()
        hint = "Esc / Ctrl+C to exit"
        attr = curses.color_pair(self.COLOR_INFO) if self.color else curses.A_BOLD
        self._put(0, self.MARGIN, title, attr)
        self._put(0, self.MARGIN + len(title), f" | {info}")
        pad = self.width - len(hint) - self.MARGIN
        if pad > self.MARGIN + len(title) + len(info) + 3:
            self._put(0, pad, hint, curses.A_DIM)

    def draw_target(self, snapshot: SessionSnapshot, top: int) -> int:
        lines = wrap_text(snapshot.target, max(20, self.width - 2 * self.MARGIN))
        idx = 0
        y = top
        for y, line in enumerate(lines, start=top):
            for x, ch in enumerate(line, start=self.MARGIN):
                verdict = snapshot.verdicts[idx] if idx < len(snapshot.verdicts) else CharVerdict.UNATTEMPTED
                if ch == " " and verdict is CharVerdict.INCORRECT:
                    ch = "·"
                self._put(y, x, ch, self._attr(verdict))
                idx += 1
        return y

    def draw_status(self, snapshot: SessionSnapshot, y: int):
        x = self.MARGIN
        if snapshot.elapsed > 0.5:
            text = f"{snapshot.live_wpm:.0f} WPM"
            attr = curses.A_BOLD | (curses.color_pair(self.COLOR_OK) if self.color else 0)
            self._put(y, x, text, attr)
            x += len(text) + 2
        text = f"{snapshot.elapsed:.1f}s"
        self._put(y, x, text, curses.A_DIM)
        x += len(text) + 2
        if snapshot.mode is not Mode.TIMER:
            self._put(y, x, f"{snapshot.progress:.0f}%")

class CursesInput:
    """Polls a no-delay curses window; the coroutine yields between polls.

    An empty poll is normally just "no key yet". When the underlying input
    stream stops being a terminal, or stays readable while curses keeps
    returning nothing (EOF or hang-up), InputError is raised instead.
    """

    MAX_STALLED_POLLS = 3

    def __init__(self, stdscr, poll_interval: float = 0.01, fd: Optional[int] = None):
        self.stdscr = stdscr
        self.poll_interval = poll_interval
        self.fd = sys.stdin.fileno() if fd is None else fd
        self._stalled = 0
        stdscr.nodelay(True)
        stdscr.keypad(True)

    async def read_key(self) -> KeyEvent:
        while True:
            try:
                raw = self.stdscr.get_wch()
            except curses.error:
                self._check_stream()
                await asyncio.sleep(self.poll_interval)
                continue
            self._stalled = 0
            return decode_key(raw)

    def _check_stream(self):
        try:
            alive = os.isatty(self.fd)
            readable, _, _ = select.select([self.fd], [], [], 0)
        except (OSError, ValueError) as e:
            raise InputError(f"terminal input unavailable: {e}") from e
        if not alive:
            raise InputError("terminal input is no longer a tty")
        if not readable:
            self._stalled = 0
            return
        # readable but nothing decoded: the stream is at EOF or hung up
        self._stalled += 1
        if self._stalled >= self.MAX_STALLED_POLLS:
            raise InputError("end of terminal input")

    def flush(self):
        curses.flushinp()

# ------------------------------
# Plain-text reports
# ------------------------------

def _mode_detail(mode: str, seconds: int, words: int, quote_id: str, source: str = "") -> str:
    if mode == Mode.TIMER.value:
        return f"{seconds} seconds"
    if mode == Mode.WORDS.value:
        return f"{words} words"
    detail = f"quote {quote_id}" if quote_id else "quote"
    return f"{detail} ({source})" if source else detail

def format_summary(result: SessionResult, chart: str = "") -> str:
    md = result.metadata
    lines = [
        "",
        "=== Session Results ===",
        f"Mode           : {_mode_detail(result.mode.value, md.seconds, md.word_count, md.quote_id, md.source)}",
        f"WPM            : {result.wpm:.1f}",
        f"Raw WPM        : {result.raw_wpm:.1f}",
        f"Accuracy       : {result.accuracy:.1f}%",
        f"Time           : {result.duration:.1f}s",
        f"Characters     : {result.correct_chars}/{result.total_typed} correct ({result.target_len} in target)",
    ]
    if chart:
        lines += ["", "Speed over time", ""] + ["  " + line for line in chart.rstrip("\n").splitlines()]
    return "\n".join(lines) + "\n"

def format_history(rows: Sequence[dict]) -> str:
    if not rows:
        return "No typing tests recorded yet.\n"
    header = f"{'ID':>5}  {'Date':<19}  {'Mode':<6}  {'WPM':>6}  {'Raw':>6}  {'Acc':>6}  {'Time':>7}"
    lines = [header, "-" * len(header)]
    for r in rows:
        date = (r["started_at"] or "")[:19].replace("T", " ")
        lines.append(
            f"{r['id']:>5}  {date:<19}  {r['mode']:<6}  {r['wpm']:>6.1f}  {r['raw_wpm']:>6.1f}  "
            f"{r['accuracy']:>5.1f}%  {human_duration(r['duration_ms'] / 1000):>7}"
        )
    return "\n".join(lines) + "\n"

def format_stats(stats: Dict) -> str:
    if not stats or not stats.get("total_tests"):
        return "No typing tests recorded yet.\nRun `typetest` to start your first test!\n"
    lines = [
        "=== Your Typing Statistics ===",
        f"Total tests      : {stats['total_tests']}",
        f"Total time       : {human_duration(stats['total_time_ms'] / 1000)}",
        f"Average WPM      : {stats['avg_wpm']:.1f}",
        f"Best WPM         : {stats['best_wpm']:.1f}",
        f"Average accuracy : {stats['avg_accuracy']:.1f}%",
        "",
        "=== Recent Trends ===",
        f"Last 7 days avg  : {stats['last7_avg_wpm']:.1f} WPM",
        f"Last 30 days avg : {stats['last30_avg_wpm']:.1f} WPM",
    ]
    last7, last30 = stats["last7_avg_wpm"], stats["last30_avg_wpm"]
    if last7 > 0 and last30 > 0:
        diff = last7 - last30
        if diff > 2:
            lines.append(f"Trend            : improving (+{diff:.1f} WPM)")
        elif diff < -2:
            lines.append(f"Trend            : declining ({diff:.1f} WPM)")
        else:
            lines.append("Trend            : stable")
    if stats.get("modes"):
        lines += ["", "=== By Mode ==="]
        for mode, m in stats["modes"].items():
            lines.append(f"{mode:<6}: {m['tests']} tests | avg {m['avg_wpm']:.1f} WPM | best {m['best_wpm']:.1f} WPM")
    return "\n".join(lines) + "\n"

def format_session(row: dict, chart: Optional[str] = None) -> str:
    lines = [
        f"=== Session #{row['id']} ===",
        f"Date       : {(row['started_at'] or '')[:19].replace('T', ' ')}",
        f"Mode       : {_mode_detail(row['mode'], row['seconds'], row['words'], row['quote_id'])}",
        f"WPM        : {row['wpm']:.1f}",
        f"Raw WPM    : {row['raw_wpm']:.1f}",
        f"Accuracy   : {row['accuracy']:.1f}%",
        f"Time       : {row['duration_ms'] / 1000:.1f}s",
        f"Characters : {row['correct_chars']}/{row['total_typed']} correct",
    ]
    if chart:
        lines += ["", "Speed over time", ""] + ["  " + line for line in chart.rstrip("\n").splitlines()]
    return "\n".join(lines) + "\n"
