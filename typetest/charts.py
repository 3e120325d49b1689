from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

from .models import Sample

# ------------------------------
# Glyphs and layout constants
# ------------------------------

SOLID = "█"
LIGHT = "░"
CONNECTOR = "·"
EMPTY = " "
SPARK_LEVELS = "▁▂▃▄▅▆▇█"

NO_DATA = "No data"
AXIS_WIDTH = 6        # "%5.0f│"
MIN_WIDTH = 20
MIN_HEIGHT = 5
MIN_PLOT_WIDTH = 10
PADDING = 0.1         # fraction of the value span added above and below

@dataclass(frozen=True)
class DataPoint:
    time_ms: int
    value: float

def points_from_samples(samples: Iterable[Sample], raw: bool = False) -> List[DataPoint]:
    return [DataPoint(s.elapsed_ms, s.raw_wpm if raw else s.wpm) for s in samples]

# ------------------------------
# Helpers
# ------------------------------

def map_to_range(value: float, in_lo: float, in_hi: float, out_lo: float, out_hi: float) -> float:
    if in_hi == in_lo:
        return out_lo
    return (value - in_lo) / (in_hi - in_lo) * (out_hi - out_lo) + out_lo

def value_range(points: Sequence[DataPoint]) -> Tuple[float, float]:
    lo = min(p.value for p in points)
    hi = max(p.value for p in points)
    span = max(hi - lo, 1.0)
    return max(0.0, lo - span * PADDING), hi + span * PADDING

def format_time(ms: float) -> str:
    seconds = ms / 1000.0
    if seconds == int(seconds):
        return f"{int(seconds)}s"
    return f"{seconds:.1f}s"

def _clamp(n: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, n))

class _Grid:
    def __init__(self, width: int, height: int, lo: float, hi: float, max_ms: int):
        self.width = width
        self.height = height
        self.lo = lo
        self.hi = hi
        self.span_ms = max_ms
        self.max_ms = max_ms or 1   # divisor only; labels use span_ms
        self.cells = [[EMPTY] * width for _ in range(height)]

    def position(self, p: DataPoint) -> Tuple[float, float]:
        x = map_to_range(float(p.time_ms), 0.0, float(self.max_ms), 0.0, float(self.width - 1))
        y = map_to_range(p.value, self.lo, self.hi, float(self.height - 1), 0.0)
        return x, y

    def cell(self, x: float, y: float) -> Tuple[int, int]:
        # half-cells round up; coordinates are never negative here
        return _clamp(math.floor(x + 0.5), 0, self.width - 1), _clamp(math.floor(y + 0.5), 0, self.height - 1)

    def plot(self, points: Sequence[DataPoint], glyph: str, overwrite: bool = True):
        for p in points:
            col, row = self.cell(*self.position(p))
            if overwrite or self.cells[row][col] == EMPTY:
                self.cells[row][col] = glyph

    def connect(self, points: Sequence[DataPoint]):
        # Bresenham-equivalent walk; connectors only ever land on empty cells
        for a, b in zip(points, points[1:]):
            x1, y1 = self.position(a)
            x2, y2 = self.position(b)
            steps = int(max(abs(x2 - x1), abs(y2 - y1)))
            if steps == 0:
                continue
            for s in range(steps + 1):
                t = s / steps
                col, row = self.cell(x1 + t * (x2 - x1), y1 + t * (y2 - y1))
                if self.cells[row][col] == EMPTY:
                    self.cells[row][col] = CONNECTOR

    def rows(self, show_axis: bool) -> List[str]:
        out = []
        label_rows = {0, self.height // 2, self.height - 1}
        for row, cells in enumerate(self.cells):
            line = "".join(cells)
            if show_axis:
                if row in label_rows:
                    val = map_to_range(float(row), 0.0, float(self.height - 1), self.hi, self.lo)
                    line = f"{val:5.0f}│" + line
                else:
                    line = "     │" + line
            out.append(line)
        return out

    def axis(self) -> List[str]:
        rule = "     └" + "─" * self.width
        labels = [" "] * (AXIS_WIDTH + self.width)

        def put(text: str, col: int):
            for i, ch in enumerate(text):
                if 0 <= col + i < len(labels):
                    labels[col + i] = ch

        start, mid, end = "0s", format_time(self.span_ms / 2), format_time(self.span_ms)
        end_col = len(labels) - len(end)
        mid_col = AXIS_WIDTH + self.width // 2 - len(mid) // 2
        put(start, AXIS_WIDTH)
        if AXIS_WIDTH + len(start) < mid_col and mid_col + len(mid) < end_col:
            put(mid, mid_col)
        put(end, end_col)
        return [rule, "".join(labels).rstrip()]

def _dimensions(width: int, height: int) -> Tuple[int, int]:
    width = max(width, MIN_WIDTH)
    height = max(height, MIN_HEIGHT)
    return max(width - AXIS_WIDTH, MIN_PLOT_WIDTH), height

# ------------------------------
# Public renderers
# ------------------------------

def render_chart(points: Sequence[DataPoint], width: int = 60, height: int = 10,
                 title: str = "", show_axis: bool = True) -> str:
    if not points:
        return NO_DATA
    plot_width, height = _dimensions(width, height)
    lo, hi = value_range(points)
    grid = _Grid(plot_width, height, lo, hi, max(p.time_ms for p in points))
    grid.plot(points, SOLID)
    grid.connect(points)

    lines = [title] if title else []
    lines += grid.rows(show_axis)
    if show_axis:
        lines += grid.axis()
    return "\n".join(lines) + "\n"

def render_dual_chart(primary: Sequence[DataPoint], secondary: Sequence[DataPoint],
                      width: int = 60, height: int = 10, title: str = "",
                      show_axis: bool = True, labels: Tuple[str, str] = ("WPM", "Raw WPM")) -> str:
    """Two series on shared axes; the primary series wins any shared cell."""
    if not primary and not secondary:
        return NO_DATA
    both = list(primary) + list(secondary)
    plot_width, height = _dimensions(width, height)
    lo, hi = value_range(both)
    grid = _Grid(plot_width, height, lo, hi, max(p.time_ms for p in both))
    grid.plot(secondary, LIGHT, overwrite=False)
    grid.plot(primary, SOLID)
    grid.connect(primary)
    grid.connect(secondary)

    lines = [title] if title else []
    lines.append(f"      {SOLID} {labels[0]}  {LIGHT} {labels[1]}")
    lines += grid.rows(show_axis)
    if show_axis:
        lines += grid.axis()
    return "\n".join(lines) + "\n"

def render_samples(samples: Sequence[Sample], width: int = 60, height: int = 10, title: str = "") -> str:
    """Net WPM (solid) against raw WPM (light) for one session."""
    if not samples:
        return NO_DATA
    return render_dual_chart(points_from_samples(samples), points_from_samples(samples, raw=True),
                             width=width, height=height, title=title)

def sparkline(points: Sequence[DataPoint], width: int) -> str:
    if not points or width <= 0:
        return ""
    lo = min(p.value for p in points)
    hi = max(p.value for p in points)
    span = max(hi - lo, 1.0)
    step = max(len(points) / width, 1.0)
    out = []
    i = 0
    while i < width and int(i * step) < len(points):
        normalized = (points[int(i * step)].value - lo) / span
        out.append(SPARK_LEVELS[_clamp(int(normalized * (len(SPARK_LEVELS) - 1)), 0, len(SPARK_LEVELS) - 1)])
        i += 1
    return "".join(out)
