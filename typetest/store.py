from __future__ import annotations
import contextlib
import csv
import datetime as dt
import json
import logging
import sqlite3
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Protocol

from .errors import StorageError
from .models import Sample, SessionResult

log = logging.getLogger(__name__)

DEFAULT_DB = str(Path.home() / ".typetest" / "typetest.db")
SCHEMA_VERSION = 1

SESSION_COLUMNS = (
    "id", "started_at", "mode", "seconds", "words", "quote_id", "target_len",
    "duration_ms", "correct_chars", "incorrect_chars", "total_typed",
    "accuracy", "wpm", "raw_wpm",
)

class ResultSink(Protocol):
    def save(self, result: SessionResult) -> int: ...

def save_result(sink: ResultSink, result: SessionResult) -> int:
    """Hand a completed result to a sink; aborted results are never stored."""
    if result.aborted:
        log.info("aborted session not saved")
        return -1
    return sink.save(result)

# ------------------------------
# Data Store (SQLite)
# ------------------------------

class DataStore:
    def __init__(self, db_path: str = DEFAULT_DB, persist: bool = True):
        self.db_path = db_path
        self.persist = persist
        self.conn: Optional[sqlite3.Connection] = None
        if self.persist:
            with self._errors("open database"):
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
                self.conn = sqlite3.connect(db_path)
                self.conn.execute("PRAGMA journal_mode=WAL")
                self.conn.execute("PRAGMA foreign_keys=ON")
                self._migrate()

    def __enter__(self) -> "DataStore":
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    @contextlib.contextmanager
    def _errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"failed to {action}: {e}") from e

    def _migrate(self):
        cur = self.conn.cursor()
        cur.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER PRIMARY KEY);")
        cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_version;")
        version = cur.fetchone()[0]
        if version < 1:
            cur.execute('''
            CREATE TABLE IF NOT EXISTS sessions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                started_at TEXT NOT NULL,
                mode TEXT NOT NULL,
                seconds INTEGER NOT NULL DEFAULT 0,
                words INTEGER NOT NULL DEFAULT 0,
                quote_id TEXT NOT NULL DEFAULT '',
                target_len INTEGER NOT NULL,
                duration_ms INTEGER NOT NULL,
                correct_chars INTEGER NOT NULL,
                incorrect_chars INTEGER NOT NULL DEFAULT 0,
                total_typed INTEGER NOT NULL,
                accuracy REAL NOT NULL,
                wpm REAL NOT NULL,
                raw_wpm REAL NOT NULL
            );
            ''')
            cur.execute('''
            CREATE TABLE IF NOT EXISTS samples (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id INTEGER NOT NULL,
                time_ms INTEGER NOT NULL,
                wpm REAL NOT NULL,
                raw_wpm REAL NOT NULL,
                FOREIGN KEY(session_id) REFERENCES sessions(id) ON DELETE CASCADE
            );
            ''')
            cur.execute("CREATE INDEX IF NOT EXISTS idx_sessions_started_at ON sessions(started_at);")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_sessions_mode ON sessions(mode);")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_samples_session_id ON samples(session_id);")
            cur.execute("INSERT INTO schema_version (version) VALUES (?);", (SCHEMA_VERSION,))
            log.info("created schema v%d in %s", SCHEMA_VERSION, self.db_path)
        self.conn.commit()

    def save(self, result: SessionResult) -> int:
        if not self.persist:
            return -1
        md = result.metadata
        with self._errors("save session"), self.conn:
            cur = self.conn.cursor()
            cur.execute('''
            INSERT INTO sessions (started_at, mode, seconds, words, quote_id, target_len, duration_ms,
                                  correct_chars, incorrect_chars, total_typed, accuracy, wpm, raw_wpm)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            ''', (
                result.started_at,
                result.mode.value,
                md.seconds,
                md.word_count,
                md.quote_id,
                result.target_len,
                result.duration_ms,
                result.correct_chars,
                result.incorrect_chars,
                result.total_typed,
                result.accuracy,
                result.wpm,
                result.raw_wpm,
            ))
            sid = cur.lastrowid
            cur.executemany(
                "INSERT INTO samples (session_id, time_ms, wpm, raw_wpm) VALUES (?, ?, ?, ?);",
                [(sid, s.elapsed_ms, s.wpm, s.raw_wpm) for s in result.samples],
            )
        log.info("saved session %d (%d samples)", sid, len(result.samples))
        return sid

    def get_session(self, session_id: int) -> Optional[dict]:
        if not self.persist:
            return None
        with self._errors("load session"):
            cur = self.conn.cursor()
            cur.execute(f"SELECT {', '.join(SESSION_COLUMNS)} FROM sessions WHERE id = ?;", (session_id,))
            row = cur.fetchone()
        return dict(zip(SESSION_COLUMNS, row)) if row else None

    def get_samples(self, session_id: int) -> List[Sample]:
        if not self.persist:
            return []
        with self._errors("load samples"):
            cur = self.conn.cursor()
            cur.execute("SELECT time_ms, wpm, raw_wpm FROM samples WHERE session_id = ? ORDER BY time_ms, id;",
                        (session_id,))
            return [Sample(elapsed_ms=r[0], wpm=r[1], raw_wpm=r[2]) for r in cur.fetchall()]

    def list_sessions(self, limit: int = 20, mode: Optional[str] = None) -> List[dict]:
        if not self.persist:
            return []
        cols = ", ".join(SESSION_COLUMNS)
        with self._errors("list sessions"):
            cur = self.conn.cursor()
            if mode:
                cur.execute(f"SELECT {cols} FROM sessions WHERE mode = ? ORDER BY started_at DESC, id DESC LIMIT ?;",
                            (mode, limit))
            else:
                cur.execute(f"SELECT {cols} FROM sessions ORDER BY started_at DESC, id DESC LIMIT ?;", (limit,))
            return [dict(zip(SESSION_COLUMNS, r)) for r in cur.fetchall()]

    def fetch_sessions(self) -> List[dict]:
        if not self.persist:
            return []
        with self._errors("fetch sessions"):
            cur = self.conn.cursor()
            cur.execute(f"SELECT {', '.join(SESSION_COLUMNS)} FROM sessions ORDER BY id ASC;")
            return [dict(zip(SESSION_COLUMNS, r)) for r in cur.fetchall()]

    def fetch_samples(self) -> List[dict]:
        if not self.persist:
            return []
        with self._errors("fetch samples"):
            cur = self.conn.cursor()
            cur.execute("SELECT session_id, time_ms, wpm, raw_wpm FROM samples ORDER BY session_id ASC, id ASC;")
            return [{"session_id": r[0], "time_ms": r[1], "wpm": r[2], "raw_wpm": r[3]} for r in cur.fetchall()]

    def stats(self, now: Optional[dt.datetime] = None) -> dict:
        if not self.persist:
            return {}
        now = now or dt.datetime.now(dt.timezone.utc)
        summary: Dict[str, object] = {}
        with self._errors("compute stats"):
            cur = self.conn.cursor()
            cur.execute('''
            SELECT COUNT(*), COALESCE(SUM(duration_ms), 0), COALESCE(AVG(wpm), 0),
                   COALESCE(MAX(wpm), 0), COALESCE(AVG(accuracy), 0)
            FROM sessions;
            ''')
            row = cur.fetchone()
            summary["total_tests"] = row[0]
            summary["total_time_ms"] = row[1]
            summary["avg_wpm"] = row[2]
            summary["best_wpm"] = row[3]
            summary["avg_accuracy"] = row[4]

            def avg_since(days: int) -> float:
                cutoff = (now - dt.timedelta(days=days)).isoformat(timespec="seconds")
                cur.execute("SELECT COALESCE(AVG(wpm), 0) FROM sessions WHERE started_at >= ?;", (cutoff,))
                return cur.fetchone()[0]

            summary["last7_avg_wpm"] = avg_since(7)
            summary["last30_avg_wpm"] = avg_since(30)

            cur.execute('''
            SELECT mode, COUNT(*), COALESCE(AVG(wpm), 0), COALESCE(MAX(wpm), 0)
            FROM sessions GROUP BY mode ORDER BY mode;
            ''')
            summary["modes"] = {r[0]: {"tests": r[1], "avg_wpm": r[2], "best_wpm": r[3]} for r in cur.fetchall()}
        return summary

    def delete_session(self, session_id: int) -> bool:
        if not self.persist:
            return False
        with self._errors("delete session"), self.conn:
            self.conn.execute("DELETE FROM samples WHERE session_id = ?;", (session_id,))
            cur = self.conn.execute("DELETE FROM sessions WHERE id = ?;", (session_id,))
        return cur.rowcount > 0

# ------------------------------
# Exports & Charts
# ------------------------------

def _write_csv(path: str, rows: List[dict]) -> bool:
    if not rows:
        return False
    try:
        with open(path, "w", newline="", encoding="utf-8") as f:
            w = csv.DictWriter(f, fieldnames=list(rows[0].keys()))
            w.writeheader()
            w.writerows(rows)
    except OSError as e:
        raise StorageError(f"cannot write {path}: {e}") from e
    return True

def export_csv(store: DataStore, path: str) -> List[str]:
    written = []
    sessions_path = f"{path}_sessions.csv"
    if _write_csv(sessions_path, store.fetch_sessions()):
        written.append(sessions_path)
    samples_path = f"{path}_samples.csv"
    if _write_csv(samples_path, store.fetch_samples()):
        written.append(samples_path)
    return written

def export_json(store: DataStore, path: str) -> str:
    data = {"sessions": store.fetch_sessions(), "samples": store.fetch_samples()}
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
    except OSError as e:
        raise StorageError(f"cannot write {path}: {e}") from e
    return path

def _sma(values: List[float], window: int = 5) -> List[Optional[float]]:
    """Trailing moving average; None until the window is full."""
    if window <= 1:
        return list(values)
    out: List[Optional[float]] = []
    for i in range(len(values)):
        if i + 1 < window:
            out.append(None)
        else:
            out.append(sum(values[i + 1 - window:i + 1]) / window)
    return out

def plot_history(store: DataStore, prefix: str) -> List[str]:
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    data = store.fetch_sessions()
    if not data:
        return []
    xs = [d["id"] for d in data]
    saved = []
    for key, label in (("wpm", "Net WPM"), ("accuracy", "Accuracy (%)")):
        ys = [d[key] for d in data]
        avg = [(x, y) for x, y in zip(xs, _sma(ys, 5)) if y is not None]
        fig, ax = plt.subplots()
        ax.plot(xs, ys, marker="o", label=label)
        if avg:
            ax.plot([x for x, _ in avg], [y for _, y in avg], linestyle="--", label=f"{label} (5-session avg)")
        ax.set_title(f"{label} over sessions")
        ax.set_xlabel("Session #")
        ax.set_ylabel(label)
        ax.legend()
        out = f"{prefix}_{key}.png"
        fig.savefig(out, bbox_inches="tight")
        plt.close(fig)
        log.info("saved history chart %s", out)
        saved.append(out)
    return saved
