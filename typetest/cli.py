'''
typetest - terminal typing speed test
=====================================

Type the displayed text as fast and as accurately as you can. Characters
turn green when correct and red when wrong; live WPM is shown while you
type and a speed chart (net WPM vs raw WPM) is printed when you finish.

Modes
-----
- `words` : type a fixed number of random common words (default 25).
- `timer` : type as much as you can before the clock runs out.
- `quote` : type a quote, random or chosen with `--quote-id`.

Controls
--------
- Backspace corrects the last character.
- Esc or Ctrl+C aborts the test (nothing is saved).

Other commands
--------------
- `--history [N]`       : list the latest N stored tests (`--history-mode` filters).
- `--stats`             : lifetime and per-mode statistics.
- `--show ID`           : one stored test with its speed chart.
- `--export-csv PREFIX` : write PREFIX_sessions.csv and PREFIX_samples.csv.
- `--export-json PATH`  : write all sessions and samples as JSON.
- `--plot PREFIX`       : save PREFIX_wpm.png and PREFIX_accuracy.png.
- `--list-quotes`       : print the available quote ids.

Settings come from ~/.config/typetest/config.yaml (or `--config`), then
TYPETEST_* environment variables, then the flags below.
'''

from __future__ import annotations
import argparse
import asyncio
import curses
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

from .charts import render_samples
from .config import LOG_LEVELS, Config, load_config
from .errors import ConfigError, StorageError
from .events import EventLoop
from .models import SessionResult, Target
from .session import SessionEngine
from .store import DataStore, export_csv, export_json, plot_history, save_result
from .texts import TextGenerator
from .ui import CursesInput, CursesPresenter, format_history, format_session, format_stats, format_summary

log = logging.getLogger(__name__)

MAX_CHART_WIDTH = 70

# ------------------------------
# Logging
# ------------------------------

def setup_logging(level: str, log_file: str) -> None:
    # the terminal belongs to curses during a test, so log to a file only
    try:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_file, encoding="utf-8")
    except OSError:
        handler = logging.NullHandler()
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        handlers=[handler],
        force=True,
    )

# ------------------------------
# Run a session (wrapping curses)
# ------------------------------

def run_session(config: Config, target: Target) -> Tuple[SessionResult, Optional[BaseException], int]:
    out = {}

    def _session(stdscr):
        curses.raw()
        presenter = CursesPresenter(stdscr, no_color=config.no_color, wrap=config.wrap)
        engine = SessionEngine(target, sample_interval=config.sample_interval)
        loop = EventLoop(engine, CursesInput(stdscr), presenter,
                         tick_interval=config.tick_interval, countdown=config.countdown)
        out["result"] = asyncio.run(loop.run())
        out["error"] = loop.error
        out["width"] = presenter.width

    curses.wrapper(_session)
    return out["result"], out["error"], out["width"]

def chart_for(result: SessionResult, width: int) -> str:
    if len(result.samples) < 2:
        return ""
    return render_samples(result.samples, width=min(width - 4, MAX_CHART_WIDTH), height=10)

# ------------------------------
# Argparse / Main
# ------------------------------

def parse_args(argv=None):
    p = argparse.ArgumentParser(prog="typetest", description="Terminal typing speed test",
                                formatter_class=argparse.RawDescriptionHelpFormatter, epilog=__doc__)
    p.add_argument("--mode", "-m", type=str, default=None, choices=["timer", "words", "quote"], help="Test mode")
    p.add_argument("--seconds", "-s", type=int, default=None, help="Duration in seconds (timer mode)")
    p.add_argument("--words", "-w", type=int, default=None, help="Number of words (words mode)")
    p.add_argument("--quote-id", type=str, default=None, help="Specific quote id (quote mode)")
    p.add_argument("--words-file", type=str, default=None, help="Custom word list, one word per line")
    p.add_argument("--quotes-file", type=str, default=None, help="Custom quotes JSON file")
    p.add_argument("--countdown", type=int, default=None, help="Countdown seconds before the test starts")
    p.add_argument("--seed", type=int, default=None, help="Random seed for reproducible texts")
    p.add_argument("--no-color", action="store_true", default=None, help="Disable colors")
    p.add_argument("--wrap", type=int, default=None, help="Wrap width (0 = terminal width)")
    p.add_argument("--no-chart", action="store_true", help="Do not print the speed chart")
    p.add_argument("--db", type=str, default=None, help="SQLite database path")
    p.add_argument("--no-store", action="store_true", help="Do not store results")
    p.add_argument("--config", type=str, default=None, help="Config file (YAML)")
    p.add_argument("--log-level", type=str, default=None, choices=LOG_LEVELS, help="Log level for the log file")
    p.add_argument("--history", type=int, nargs="?", const=20, default=None, metavar="N",
                   help="List the latest N tests and exit")
    p.add_argument("--history-mode", type=str, default=None, choices=["timer", "words", "quote"],
                   help="Only list tests of this mode")
    p.add_argument("--stats", action="store_true", help="Print statistics and exit")
    p.add_argument("--show", type=int, default=None, metavar="ID", help="Show one stored test and exit")
    p.add_argument("--export-csv", type=str, default=None, help="Export to CSV base path, then exit")
    p.add_argument("--export-json", type=str, default=None, help="Export sessions+samples to JSON, then exit")
    p.add_argument("--plot", type=str, default=None, help="Save history charts with this path prefix, then exit")
    p.add_argument("--list-quotes", action="store_true", help="Print available quote ids and exit")
    return p.parse_args(argv)

def build_config(args) -> Config:
    config = load_config(args.config)
    return config.replace(
        mode=args.mode,
        seconds=args.seconds,
        words=args.words,
        countdown=args.countdown,
        no_color=args.no_color,
        wrap=args.wrap,
        chart=False if args.no_chart else None,
        words_file=args.words_file,
        quotes_file=args.quotes_file,
        seed=args.seed,
        db_path=args.db,
        persist=False if args.no_store else None,
        log_level=args.log_level,
    ).validate()

def run_report(args, config: Config) -> int:
    with DataStore(config.db_path, persist=config.persist) as store:
        if args.export_csv:
            written = export_csv(store, args.export_csv)
            for path in written:
                print(f"CSV exported -> {path}")
            if not written:
                print("No sessions to export.")
        elif args.export_json:
            print(f"JSON exported -> {export_json(store, args.export_json)}")
        elif args.plot:
            saved = plot_history(store, args.plot)
            for path in saved:
                print(f"Saved {path}")
            if not saved:
                print("No sessions to plot.")
        elif args.stats:
            print(format_stats(store.stats()), end="")
        elif args.show is not None:
            row = store.get_session(args.show)
            if row is None:
                print(f"error: session {args.show} not found", file=sys.stderr)
                return 1
            samples = store.get_samples(args.show)
            chart = render_samples(samples, width=60, height=10) if samples else None
            print(format_session(row, chart), end="")
        else:
            print(format_history(store.list_sessions(args.history, args.history_mode)), end="")
    return 0

def main(argv=None):
    args = parse_args(argv)
    try:
        config = build_config(args)
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr); return 2
    setup_logging(config.log_level, config.log_file)

    try:
        if args.list_quotes:
            gen = TextGenerator(quotes_file=config.quotes_file)
            for q in gen.quotes:
                print(f"{q.id:>6}  {q.source}")
            return 0
        if any((args.export_csv, args.export_json, args.plot, args.stats,
                args.show is not None, args.history is not None)):
            return run_report(args, config)

        gen = TextGenerator(config.words_file, config.quotes_file, config.seed)
        target = gen.build(config.mode, words=config.words, seconds=config.seconds, quote_id=args.quote_id)
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr); return 2
    except StorageError as e:
        log.error("%s", e)
        print(f"error: {e}", file=sys.stderr); return 1

    try:
        result, error, width = run_session(config, target)
    except KeyboardInterrupt:
        print("\nSession cancelled."); return 0

    if error is not None:
        print(f"error: input failed: {error}", file=sys.stderr); return 1
    if result.aborted:
        print("Session aborted."); return 0

    chart = chart_for(result, width) if config.chart else ""
    print(format_summary(result, chart), end="")

    if config.persist:
        try:
            with DataStore(config.db_path) as store:
                sid = save_result(store, result)
            print(f"Saved to DB    : {config.db_path} (session id {sid})")
        except StorageError as e:
            log.warning("failed to save session: %s", e)
            print(f"Warning: failed to save session: {e}")
    else:
        print("Results not persisted.")
    return 0

if __name__ == "__main__":
    sys.exit(main())
