from __future__ import annotations
import json
import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .errors import ConfigError
from .models import Mode, Target, TargetMetadata

log = logging.getLogger(__name__)

# Timer mode provisions this many words per second, and never fewer than
# TIMER_MIN_WORDS, so that even a 200 WPM typist does not run out of text.
TIMER_WORDS_PER_SECOND = 4
TIMER_MIN_WORDS = 50

COMMON_WORDS = """
the of and to in is you that it he was for on are as with his they I at be this
have from or one had by word but not what all were we when your can said there
use an each which she do how their if will up other about out many then them
these so some her would make like him into time has look two more write go see
number no way could people my than first water been call who oil its now find
long down day did get come made may part over new sound take only little work
know place year live me back give most very after thing our just name good
sentence man think say great where help through much before line right too mean
old any same tell boy follow came want show also around form three small set
put end does another well large must big even such because turn here why ask
went men read need land different home us move try kind hand picture again
change off play spell air away animal house point page letter mother answer
found study still learn should world high every near add food between own
below country plant last school father keep tree never start city earth eye
light thought head under story saw left few while along might close something
seem next hard open example begin life always those both paper together got
group often run important until children side feet car mile night walk white
""".split()

@dataclass(frozen=True)
class Quote:
    id: str
    text: str
    source: str

QUOTES = [
    Quote("q1", "The quick brown fox jumps over the lazy dog.", "Typing drill"),
    Quote("q2", "Pack my box with five dozen liquor jugs.", "Typing drill"),
    Quote("q3", "Sphinx of black quartz, judge my vow.", "Typing drill"),
    Quote("q4", "It was the best of times, it was the worst of times, it was the age of wisdom, "
                "it was the age of foolishness.", "Charles Dickens, A Tale of Two Cities"),
    Quote("q5", "All happy families are alike; each unhappy family is unhappy in its own way.",
          "Leo Tolstoy, Anna Karenina"),
    Quote("q6", "It is a truth universally acknowledged, that a single man in possession of a good "
                "fortune, must be in want of a wife.", "Jane Austen, Pride and Prejudice"),
    Quote("q7", "Call me Ishmael. Some years ago, never mind how long precisely, having little or no "
                "money in my purse, I thought I would sail about a little and see the watery part "
                "of the world.", "Herman Melville, Moby-Dick"),
    Quote("q8", "Whatever you can do, or dream you can, begin it. Boldness has genius, power, and "
                "magic in it.", "Attributed to Goethe"),
    Quote("q9", "The only way to do great work is to love what you do.", "Steve Jobs"),
    Quote("q10", "Simple is better than complex. Complex is better than complicated.",
          "Tim Peters, The Zen of Python"),
    Quote("q11", "Practice makes progress, not perfection. Accuracy first, then speed will follow "
                 "naturally.", "Typing drill"),
    Quote("q12", "Two roads diverged in a wood, and I took the one less traveled by, and that has made "
                 "all the difference.", "Robert Frost, The Road Not Taken"),
]

# ------------------------------
# Loading
# ------------------------------

def load_words(path: str) -> List[str]:
    try:
        lines = Path(path).read_text(encoding="utf-8").splitlines()
    except OSError as e:
        raise ConfigError(f"cannot read words file {path}: {e}") from e
    words = [w.strip() for w in lines if w.strip()]
    if not words:
        raise ConfigError(f"words file {path} contains no words")
    return words

def load_quotes(path: str) -> List[Quote]:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"cannot read quotes file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"quotes file {path} is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise ConfigError(f"quotes file {path} must contain a JSON array")
    quotes = []
    for i, item in enumerate(data):
        if not isinstance(item, dict) or not str(item.get("text", "")).strip():
            raise ConfigError(f"quotes file {path}: entry {i} needs a non-empty 'text'")
        quotes.append(Quote(
            id=str(item.get("id") or i + 1),
            text=" ".join(str(item["text"]).split()),
            source=str(item.get("source", "")),
        ))
    return quotes

# ------------------------------
# Generator
# ------------------------------

class TextGenerator:
    def __init__(self, words_file: Optional[str] = None, quotes_file: Optional[str] = None,
                 seed: Optional[int] = None):
        self.words = load_words(words_file) if words_file else COMMON_WORDS[:]
        self.quotes = load_quotes(quotes_file) if quotes_file else QUOTES[:]
        self.rng = random.Random(seed)
        log.debug("text generator: %d words, %d quotes, seed=%s", len(self.words), len(self.quotes), seed)

    def random_words(self, count: int) -> List[str]:
        return [self.rng.choice(self.words) for _ in range(count)]

    def generate_words(self, count: int) -> Target:
        if count <= 0:
            raise ConfigError("word count must be positive")
        return Target(
            text=" ".join(self.random_words(count)),
            mode=Mode.WORDS,
            metadata=TargetMetadata(word_count=count),
        )

    def generate_for_timer(self, seconds: int) -> Target:
        if seconds <= 0:
            raise ConfigError("seconds must be positive")
        count = max(TIMER_MIN_WORDS, seconds * TIMER_WORDS_PER_SECOND)
        return Target(
            text=" ".join(self.random_words(count)),
            mode=Mode.TIMER,
            metadata=TargetMetadata(word_count=count, seconds=seconds),
        )

    def random_quote(self) -> Target:
        if not self.quotes:
            raise ConfigError("no quotes available")
        return self._quote_target(self.rng.choice(self.quotes))

    def quote_by_id(self, quote_id: str) -> Target:
        for q in self.quotes:
            if q.id == quote_id:
                return self._quote_target(q)
        raise ConfigError(f"quote with id {quote_id!r} not found")

    def quote_ids(self) -> List[str]:
        return [q.id for q in self.quotes]

    def build(self, mode: str, *, words: int = 25, seconds: int = 30,
              quote_id: Optional[str] = None) -> Target:
        if mode == Mode.TIMER.value:
            return self.generate_for_timer(seconds)
        if mode == Mode.WORDS.value:
            return self.generate_words(words)
        if mode == Mode.QUOTE.value:
            return self.quote_by_id(quote_id) if quote_id else self.random_quote()
        raise ConfigError(f"unknown mode: {mode}")

    @staticmethod
    def _quote_target(q: Quote) -> Target:
        return Target(
            text=q.text,
            mode=Mode.QUOTE,
            metadata=TargetMetadata(quote_id=q.id, source=q.source),
        )
