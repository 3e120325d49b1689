from __future__ import annotations
import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import yaml

from .errors import ConfigError
from .metrics import DEFAULT_SAMPLE_INTERVAL
from .models import Mode
from .store import DEFAULT_DB

log = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path.home() / ".config" / "typetest" / "config.yaml"
DEFAULT_LOG = str(Path.home() / ".typetest" / "typetest.log")
ENV_PREFIX = "TYPETEST_"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

@dataclass(frozen=True)
class Config:
    mode: str = Mode.WORDS.value
    seconds: int = 30
    words: int = 25
    countdown: int = 3
    no_color: bool = False
    wrap: int = 0               # 0 = use the terminal width
    chart: bool = True
    words_file: Optional[str] = None
    quotes_file: Optional[str] = None
    seed: Optional[int] = None
    db_path: str = DEFAULT_DB
    persist: bool = True
    sample_interval: float = DEFAULT_SAMPLE_INTERVAL
    tick_interval: float = 0.2
    log_level: str = "WARNING"
    log_file: str = DEFAULT_LOG

    def replace(self, **changes: Any) -> "Config":
        """Copy with the given fields replaced; None means "leave as is"."""
        return dataclasses.replace(self, **{k: v for k, v in changes.items() if v is not None})

    def validate(self) -> "Config":
        if self.mode not in {m.value for m in Mode}:
            raise ConfigError(f"unknown mode: {self.mode} (expected timer, words or quote)")
        if self.seconds <= 0:
            raise ConfigError("seconds must be positive")
        if self.words <= 0:
            raise ConfigError("word count must be positive")
        if self.countdown < 0:
            raise ConfigError("countdown cannot be negative")
        if self.wrap < 0:
            raise ConfigError("wrap cannot be negative")
        if self.sample_interval <= 0 or self.tick_interval <= 0:
            raise ConfigError("sample and tick intervals must be positive")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigError(f"unknown log level: {self.log_level}")
        return self

# ------------------------------
# Coercion
# ------------------------------

def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value!r}")

def _optional(fn: Callable[[Any], Any]) -> Callable[[Any], Any]:
    return lambda v: None if v in (None, "") else fn(v)

_COERCE: Dict[str, Callable[[Any], Any]] = {
    "mode": str,
    "seconds": int,
    "words": int,
    "countdown": int,
    "no_color": _to_bool,
    "wrap": int,
    "chart": _to_bool,
    "words_file": _optional(str),
    "quotes_file": _optional(str),
    "seed": _optional(int),
    "db_path": str,
    "persist": _to_bool,
    "sample_interval": float,
    "tick_interval": float,
    "log_level": str,
    "log_file": str,
}

def _coerce(key: str, value: Any, origin: str) -> Any:
    if key not in _COERCE:
        raise ConfigError(f"{origin}: unknown setting {key!r}")
    if isinstance(value, bool) and _COERCE[key] in (int, float):
        raise ConfigError(f"{origin}: {key} must be a number")
    try:
        return _COERCE[key](value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{origin}: bad value for {key}: {value!r}") from e

# ------------------------------
# Loading
# ------------------------------

def read_config_file(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a mapping of settings")
    return {k: _coerce(k, v, str(path)) for k, v in raw.items()}

def read_env(env: Mapping[str, str]) -> Dict[str, Any]:
    out = {}
    for name, value in env.items():
        if not name.startswith(ENV_PREFIX):
            continue
        key = name[len(ENV_PREFIX):].lower()
        if key in _COERCE:
            out[key] = _coerce(key, value, name)
    return out

def load_config(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> Config:
    """Defaults, then the YAML file, then TYPETEST_* environment variables."""
    values: Dict[str, Any] = {}
    if path is not None:
        values.update(read_config_file(Path(path)))
    elif DEFAULT_CONFIG_FILE.exists():
        values.update(read_config_file(DEFAULT_CONFIG_FILE))
    values.update(read_env(os.environ if env is None else env))
    if values:
        log.debug("config overrides: %s", sorted(values))
    return dataclasses.replace(Config(), **values).validate()
