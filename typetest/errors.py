from __future__ import annotations

class TypetestError(Exception):
    """Base class for everything this package raises on purpose."""

class ConfigError(TypetestError):
    """Bad settings, flags or text sources; raised before a session is built."""

class InputError(TypetestError):
    pass

class StorageError(TypetestError):
    pass

class SessionError(TypetestError):
    """Engine API misuse, e.g. asking for a result while still running."""
