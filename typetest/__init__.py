from __future__ import annotations
from .charts import render_chart, render_dual_chart, render_samples
from .events import EventLoop, KeyEvent, KeyType
from .metrics import MetricsTracker
from .models import CharVerdict, Mode, Phase, Sample, SessionResult, SessionSnapshot, Target, TargetMetadata
from .session import SessionEngine

__version__ = "0.1.0"

__all__ = [
    "CharVerdict",
    "EventLoop",
    "KeyEvent",
    "KeyType",
    "MetricsTracker",
    "Mode",
    "Phase",
    "Sample",
    "SessionEngine",
    "SessionResult",
    "SessionSnapshot",
    "Target",
    "TargetMetadata",
    "render_chart",
    "render_dual_chart",
    "render_samples",
]
