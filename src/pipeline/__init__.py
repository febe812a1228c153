"""
Pipeline module: the frame scheduler and the events it emits.

The scheduler orchestrates the processing flow:
- Frame acquisition from an observation source
- One frame at a time through the detector on a worker thread
- Results and per-frame errors delivered to listeners
"""

from .events import (
    EventKind,
    SchedulerEvent,
    BackendReady,
    DetectionsReady,
    FrameFailed,
    SessionFailed,
    SourceEnded,
)
from .scheduler import FrameScheduler, SchedulerState, SchedulerStats

__all__ = [
    "EventKind",
    "SchedulerEvent",
    "BackendReady",
    "DetectionsReady",
    "FrameFailed",
    "SessionFailed",
    "SourceEnded",
    "FrameScheduler",
    "SchedulerState",
    "SchedulerStats",
]
