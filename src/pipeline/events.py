"""
Events emitted by the frame scheduler.

Every event carries a `kind` so observers can dispatch on an enum instead of
string tags; results and per-frame failures travel on the same channel, which
lets a listener tell "no detections" apart from "failed to detect".
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Tuple

from models.detection import Detection
from models.errors import FatalLoadError, FrameError


class EventKind(str, Enum):
    BACKEND_READY = "backend_ready"
    DETECTIONS = "detections"
    FRAME_FAILED = "frame_failed"
    SESSION_FAILED = "session_failed"
    SOURCE_ENDED = "source_ended"


@dataclass(frozen=True)
class SchedulerEvent:
    kind: ClassVar[EventKind]


@dataclass(frozen=True)
class BackendReady(SchedulerEvent):
    """The model loaded; `backend` names the engine actually in use."""
    kind: ClassVar[EventKind] = EventKind.BACKEND_READY
    backend: str


@dataclass(frozen=True)
class DetectionsReady(SchedulerEvent):
    kind: ClassVar[EventKind] = EventKind.DETECTIONS
    frame_index: int
    frame_size: Tuple[int, int]
    detections: Tuple[Detection, ...]
    latency_ms: float
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class FrameFailed(SchedulerEvent):
    kind: ClassVar[EventKind] = EventKind.FRAME_FAILED
    frame_index: int
    error: FrameError
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class SessionFailed(SchedulerEvent):
    kind: ClassVar[EventKind] = EventKind.SESSION_FAILED
    error: FatalLoadError


@dataclass(frozen=True)
class SourceEnded(SchedulerEvent):
    kind: ClassVar[EventKind] = EventKind.SOURCE_ENDED
    source_id: str = ""
