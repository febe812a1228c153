from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from models.config import Config
from models.frame import FrameData
from pipeline.events import (
    BackendReady,
    DetectionsReady,
    EventKind,
    FrameFailed,
    SchedulerEvent,
    SessionFailed,
    SourceEnded,
)


@dataclass
class RuntimeContext:
    """Holds runtime service references and routes scheduler output to them."""

    config: Config
    source: Any
    detector: Any
    hazard: Any
    live: Any
    scheduler: Any = None

    def __post_init__(self):
        self.live.hazard = self.hazard

    def attach(self, scheduler) -> None:
        """Route a scheduler's events here and expose it to the web layer."""
        self.scheduler = scheduler
        self.live.scheduler = scheduler
        scheduler.add_listener(self.handle_event)

    def on_frame(self, frame_data: FrameData) -> None:
        """Frame tap: keep a copy for display before the frame goes to inference."""
        self.live.set_frame(frame_data.frame)

    def handle_event(self, event: SchedulerEvent) -> None:
        if event.kind is EventKind.DETECTIONS:
            self._on_detections(event)
        elif event.kind is EventKind.FRAME_FAILED:
            self._on_frame_failed(event)
        elif event.kind is EventKind.BACKEND_READY:
            self._on_backend_ready(event)
        elif event.kind is EventKind.SESSION_FAILED:
            self._on_session_failed(event)
        elif event.kind is EventKind.SOURCE_ENDED:
            self._on_source_ended(event)

    def _on_detections(self, event: DetectionsReady) -> None:
        self.live.set_detections(event.detections, event.frame_size, event.latency_ms)
        self.hazard.update(event.detections, event.frame_size, now=event.timestamp)

    def _on_frame_failed(self, event: FrameFailed) -> None:
        self.live.set_error(f"frame {event.frame_index}: {event.error}")

    def _on_backend_ready(self, event: BackendReady) -> None:
        self.live.set_backend(event.backend)

    def _on_session_failed(self, event: SessionFailed) -> None:
        self.live.set_fatal(str(event.error))

    def _on_source_ended(self, event: SourceEnded) -> None:
        logging.info(f"Source '{event.source_id}' ended")
