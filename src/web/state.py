import threading
import time
from typing import Any, Optional, Sequence, Tuple

import numpy as np

from models.detection import Detection
from render.overlay import draw_detections, draw_status


class LiveState:
    """
    Latest frame, detections and pipeline status, shared between the
    scheduler thread, the display loop and the web server.

    The frame and the detections are updated independently: video keeps
    flowing at capture rate while boxes refresh whenever inference finishes.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.frame: Optional[np.ndarray] = None
        self.last_frame_ts: Optional[float] = None
        self.detections: Tuple[Detection, ...] = ()
        self.detection_frame_size: Optional[Tuple[int, int]] = None
        self.last_detection_ts: Optional[float] = None
        self.last_latency_ms: Optional[float] = None
        self.last_error: Optional[str] = None
        self.last_error_ts: Optional[float] = None
        self.backend: Optional[str] = None
        self.fatal_error: Optional[str] = None
        self.scheduler: Any = None
        self.hazard: Any = None
        self.start_time = time.time()

    def set_frame(self, frame: Optional[np.ndarray]) -> None:
        """Store a copy of the latest captured frame."""
        if frame is None:
            return
        copy = frame.copy()
        with self._lock:
            self.frame = copy
            self.last_frame_ts = time.time()

    def get_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            if self.frame is None:
                return None
            return self.frame.copy()

    def set_detections(
        self,
        detections: Sequence[Detection],
        frame_size: Tuple[int, int],
        latency_ms: Optional[float] = None,
    ) -> None:
        with self._lock:
            self.detections = tuple(detections)
            self.detection_frame_size = frame_size
            self.last_detection_ts = time.time()
            self.last_latency_ms = latency_ms

    def get_detections(self) -> Tuple[Tuple[Detection, ...], Optional[Tuple[int, int]], Optional[float]]:
        with self._lock:
            return self.detections, self.detection_frame_size, self.last_detection_ts

    def set_error(self, message: str) -> None:
        with self._lock:
            self.last_error = message
            self.last_error_ts = time.time()

    def set_backend(self, backend: str) -> None:
        self.backend = backend

    def set_fatal(self, message: str) -> None:
        self.fatal_error = message

    def annotated_frame(self) -> Optional[np.ndarray]:
        """Latest frame with the latest detections and safety status drawn on it."""
        frame = self.get_frame()
        if frame is None:
            return None
        detections, frame_size, _ = self.get_detections()

        highlight = ()
        if self.hazard is not None:
            highlight = self.hazard.cfg.obstacle_classes
        draw_detections(frame, detections, source_size=frame_size, highlight_labels=highlight)

        if self.hazard is not None:
            draw_status(frame, self.hazard.status(), self.hazard.current_alert(), backend=self.backend)
        return frame


# Default instance for the process; create_app() accepts another for tests
state = LiveState()
