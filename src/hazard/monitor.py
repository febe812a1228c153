"""
Safety status and hazard alerts derived from detections.

An obstacle is a detection of one of the configured obstacle classes whose
center lies inside the forward corridor (a vertical band of the frame).
Its size relative to the frame stands in for proximity:

- area ratio >= danger_area_ratio  -> Obstacle alert, status Danger
- area ratio >= warning_area_ratio -> status Warning (no alert)

Status set by an alert is held for alert_hold_seconds, then drops back to
Safe unless something new keeps it raised.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, List, Optional, Sequence, Tuple

from models.config import HazardConfig
from models.detection import Detection


class SafetyStatus(str, Enum):
    SAFE = "Safe"
    WARNING = "Warning"
    DANGER = "Danger"


class AlertType(str, Enum):
    LANE_DEPARTURE = "Lane Departure"
    OBSTACLE = "Obstacle"


_SEVERITY = {SafetyStatus.SAFE: 0, SafetyStatus.WARNING: 1, SafetyStatus.DANGER: 2}
_ALERT_STATUS = {
    AlertType.OBSTACLE: SafetyStatus.DANGER,
    AlertType.LANE_DEPARTURE: SafetyStatus.WARNING,
}


@dataclass(frozen=True)
class HazardAlert:
    id: str
    type: AlertType
    timestamp: float
    message: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "timestamp": self.timestamp,
            "message": self.message,
        }


class HazardMonitor:
    """
    Thread-safe: update() runs on the scheduler thread, readers are web
    handlers and the display loop.
    """

    def __init__(self, cfg: Optional[HazardConfig] = None):
        self.cfg = cfg or HazardConfig()
        self._lock = threading.Lock()
        self._alerts: Deque[HazardAlert] = deque(maxlen=self.cfg.max_alerts)
        self._current_alert: Optional[HazardAlert] = None
        self._held_status = SafetyStatus.SAFE
        self._held_until = 0.0
        self._frame_status = SafetyStatus.SAFE
        self._last_obstacle_alert = float("-inf")
        self._sequence = 0

    def assess(
        self, detections: Sequence[Detection], frame_size: Tuple[int, int]
    ) -> Tuple[SafetyStatus, Optional[Detection]]:
        """
        Classify one frame's detections without side effects.

        Returns:
            (status, the most threatening obstacle or None)
        """
        frame_w, frame_h = frame_size
        if frame_w <= 0 or frame_h <= 0:
            return SafetyStatus.SAFE, None

        left, right = self.cfg.corridor
        frame_area = float(frame_w * frame_h)
        obstacle_classes = set(self.cfg.obstacle_classes)

        worst: Optional[Detection] = None
        worst_ratio = 0.0
        for det in detections:
            if det.label not in obstacle_classes:
                continue
            cx, _ = det.bbox.center
            if not (left * frame_w <= cx <= right * frame_w):
                continue
            ratio = max(0.0, det.bbox.area) / frame_area
            if ratio > worst_ratio:
                worst, worst_ratio = det, ratio

        if worst is None:
            return SafetyStatus.SAFE, None
        if worst_ratio >= self.cfg.danger_area_ratio:
            return SafetyStatus.DANGER, worst
        if worst_ratio >= self.cfg.warning_area_ratio:
            return SafetyStatus.WARNING, worst
        return SafetyStatus.SAFE, None

    def update(
        self,
        detections: Sequence[Detection],
        frame_size: Tuple[int, int],
        now: Optional[float] = None,
    ) -> SafetyStatus:
        """Assess a frame, raise an Obstacle alert if warranted, return the current status."""
        now = time.time() if now is None else now
        status, obstacle = self.assess(detections, frame_size)

        with self._lock:
            self._frame_status = status

        if status is SafetyStatus.DANGER and obstacle is not None:
            if now - self._last_obstacle_alert >= self.cfg.alert_cooldown_seconds:
                self._last_obstacle_alert = now
                self.trigger_alert(
                    AlertType.OBSTACLE,
                    f"Obstacle ahead: {obstacle.label} ({obstacle.score:.0%})",
                    now=now,
                )

        return self.status(now)

    def trigger_alert(
        self, alert_type: AlertType, message: str, now: Optional[float] = None
    ) -> HazardAlert:
        """Record an alert and raise the held status for alert_hold_seconds."""
        now = time.time() if now is None else now
        with self._lock:
            self._sequence += 1
            alert = HazardAlert(
                id=f"{int(now * 1000)}-{self._sequence}",
                type=alert_type,
                timestamp=now,
                message=message,
            )
            self._alerts.appendleft(alert)
            self._current_alert = alert
            self._held_status = _ALERT_STATUS[alert_type]
            self._held_until = now + self.cfg.alert_hold_seconds

        logging.warning(f"Hazard alert: {alert_type.value} - {message}")
        return alert

    def status(self, now: Optional[float] = None) -> SafetyStatus:
        now = time.time() if now is None else now
        with self._lock:
            held = self._held_status if now < self._held_until else SafetyStatus.SAFE
            current = self._frame_status
        return held if _SEVERITY[held] >= _SEVERITY[current] else current

    def current_alert(self, now: Optional[float] = None) -> Optional[HazardAlert]:
        now = time.time() if now is None else now
        with self._lock:
            if self._current_alert is not None and now < self._held_until:
                return self._current_alert
            return None

    def alerts(self, limit: Optional[int] = None) -> List[HazardAlert]:
        """Alert log, newest first."""
        with self._lock:
            items = list(self._alerts)
        return items[:limit] if limit is not None else items

    def reset(self) -> None:
        with self._lock:
            self._alerts.clear()
            self._current_alert = None
            self._held_status = SafetyStatus.SAFE
            self._held_until = 0.0
            self._frame_status = SafetyStatus.SAFE
            self._last_obstacle_alert = float("-inf")
