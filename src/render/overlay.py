"""
Overlay drawing for detections and hazard status.

Detections arrive in source-frame pixels; draw_detections maps them to
whatever size the target image has.
"""

from __future__ import annotations

from typing import Dict, Optional, Sequence, Tuple

import cv2
import numpy as np

from hazard.monitor import HazardAlert, SafetyStatus
from models.detection import Detection

# Colors (BGR)
COLOR_BOX = (0, 255, 0)  # Green
COLOR_OBSTACLE = (0, 165, 255)  # Orange
COLOR_TEXT = (255, 255, 255)
STATUS_COLORS: Dict[SafetyStatus, Tuple[int, int, int]] = {
    SafetyStatus.SAFE: (0, 160, 0),
    SafetyStatus.WARNING: (0, 200, 255),
    SafetyStatus.DANGER: (0, 0, 255),
}


def draw_detections(
    frame: np.ndarray,
    detections: Sequence[Detection],
    source_size: Optional[Tuple[int, int]] = None,
    highlight_labels: Sequence[str] = (),
) -> np.ndarray:
    """
    Draw boxes and "label NN%" captions onto frame (in place).

    Args:
        frame: Image to draw on.
        detections: Boxes in source-frame coordinates.
        source_size: (width, height) the boxes refer to; defaults to frame size.
        highlight_labels: Labels drawn in the obstacle color.
    """
    h, w = frame.shape[:2]
    src_w, src_h = source_size or (w, h)
    sx = w / src_w if src_w else 1.0
    sy = h / src_h if src_h else 1.0
    highlight = set(highlight_labels)

    font = cv2.FONT_HERSHEY_SIMPLEX
    font_scale = 0.5
    thickness = 1

    for det in detections:
        x1, y1, x2, y2 = det.bbox.scaled(sx, sy).as_int_tuple()
        color = COLOR_OBSTACLE if det.label in highlight else COLOR_BOX
        cv2.rectangle(frame, (x1, y1), (x2, y2), color, 2)

        label = f"{det.label} {det.score:.0%}"
        (text_w, text_h), _ = cv2.getTextSize(label, font, font_scale, thickness)
        top = max(y1, text_h + 6)
        cv2.rectangle(frame, (x1, top - text_h - 6), (x1 + text_w + 4, top), color, -1)
        cv2.putText(frame, label, (x1 + 2, top - 4), font, font_scale, COLOR_TEXT, thickness)

    return frame


def draw_status(
    frame: np.ndarray,
    status: SafetyStatus,
    alert: Optional[HazardAlert] = None,
    backend: Optional[str] = None,
) -> np.ndarray:
    """Draw the safety status badge, the active alert banner, and the backend name."""
    h, w = frame.shape[:2]
    font = cv2.FONT_HERSHEY_SIMPLEX

    color = STATUS_COLORS.get(status, STATUS_COLORS[SafetyStatus.SAFE])
    text = status.value.upper()
    (tw, th), _ = cv2.getTextSize(text, font, 0.7, 2)
    cv2.rectangle(frame, (w - tw - 20, 8), (w - 8, th + 20), color, -1)
    cv2.putText(frame, text, (w - tw - 14, th + 14), font, 0.7, COLOR_TEXT, 2)

    if alert is not None:
        banner = f"{alert.type.value}: {alert.message}"
        cv2.rectangle(frame, (0, h - 36), (w, h), STATUS_COLORS[SafetyStatus.DANGER], -1)
        cv2.putText(frame, banner, (10, h - 12), font, 0.6, COLOR_TEXT, 2)

    if backend:
        cv2.putText(frame, backend, (8, 20), font, 0.5, COLOR_TEXT, 1)

    return frame
