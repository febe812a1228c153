"""
Box geometry helpers.
"""

from __future__ import annotations

from models.detection import BoundingBox


def iou(a: BoundingBox, b: BoundingBox) -> float:
    """
    Intersection over union of two (x, y, width, height) boxes.

    Returns 0.0 when the union area is zero, so degenerate boxes never match.
    """
    inter_w = max(0.0, min(a.x2, b.x2) - max(a.x, b.x))
    inter_h = max(0.0, min(a.y2, b.y2) - max(a.y, b.y))
    inter = inter_w * inter_h

    union = a.area + b.area - inter
    if union <= 0:
        return 0.0
    return inter / union
