"""
Greedy, class-partitioned non-maximum suppression.
"""

from __future__ import annotations

from typing import Iterable, List

from models.detection import Candidate, Detection
from .geometry import iou


def suppress(candidates: Iterable[Candidate], iou_threshold: float) -> List[Detection]:
    """
    Keep the best-scoring box of each overlapping same-label cluster.

    Candidates are ordered by score (stable, so ties keep their input order).
    The top candidate is kept and every remaining candidate with the same
    label and IoU >= iou_threshold against it is dropped; repeat until empty.
    Boxes with different labels never suppress each other.

    Args:
        candidates: Decoded candidates for one frame, in any order.
        iou_threshold: Overlap at or above which a same-label box is dropped.

    Returns:
        Detections in descending score order.
    """
    remaining = sorted(candidates, key=lambda c: c.score, reverse=True)
    selected: List[Detection] = []

    while remaining:
        best = remaining.pop(0)
        selected.append(Detection.from_candidate(best))
        remaining = [
            c for c in remaining
            if c.label != best.label or iou(best.bbox, c.bbox) < iou_threshold
        ]

    return selected
