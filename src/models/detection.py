"""
Detection models for object detection results.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class BoundingBox:
    """
    An axis-aligned box in pixel coordinates, top-left origin.

    Attributes:
        x: Left edge x coordinate.
        y: Top edge y coordinate.
        width: Box width.
        height: Box height.
    """
    x: float
    y: float
    width: float
    height: float

    @property
    def x2(self) -> float:
        return self.x + self.width

    @property
    def y2(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def area(self) -> float:
        return self.width * self.height

    def as_xywh(self) -> Tuple[float, float, float, float]:
        """Return as (x, y, width, height) tuple."""
        return (self.x, self.y, self.width, self.height)

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        """Return as (x1, y1, x2, y2) tuple."""
        return (self.x, self.y, self.x2, self.y2)

    def as_int_tuple(self) -> Tuple[int, int, int, int]:
        """Return as integer (x1, y1, x2, y2) tuple, for drawing."""
        return (int(self.x), int(self.y), int(self.x2), int(self.y2))

    def scaled(self, sx: float, sy: float) -> "BoundingBox":
        """Map into another resolution (e.g. display size)."""
        return BoundingBox(self.x * sx, self.y * sy, self.width * sx, self.height * sy)

    @classmethod
    def from_xyxy(cls, x1: float, y1: float, x2: float, y2: float) -> "BoundingBox":
        """Create from (x1, y1, x2, y2) corners."""
        return cls(x=x1, y=y1, width=x2 - x1, height=y2 - y1)


@dataclass(frozen=True)
class LetterboxContext:
    """
    Scale and padding used to letterbox one frame.

    Computed once by the preprocessor and passed to the decoder for the
    same frame, so both directions use identical values.
    """
    scale: float
    x_pad: float
    y_pad: float
    frame_width: int
    frame_height: int
    model_width: int
    model_height: int

    def to_model(self, x: float, y: float) -> Tuple[float, float]:
        """Source-frame point -> model-input point."""
        return (x * self.scale + self.x_pad, y * self.scale + self.y_pad)

    def to_source(self, x: float, y: float) -> Tuple[float, float]:
        """Model-input point -> source-frame point."""
        return ((x - self.x_pad) / self.scale, (y - self.y_pad) / self.scale)


@dataclass(frozen=True)
class Candidate:
    """
    A thresholded proposal, already mapped back to source-frame pixels.

    Lives only between decode and suppress.
    """
    class_id: int
    label: str
    score: float
    bbox: BoundingBox


@dataclass(frozen=True)
class Detection:
    """
    A single detection surviving suppression.

    Attributes:
        label: Human-readable class name.
        score: Confidence in (conf_threshold, 1].
        bbox: Bounding box in source-frame pixel coordinates.
        class_id: Index into the class table (None when unknown).
    """
    label: str
    score: float
    bbox: BoundingBox
    class_id: Optional[int] = None

    @classmethod
    def from_candidate(cls, candidate: Candidate) -> "Detection":
        return cls(
            label=candidate.label,
            score=candidate.score,
            bbox=candidate.bbox,
            class_id=candidate.class_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        x, y, w, h = self.bbox.as_xywh()
        return {
            "label": self.label,
            "score": self.score,
            "class_id": self.class_id,
            "bbox": {"x": x, "y": y, "width": w, "height": h},
        }
