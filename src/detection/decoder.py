"""
Decoding of raw YOLO-style output tensors.

The model emits one row of (cx, cy, w, h, score_0 .. score_{C-1}) per
proposal, in model-input (letterboxed) pixels. Exports differ in how those
rows are laid out in memory:

- box_major:     [1, N, 4+C]   (one proposal per row)
- channel_major: [1, 4+C, N]   (the raw YOLOv8 export, one channel per row)

The layout is configuration, not something we guess from the shape: with
N and 4+C both plausible dimension sizes the shape alone is ambiguous.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import List, Sequence, Union

import numpy as np

from models.detection import BoundingBox, Candidate, LetterboxContext
from models.errors import ShapeMismatchError
from models.labels import COCO_CLASSES, label_for

BOX_CHANNELS = 4


class TensorLayout(str, Enum):
    BOX_MAJOR = "box_major"
    CHANNEL_MAJOR = "channel_major"

    @classmethod
    def parse(cls, value: Union[str, "TensorLayout"]) -> "TensorLayout":
        if isinstance(value, TensorLayout):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            raise ValueError(f"Unknown tensor layout {value!r} (expected one of: {valid})") from None


class TensorDecoder:
    """
    Turns one output tensor into thresholded, un-letterboxed candidates.

    Example:
        decoder = TensorDecoder(TensorLayout.CHANNEL_MAJOR, conf_threshold=0.5)
        candidates = decoder.decode(output, ctx)
    """

    def __init__(
        self,
        layout: Union[str, TensorLayout],
        num_classes: int = 80,
        conf_threshold: float = 0.5,
        labels: Sequence[str] = COCO_CLASSES,
    ):
        if num_classes <= 0:
            raise ValueError("num_classes must be positive")
        self.layout = TensorLayout.parse(layout)
        self.num_classes = num_classes
        self.conf_threshold = conf_threshold
        self.labels = tuple(labels)

    @property
    def channels(self) -> int:
        return BOX_CHANNELS + self.num_classes

    def proposals(self, output: np.ndarray) -> np.ndarray:
        """
        Validate the tensor shape and return an (N, 4+C) view of the proposals.

        Raises:
            ShapeMismatchError: If the dimensions do not fit the configured
                layout and class count.
        """
        arr = np.asarray(output)
        if arr.ndim != 3 or arr.shape[0] != 1:
            raise ShapeMismatchError(
                f"Expected output of rank 3 with batch 1, got shape {tuple(arr.shape)}"
            )

        if self.layout is TensorLayout.BOX_MAJOR:
            if arr.shape[2] != self.channels:
                raise ShapeMismatchError(
                    f"box_major output must be [1, N, {self.channels}], got {tuple(arr.shape)}"
                )
            return arr[0]

        if arr.shape[1] != self.channels:
            raise ShapeMismatchError(
                f"channel_major output must be [1, {self.channels}, N], got {tuple(arr.shape)}"
            )
        return arr[0].T

    def decode(self, output: np.ndarray, ctx: LetterboxContext) -> List[Candidate]:
        """
        Decode every proposal and keep those scoring strictly above the threshold.

        Args:
            output: Raw model output tensor.
            ctx: Letterbox context computed when this frame was preprocessed.

        Returns:
            Unordered candidates in source-frame pixel coordinates.
        """
        preds = self.proposals(output)
        if preds.shape[0] == 0:
            return []

        scores = preds[:, BOX_CHANNELS:]
        # argmax picks the first index on ties
        class_ids = scores.argmax(axis=1)
        max_scores = scores[np.arange(scores.shape[0]), class_ids]

        keep = np.flatnonzero(max_scores > self.conf_threshold)
        if keep.size == 0:
            return []

        boxes = preds[keep, :BOX_CHANNELS].astype(np.float64)
        cx, cy, w, h = boxes[:, 0], boxes[:, 1], boxes[:, 2], boxes[:, 3]
        x1 = (cx - w / 2 - ctx.x_pad) / ctx.scale
        y1 = (cy - h / 2 - ctx.y_pad) / ctx.scale
        bw = w / ctx.scale
        bh = h / ctx.scale

        candidates = []
        for i, idx in enumerate(keep):
            class_id = int(class_ids[idx])
            candidates.append(
                Candidate(
                    class_id=class_id,
                    label=label_for(class_id, self.labels),
                    score=float(max_scores[idx]),
                    bbox=BoundingBox(float(x1[i]), float(y1[i]), float(bw[i]), float(bh[i])),
                )
            )

        logging.debug(f"Decoded {len(candidates)}/{preds.shape[0]} proposals above {self.conf_threshold}")
        return candidates
