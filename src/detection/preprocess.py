"""
Frame preprocessing: letterbox resize and tensor packing.
"""

from __future__ import annotations

from typing import Tuple

import cv2
import numpy as np

from models.detection import LetterboxContext
from models.errors import PreprocessError


def compute_letterbox(
    frame_width: int,
    frame_height: int,
    model_width: int = 640,
    model_height: int = 640,
) -> LetterboxContext:
    """
    Uniform scale and centering pads that fit a frame inside the model square.

    scale = min(model_w / frame_w, model_h / frame_h)
    x_pad = (model_w - frame_w * scale) / 2, y_pad likewise.
    """
    if frame_width <= 0 or frame_height <= 0:
        raise PreprocessError(f"Invalid frame size {frame_width}x{frame_height}")

    scale = min(model_width / frame_width, model_height / frame_height)
    x_pad = (model_width - frame_width * scale) / 2
    y_pad = (model_height - frame_height * scale) / 2
    return LetterboxContext(
        scale=scale,
        x_pad=x_pad,
        y_pad=y_pad,
        frame_width=frame_width,
        frame_height=frame_height,
        model_width=model_width,
        model_height=model_height,
    )


class FramePreprocessor:
    """
    Letterboxes a frame onto a black model-size canvas and packs it as a
    float32 [1, 3, H, W] tensor (R plane, G plane, B plane; values in [0, 1]).

    Args:
        input_size: Side of the square model input.
        bgr_input: Frames arrive in OpenCV's BGR order and are swapped to RGB.
    """

    def __init__(self, input_size: int = 640, bgr_input: bool = True):
        if input_size <= 0:
            raise ValueError("input_size must be positive")
        self.model_width = input_size
        self.model_height = input_size
        self.bgr_input = bgr_input

    def letterbox(self, frame: np.ndarray) -> Tuple[np.ndarray, LetterboxContext]:
        """
        Draw the frame onto a black canvas of the model size.

        Returns:
            (canvas HxWx3 uint8, letterbox context)
        """
        if frame is None or not isinstance(frame, np.ndarray):
            raise PreprocessError("No frame buffer to draw from")
        if frame.ndim != 3 or frame.shape[2] not in (3, 4):
            raise PreprocessError(f"Expected an HxWx3 image, got shape {frame.shape}")

        h, w = frame.shape[:2]
        ctx = compute_letterbox(w, h, self.model_width, self.model_height)

        if frame.shape[2] == 4:
            frame = frame[..., :3]
        if frame.dtype != np.uint8:
            frame = np.clip(frame, 0, 255).astype(np.uint8)

        # Drawn at the same fractional pads the decoder subtracts;
        # pixel centres sit at i + 0.5
        s = ctx.scale
        matrix = np.float32([
            [s, 0, ctx.x_pad + 0.5 * s - 0.5],
            [0, s, ctx.y_pad + 0.5 * s - 0.5],
        ])
        try:
            canvas = cv2.warpAffine(
                np.ascontiguousarray(frame),
                matrix,
                (self.model_width, self.model_height),
                flags=cv2.INTER_LINEAR,
                borderMode=cv2.BORDER_CONSTANT,
                borderValue=(0, 0, 0),
            )
        except cv2.error as e:
            raise PreprocessError(f"Letterbox failed: {e}") from e
        return canvas, ctx

    def to_tensor(self, canvas: np.ndarray) -> np.ndarray:
        """Interleaved HxWx3 uint8 -> channel-major float32 [1, 3, H, W] in [0, 1]."""
        rgb = canvas[..., ::-1] if self.bgr_input else canvas
        chw = np.transpose(rgb, (2, 0, 1)).astype(np.float32) / 255.0
        return np.ascontiguousarray(chw[np.newaxis, ...])

    def preprocess(self, frame: np.ndarray) -> Tuple[np.ndarray, LetterboxContext]:
        """
        Letterbox and pack one frame.

        Raises:
            PreprocessError: If the frame cannot be drawn (missing buffer,
                wrong shape, zero size). Fatal for this frame only.
        """
        canvas, ctx = self.letterbox(frame)
        return self.to_tensor(canvas), ctx
