"""
FrameData model for captured video frames.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

import numpy as np


@dataclass
class FrameData:
    """
    Metadata and payload for a captured video frame.

    A FrameData is handed from the source to exactly one consumer. Whoever
    holds it last must call release(), on success and on every error path.

    Attributes:
        frame: The raw frame data as a numpy array (BGR format). None once released.
        width: Frame width in pixels.
        height: Frame height in pixels.
        timestamp: Unix timestamp when frame was captured.
        frame_index: Sequential frame number since start.
        source: Identifier for the camera/video source.
        on_release: Optional hook called once when the frame is released
            (used by pool-backed sources to reclaim the buffer).
    """
    frame: Optional[np.ndarray]
    width: int
    height: int
    timestamp: float
    frame_index: int = 0
    source: Optional[str] = None
    on_release: Optional[Callable[["FrameData"], None]] = field(default=None, repr=False)
    released: bool = field(default=False, repr=False)

    @classmethod
    def from_numpy(
        cls,
        frame: np.ndarray,
        timestamp: float,
        frame_index: int = 0,
        source: Optional[str] = None,
        on_release: Optional[Callable[["FrameData"], None]] = None,
    ) -> "FrameData":
        """Create FrameData from a numpy array."""
        h, w = frame.shape[:2]
        return cls(
            frame=frame,
            width=w,
            height=h,
            timestamp=timestamp,
            frame_index=frame_index,
            source=source,
            on_release=on_release,
        )

    @property
    def shape(self) -> Tuple[int, ...]:
        """Return (height, width, channels)."""
        if self.frame is None:
            return ()
        return self.frame.shape

    @property
    def size(self) -> Tuple[int, int]:
        """Return (width, height)."""
        return (self.width, self.height)

    def release(self) -> None:
        """Drop the pixel buffer. Safe to call more than once."""
        if self.released:
            return
        self.released = True
        callback = self.on_release
        self.on_release = None
        try:
            if callback is not None:
                callback(self)
        finally:
            self.frame = None
