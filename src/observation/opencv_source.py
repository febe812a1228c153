"""
OpenCV-based observation source.

Supports:
- USB/laptop webcams (device_id as int, e.g., 0)
- Network streams (device_id as rtsp:// or http:// URL, e.g. a Pi camera feed)
- Video files (device_id as file path), looped by default
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import cv2
import numpy as np

from models.frame import FrameData
from .base import ObservationSource, ObservationConfig
from .rtsp_utils import is_stream_url, sanitize_url


@dataclass
class OpenCVSourceConfig(ObservationConfig):
    """
    Configuration for OpenCV-based observation sources.

    Attributes:
        device_id: Camera index (int), stream URL (str), or file path (str).
        loop: Rewind video files at the end instead of ending the source.
        rtsp_transport: Transport protocol for RTSP ("tcp" or "udp").
        buffer_size: OpenCV capture buffer size (reduces latency for live feeds).
        max_retries: Open attempts per initialization, and consecutive stream
            read failures tolerated before the source ends.
        swap_rb: Swap R/B channels (fixes RGB vs BGR issues).
        rotate: Rotation in degrees (0, 90, 180, 270).
        flip_horizontal: Flip frame horizontally.
        flip_vertical: Flip frame vertically.
    """
    device_id: Union[int, str] = 0
    loop: bool = True
    rtsp_transport: str = "tcp"
    buffer_size: int = 1
    max_retries: int = 3
    swap_rb: bool = False
    rotate: int = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False

    @classmethod
    def from_source_config(cls, source_cfg: Dict[str, Any], source_id: str = "camera") -> "OpenCVSourceConfig":
        """
        Adapter: Create OpenCVSourceConfig from the `source` config dict.

        Args:
            source_cfg: Source configuration dict (from config.yaml).
            source_id: Identifier for this source.
        """
        resolution = source_cfg.get("resolution")
        if resolution:
            resolution = tuple(resolution)

        return cls(
            source_id=source_id,
            resolution=resolution,
            fps=source_cfg.get("fps"),
            device_id=source_cfg.get("device_id", 0),
            loop=source_cfg.get("loop", True),
            rtsp_transport=source_cfg.get("rtsp_transport", "tcp"),
            buffer_size=source_cfg.get("buffer_size", 1),
            max_retries=source_cfg.get("max_retries", 3),
            swap_rb=source_cfg.get("swap_rb", False),
            rotate=source_cfg.get("rotate", 0) or 0,
            flip_horizontal=source_cfg.get("flip_horizontal", False),
            flip_vertical=source_cfg.get("flip_vertical", False),
        )


class OpenCVSource(ObservationSource):
    """
    OpenCV-based observation source for cameras, streams and video files.

    Wraps cv2.VideoCapture to provide frames as FrameData objects.
    Handles automatic reconnection for camera streams.

    Example:
        config = OpenCVSourceConfig(device_id="clips/drive.mp4")
        with OpenCVSource(config) as source:
            frame_data = source.read()
    """

    def __init__(self, config: OpenCVSourceConfig):
        super().__init__(config)
        self._opencv_config = config
        self._cap: Optional[cv2.VideoCapture] = None
        self._consecutive_failures = 0

    @property
    def device_id(self) -> Union[int, str]:
        return self._opencv_config.device_id

    @property
    def is_stream(self) -> bool:
        """Check if this is a network stream."""
        return is_stream_url(self.device_id)

    @property
    def is_rtsp(self) -> bool:
        return isinstance(self.device_id, str) and self.device_id.lower().startswith(("rtsp://", "rtsps://"))

    @property
    def is_file(self) -> bool:
        """Check if this is a video file."""
        return (
            isinstance(self.device_id, str) and
            not self.is_stream and
            os.path.exists(self.device_id)
        )

    def open(self) -> None:
        """Open the video source."""
        if self._is_open:
            return

        self._initialize(retry_count=0)
        self._is_open = True
        self._ended = False
        self._frame_index = 0
        self._consecutive_failures = 0

        logging.info(
            f"OpenCVSource opened: source_id={self.source_id}, "
            f"device={sanitize_url(self.device_id)}, resolution={self._opencv_config.resolution}"
        )

    def _initialize(self, retry_count: int = 0) -> None:
        """Initialize or reinitialize the capture device."""
        if self._cap is not None:
            self._cap.release()
            self._cap = None

        if retry_count > 0:
            wait_time = min(2 ** retry_count, 10)
            logging.info(
                f"Retrying initialization (attempt {retry_count + 1}/"
                f"{self._opencv_config.max_retries}) after {wait_time}s"
            )
            time.sleep(wait_time)

        if self.is_rtsp:
            os.environ["OPENCV_FFMPEG_CAPTURE_OPTIONS"] = (
                f"rtsp_transport;{self._opencv_config.rtsp_transport}"
            )

        self._cap = cv2.VideoCapture(self.device_id)

        if not self._cap.isOpened():
            if retry_count < self._opencv_config.max_retries - 1:
                logging.warning(f"Failed to open device {sanitize_url(self.device_id)}, retrying...")
                return self._initialize(retry_count + 1)
            raise RuntimeError(
                f"Failed to open device {sanitize_url(self.device_id)} after "
                f"{self._opencv_config.max_retries} attempts"
            )

        # Capture properties only apply to local cameras
        if isinstance(self.device_id, int):
            if self._opencv_config.resolution:
                w, h = self._opencv_config.resolution
                self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
                self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
            if self._opencv_config.fps:
                self._cap.set(cv2.CAP_PROP_FPS, self._opencv_config.fps)
            self._cap.set(cv2.CAP_PROP_BUFFERSIZE, self._opencv_config.buffer_size)

            logging.info(
                f"Camera actual settings - Resolution: "
                f"({self._cap.get(cv2.CAP_PROP_FRAME_WIDTH)}x{self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT)}), "
                f"FPS: {self._cap.get(cv2.CAP_PROP_FPS)}"
            )

        # Brief warmup for cameras
        if not self.is_file:
            time.sleep(0.5)

    def read(self) -> Optional[FrameData]:
        """Read the current frame, or None if nothing is decodable right now."""
        if not self._is_open or self._cap is None or self._ended:
            return None

        ret, frame = self._cap.read()

        if not ret or frame is None:
            if self.is_file:
                return self._handle_end_of_file()
            return self._handle_stream_failure()

        self._consecutive_failures = 0
        return self._make_frame(frame)

    def _handle_end_of_file(self) -> Optional[FrameData]:
        if not self._opencv_config.loop:
            logging.info("End of video file reached")
            self._ended = True
            return None

        self._cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
        ret, frame = self._cap.read()
        if not ret or frame is None:
            logging.error("Video file could not be rewound, ending source")
            self._ended = True
            return None
        logging.debug("Video file looped")
        return self._make_frame(frame)

    def _handle_stream_failure(self) -> Optional[FrameData]:
        # Counted across reinitializations; only a decoded frame resets it
        self._consecutive_failures += 1
        if self._consecutive_failures > self._opencv_config.max_retries:
            logging.error(
                f"Too many consecutive read failures ({self._consecutive_failures}), "
                f"ending source {sanitize_url(self.device_id)}"
            )
            self._ended = True
            return None

        logging.warning(
            f"Failed to read frame (failures: {self._consecutive_failures}), reinitializing..."
        )
        try:
            self._initialize()
        except RuntimeError:
            logging.error("Reinitialization failed")
            return None
        ret, frame = self._cap.read()
        if not ret or frame is None:
            return None
        self._consecutive_failures = 0
        return self._make_frame(frame)

    def _make_frame(self, frame: np.ndarray) -> FrameData:
        frame = self._apply_transforms(frame)
        self._frame_index += 1
        return FrameData.from_numpy(
            frame,
            timestamp=time.time(),
            frame_index=self._frame_index,
            source=self.source_id,
        )

    def _apply_transforms(self, frame: np.ndarray) -> np.ndarray:
        """Apply configured image transforms (rotate, flip, swap_rb)."""
        cfg = self._opencv_config

        if cfg.rotate == 90:
            frame = cv2.rotate(frame, cv2.ROTATE_90_CLOCKWISE)
        elif cfg.rotate == 180:
            frame = cv2.rotate(frame, cv2.ROTATE_180)
        elif cfg.rotate == 270:
            frame = cv2.rotate(frame, cv2.ROTATE_90_COUNTERCLOCKWISE)

        if cfg.flip_horizontal or cfg.flip_vertical:
            if cfg.flip_horizontal and cfg.flip_vertical:
                flip_code = -1
            elif cfg.flip_horizontal:
                flip_code = 1
            else:
                flip_code = 0
            frame = cv2.flip(frame, flip_code)

        if cfg.swap_rb:
            frame = frame[..., ::-1].copy()

        return frame

    def close(self) -> None:
        """Close the video source and release resources."""
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        self._is_open = False
        logging.info(f"OpenCVSource closed: source_id={self.source_id}")


def create_source_from_config(source_cfg: Dict[str, Any], source_id: str = "main") -> OpenCVSource:
    """Build the OpenCV source described by the `source` config section."""
    return OpenCVSource(OpenCVSourceConfig.from_source_config(source_cfg, source_id=source_id))
