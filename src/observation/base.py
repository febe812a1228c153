"""
ObservationSource interface for pluggable video sources.

This defines the contract the frame scheduler relies on:
- read() returns a fresh frame snapshot, or None when the source has
  nothing decodable right now (not started, paused, between frames, ended)
- ended tells "nothing now" apart from "nothing ever again"

Sources include USB cameras, video files, and network streams (RTSP/HTTP).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

from models.frame import FrameData


@dataclass
class ObservationConfig:
    """
    Base configuration for observation sources.

    Attributes:
        source_id: Unique identifier for this source (e.g., "dashcam", "pi-stream").
        resolution: Target resolution as (width, height). None = use source default.
        fps: Target frames per second. None = use source default.
        metadata: Additional source-specific configuration.
    """
    source_id: str = "default"
    resolution: Optional[tuple[int, int]] = None
    fps: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class ObservationSource(ABC):
    """
    Abstract base class for observation sources.

    Lifecycle:
        1. Create instance with config
        2. Call open() to initialize the source
        3. Call read() whenever a frame is wanted (the scheduler pulls, the
           source never pushes)
        4. Call close() to release resources

    Every FrameData returned by read() is owned by the caller, which must
    release() it when done.

    Can also be used as a context manager:
        with OpenCVSource(config) as source:
            for frame_data in source:
                process(frame_data)
                frame_data.release()
    """

    def __init__(self, config: ObservationConfig):
        self._config = config
        self._is_open = False
        self._ended = False
        self._frame_index = 0

    @property
    def source_id(self) -> str:
        """Unique identifier for this source."""
        return self._config.source_id

    @property
    def is_open(self) -> bool:
        """Whether the source is currently open and ready to read."""
        return self._is_open

    @property
    def ended(self) -> bool:
        """True once the source can never produce another frame (e.g. end of a non-looping file)."""
        return self._ended

    @property
    def frame_index(self) -> int:
        """Current frame index (number of frames read since open)."""
        return self._frame_index

    @abstractmethod
    def open(self) -> None:
        """
        Open/initialize the observation source.

        Must be called before read(). May raise exceptions if the source
        cannot be opened (e.g., camera not found, file doesn't exist).

        Raises:
            RuntimeError: If the source cannot be opened.
        """
        pass

    @abstractmethod
    def read(self) -> Optional[FrameData]:
        """
        Read the current frame from the source.

        Returns:
            FrameData containing the frame, timestamp, frame_index, and source.
            Returns None if no frame is available right now; check `ended`
            to see whether one ever will be.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """
        Close/release the observation source.

        Safe to call multiple times.
        """
        pass

    def __enter__(self) -> "ObservationSource":
        """Context manager entry - opens the source."""
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - closes the source."""
        self.close()

    def __iter__(self) -> Iterator[FrameData]:
        """
        Iterate over frames from the source.

        Yields FrameData objects until read() returns None.
        The source must be open before iterating.
        """
        if not self._is_open:
            raise RuntimeError("Source must be open before iterating")

        while True:
            frame_data = self.read()
            if frame_data is None:
                break
            yield frame_data
