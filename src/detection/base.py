"""
Detection interfaces.

The scheduler only needs two things from a detector: a one-time load()
that either succeeds or raises FatalLoadError, and detect() on one frame.
"""

from __future__ import annotations

from typing import List, Optional

import numpy as np

from models.detection import Detection


class Detector:
    """Detector interface returning detections in source-frame pixels."""

    @property
    def loaded(self) -> bool:
        raise NotImplementedError

    @property
    def backend_name(self) -> Optional[str]:
        return None

    def load(self) -> str:
        """Load the model; return the name of the active backend."""
        raise NotImplementedError

    def detect(self, frame: np.ndarray) -> List[Detection]:
        raise NotImplementedError

    def close(self) -> None:
        pass
