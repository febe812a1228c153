"""
Typed models for the detection pipeline.

These are plain dataclasses shared by every other package; nothing here
imports from the rest of the project.
"""

from .frame import FrameData
from .detection import BoundingBox, Candidate, Detection, LetterboxContext
from .labels import COCO_CLASSES, UNKNOWN_LABEL, label_for
from .errors import (
    DetectionError,
    FatalLoadError,
    BackendInitError,
    FrameError,
    PreprocessError,
    ShapeMismatchError,
    InferenceError,
)
from .config import (
    Config,
    SourceConfig,
    DetectorConfig,
    SchedulerConfig,
    HazardConfig,
    WebConfig,
)

__all__ = [
    # Frame
    "FrameData",
    # Detection
    "BoundingBox",
    "Candidate",
    "Detection",
    "LetterboxContext",
    # Labels
    "COCO_CLASSES",
    "UNKNOWN_LABEL",
    "label_for",
    # Errors
    "DetectionError",
    "FatalLoadError",
    "BackendInitError",
    "FrameError",
    "PreprocessError",
    "ShapeMismatchError",
    "InferenceError",
    # Config
    "Config",
    "SourceConfig",
    "DetectorConfig",
    "SchedulerConfig",
    "HazardConfig",
    "WebConfig",
]
