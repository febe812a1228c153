"""
Error taxonomy for the detection pipeline.

Two scopes matter to callers:
- FatalLoadError: the model can never run in this process (session scope).
- FrameError and subclasses: one frame failed, the next one may succeed.
"""

from __future__ import annotations

from typing import Dict, Optional


class DetectionError(Exception):
    """Base class for all pipeline errors."""


class FatalLoadError(DetectionError):
    """
    Model file unreadable, or every configured backend failed to initialize.

    Attributes:
        failures: backend name -> error message, in the order they were tried.
    """

    def __init__(self, message: str, failures: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.failures = dict(failures or {})


class BackendInitError(DetectionError):
    """A single execution backend could not be initialized."""


class FrameError(DetectionError):
    """Recoverable, per-frame failure. The scheduler moves on to the next frame."""


class PreprocessError(FrameError):
    """The frame could not be letterboxed into a model input tensor."""


class ShapeMismatchError(FrameError):
    """Output tensor dimensions do not match the configured layout/class count."""


class InferenceError(FrameError):
    """The backend raised while running the model."""
