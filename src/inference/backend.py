"""
Inference backend interface.

A backend runs the model's graph on one execution engine and returns the
raw output tensor. Decoding lives in detection.decoder.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol

import numpy as np


class BackendKind(str, Enum):
    GPU = "gpu"
    CPU = "cpu"


class InferenceBackend(Protocol):
    kind: BackendKind

    @property
    def name(self) -> str:
        """Human-readable engine name, e.g. 'CUDAExecutionProvider'."""
        ...

    def run(self, tensor: np.ndarray) -> np.ndarray:
        ...

    def close(self) -> None:
        ...
