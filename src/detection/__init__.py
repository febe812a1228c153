"""
Detection core: letterbox preprocessing, tensor decoding, and suppression.
"""

from .base import Detector
from .decoder import TensorDecoder, TensorLayout
from .geometry import iou
from .nms import suppress
from .preprocess import FramePreprocessor, compute_letterbox
from .yolo_detector import YoloOnnxDetector

__all__ = [
    "Detector",
    "TensorDecoder",
    "TensorLayout",
    "iou",
    "suppress",
    "FramePreprocessor",
    "compute_letterbox",
    "YoloOnnxDetector",
]
