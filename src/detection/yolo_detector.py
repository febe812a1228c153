"""
YOLO detector running an exported ONNX model.

preprocess -> session.run -> decode -> suppress, with the letterbox
context from preprocessing passed straight into decoding.
"""

from __future__ import annotations

import logging
import time
from typing import List, Optional

import numpy as np

from inference.session import BackendFactory, InferenceSession, SessionManager
from models.config import DetectorConfig
from models.detection import Detection
from models.errors import InferenceError
from .base import Detector
from .decoder import TensorDecoder
from .nms import suppress
from .preprocess import FramePreprocessor


class YoloOnnxDetector(Detector):
    def __init__(
        self,
        cfg: DetectorConfig,
        backend_factory: Optional[BackendFactory] = None,
        bgr_input: bool = True,
    ):
        self.cfg = cfg
        self.preprocessor = FramePreprocessor(cfg.input_size, bgr_input=bgr_input)
        self.decoder = TensorDecoder(
            cfg.layout,
            num_classes=cfg.num_classes,
            conf_threshold=cfg.conf_threshold,
            labels=cfg.labels,
        )
        self._manager = SessionManager(cfg, backend_factory=backend_factory)
        self._session: Optional[InferenceSession] = None
        self.last_timings_ms = {}

    @property
    def loaded(self) -> bool:
        return self._session is not None and not self._session.closed

    @property
    def backend_name(self) -> Optional[str]:
        if self._session is None:
            return None
        return f"{self._session.backend_kind.value}:{self._session.backend_name}"

    @property
    def session(self) -> Optional[InferenceSession]:
        return self._session

    def load(self) -> str:
        if self._session is None:
            self._session = self._manager.load(self.cfg.model)
        return self.backend_name

    def detect(self, frame: np.ndarray) -> List[Detection]:
        if self._session is None:
            raise InferenceError("Detector used before load()")

        t0 = time.perf_counter()
        tensor, ctx = self.preprocessor.preprocess(frame)
        t1 = time.perf_counter()
        output = self._session.run(tensor)
        t2 = time.perf_counter()
        candidates = self.decoder.decode(output, ctx)
        detections = suppress(candidates, self.cfg.iou_threshold)
        t3 = time.perf_counter()

        self.last_timings_ms = {
            "preprocess": (t1 - t0) * 1000,
            "inference": (t2 - t1) * 1000,
            "postprocess": (t3 - t2) * 1000,
        }
        logging.debug(
            f"detect: {len(candidates)} candidates -> {len(detections)} detections "
            f"(pre={self.last_timings_ms['preprocess']:.1f}ms "
            f"infer={self.last_timings_ms['inference']:.1f}ms "
            f"post={self.last_timings_ms['postprocess']:.1f}ms)"
        )
        return detections

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None
