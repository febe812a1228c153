"""
Inference session management.

SessionManager.load() walks the configured backend preference list
(GPU first, then CPU by default), keeps the first backend that initializes
and warms up, and reports which one was selected exactly once. If every
backend fails the load raises FatalLoadError: nothing can be detected in
this process.
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Dict, List, Optional

import numpy as np

from models.config import DetectorConfig
from models.errors import BackendInitError, FatalLoadError, InferenceError
from .backend import BackendKind, InferenceBackend
from .onnx_backend import OnnxBackendConfig, OnnxRuntimeBackend

BackendFactory = Callable[[BackendKind, str], InferenceBackend]


class InferenceSession:
    """
    A loaded model bound to one backend.

    Owned by a single scheduling loop; run() is never called concurrently.
    """

    def __init__(self, backend: InferenceBackend, model_path: str):
        self._backend: Optional[InferenceBackend] = backend
        self.model_path = model_path
        self.backend_kind: BackendKind = backend.kind
        self.backend_name: str = backend.name

    @property
    def closed(self) -> bool:
        return self._backend is None

    def run(self, tensor: np.ndarray) -> np.ndarray:
        """Run the model on one input tensor and return the first output."""
        if self._backend is None:
            raise InferenceError("Session is closed")
        try:
            return self._backend.run(tensor)
        except Exception as e:
            raise InferenceError(f"{self.backend_name} run failed: {e}") from e

    def close(self) -> None:
        if self._backend is None:
            return
        try:
            self._backend.close()
        finally:
            self._backend = None
        logging.info(f"Inference session closed ({self.backend_kind.value})")


class SessionManager:
    """
    Loads the model once, with automatic backend fallback.

    Example:
        manager = SessionManager(DetectorConfig(model="models/yolov8s.onnx"))
        session = manager.load()
        output = session.run(tensor)
    """

    def __init__(
        self,
        cfg: DetectorConfig,
        backend_factory: Optional[BackendFactory] = None,
        on_backend_selected: Optional[Callable[[BackendKind, str], None]] = None,
    ):
        self.cfg = cfg
        self._factory = backend_factory or self._default_factory
        self._on_backend_selected = on_backend_selected
        self.failures: Dict[str, str] = {}

    def _default_factory(self, kind: BackendKind, model_path: str) -> InferenceBackend:
        return OnnxRuntimeBackend(
            kind,
            OnnxBackendConfig(
                model=model_path,
                gpu_device_id=self.cfg.gpu_device_id,
                intra_op_threads=self.cfg.intra_op_threads,
            ),
        )

    def preferences(self) -> List[BackendKind]:
        kinds = []
        for name in self.cfg.backends:
            try:
                kind = BackendKind(str(name).lower())
            except ValueError:
                valid = ", ".join(k.value for k in BackendKind)
                raise FatalLoadError(
                    f"Unknown inference backend {name!r} (expected one of: {valid})",
                    {str(name): "unknown backend"},
                ) from None
            if kind not in kinds:
                kinds.append(kind)
        return kinds

    def load(self, model_path: Optional[str] = None) -> InferenceSession:
        """
        Create a session on the first backend that works.

        Raises:
            FatalLoadError: Model file missing/unreadable, or all backends failed.
        """
        path = model_path or self.cfg.model
        if not path or not os.path.isfile(path) or not os.access(path, os.R_OK):
            logging.error(f"Model file not readable: {path!r}")
            raise FatalLoadError(f"Model file not readable: {path!r}")

        self.failures = {}
        for kind in self.preferences():
            backend = None
            try:
                backend = self._factory(kind, path)
                self._warmup(backend)
            except Exception as e:
                self.failures[kind.value] = str(e)
                logging.warning(f"{kind.value} backend unavailable, falling back: {e}")
                if backend is not None:
                    try:
                        backend.close()
                    except Exception as close_err:
                        logging.debug(f"Error closing failed backend: {close_err}")
                continue

            session = InferenceSession(backend, path)
            logging.info(
                f"Model loaded: {os.path.basename(path)} on {kind.value} backend ({session.backend_name})"
            )
            if self._on_backend_selected is not None:
                self._on_backend_selected(kind, session.backend_name)
            return session

        summary = "; ".join(f"{k}: {v}" for k, v in self.failures.items()) or "no backends configured"
        logging.error(f"All inference backends failed: {summary}")
        raise FatalLoadError(f"All inference backends failed: {summary}", self.failures)

    def _warmup(self, backend: InferenceBackend) -> None:
        if self.cfg.warmup_runs <= 0:
            return
        size = self.cfg.input_size
        dummy = np.zeros((1, 3, size, size), dtype=np.float32)
        for _ in range(self.cfg.warmup_runs):
            try:
                backend.run(dummy)
            except Exception as e:
                raise BackendInitError(f"warm-up run failed: {e}") from e
