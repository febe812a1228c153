"""
ONNX Runtime inference backend.

GPU kind: tries the accelerated execution providers the installed runtime
offers (CUDA, then DirectML, then CoreML). ORT quietly drops to the CPU
provider when a requested provider cannot start, so we check which provider
actually got bound and treat a silent downgrade as an initialization failure.

CPU kind: CPUExecutionProvider only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from models.errors import BackendInitError
from .backend import BackendKind, InferenceBackend

CPU_PROVIDER = "CPUExecutionProvider"
GPU_PROVIDERS = (
    "CUDAExecutionProvider",
    "DmlExecutionProvider",
    "CoreMLExecutionProvider",
)


@dataclass(frozen=True)
class OnnxBackendConfig:
    model: str
    gpu_device_id: int = 0
    intra_op_threads: Optional[int] = None


def _import_ort():
    try:
        import onnxruntime as ort  # type: ignore
    except Exception as e:  # pragma: no cover
        raise BackendInitError(
            "onnxruntime is not installed. Install with `pip install onnxruntime` "
            "(or `onnxruntime-gpu` for CUDA)."
        ) from e
    return ort


def _provider_options(provider: str, cfg: OnnxBackendConfig) -> Dict[str, Any]:
    if provider == "CUDAExecutionProvider":
        return {
            "device_id": cfg.gpu_device_id,
            "cudnn_conv_algo_search": "EXHAUSTIVE",
        }
    if provider == "DmlExecutionProvider":
        return {"device_id": cfg.gpu_device_id}
    return {}


def select_providers(
    kind: BackendKind, available: List[str], cfg: OnnxBackendConfig
) -> List[Tuple[str, Dict[str, Any]]]:
    """Providers (with options) to request for a backend kind, best first."""
    if kind is BackendKind.CPU:
        return [(CPU_PROVIDER, {})]

    chosen = [(p, _provider_options(p, cfg)) for p in GPU_PROVIDERS if p in available]
    if not chosen:
        raise BackendInitError(
            f"No GPU execution provider available (runtime offers: {', '.join(available) or 'none'})"
        )
    return chosen


class OnnxRuntimeBackend(InferenceBackend):
    def __init__(self, kind: BackendKind, cfg: OnnxBackendConfig):
        self.kind = kind
        self.cfg = cfg
        ort = _import_ort()

        requested = select_providers(kind, list(ort.get_available_providers()), cfg)

        options = ort.SessionOptions()
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        if cfg.intra_op_threads:
            options.intra_op_num_threads = cfg.intra_op_threads

        try:
            self._session = ort.InferenceSession(
                cfg.model,
                sess_options=options,
                providers=[p for p, _ in requested],
                provider_options=[o for _, o in requested],
            )
        except Exception as e:
            raise BackendInitError(f"{kind.value} session creation failed: {e}") from e

        bound = self._session.get_providers()
        if kind is BackendKind.GPU and (not bound or bound[0] == CPU_PROVIDER):
            raise BackendInitError(
                f"GPU providers {[p for p, _ in requested]} requested but runtime bound {bound}"
            )

        self._provider = bound[0] if bound else CPU_PROVIDER
        self.input_name = self._session.get_inputs()[0].name
        self.output_name = self._session.get_outputs()[0].name
        logging.debug(
            f"ONNX session created: provider={self._provider}, "
            f"input={self.input_name}, output={self.output_name}"
        )

    @property
    def name(self) -> str:
        return self._provider

    def run(self, tensor: np.ndarray) -> np.ndarray:
        outputs = self._session.run([self.output_name], {self.input_name: tensor})
        return np.asarray(outputs[0])

    def close(self) -> None:
        self._session = None
