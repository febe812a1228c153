"""
Inference backends and session management.
"""

from .backend import BackendKind, InferenceBackend
from .onnx_backend import OnnxBackendConfig, OnnxRuntimeBackend
from .session import InferenceSession, SessionManager

__all__ = [
    "BackendKind",
    "InferenceBackend",
    "OnnxBackendConfig",
    "OnnxRuntimeBackend",
    "InferenceSession",
    "SessionManager",
]
