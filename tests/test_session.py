"""
Tests for backend selection, fallback and the ONNX Runtime backend.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from inference.backend import BackendKind
from inference.onnx_backend import (
    CPU_PROVIDER,
    OnnxBackendConfig,
    OnnxRuntimeBackend,
    select_providers,
)
from inference.session import InferenceSession, SessionManager
from models.config import DetectorConfig
from models.errors import BackendInitError, FatalLoadError, InferenceError


class FakeBackend:
    """Backend that returns a fixed tensor and records calls."""

    def __init__(self, kind, name="FakeProvider", output=None, fail_run=False):
        self.kind = kind
        self._name = name
        self.output = output if output is not None else np.zeros((1, 84, 10), dtype=np.float32)
        self.fail_run = fail_run
        self.runs = 0
        self.closed = False

    @property
    def name(self):
        return self._name

    def run(self, tensor):
        self.runs += 1
        if self.fail_run:
            raise RuntimeError("kernel crashed")
        return self.output

    def close(self):
        self.closed = True


def _factory(failing=(), fail_warmup=()):
    created = []

    def factory(kind, model_path):
        if kind.value in failing:
            raise BackendInitError(f"{kind.value} not available")
        backend = FakeBackend(kind, name=f"{kind.value}-provider", fail_run=kind.value in fail_warmup)
        created.append(backend)
        return backend

    factory.created = created
    return factory


class TestSessionManager:
    def test_gpu_preferred_when_available(self, model_file):
        manager = SessionManager(DetectorConfig(model=model_file), backend_factory=_factory())
        session = manager.load()

        assert session.backend_kind is BackendKind.GPU
        assert manager.failures == {}

    def test_gpu_fails_cpu_succeeds(self, model_file):
        manager = SessionManager(DetectorConfig(model=model_file), backend_factory=_factory(failing=("gpu",)))
        session = manager.load()

        assert session.backend_kind is BackendKind.CPU
        assert session.backend_name == "cpu-provider"
        assert "gpu" in manager.failures

    def test_all_backends_fail(self, model_file):
        manager = SessionManager(
            DetectorConfig(model=model_file),
            backend_factory=_factory(failing=("gpu", "cpu")),
        )
        with pytest.raises(FatalLoadError) as exc:
            manager.load()

        assert set(exc.value.failures) == {"gpu", "cpu"}

    def test_missing_model_file_is_fatal(self, tmp_path):
        factory = _factory()
        manager = SessionManager(DetectorConfig(model=str(tmp_path / "missing.onnx")), backend_factory=factory)

        with pytest.raises(FatalLoadError):
            manager.load()
        assert factory.created == []

    def test_empty_model_path_is_fatal(self):
        with pytest.raises(FatalLoadError):
            SessionManager(DetectorConfig(model=""), backend_factory=_factory()).load()

    def test_warmup_failure_falls_back_and_closes(self, model_file):
        factory = _factory(fail_warmup=("gpu",))
        manager = SessionManager(DetectorConfig(model=model_file), backend_factory=factory)
        session = manager.load()

        assert session.backend_kind is BackendKind.CPU
        gpu_backend = factory.created[0]
        assert gpu_backend.kind is BackendKind.GPU
        assert gpu_backend.closed is True

    def test_warmup_runs(self, model_file):
        factory = _factory()
        cfg = DetectorConfig(model=model_file, warmup_runs=3)
        SessionManager(cfg, backend_factory=factory).load()
        assert factory.created[0].runs == 3

    def test_selection_reported_once(self, model_file):
        selected = MagicMock()
        manager = SessionManager(
            DetectorConfig(model=model_file),
            backend_factory=_factory(failing=("gpu",)),
            on_backend_selected=selected,
        )
        manager.load()

        selected.assert_called_once_with(BackendKind.CPU, "cpu-provider")

    def test_preferences_respect_config_and_dedupe(self, model_file):
        cfg = DetectorConfig(model=model_file, backends=["cpu", "CPU", "gpu"])
        manager = SessionManager(cfg, backend_factory=_factory())

        assert manager.preferences() == [BackendKind.CPU, BackendKind.GPU]
        assert manager.load().backend_kind is BackendKind.CPU

    def test_unknown_backend_is_fatal(self, model_file):
        factory = _factory()
        cfg = DetectorConfig(model=model_file, backends=["tpu", "cpu"])
        manager = SessionManager(cfg, backend_factory=factory)

        with pytest.raises(FatalLoadError, match="tpu") as exc:
            manager.load()
        assert exc.value.failures == {"tpu": "unknown backend"}
        assert factory.created == []

    def test_cpu_only(self, model_file):
        cfg = DetectorConfig(model=model_file, backends=["cpu"])
        manager = SessionManager(cfg, backend_factory=_factory(failing=("cpu",)))
        with pytest.raises(FatalLoadError) as exc:
            manager.load()
        assert list(exc.value.failures) == ["cpu"]


class TestInferenceSession:
    def test_run_errors_become_inference_errors(self):
        session = InferenceSession(FakeBackend(BackendKind.CPU, fail_run=True), "m.onnx")
        with pytest.raises(InferenceError):
            session.run(np.zeros((1, 3, 8, 8), dtype=np.float32))

    def test_close_is_idempotent(self):
        backend = FakeBackend(BackendKind.CPU)
        session = InferenceSession(backend, "m.onnx")

        session.close()
        session.close()

        assert backend.closed
        assert session.closed
        with pytest.raises(InferenceError):
            session.run(np.zeros((1, 3, 8, 8), dtype=np.float32))


def _fake_ort(available, bound):
    """A stand-in onnxruntime module with a recording InferenceSession."""
    ort_session = MagicMock()
    ort_session.get_providers.return_value = bound
    ort_session.get_inputs.return_value = [SimpleNamespace(name="images")]
    ort_session.get_outputs.return_value = [SimpleNamespace(name="output0")]
    ort_session.run.return_value = [np.ones((1, 84, 5), dtype=np.float32)]

    ort = MagicMock()
    ort.get_available_providers.return_value = available
    ort.InferenceSession.return_value = ort_session
    return ort, ort_session


class TestOnnxRuntimeBackend:
    def test_select_providers_cpu(self):
        cfg = OnnxBackendConfig(model="m.onnx")
        assert select_providers(BackendKind.CPU, ["CUDAExecutionProvider", CPU_PROVIDER], cfg) == [(CPU_PROVIDER, {})]

    def test_select_providers_gpu_order(self):
        cfg = OnnxBackendConfig(model="m.onnx", gpu_device_id=1)
        available = ["CoreMLExecutionProvider", "CUDAExecutionProvider", CPU_PROVIDER]
        providers = select_providers(BackendKind.GPU, available, cfg)

        assert [p for p, _ in providers] == ["CUDAExecutionProvider", "CoreMLExecutionProvider"]
        assert providers[0][1]["device_id"] == 1

    def test_select_providers_gpu_unavailable(self):
        with pytest.raises(BackendInitError):
            select_providers(BackendKind.GPU, [CPU_PROVIDER], OnnxBackendConfig(model="m.onnx"))

    def test_cpu_backend_runs(self):
        ort, ort_session = _fake_ort([CPU_PROVIDER], [CPU_PROVIDER])
        with patch("inference.onnx_backend._import_ort", return_value=ort):
            backend = OnnxRuntimeBackend(BackendKind.CPU, OnnxBackendConfig(model="m.onnx"))

        out = backend.run(np.zeros((1, 3, 640, 640), dtype=np.float32))

        assert backend.name == CPU_PROVIDER
        assert out.shape == (1, 84, 5)
        ort_session.run.assert_called_once()
        assert ort_session.run.call_args[0][0] == ["output0"]
        assert "images" in ort_session.run.call_args[0][1]

    def test_gpu_silent_cpu_downgrade_is_failure(self):
        ort, _ = _fake_ort(["CUDAExecutionProvider", CPU_PROVIDER], [CPU_PROVIDER])
        with patch("inference.onnx_backend._import_ort", return_value=ort):
            with pytest.raises(BackendInitError):
                OnnxRuntimeBackend(BackendKind.GPU, OnnxBackendConfig(model="m.onnx"))

    def test_gpu_backend_bound(self):
        ort, _ = _fake_ort(
            ["CUDAExecutionProvider", CPU_PROVIDER],
            ["CUDAExecutionProvider", CPU_PROVIDER],
        )
        with patch("inference.onnx_backend._import_ort", return_value=ort):
            backend = OnnxRuntimeBackend(BackendKind.GPU, OnnxBackendConfig(model="m.onnx"))
        assert backend.name == "CUDAExecutionProvider"

    def test_session_creation_error_wrapped(self):
        ort, _ = _fake_ort([CPU_PROVIDER], [CPU_PROVIDER])
        ort.InferenceSession.side_effect = RuntimeError("invalid protobuf")
        with patch("inference.onnx_backend._import_ort", return_value=ort):
            with pytest.raises(BackendInitError):
                OnnxRuntimeBackend(BackendKind.CPU, OnnxBackendConfig(model="m.onnx"))
