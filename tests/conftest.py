"""
Pytest configuration and shared fixtures.
"""

import os
import sys

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text("""
source:
  device_id: 0
  resolution: [640, 480]
  fps: 30
  loop: true

detection:
  model: "models/yolov8n.onnx"
  input_size: 640
  conf_threshold: 0.5
  iou_threshold: 0.45
  layout: "channel_major"
  num_classes: 80
  backends: ["gpu", "cpu"]

hazard:
  corridor: [0.3, 0.7]

log_path: "logs/test.log"
log_level: "INFO"
""")

    return config_dir


@pytest.fixture
def valid_config():
    """Return a valid configuration dictionary."""
    return {
        "source": {
            "device_id": 0,
            "resolution": [1280, 720],
            "fps": 30,
        },
        "detection": {
            "model": "models/yolov8n.onnx",
            "input_size": 640,
            "conf_threshold": 0.5,
            "iou_threshold": 0.45,
            "layout": "channel_major",
            "num_classes": 80,
            "backends": ["gpu", "cpu"],
        },
        "scheduler": {
            "poll_interval": 0.01,
        },
        "hazard": {
            "corridor": [0.3, 0.7],
        },
        "web": {
            "port": 8000,
        },
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }


@pytest.fixture
def model_file(tmp_path):
    """A readable placeholder model file (fake backends never parse it)."""
    path = tmp_path / "model.onnx"
    path.write_bytes(b"onnx")
    return str(path)


@pytest.fixture
def box_major_output():
    """
    Build a [1, N, 4+C] output tensor from (cx, cy, w, h, class_id, score) rows.

    Every other class score is zero.
    """
    def build(rows, num_classes=80):
        out = np.zeros((1, len(rows), 4 + num_classes), dtype=np.float32)
        for i, (cx, cy, w, h, class_id, score) in enumerate(rows):
            out[0, i, :4] = (cx, cy, w, h)
            out[0, i, 4 + class_id] = score
        return out
    return build


@pytest.fixture
def channel_major_output(box_major_output):
    """Same rows as box_major_output, laid out as [1, 4+C, N]."""
    def build(rows, num_classes=80):
        return np.ascontiguousarray(box_major_output(rows, num_classes).transpose(0, 2, 1))
    return build
