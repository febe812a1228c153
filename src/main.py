"""
DriveSafe: real-time object detection and hazard alerts for a driving camera.

Captures frames from a camera, video file or stream, runs a YOLO ONNX model
with at most one frame in flight, and publishes detections, safety status
and an annotated MJPEG feed over HTTP.

Usage:
    python src/main.py --config config/config.yaml --display

Arguments:
    --config: Path to configuration file
    --display: Show the annotated feed in an OpenCV window
    --no-web: Do not start the web server
    --source: Override source.device_id (camera index, file path or URL)
"""

import os
import sys
import argparse
import logging
import threading
import time
from typing import Dict, Any, Tuple, Optional

import cv2
import uvicorn
import yaml

from detection.decoder import TensorLayout
from detection.yolo_detector import YoloOnnxDetector
from hazard.monitor import HazardMonitor
from inference.backend import BackendKind
from models.config import Config
from models.errors import FatalLoadError
from observation.opencv_source import create_source_from_config
from observation.rtsp_utils import inject_stream_credentials, sanitize_url
from ops.logging import setup_logging
from pipeline.events import EventKind
from pipeline.scheduler import FrameScheduler
from runtime.context import RuntimeContext
from web.app import create_app
from web.state import state as web_state

VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base and return base."""
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration with layering:
    - `config/default.yaml` (checked in)
    - `config/config.yaml` (local overrides)
    - plus any explicitly provided `--config` path (treated as overrides)
    """
    try:
        base_path = os.path.join(os.path.dirname(config_path), "default.yaml")
        base_cfg: Dict[str, Any] = {}
        if os.path.exists(base_path):
            with open(base_path, "r") as f:
                base_cfg = yaml.safe_load(f) or {}

        local_overrides_path = os.path.join(os.path.dirname(config_path), "config.yaml")
        local_cfg: Dict[str, Any] = {}
        if os.path.exists(local_overrides_path):
            with open(local_overrides_path, "r") as f:
                local_cfg = yaml.safe_load(f) or {}

        merged = _deep_merge(base_cfg, local_cfg)

        # Finally apply explicit config_path if it's not the local override file itself
        if os.path.exists(config_path) and os.path.abspath(config_path) != os.path.abspath(local_overrides_path):
            with open(config_path, "r") as f:
                explicit_cfg = yaml.safe_load(f) or {}
            merged = _deep_merge(merged, explicit_cfg)

        return merged
    except Exception as e:
        logging.error(f"Failed to load configuration: {e}")
        sys.exit(1)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration file structure and values.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    # Required top-level sections
    required_sections = ['source', 'detection', 'log_path', 'log_level']
    for section in required_sections:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    # Validate source settings
    source = config.get('source') or {}
    if 'device_id' not in source:
        return False, "Missing source.device_id"
    device_id = source['device_id']
    if isinstance(device_id, bool) or not isinstance(device_id, (int, str)):
        return False, "source.device_id must be an integer (index) or string (path or URL)"
    if isinstance(device_id, int) and device_id < 0:
        return False, "source.device_id integer must be non-negative"
    if isinstance(device_id, str) and not device_id:
        return False, "source.device_id must not be empty"

    if source.get('resolution') is not None:
        resolution = source['resolution']
        if not isinstance(resolution, list) or len(resolution) != 2:
            return False, "source.resolution must be a list of [width, height]"
        if not all(isinstance(x, int) and x > 0 for x in resolution):
            return False, "source.resolution values must be positive integers"

    if source.get('fps') is not None:
        if not isinstance(source['fps'], int) or source['fps'] <= 0:
            return False, "source.fps must be a positive integer"

    if source.get('rotate', 0) not in (0, 90, 180, 270, None):
        return False, "source.rotate must be one of: 0, 90, 180, 270"

    # Validate detection settings
    detection = config.get('detection') or {}
    model = detection.get('model')
    if not isinstance(model, str) or not model:
        return False, "detection.model is required"

    input_size = detection.get('input_size', 640)
    if not isinstance(input_size, int) or isinstance(input_size, bool) or input_size <= 0:
        return False, "detection.input_size must be a positive integer"

    for key in ('conf_threshold', 'iou_threshold'):
        if key in detection:
            value = detection[key]
            if not _is_number(value):
                return False, f"detection.{key} must be a number"
            if not (0 <= value <= 1):
                return False, f"detection.{key} must be between 0 and 1"

    layout = detection.get('layout', TensorLayout.CHANNEL_MAJOR.value)
    valid_layouts = [l.value for l in TensorLayout]
    if layout not in valid_layouts:
        return False, f"detection.layout must be one of: {', '.join(valid_layouts)}"

    num_classes = detection.get('num_classes', 80)
    if not isinstance(num_classes, int) or isinstance(num_classes, bool) or num_classes <= 0:
        return False, "detection.num_classes must be a positive integer"

    labels = detection.get('labels')
    if labels is not None:
        if not isinstance(labels, list) or not all(isinstance(x, str) for x in labels):
            return False, "detection.labels must be a list of strings"
        if len(labels) != num_classes:
            return False, f"detection.labels has {len(labels)} entries but num_classes is {num_classes}"

    backends = detection.get('backends', ['gpu', 'cpu'])
    valid_backends = [k.value for k in BackendKind]
    if not isinstance(backends, list) or not backends:
        return False, "detection.backends must be a non-empty list"
    for name in backends:
        if name not in valid_backends:
            return False, f"detection.backends entries must be one of: {', '.join(valid_backends)}"

    # Optional scheduler settings
    scheduler = config.get('scheduler') or {}
    if 'poll_interval' in scheduler:
        if not _is_number(scheduler['poll_interval']) or scheduler['poll_interval'] <= 0:
            return False, "scheduler.poll_interval must be a positive number"
    if 'error_log_every' in scheduler:
        if not isinstance(scheduler['error_log_every'], int) or scheduler['error_log_every'] <= 0:
            return False, "scheduler.error_log_every must be a positive integer"

    # Optional hazard settings
    hazard = config.get('hazard') or {}
    if 'corridor' in hazard:
        corridor = hazard['corridor']
        if (
            not isinstance(corridor, list)
            or len(corridor) != 2
            or not all(_is_number(x) for x in corridor)
            or not (0 <= corridor[0] < corridor[1] <= 1)
        ):
            return False, "hazard.corridor must be [left, right] with 0 <= left < right <= 1"
    for key in ('warning_area_ratio', 'danger_area_ratio'):
        if key in hazard:
            if not _is_number(hazard[key]) or not (0 < hazard[key] <= 1):
                return False, f"hazard.{key} must be between 0 and 1"

    # Optional web settings
    web = config.get('web') or {}
    if 'port' in web:
        if not isinstance(web['port'], int) or not (0 < web['port'] < 65536):
            return False, "web.port must be a valid TCP port"

    # Validate log settings
    if config['log_level'] not in VALID_LOG_LEVELS:
        return False, f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}"

    return True, None


def _parse_device_id(value: str):
    """CLI --source: digits mean a camera index, anything else a path or URL."""
    return int(value) if value.isdigit() else value


def _start_web(cfg: Config) -> threading.Thread:
    def run_web_app():
        uvicorn.run(
            create_app(web_state, cfg.web),
            host=cfg.web.host,
            port=cfg.web.port,
            log_level="info",
        )

    web_thread = threading.Thread(target=run_web_app, name="web", daemon=True)
    web_thread.start()
    logging.info(f"Web interface started on port {cfg.web.port}")
    return web_thread


def main():
    """Main application function."""
    # Parse command-line arguments
    parser = argparse.ArgumentParser(description='DriveSafe - real-time object detection')
    parser.add_argument('--config', type=str, default='config/config.yaml',
                        help='Path to configuration file')
    parser.add_argument('--display', action='store_true',
                        help='Enable visual display')
    parser.add_argument('--no-web', action='store_true',
                        help='Do not start the web server')
    parser.add_argument('--source', type=str, default=None,
                        help='Override source.device_id (camera index, file or URL)')
    args = parser.parse_args()

    # Load configuration
    config = load_config(args.config)
    if args.source is not None:
        config.setdefault('source', {})['device_id'] = _parse_device_id(args.source)

    # Handle stream credentials if secrets_file is provided
    try:
        inject_stream_credentials(config.get('source') or {})
    except Exception as e:
        logging.error(f"Error loading stream secrets: {e}")

    # Validate configuration
    is_valid, error_msg = validate_config(config)
    if not is_valid:
        logging.error(f"Configuration validation failed: {error_msg}")
        sys.exit(1)

    # Setup logging
    setup_logging(config['log_path'], config['log_level'])

    cfg = Config.from_dict(config)
    logging.info("Starting DriveSafe")
    logging.info(f"Source: {sanitize_url(cfg.source.device_id)}, model: {cfg.detection.model}")

    source = create_source_from_config(config['source'])
    detector = YoloOnnxDetector(cfg.detection)
    hazard = HazardMonitor(cfg.hazard)

    ctx = RuntimeContext(
        config=cfg,
        source=source,
        detector=detector,
        hazard=hazard,
        live=web_state,
    )
    scheduler = FrameScheduler(source, detector, cfg.scheduler, frame_tap=ctx.on_frame)
    ctx.attach(scheduler)

    source_ended = threading.Event()

    def on_event(event):
        if event.kind is EventKind.SOURCE_ENDED:
            source_ended.set()

    scheduler.add_listener(on_event)

    if cfg.web.enabled and not args.no_web:
        _start_web(cfg)

    try:
        scheduler.start()
    except FatalLoadError as e:
        for kind, reason in e.failures.items():
            logging.error(f"  {kind}: {reason}")
        scheduler.shutdown()
        sys.exit(1)

    try:
        while not source_ended.is_set():
            if args.display:
                frame = web_state.annotated_frame()
                if frame is not None:
                    cv2.imshow('DriveSafe', frame)
                key = cv2.waitKey(30) & 0xFF
                if key == ord('q'):
                    break
            else:
                time.sleep(0.5)
    except KeyboardInterrupt:
        logging.info("Interrupted, shutting down")
    finally:
        scheduler.shutdown()
        if args.display:
            cv2.destroyAllWindows()
        logging.info("DriveSafe stopped")


if __name__ == "__main__":
    main()
