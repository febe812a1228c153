"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .labels import COCO_CLASSES


@dataclass
class SourceConfig:
    """Video source configuration (camera index, file path, or stream URL)."""
    device_id: Union[int, str] = 0
    secrets_file: Optional[str] = None
    resolution: Optional[List[int]] = None
    fps: Optional[int] = None
    loop: bool = True
    swap_rb: bool = False
    rotate: int = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SourceConfig":
        """Adapter: Create from config dictionary."""
        return cls(
            device_id=d.get("device_id", 0),
            secrets_file=d.get("secrets_file"),
            resolution=d.get("resolution"),
            fps=d.get("fps"),
            loop=d.get("loop", True),
            swap_rb=d.get("swap_rb", False),
            rotate=d.get("rotate", 0) or 0,
            flip_horizontal=d.get("flip_horizontal", False),
            flip_vertical=d.get("flip_vertical", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_id": self.device_id,
            "secrets_file": self.secrets_file,
            "resolution": self.resolution,
            "fps": self.fps,
            "loop": self.loop,
            "swap_rb": self.swap_rb,
            "rotate": self.rotate,
            "flip_horizontal": self.flip_horizontal,
            "flip_vertical": self.flip_vertical,
        }


@dataclass
class DetectorConfig:
    """
    Detector configuration.

    layout is never inferred from tensor dimensions: "box_major" means an
    output of [1, N, 4+C], "channel_major" means [1, 4+C, N]. The default
    matches a stock Ultralytics ONNX export ([1, 84, 8400]); models exported
    transposed to [1, 8400, 84] need layout="box_major".
    """
    model: str = ""
    input_size: int = 640
    conf_threshold: float = 0.5
    iou_threshold: float = 0.45
    layout: str = "channel_major"
    num_classes: int = 80
    labels: List[str] = field(default_factory=lambda: list(COCO_CLASSES))
    backends: List[str] = field(default_factory=lambda: ["gpu", "cpu"])
    gpu_device_id: int = 0
    warmup_runs: int = 1
    intra_op_threads: Optional[int] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetectorConfig":
        return cls(
            model=d.get("model", ""),
            input_size=d.get("input_size", 640),
            conf_threshold=d.get("conf_threshold", 0.5),
            iou_threshold=d.get("iou_threshold", 0.45),
            layout=d.get("layout", "channel_major"),
            num_classes=d.get("num_classes", 80),
            labels=list(d.get("labels") or COCO_CLASSES),
            backends=list(d.get("backends") or ["gpu", "cpu"]),
            gpu_device_id=d.get("gpu_device_id", 0),
            warmup_runs=d.get("warmup_runs", 1),
            intra_op_threads=d.get("intra_op_threads"),
        )

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "model": self.model,
            "input_size": self.input_size,
            "conf_threshold": self.conf_threshold,
            "iou_threshold": self.iou_threshold,
            "layout": self.layout,
            "num_classes": self.num_classes,
            "labels": list(self.labels),
            "backends": list(self.backends),
            "gpu_device_id": self.gpu_device_id,
            "warmup_runs": self.warmup_runs,
        }
        if self.intra_op_threads is not None:
            d["intra_op_threads"] = self.intra_op_threads
        return d


@dataclass
class SchedulerConfig:
    """Frame scheduler configuration."""
    poll_interval: float = 0.01
    stats_log_interval: float = 60.0
    error_log_every: int = 50
    stop_timeout: float = 5.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SchedulerConfig":
        return cls(
            poll_interval=d.get("poll_interval", 0.01),
            stats_log_interval=d.get("stats_log_interval", 60.0),
            error_log_every=d.get("error_log_every", 50),
            stop_timeout=d.get("stop_timeout", 5.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "poll_interval": self.poll_interval,
            "stats_log_interval": self.stats_log_interval,
            "error_log_every": self.error_log_every,
            "stop_timeout": self.stop_timeout,
        }


@dataclass
class HazardConfig:
    """
    Obstacle assessment configuration.

    corridor is the [left, right] band of the frame, as width ratios, that
    counts as the vehicle's path.
    """
    obstacle_classes: List[str] = field(default_factory=lambda: [
        "person", "bicycle", "car", "motorcycle", "bus", "truck",
        "dog", "horse", "cow", "stop sign",
    ])
    corridor: List[float] = field(default_factory=lambda: [0.3, 0.7])
    warning_area_ratio: float = 0.05
    danger_area_ratio: float = 0.15
    alert_hold_seconds: float = 5.0
    alert_cooldown_seconds: float = 5.0
    max_alerts: int = 50

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "HazardConfig":
        defaults = cls()
        return cls(
            obstacle_classes=list(d.get("obstacle_classes") or defaults.obstacle_classes),
            corridor=list(d.get("corridor") or defaults.corridor),
            warning_area_ratio=d.get("warning_area_ratio", 0.05),
            danger_area_ratio=d.get("danger_area_ratio", 0.15),
            alert_hold_seconds=d.get("alert_hold_seconds", 5.0),
            alert_cooldown_seconds=d.get("alert_cooldown_seconds", 5.0),
            max_alerts=d.get("max_alerts", 50),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "obstacle_classes": list(self.obstacle_classes),
            "corridor": list(self.corridor),
            "warning_area_ratio": self.warning_area_ratio,
            "danger_area_ratio": self.danger_area_ratio,
            "alert_hold_seconds": self.alert_hold_seconds,
            "alert_cooldown_seconds": self.alert_cooldown_seconds,
            "max_alerts": self.max_alerts,
        }


@dataclass
class WebConfig:
    """Web server configuration."""
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8000
    stream_fps: int = 15
    jpeg_quality: int = 80

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "WebConfig":
        return cls(
            enabled=d.get("enabled", True),
            host=d.get("host", "0.0.0.0"),
            port=d.get("port", 8000),
            stream_fps=d.get("stream_fps", 15),
            jpeg_quality=d.get("jpeg_quality", 80),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "host": self.host,
            "port": self.port,
            "stream_fps": self.stream_fps,
            "jpeg_quality": self.jpeg_quality,
        }


@dataclass
class Config:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure.
    """
    source: SourceConfig = field(default_factory=SourceConfig)
    detection: DetectorConfig = field(default_factory=DetectorConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    hazard: HazardConfig = field(default_factory=HazardConfig)
    web: WebConfig = field(default_factory=WebConfig)
    log_path: str = "logs/drivesafe.log"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Adapter: Create Config from raw dictionary (e.g., from load_config)."""
        return cls(
            source=SourceConfig.from_dict(d.get("source") or {}),
            detection=DetectorConfig.from_dict(d.get("detection") or {}),
            scheduler=SchedulerConfig.from_dict(d.get("scheduler") or {}),
            hazard=HazardConfig.from_dict(d.get("hazard") or {}),
            web=WebConfig.from_dict(d.get("web") or {}),
            log_path=d.get("log_path", "logs/drivesafe.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary (for saving or logging)."""
        return {
            "source": self.source.to_dict(),
            "detection": self.detection.to_dict(),
            "scheduler": self.scheduler.to_dict(),
            "hazard": self.hazard.to_dict(),
            "web": self.web.to_dict(),
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
