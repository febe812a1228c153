from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from hazard.monitor import AlertType


class BoundingBoxModel(BaseModel):
    x: float
    y: float
    width: float
    height: float


class DetectionModel(BaseModel):
    label: str
    score: float
    class_id: Optional[int] = None
    bbox: BoundingBoxModel


class DetectionsResponse(BaseModel):
    frame_size: Optional[List[int]] = Field(None, description="[width, height] the boxes refer to")
    timestamp: Optional[float] = None
    count: int = 0
    detections: List[DetectionModel] = Field(default_factory=list)


class AlertModel(BaseModel):
    id: str
    type: str
    timestamp: float
    message: str


class AlertRequest(BaseModel):
    type: AlertType
    message: str = Field(..., min_length=1, max_length=500)


class AlertsResponse(BaseModel):
    alerts: List[AlertModel]


class StatusResponse(BaseModel):
    """
    Compact status for dashboard polling.
    """
    status: str = Field(..., description="running|degraded|offline|stopped")
    warnings: List[str] = Field(default_factory=list)
    backend: Optional[str] = None
    scheduler_state: Optional[str] = None
    inference_fps: Optional[float] = None
    latency_ms: Optional[float] = None
    last_frame_age_s: Optional[float] = None
    last_detection_age_s: Optional[float] = None
    safety_status: str = "Safe"
    current_alert: Optional[AlertModel] = None
    frames: Dict[str, Any] = Field(default_factory=dict)
    fatal_error: Optional[str] = None
    last_error: Optional[str] = None
    uptime_seconds: Optional[int] = None
    timestamp: float
