from __future__ import annotations

import logging
import os
import platform
import time
from typing import Iterator, List, Optional, Tuple

import cv2
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from hazard.monitor import SafetyStatus
from models.config import WebConfig
from ..api_models import (
    AlertModel,
    AlertRequest,
    AlertsResponse,
    DetectionsResponse,
    StatusResponse,
)
from ..state import LiveState

router = APIRouter()
stream_router = APIRouter()


def _live(request: Request) -> LiveState:
    return request.app.state.live


def _web_cfg(request: Request) -> WebConfig:
    return request.app.state.web_cfg


def _age(ts: Optional[float], now: float) -> Optional[float]:
    return None if ts is None else max(0.0, now - ts)


def _derive_status(
    scheduler_state: Optional[str],
    fatal_error: Optional[str],
    last_detection_age: Optional[float],
    consecutive_failures: int,
) -> Tuple[str, List[str]]:
    """
    Lightweight status classifier used by /api/status.
    Thresholds: >10s since last detections => offline; >2s => degraded.
    """
    if fatal_error:
        return "offline", ["model_load_failed"]
    if scheduler_state == "stopped":
        return "stopped", []

    level = "running"
    warnings: List[str] = []
    if last_detection_age is None or last_detection_age > 10:
        level = "offline"
        warnings.append("no_detections")
    elif last_detection_age > 2:
        level = "degraded"
        warnings.append("detections_stale")

    if consecutive_failures > 0:
        warnings.append("frame_errors")
        if level == "running":
            level = "degraded"

    return level, warnings


@router.get("/status", response_model=StatusResponse)
def status(request: Request):
    """
    Aggregate pipeline status for the UI.

    Combines scheduler state and stats, backend, detection freshness and
    the current safety status.
    """
    live = _live(request)
    now = time.time()

    scheduler_state = None
    frames = {}
    if live.scheduler is not None:
        scheduler_state = live.scheduler.state.value
        frames = live.scheduler.stats.to_dict()

    detection_age = _age(live.last_detection_ts, now)
    level, warnings = _derive_status(
        scheduler_state,
        live.fatal_error,
        detection_age,
        int(frames.get("consecutive_failures", 0)),
    )

    safety = SafetyStatus.SAFE
    alert = None
    if live.hazard is not None:
        safety = live.hazard.status(now)
        current = live.hazard.current_alert(now)
        if current is not None:
            alert = AlertModel(**current.to_dict())

    return StatusResponse(
        status=level,
        warnings=warnings,
        backend=live.backend,
        scheduler_state=scheduler_state,
        inference_fps=frames.get("inference_fps"),
        latency_ms=live.last_latency_ms,
        last_frame_age_s=_age(live.last_frame_ts, now),
        last_detection_age_s=detection_age,
        safety_status=safety.value,
        current_alert=alert,
        frames=frames,
        fatal_error=live.fatal_error,
        last_error=live.last_error,
        uptime_seconds=int(now - live.start_time),
        timestamp=now,
    )


@router.get("/detections", response_model=DetectionsResponse)
def detections(request: Request):
    dets, frame_size, ts = _live(request).get_detections()
    return DetectionsResponse(
        frame_size=list(frame_size) if frame_size else None,
        timestamp=ts,
        count=len(dets),
        detections=[d.to_dict() for d in dets],
    )


@router.get("/alerts", response_model=AlertsResponse)
def list_alerts(request: Request, limit: int = 50):
    hazard = _live(request).hazard
    if hazard is None:
        return AlertsResponse(alerts=[])
    limit = max(1, min(500, int(limit)))
    return AlertsResponse(alerts=[AlertModel(**a.to_dict()) for a in hazard.alerts(limit)])


@router.post("/alerts", response_model=AlertModel)
def create_alert(req: AlertRequest, request: Request):
    """Raise an alert from an external producer (e.g. a lane tracker)."""
    hazard = _live(request).hazard
    if hazard is None:
        raise HTTPException(status_code=503, detail="Hazard monitor not running")
    alert = hazard.trigger_alert(req.type, req.message)
    return AlertModel(**alert.to_dict())


@router.get("/health")
def health(request: Request):
    live = _live(request)
    return {
        "ok": live.fatal_error is None,
        "timestamp": time.time(),
        "platform": platform.platform(),
        "python": platform.python_version(),
        "cwd": os.getcwd(),
        "backend": live.backend,
        "fatal_error": live.fatal_error,
    }


def mjpeg_frames(
    live: LiveState,
    fps: float,
    jpeg_quality: int = 80,
    max_frames: Optional[int] = None,
) -> Iterator[bytes]:
    """
    Yield multipart MJPEG parts of the annotated live frame.

    Waits while no frame has been captured yet. max_frames bounds the
    stream (None streams forever).
    """
    delay = 1.0 / max(1.0, float(fps))
    params = [int(cv2.IMWRITE_JPEG_QUALITY), int(jpeg_quality)]
    sent = 0
    while max_frames is None or sent < max_frames:
        frame = live.annotated_frame()
        if frame is None:
            time.sleep(0.1)
            continue

        ok, buf = cv2.imencode(".jpg", frame, params)
        if not ok:
            logging.debug("JPEG encode failed; skipping frame")
            time.sleep(delay)
            continue
        yield b"--frame\r\nContent-Type: image/jpeg\r\n\r\n" + buf.tobytes() + b"\r\n"
        sent += 1
        time.sleep(delay)


@stream_router.get("/video_feed")
def video_feed(request: Request, fps: Optional[int] = None):
    """Live annotated video as MJPEG."""
    cfg = _web_cfg(request)
    rate = max(1, min(30, int(fps or cfg.stream_fps)))
    return StreamingResponse(
        mjpeg_frames(_live(request), rate, cfg.jpeg_quality),
        media_type="multipart/x-mixed-replace; boundary=frame",
    )
