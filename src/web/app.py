"""
FastAPI application factory for DriveSafe.

Routes:
- /video_feed -> annotated MJPEG stream
- /api/* -> REST API (status, detections, alerts, health)
"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from models.config import WebConfig
from .routes import api
from .state import LiveState, state


def create_app(live: Optional[LiveState] = None, web_cfg: Optional[WebConfig] = None) -> FastAPI:
    """Create the FastAPI app and wire routes to the given live state."""
    app = FastAPI(
        title="DriveSafe",
        version="0.1.0",
        description="Real-time object detection and hazard alerts for a driving camera",
    )

    # CORS for development dashboards
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.live = live if live is not None else state
    app.state.web_cfg = web_cfg or WebConfig()

    app.include_router(api.router, prefix="/api")
    app.include_router(api.stream_router)

    return app
