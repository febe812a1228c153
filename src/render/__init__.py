"""
Renderers for detections: OpenCV overlays used by the display window and the MJPEG feed.
"""

from .overlay import draw_detections, draw_status

__all__ = ["draw_detections", "draw_status"]
