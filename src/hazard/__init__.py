"""
Hazard assessment: safety status and the alert log.
"""

from .monitor import AlertType, HazardAlert, HazardMonitor, SafetyStatus

__all__ = ["AlertType", "HazardAlert", "HazardMonitor", "SafetyStatus"]
