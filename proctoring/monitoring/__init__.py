"""Webcam anomaly monitoring"""

from .webcam_monitor import AnomalyTimer, WebcamMonitor

__all__ = ["AnomalyTimer", "WebcamMonitor"]
