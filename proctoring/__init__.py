"""
Assessment Proctoring Engine

Watches a candidate during an online assessment and keeps an auditable
violation record:
- Face presence, count, position and orientation from webcam frames
- Live identity comparison against the verified reference face
- Window events reported by the exam page (tab switches, clipboard, ...)

Violations are counted per kind against a threshold policy that decides
when to warn and when to auto-submit the attempt, and are delivered to the
assessment server with a local fallback.
"""

from .session import ProctorSession
from .api import router

__all__ = ["ProctorSession", "router"]
