"""Utility modules for proctoring"""

from .logging import log_proctor_event
from .logging_config import setup_logging

__all__ = ["log_proctor_event", "setup_logging"]
