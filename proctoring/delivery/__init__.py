"""Violation delivery: HTTP transport and local fallback storage"""

from .client import ViolationTransport
from .fallback import LocalFallbackStore

__all__ = [
    "ViolationTransport",
    "LocalFallbackStore"
]
