"""
Proctoring Engine Configuration Settings

Values are read from the environment (or a .env file). Components keep
their own defaults; ProctorSession wires these settings into them.
"""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Configuration for the proctoring engine."""

    # API Settings
    APP_NAME: str = "Assessment Proctoring Engine"
    DEBUG: bool = False

    # Assessment server (violation delivery + identity logging)
    PROCTOR_API_BASE_URL: str = "http://localhost:8000/api/v1"
    PROCTOR_API_TOKEN: Optional[str] = None
    PROCTOR_HTTP_TIMEOUT: float = 10.0

    # Violation ledger
    BATCH_INTERVAL_SECONDS: float = 30.0
    FALLBACK_STORAGE_DIR: str = ".proctor_fallback"

    # Face detection loop
    DETECTION_INTERVAL: float = 0.1           # general display use
    MONITOR_DETECTION_INTERVAL: float = 1.0   # forced when wired for proctoring

    # Webcam monitor (seconds)
    MONITOR_CHECK_INTERVAL: float = 5.0
    NO_FACE_THRESHOLD: float = 10.0
    CRITICAL_NO_FACE_THRESHOLD: float = 30.0
    LOOKING_AWAY_THRESHOLD: float = 10.0
    WARNING_ISSUE_THRESHOLD: float = 30.0

    # Live identity comparison
    FACE_COMPARISON_INTERVAL: float = 10.0
    FACE_MISMATCH_THRESHOLD: float = 0.6

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_DIR: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
