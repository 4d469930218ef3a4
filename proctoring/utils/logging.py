"""
Proctoring Logger - Logs proctoring events and results
"""

import logging
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


def log_proctor_event(
    attempt_id: Optional[str],
    event_type: str,
    details: Optional[Dict[str, Any]] = None,
    level: str = "info"
):
    """
    Log a proctoring event.

    Args:
        attempt_id: Assessment attempt the event belongs to
        event_type: Type of event (session_start, violation, auto_submit, ...)
        details: Optional event details
        level: Log level (debug, info, warning, error)
    """
    message = f"[PROCTOR] attempt={attempt_id} event={event_type}"

    if details:
        detail_str = " ".join(f"{k}={v}" for k, v in details.items())
        message += f" {detail_str}"

    if level == "debug":
        logger.debug(message)
    elif level == "warning":
        logger.warning(message)
    elif level == "error":
        logger.error(message)
    else:
        logger.info(message)


def log_session_start(attempt_id: str, assessment_id: str):
    """Log session start event"""
    log_proctor_event(
        attempt_id=attempt_id,
        event_type="session_start",
        details={"assessment_id": assessment_id}
    )


def log_session_end(attempt_id: str, total_violations: int, pending: int):
    """Log session end event"""
    log_proctor_event(
        attempt_id=attempt_id,
        event_type="session_end",
        details={
            "total_violations": total_violations,
            "pending_delivery": pending
        }
    )


def log_violation_recorded(attempt_id: str, violation_type: str, count: int,
                           threshold: int, severity: str):
    """Log a newly recorded violation"""
    log_proctor_event(
        attempt_id=attempt_id,
        event_type="violation",
        details={
            "type": violation_type,
            "count": f"{count}/{threshold}",
            "severity": severity
        },
        level="warning" if severity in ("HIGH", "CRITICAL") else "info"
    )


def log_auto_submit(attempt_id: str, violation_type: str, count: int, threshold: int):
    """Log an auto-submit decision"""
    log_proctor_event(
        attempt_id=attempt_id,
        event_type="auto_submit",
        details={
            "type": violation_type,
            "count": f"{count}/{threshold}"
        },
        level="warning"
    )


def log_delivery_failure(attempt_id: str, mode: str, violations: int, error: Any = None):
    """Log a failed delivery that fell back to local storage"""
    details = {"mode": mode, "violations": violations}
    if error is not None:
        details["error"] = error
    log_proctor_event(
        attempt_id=attempt_id,
        event_type="delivery_failed",
        details=details,
        level="error"
    )
