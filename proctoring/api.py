"""
Proctoring API - Local ingress for the exam page

Endpoints:
- POST /api/proctor/start - Start a proctoring session for an attempt
- POST /api/proctor/event - Report a window event (tab switch, copy, ...)
- POST /api/proctor/stop - Stop the session and get the violation summary
- GET /api/proctor/summary/{attempt_id} - Current violation summary
- GET /api/proctor/health - Health check
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from .config import settings
from .session import ProctorSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/proctor", tags=["Proctoring"])

# In-memory session storage keyed by attempt id
_sessions: Dict[str, ProctorSession] = {}


# ============== Request/Response Models ==============

class StartSessionRequest(BaseModel):
    """Request to start a proctoring session"""
    assessment_id: str = Field(..., description="ID of the assessment")
    attempt_id: str = Field(..., description="ID of the assessment attempt")
    ip_address: Optional[str] = Field(None, description="Network baseline IP")
    location: Optional[str] = Field(None, description="Network baseline location")


class StartSessionResponse(BaseModel):
    """Response after starting a session"""
    attempt_id: str
    status: str
    message: str


class EventRequest(BaseModel):
    """A window event reported by the exam page"""
    attempt_id: str
    event: str = Field(..., description="Browser event name or violation kind")
    details: Dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = None
    location: Optional[str] = None


class EventResponse(BaseModel):
    """Outcome of recording an event"""
    recorded: bool
    violation_type: Optional[str] = None
    count: int = 0
    severity: Optional[str] = None
    show_warning: bool = False
    auto_submit: bool = False
    auto_submit_reason: Optional[str] = None


class StopSessionRequest(BaseModel):
    """Request to stop a proctoring session"""
    attempt_id: str


class ViolationTypeSummary(BaseModel):
    type: str
    count: int
    warning_threshold: int
    threshold: int


class SummaryResponse(BaseModel):
    """Violation summary for an attempt"""
    attempt_id: str
    assessment_id: str
    is_active: bool
    total: int
    counts: Dict[str, int]
    by_type: List[ViolationTypeSummary]
    critical: int
    high: int
    medium: int
    low: int
    pending_delivery: int
    auto_submit_requested: bool
    auto_submit_reason: Optional[str] = None
    duration_seconds: float


# ============== Helpers ==============

def _get_session(attempt_id: str) -> ProctorSession:
    session = _sessions.get(attempt_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def _summary_response(session: ProctorSession) -> SummaryResponse:
    summary = session.summary()
    return SummaryResponse(
        attempt_id=summary["attempt_id"],
        assessment_id=summary["assessment_id"],
        is_active=summary["is_active"],
        total=summary["total"],
        counts=summary["counts"],
        by_type=[ViolationTypeSummary(**entry) for entry in summary["by_type"]],
        critical=summary["critical"],
        high=summary["high"],
        medium=summary["medium"],
        low=summary["low"],
        pending_delivery=summary["pending_delivery"],
        auto_submit_requested=summary["auto_submit_requested"],
        auto_submit_reason=summary["auto_submit_reason"],
        duration_seconds=summary["duration_seconds"]
    )


# ============== API Endpoints ==============

@router.post("/start", response_model=StartSessionResponse)
async def start_session(request: StartSessionRequest):
    """
    Start proctoring an attempt.

    Restarting an attempt that is still active is rejected; a stopped
    attempt is replaced by a fresh session.
    """
    existing = _sessions.get(request.attempt_id)
    if existing is not None and existing.is_active:
        raise HTTPException(status_code=400, detail="Session already active")

    try:
        session = ProctorSession(
            assessment_id=request.assessment_id,
            attempt_id=request.attempt_id,
            config=settings
        )
        session.set_initial_network(request.ip_address, request.location)
        session.start()
    except Exception as e:
        logger.error(f"Failed to start proctoring session: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    _sessions[request.attempt_id] = session

    return StartSessionResponse(
        attempt_id=request.attempt_id,
        status="active",
        message="Proctoring session started successfully"
    )


@router.post("/event", response_model=EventResponse)
async def record_event(request: EventRequest):
    """
    Record a window event.

    Unknown events are dropped and answered with ``recorded=False``.
    ``auto_submit`` in the response tells the page to end the attempt.
    """
    session = _get_session(request.attempt_id)

    if not session.is_active:
        raise HTTPException(status_code=400, detail="Session is not active")

    violation = session.record_event(request.event, request.details)

    if request.ip_address or request.location:
        session.check_network(request.ip_address, request.location)

    if violation is None:
        return EventResponse(
            recorded=False,
            auto_submit=session.auto_submit_requested,
            auto_submit_reason=session.auto_submit_reason
        )

    return EventResponse(
        recorded=True,
        violation_type=violation.type.value,
        count=violation.count,
        severity=violation.severity.value,
        show_warning=session.ledger.should_show_warning(violation.type),
        auto_submit=session.auto_submit_requested,
        auto_submit_reason=session.auto_submit_reason
    )


@router.post("/stop", response_model=SummaryResponse)
async def stop_session(request: StopSessionRequest):
    """Stop proctoring and return the final violation summary"""
    session = _get_session(request.attempt_id)

    session.stop()
    await session.ledger.wait_for_deliveries()

    return _summary_response(session)


@router.get("/summary/{attempt_id}", response_model=SummaryResponse)
async def get_summary(attempt_id: str):
    """Current violation summary of an attempt"""
    return _summary_response(_get_session(attempt_id))


# ============== Health Check ==============

@router.get("/health")
async def health_check():
    """Health check for proctoring module"""
    return {
        "status": "healthy",
        "active_sessions": sum(1 for s in _sessions.values() if s.is_active),
        "module": "proctoring"
    }
