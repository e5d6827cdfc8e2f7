"""
Session API Routes.

Start, inspect and stop reasoning sessions, sponsor frontier ideas and
stream session events over SSE.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from crucible.config import ConfigValidationError, get_crucible_config
from crucible.cycle.runner import RunnerStatus
from crucible.session import SessionInfo, SessionManager

from ..sse import sse_manager

router = APIRouter(prefix="/api/sessions", tags=["sessions"])
logger = logging.getLogger(__name__)

# Initialized on first use
_manager: Optional[SessionManager] = None


def get_session_manager() -> SessionManager:
    """Get the process-wide session manager, wiring its bus to SSE."""
    global _manager
    if _manager is None:
        set_session_manager(SessionManager())
    return _manager


def set_session_manager(manager: Optional[SessionManager]) -> None:
    """Replace the session manager (None resets it)."""
    global _manager
    if manager is None:
        sse_manager.detach()
    else:
        sse_manager.attach(manager.bus)
    _manager = manager


# Request/Response Models
class StartSessionRequest(BaseModel):
    """Request body for starting a session."""
    seed_claim: str = Field(..., min_length=1, description="Claim the session starts from")
    max_cycles: Optional[int] = Field(default=None, ge=1, le=10000, description="Cycle limit")
    cost_limit_usd: Optional[float] = Field(default=None, gt=0, description="Spend ceiling in USD")
    models: Optional[List[str]] = Field(default=None, min_length=1, description="Model pool")
    worker_timeout_s: Optional[float] = Field(default=None, gt=0, description="Per-worker deadline")
    perturb_probability: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    novelty_bonus_enabled: Optional[bool] = None
    on_claim_loss: Optional[str] = Field(default=None, description="resurrect or stop")
    random_seed: Optional[int] = None


class SessionSummaryResponse(BaseModel):
    """Summary of a session for list views."""
    session_id: str
    status: str
    stop_reason: Optional[str] = None
    created_at: str
    cycles_run: int
    claim: Optional[str] = None
    support: Optional[float] = None
    cemetery_size: int = 0
    graduated_size: int = 0
    frontier_size: int = 0
    cost_total_usd: float = 0.0
    error: Optional[str] = None


class SessionDetailResponse(SessionSummaryResponse):
    """Full session state."""
    state: Dict[str, Any] = {}
    recent_cycles: List[Dict[str, Any]] = []


class FrontierIdeaRequest(BaseModel):
    """Request body for sponsoring a frontier idea."""
    idea_text: str = Field(..., min_length=1)
    sponsor_id: str = Field(default="user", min_length=1)


class FrontierIdeaResponse(BaseModel):
    idea_id: str
    idea_text: str
    sponsors: List[str]
    sponsor_count: int
    cycles_alive: int
    activated: bool
    created_at: Optional[str] = None


class CostResponse(BaseModel):
    """Spend of a session."""
    session_id: str
    total_usd: float
    limit_usd: Optional[float] = None
    remaining_usd: Optional[float] = None
    stop_issued: bool
    entry_count: int
    total_tokens: int
    by_cycle: Dict[int, float]
    by_role: Dict[str, float]


class StopResponse(BaseModel):
    session_id: str
    stopping: bool
    status: str


def _require(session_id: str) -> SessionInfo:
    info = get_session_manager().get(session_id)
    if info is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return info


@router.post("", response_model=SessionSummaryResponse, status_code=201)
async def start_session(request: StartSessionRequest):
    """Start a new session in the background."""
    overrides = request.model_dump(exclude={"models"}, exclude_none=True)
    if request.models:
        overrides["model_pool"] = request.models

    try:
        config = get_crucible_config().with_overrides(**overrides)
        info = await get_session_manager().start(config, seed_claim=request.seed_claim)
    except ConfigValidationError as e:
        raise HTTPException(status_code=422, detail=e.problems)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return SessionSummaryResponse(**info.to_dict())


@router.get("", response_model=List[SessionSummaryResponse])
async def list_sessions(
    status: Optional[str] = Query(default=None, description="Filter by status")
):
    """List all sessions known to this process."""
    sessions = get_session_manager().list_sessions()
    if status:
        sessions = [s for s in sessions if s.status.value == status]
    return [SessionSummaryResponse(**s.to_dict()) for s in sessions]


@router.get("/{session_id}", response_model=SessionDetailResponse)
async def get_session(
    session_id: str,
    cycles: int = Query(default=10, ge=0, le=500, description="Number of recent cycle reports")
):
    """Get session state and its most recent cycle reports."""
    info = _require(session_id)
    reports = info.runner.reports[-cycles:] if cycles else []
    return SessionDetailResponse(
        **info.to_dict(),
        state=info.runner.blackboard.to_dict(),
        recent_cycles=[r.to_dict() for r in reports],
    )


@router.post("/{session_id}/stop", response_model=StopResponse)
async def stop_session(session_id: str):
    """Ask a session to stop after its current cycle."""
    info = _require(session_id)
    stopping = get_session_manager().stop(session_id)
    if not stopping and info.status not in (RunnerStatus.PENDING, RunnerStatus.RUNNING):
        raise HTTPException(
            status_code=409,
            detail=f"Session {session_id} already {info.status.value}"
        )
    return StopResponse(session_id=session_id, stopping=stopping, status=info.status.value)


@router.post("/{session_id}/frontier", response_model=FrontierIdeaResponse, status_code=201)
async def add_frontier_idea(session_id: str, request: FrontierIdeaRequest):
    """Sponsor an idea in the session's frontier pool."""
    _require(session_id)
    try:
        idea = get_session_manager().add_frontier_idea(
            session_id, request.idea_text, request.sponsor_id
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return FrontierIdeaResponse(**idea.to_dict())


@router.get("/{session_id}/costs", response_model=CostResponse)
async def get_costs(session_id: str):
    """Get the running spend of a session."""
    info = _require(session_id)
    return CostResponse(session_id=session_id, **info.runner.cost_governor.summary())


@router.get("/{session_id}/events")
async def session_events(session_id: str):
    """
    SSE endpoint for real-time session events.

    Streams cycle_started, cycle_complete, claim_changed, cost_recorded
    and session_stopped events.
    """
    _require(session_id)

    return StreamingResponse(
        sse_manager.subscribe(session_id),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        }
    )
