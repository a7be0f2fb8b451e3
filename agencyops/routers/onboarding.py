"""
routers/onboarding.py — Onboarding Milestone Routes

Breach status per onboarding client, and start/advance of the live
milestone row.

Called by: main.py (router mount)
Depends on: dependencies, services/onboarding_tracker
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_user
from ..models import User
from ..schemas.onboarding import OnboardingAdvance
from ..schemas.responses import OnboardingStatusItem
from ..services import onboarding_tracker

router = APIRouter(tags=["onboarding"])


def _state_dict(state) -> dict:
    return {
        "client_id": state.client_id,
        "current_milestone": state.current_milestone,
        "milestone_started_at": state.milestone_started_at.isoformat()
        if state.milestone_started_at
        else None,
        "completed": state.completed_at is not None,
    }


@router.get("/api/onboarding/status", response_model=list[OnboardingStatusItem])
async def onboarding_status(
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Milestone SLA status for every client in onboarding."""
    return onboarding_tracker.onboarding_status(db)


@router.post("/api/onboarding/{client_id}/start")
async def start_onboarding(
    client_id: int,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    try:
        state = onboarding_tracker.start_onboarding(db, client_id)
    except LookupError as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(409, str(e))
    return _state_dict(state)


@router.post("/api/onboarding/{client_id}/advance")
async def advance_onboarding(
    client_id: int,
    body: OnboardingAdvance,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Move the client's onboarding to the next milestone."""
    try:
        state = onboarding_tracker.advance_milestone(db, client_id, body.expected_milestone)
    except ValueError as e:
        raise HTTPException(409, str(e))
    return _state_dict(state)
