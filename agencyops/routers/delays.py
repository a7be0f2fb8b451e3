"""
routers/delays.py — Delay Notification Routes

Pending delay notifications for the current viewer, manual scan trigger,
and the justification ledger (write, audit views, CEO archive/restore).

Business Rules:
- The pending list is computed per viewer (role fan-out + own justifications)
- POST /api/delays/scan is what the dashboard calls on window refocus;
  it is rate limited because every open tab fires it
- Archive/restore and the full audit list are CEO only

Called by: main.py (router mount)
Depends on: dependencies, services/delay_scanner, services/notification_router,
            services/justification_service
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from loguru import logger
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..dependencies import require_ceo, require_user
from ..models import User
from ..rate_limit import limiter
from ..schemas.delays import JustificationArchive, JustificationSubmit
from ..schemas.responses import (
    CountResponse,
    DelayNotificationItem,
    DelayScanResponse,
    JustificationItem,
    JustificationListResponse,
)
from ..services import justification_service
from ..services.delay_scanner import run_delay_scan
from ..services.notification_router import (
    notification_to_dict,
    pending_count,
    pending_notifications,
)

router = APIRouter(tags=["delays"])


@router.get("/api/delays/pending", response_model=list[DelayNotificationItem])
async def list_pending_delays(
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Delay notifications this user can see and has not justified."""
    return [notification_to_dict(n) for n in pending_notifications(db, user)]


@router.get("/api/delays/count", response_model=CountResponse)
async def pending_delay_count(
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Count of pending delay notifications for nav badge."""
    return {"count": pending_count(db, user)}


@router.post("/api/delays/scan", response_model=DelayScanResponse)
@limiter.limit(settings.rate_limit_scan)
async def trigger_delay_scan(
    request: Request,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Run the overdue scan now."""
    summary = run_delay_scan(db)
    if summary["created"]:
        logger.info(f"Manual delay scan by user {user.id}: {summary['created']} new notification(s)")
    return summary


@router.post("/api/delays/{notification_id}/justification", response_model=JustificationItem)
async def submit_justification(
    notification_id: int,
    body: JustificationSubmit,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Write (or rewrite) the current user's justification for a delay."""
    try:
        row = justification_service.save_justification(
            db, user, notification_id, body.justification
        )
    except LookupError as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))
    return justification_service.justification_to_dict(row, user.name)


@router.get("/api/delays/justifications", response_model=JustificationListResponse)
async def justifications_by_role(
    owner_role: str,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Justifications for delays of tasks owned by owner_role."""
    return justification_service.justifications_by_owner_role(db, owner_role)


@router.get("/api/delays/justifications/mine", response_model=JustificationListResponse)
async def my_justifications(
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    return justification_service.my_justifications(db, user)


@router.get("/api/delays/justifications/all", response_model=JustificationListResponse)
async def all_justifications(
    user: User = Depends(require_ceo),
    db: Session = Depends(get_db),
):
    """Every justification, split into active and archived."""
    return justification_service.all_justifications(db, user)


@router.post(
    "/api/delays/justifications/{justification_id}/archive",
    response_model=JustificationItem,
)
async def archive_justification(
    justification_id: int,
    body: JustificationArchive,
    user: User = Depends(require_ceo),
    db: Session = Depends(get_db),
):
    """Archive (archived=true) or restore (archived=false) a justification."""
    try:
        row = justification_service.set_justification_archived(
            db, user, justification_id, body.archived
        )
    except PermissionError as e:
        raise HTTPException(403, str(e))
    except LookupError as e:
        raise HTTPException(404, str(e))
    return justification_service.justification_to_dict(row)
