"""
routers/churn.py — Churn Workflow Routes

Initiate, advance and finalize churn for a client or one of its products,
list open churns per step, and the churn alert inbox.

Business Rules:
- Illegal transitions come back as 400; stale steps and double initiation
  as 409; nothing is written in either case
- Finalize reports whether the client itself was archived

Called by: main.py (router mount)
Depends on: dependencies, services/churn_service
"""

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_user
from ..models import User
from ..schemas.churn import ChurnAdvance, ChurnInitiate
from ..schemas.responses import ChurnFinalizeResponse, ChurnItem, OkResponse
from ..services import churn_service
from ..services.churn_service import ChurnAlreadyOpenError, StaleStepError

router = APIRouter(tags=["churn"])


def _raise_for(e: Exception):
    if isinstance(e, LookupError):
        raise HTTPException(404, str(e))
    if isinstance(e, (ChurnAlreadyOpenError, StaleStepError)):
        raise HTTPException(409, str(e))
    raise HTTPException(400, str(e))


@router.get("/api/churn", response_model=list[ChurnItem])
async def list_churns(
    step: str | None = None,
    product_slug: str | None = None,
    scope_type: str | None = None,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Open churn records, optionally filtered by step/product/scope."""
    try:
        return churn_service.list_churns(
            db, step=step, product_slug=product_slug, scope_type=scope_type
        )
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.post("/api/churn", response_model=ChurnItem, status_code=201)
async def initiate_churn(
    body: ChurnInitiate,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Move a client (or one of its products) into churn."""
    try:
        record = churn_service.initiate_churn(
            db,
            body.client_id,
            body.had_valid_contract,
            product_slug=body.product_slug,
            product_name=body.product_name,
            monthly_value=body.monthly_value,
            initiated_by=user,
        )
    except (LookupError, ValueError) as e:
        _raise_for(e)
    logger.info(f"User {user.id} initiated churn {record.id} for client {body.client_id}")
    return churn_service.churn_to_dict(record)


@router.post("/api/churn/{churn_id}/advance", response_model=ChurnItem)
async def advance_churn(
    churn_id: int,
    body: ChurnAdvance,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Move a churn record to the next step of its track."""
    try:
        record = churn_service.advance_step(db, churn_id, body.expected_step)
    except (LookupError, ValueError) as e:
        _raise_for(e)
    return churn_service.churn_to_dict(record)


@router.post("/api/churn/{churn_id}/finalize", response_model=ChurnFinalizeResponse)
async def finalize_churn(
    churn_id: int,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Close a churn at its final step and strip the product/client."""
    try:
        result = churn_service.finalize_churn(db, churn_id)
    except (LookupError, ValueError) as e:
        _raise_for(e)
    logger.info(f"User {user.id} finalized churn {churn_id}: {result}")
    return result


@router.get("/api/churn/notifications")
async def list_churn_notifications(
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Churn alerts the current user has not acknowledged yet."""
    return [
        churn_service.churn_notification_to_dict(n)
        for n in churn_service.pending_churn_notifications(db, user)
    ]


@router.post("/api/churn/notifications/{notification_id}/dismiss", response_model=OkResponse)
async def dismiss_churn_notification(
    notification_id: int,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    try:
        churn_service.dismiss_churn_notification(db, user, notification_id)
    except LookupError as e:
        raise HTTPException(404, str(e))
    return {"ok": True}
