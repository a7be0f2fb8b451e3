"""
justification_service.py — Delay justifications: write once per user, audit forever.

Business Rules:
- One justification per (notification, user); writing again updates the text
- Justification text is required (whitespace-only is rejected)
- The author's role is captured at first write
- Only the CEO can archive/restore; archiving never deletes the row
- Audit views split rows into active and archived

Called by: routers/delays.py
Depends on: models, roles, services/identity_service.py
"""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from .. import roles
from ..models import DelayJustification, DelayNotification, User
from ..utils.dates import now_utc
from .identity_service import display_names
from .notification_router import notification_to_dict

log = logging.getLogger("agencyops.justifications")


def save_justification(
    db: Session, user: User, notification_id: int, text: str
) -> DelayJustification:
    """Create or update user's justification for a notification."""
    text = (text or "").strip()
    if not text:
        raise ValueError("Justification text is required")
    if not db.get(DelayNotification, notification_id):
        raise LookupError(f"Delay notification {notification_id} not found")

    existing = _find(db, notification_id, user.id)
    if existing:
        existing.justification = text
        existing.updated_at = now_utc()
        db.commit()
        log.info(f"Justification updated: notification {notification_id} by user {user.id}")
        return existing

    row = DelayJustification(
        notification_id=notification_id,
        user_id=user.id,
        user_role=user.role,
        justification=text,
        archived=False,
        created_at=now_utc(),
    )
    try:
        with db.begin_nested():
            db.add(row)
    except IntegrityError:
        # Same user submitted twice at once; keep one row, last text wins
        row = _find(db, notification_id, user.id)
        if row is None:
            raise
        row.justification = text
        row.updated_at = now_utc()
    db.commit()
    log.info(f"Justification saved: notification {notification_id} by user {user.id}")
    return row


def _find(db: Session, notification_id: int, user_id: int) -> DelayJustification | None:
    return (
        db.query(DelayJustification)
        .filter_by(notification_id=notification_id, user_id=user_id)
        .first()
    )


def set_justification_archived(
    db: Session, actor: User, justification_id: int, archived: bool
) -> DelayJustification:
    """Archive or restore a justification. CEO only."""
    if not roles.is_privileged(actor.role):
        raise PermissionError("Only the CEO can archive justifications")
    row = db.get(DelayJustification, justification_id)
    if not row:
        raise LookupError(f"Justification {justification_id} not found")

    row.archived = archived
    row.archived_at = now_utc() if archived else None
    row.archived_by_id = actor.id if archived else None
    db.commit()
    log.info(
        f"Justification {justification_id} {'archived' if archived else 'restored'} by user {actor.id}"
    )
    return row


# ── Audit views ──────────────────────────────────────────────────────


def _base_query(db: Session):
    return (
        db.query(DelayJustification)
        .options(joinedload(DelayJustification.notification))
        .order_by(DelayJustification.created_at.desc(), DelayJustification.id.desc())
    )


def _split(db: Session, rows: list[DelayJustification]) -> dict:
    names = display_names(db, [r.user_id for r in rows])
    out = [justification_to_dict(r, names.get(r.user_id)) for r in rows]
    return {
        "active": [j for j in out if not j["archived"]],
        "archived": [j for j in out if j["archived"]],
    }


def justifications_by_owner_role(db: Session, owner_role: str) -> dict:
    """Justifications for tasks whose owner had owner_role, whoever wrote them."""
    rows = (
        _base_query(db)
        .join(DelayNotification, DelayJustification.notification_id == DelayNotification.id)
        .filter(DelayNotification.task_owner_role == owner_role)
        .all()
    )
    return _split(db, rows)


def all_justifications(db: Session, actor: User) -> dict:
    """Every justification. CEO only."""
    if not roles.is_privileged(actor.role):
        raise PermissionError("Only the CEO can list all justifications")
    return _split(db, _base_query(db).all())


def my_justifications(db: Session, user: User) -> dict:
    rows = _base_query(db).filter(DelayJustification.user_id == user.id).all()
    return _split(db, rows)


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def justification_to_dict(j: DelayJustification, author_name: str | None = None) -> dict:
    return {
        "id": j.id,
        "notification_id": j.notification_id,
        "user_id": j.user_id,
        "user_name": author_name,
        "user_role": j.user_role,
        "justification": j.justification,
        "created_at": _iso(j.created_at),
        "updated_at": _iso(j.updated_at),
        "archived": bool(j.archived),
        "archived_at": _iso(j.archived_at),
        "archived_by_id": j.archived_by_id,
        "notification": notification_to_dict(j.notification) if j.notification else None,
    }
