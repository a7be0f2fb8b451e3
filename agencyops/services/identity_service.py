"""
identity_service.py — Display name and role resolution for a user id.

Business Rules:
- Missing users resolve to None; callers pick their own default
- Lookups never write

Called by: services/delay_scanner.py, services/justification_service.py
Depends on: models (User)
"""

from sqlalchemy.orm import Session

from ..models import User

DEFAULT_DISPLAY_NAME = "Usuário"


def lookup_display_name(db: Session, user_id: int | None) -> str | None:
    """Return the user's display name, or None if unknown."""
    if user_id is None:
        return None
    user = db.get(User, user_id)
    if not user:
        return None
    return user.name or user.email


def lookup_role(db: Session, user_id: int | None) -> str | None:
    """Return the user's assigned role slug, or None if unknown."""
    if user_id is None:
        return None
    user = db.get(User, user_id)
    return user.role if user else None


def display_names(db: Session, user_ids) -> dict[int, str]:
    """Bulk name lookup, unknown ids map to the default display name."""
    ids = {uid for uid in user_ids if uid is not None}
    if not ids:
        return {}
    rows = db.query(User.id, User.name, User.email).filter(User.id.in_(ids)).all()
    names = {uid: (name or email) for uid, name, email in rows}
    return {uid: names.get(uid) or DEFAULT_DISPLAY_NAME for uid in ids}
