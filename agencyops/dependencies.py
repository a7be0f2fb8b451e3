"""
dependencies.py — Shared FastAPI Dependencies

Reusable dependency functions for authentication and authorization.
All routers import from here instead of defining their own auth logic.
Session issuance (login) lives outside this service; we only read the
user id the auth layer put in the signed session cookie.

Business Rules:
- get_user returns None if not logged in (non-throwing)
- require_user raises 401 if not logged in, 403 if deactivated
- require_ceo raises 403 if user.role != "ceo"

Called by: all routers
Depends on: models, database, roles
"""

import logging

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from . import roles
from .database import get_db
from .models import User

log = logging.getLogger(__name__)


# ── Authentication ────────────────────────────────────────────────────


def get_user(request: Request, db: Session) -> User | None:
    """Return current user from session, or None if not logged in."""
    uid = request.session.get("user_id")
    if not uid:
        return None
    try:
        return db.get(User, uid)
    except Exception as e:
        log.warning(f"Session user lookup failed: {e}")
        request.session.clear()
        return None


def require_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Dependency: raises 401 if no authenticated user, 403 if deactivated."""
    user = get_user(request, db)
    if not user:
        raise HTTPException(401, "Not authenticated")
    if not getattr(user, "is_active", True):
        request.session.clear()
        raise HTTPException(403, "Account deactivated — contact admin")
    return user


def is_ceo(user: User) -> bool:
    return roles.is_privileged(user.role)


def require_ceo(user: User = Depends(require_user)) -> User:
    """Dependency: raises 403 if user is not the CEO."""
    if not is_ceo(user):
        raise HTTPException(403, "CEO access required")
    return user
