"""
notification_router.py — Who sees which delay notification.

Visibility is computed per viewer at query time; nothing is stored on the
notification itself. The fan-out policy is plain data (ROUTING_RULES) keyed
by the role of the overdue task's owner.

can_view is the per-row predicate; visible_to renders the same table as a
WHERE clause so pending lists and badge counts are filtered in the database.

Business Rules:
- Task owned by gestor_ads → gestor_ads, sucesso_cliente, gestor_projetos
  and ceo may see it; a gestor_ads viewer only sees their own tasks
- Task owned by any other role → the task owner, gestor_projetos and ceo
- A notification leaves a viewer's pending list once that viewer has a
  justification row for it (archived or not)

Called by: routers/delays.py
Depends on: models (DelayNotification, DelayJustification), roles
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import and_, false, or_, select, true
from sqlalchemy.orm import Session

from .. import roles
from ..models import DelayJustification, DelayNotification, User


@dataclass(frozen=True)
class RoutingRule:
    recipient_roles: frozenset[str]
    # Viewers with these roles only see notifications they own
    owner_only_roles: frozenset[str] = field(default_factory=frozenset)
    # The task owner always sees it, whatever their role
    owner_always_sees: bool = False


ROUTING_RULES: dict[str, RoutingRule] = {
    roles.ADS_MANAGER: RoutingRule(
        recipient_roles=frozenset(
            {roles.ADS_MANAGER, roles.CLIENT_SUCCESS, roles.PROJECT_MANAGER, roles.CEO}
        ),
        owner_only_roles=frozenset({roles.ADS_MANAGER}),
    ),
}

DEFAULT_RULE = RoutingRule(
    recipient_roles=frozenset({roles.PROJECT_MANAGER, roles.CEO}),
    owner_always_sees=True,
)


def rule_for(owner_role: str | None) -> RoutingRule:
    return ROUTING_RULES.get(owner_role or "", DEFAULT_RULE)


def can_view(notification: DelayNotification, viewer_id: int, viewer_role: str | None) -> bool:
    """Whether viewer may see notification, ignoring justification state."""
    rule = rule_for(notification.task_owner_role)
    is_owner = notification.task_owner_id == viewer_id

    if rule.owner_always_sees and is_owner:
        return True
    if viewer_role not in rule.recipient_roles:
        return False
    if viewer_role in rule.owner_only_roles:
        return is_owner
    return True


def _rule_clause(rule: RoutingRule, viewer_id: int, viewer_role: str | None):
    """SQL form of can_view for notifications that fall under `rule`."""
    is_owner = DelayNotification.task_owner_id == viewer_id
    allowed = []
    if rule.owner_always_sees:
        allowed.append(is_owner)
    if viewer_role in rule.recipient_roles:
        allowed.append(is_owner if viewer_role in rule.owner_only_roles else true())
    return or_(*allowed) if allowed else false()


def visible_to(viewer_id: int, viewer_role: str | None):
    """WHERE clause matching can_view(n, viewer_id, viewer_role) for every row."""
    owner_role = DelayNotification.task_owner_role
    branches = [
        and_(owner_role == role, _rule_clause(rule, viewer_id, viewer_role))
        for role, rule in ROUTING_RULES.items()
    ]
    branches.append(
        and_(
            or_(owner_role.is_(None), owner_role.not_in(list(ROUTING_RULES))),
            _rule_clause(DEFAULT_RULE, viewer_id, viewer_role),
        )
    )
    return or_(*branches)


def _pending_query(db: Session, user: User):
    justified = (
        select(DelayJustification.id)
        .where(
            DelayJustification.notification_id == DelayNotification.id,
            DelayJustification.user_id == user.id,
        )
        .exists()
    )
    return db.query(DelayNotification).filter(visible_to(user.id, user.role), ~justified)


def pending_notifications(db: Session, user: User) -> list[DelayNotification]:
    """Notifications the user may see and has not justified yet, newest first."""
    return (
        _pending_query(db, user)
        .order_by(DelayNotification.created_at.desc(), DelayNotification.id.desc())
        .all()
    )


def pending_count(db: Session, user: User) -> int:
    return _pending_query(db, user).count()


def notification_to_dict(n: DelayNotification) -> dict:
    return {
        "id": n.id,
        "task_id": n.task_id,
        "task_table": n.task_table,
        "task_owner_id": n.task_owner_id,
        "task_owner_name": n.task_owner_name,
        "task_owner_role": n.task_owner_role,
        "task_owner_role_label": roles.role_label(n.task_owner_role),
        "task_title": n.task_title,
        "task_due_date": n.task_due_date.isoformat() if n.task_due_date else None,
        "created_at": n.created_at.isoformat() if n.created_at else None,
        "is_onboarding_delay": n.task_table == "client_onboarding",
    }
