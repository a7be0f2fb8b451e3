"""
churn_service.py — Churn workflow for a whole client or one contracted product.

Two fixed tracks, chosen once at initiation by contract validity:

  with contract:    churn_solicitado → cobranca_retirada → distrato_enviado
                    → distrato_assinado (terminal)
  without contract: sem_contrato_solicitado → sem_contrato_efetivado (terminal)

Business Rules:
- At most one open (unarchived) churn record per client+product, or per
  client for whole-client churn
- Steps only move forward, one at a time, on the track chosen at creation
- advance_step requires the caller's view of the current step (stale guard)
- The terminal step can only be left through finalize
- Whole-client churn mirrors status/distrato_step onto the client so the
  older kanban boards keep working
- Initiation removes the scope's active-billing rows
- Finalize archives the record, strips the product, and archives the client
  when no products remain (or when the record covers the whole client);
  archiving the client also closes its other open churn records
- Records on an archived client can be neither advanced nor finalized
- Every check happens before the first write; finalize commits once and is
  safe to re-run
- Each initiation raises one churn alert; acknowledging it as
  gestor_ads/gestor_projetos/sucesso_cliente creates a churn analysis task

Called by: routers/churn.py
Depends on: models, roles, config
"""

import enum
import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from .. import roles
from ..config import settings
from ..models import (
    CLIENT_SCOPE_KEY,
    ActiveClientBilling,
    ChurnNotification,
    ChurnNotificationDismissal,
    ChurnRecord,
    Client,
    ClientProductValue,
    DepartmentTask,
    User,
)
from ..utils.dates import days_between, now_utc, utc

log = logging.getLogger("agencyops.churn")


class ChurnScope(str, enum.Enum):
    CLIENT = "client"
    PRODUCT = "product"


class ChurnStep(str, enum.Enum):
    # With contract (4 steps)
    REQUESTED = "churn_solicitado"
    BILLING_REMOVED = "cobranca_retirada"
    TERMINATION_SENT = "distrato_enviado"
    TERMINATION_SIGNED = "distrato_assinado"
    # Without contract (2 steps)
    NO_CONTRACT_REQUESTED = "sem_contrato_solicitado"
    NO_CONTRACT_EFFECTIVE = "sem_contrato_efetivado"


WITH_CONTRACT_TRACK: tuple[ChurnStep, ...] = (
    ChurnStep.REQUESTED,
    ChurnStep.BILLING_REMOVED,
    ChurnStep.TERMINATION_SENT,
    ChurnStep.TERMINATION_SIGNED,
)
WITHOUT_CONTRACT_TRACK: tuple[ChurnStep, ...] = (
    ChurnStep.NO_CONTRACT_REQUESTED,
    ChurnStep.NO_CONTRACT_EFFECTIVE,
)

STEP_LABELS: dict[ChurnStep, str] = {
    ChurnStep.REQUESTED: "Churn solicitado",
    ChurnStep.BILLING_REMOVED: "Cobrança retirada",
    ChurnStep.TERMINATION_SENT: "Distrato enviado",
    ChurnStep.TERMINATION_SIGNED: "Distrato assinado",
    ChurnStep.NO_CONTRACT_REQUESTED: "Churn solicitado (sem contrato)",
    ChurnStep.NO_CONTRACT_EFFECTIVE: "Churn efetivado",
}


class ChurnTransitionError(ValueError):
    """Illegal churn operation; nothing was written."""


class ChurnAlreadyOpenError(ChurnTransitionError):
    pass


class StaleStepError(ChurnTransitionError):
    pass


def track_for(had_valid_contract: bool) -> tuple[ChurnStep, ...]:
    return WITH_CONTRACT_TRACK if had_valid_contract else WITHOUT_CONTRACT_TRACK


def next_step(had_valid_contract: bool, step: ChurnStep) -> ChurnStep | None:
    """The step after `step` on its track, or None at the terminal step."""
    track = track_for(had_valid_contract)
    if step not in track:
        raise ChurnTransitionError(f"Step {step.value} is not on this churn track")
    idx = track.index(step)
    return track[idx + 1] if idx + 1 < len(track) else None


def is_terminal(had_valid_contract: bool, step: ChurnStep) -> bool:
    return next_step(had_valid_contract, step) is None


def _open_record(db: Session, client_id: int, scope_key: str) -> ChurnRecord | None:
    return (
        db.query(ChurnRecord)
        .filter(
            ChurnRecord.client_id == client_id,
            ChurnRecord.scope_key == scope_key,
            ChurnRecord.archived.is_(False),
        )
        .first()
    )


def _remove_active_billing(db: Session, client_id: int, product_slug: str | None = None) -> int:
    """Delete billing rows for the whole client, or only for one product."""
    q = db.query(ActiveClientBilling).filter(ActiveClientBilling.client_id == client_id)
    if product_slug is not None:
        q = q.filter(ActiveClientBilling.product_slug == product_slug)
    return q.delete(synchronize_session=False)


# ── Initiate ─────────────────────────────────────────────────────────


def initiate_churn(
    db: Session,
    client_id: int,
    had_valid_contract: bool,
    product_slug: str | None = None,
    product_name: str | None = None,
    monthly_value: float | None = None,
    initiated_by: User | None = None,
    now: datetime | None = None,
) -> ChurnRecord:
    """Open a churn record at the first step of the contract's track."""
    now = utc(now) or now_utc()
    client = db.get(Client, client_id)
    if not client:
        raise LookupError(f"Client {client_id} not found")
    if client.archived:
        raise ChurnTransitionError("Client is archived")

    scope = ChurnScope.PRODUCT if product_slug else ChurnScope.CLIENT
    if scope is ChurnScope.PRODUCT and product_slug not in (client.contracted_products or []):
        raise ChurnTransitionError(f"Client does not contract product '{product_slug}'")
    scope_key = product_slug or CLIENT_SCOPE_KEY
    if _open_record(db, client_id, scope_key):
        raise ChurnAlreadyOpenError("A churn is already in progress for this scope")

    first = track_for(had_valid_contract)[0]
    if product_slug and (monthly_value is None or not product_name):
        pv = (
            db.query(ClientProductValue)
            .filter_by(client_id=client_id, product_slug=product_slug)
            .first()
        )
        if pv:
            monthly_value = pv.monthly_value if monthly_value is None else monthly_value
            product_name = product_name or pv.product_name

    record = ChurnRecord(
        scope_type=scope.value,
        client_id=client_id,
        product_slug=product_slug,
        product_name=product_name or product_slug,
        monthly_value=monthly_value,
        scope_key=scope_key,
        step=first.value,
        entered_at=now,
        had_valid_contract=had_valid_contract,
        archived=False,
        initiated_by_id=initiated_by.id if initiated_by else None,
        initiated_by_name=(initiated_by.name if initiated_by else None) or "Sistema",
    )
    try:
        with db.begin_nested():
            db.add(record)
    except IntegrityError:
        raise ChurnAlreadyOpenError("A churn is already in progress for this scope") from None

    if scope is ChurnScope.CLIENT:
        client.status = "churned"
        client.distrato_step = first.value
        client.distrato_entered_at = now
    _remove_active_billing(db, client_id, product_slug)

    label = f"{client.name} - {record.product_name}" if product_slug else client.name
    db.add(
        ChurnNotification(
            client_id=client_id, churn_id=record.id, client_name=label, created_at=now
        )
    )
    db.commit()

    log.info(
        f"Churn initiated: client {client_id} scope={scope_key} "
        f"track={'with' if had_valid_contract else 'without'}_contract step={first.value}"
    )
    return record


# ── Advance ──────────────────────────────────────────────────────────


def advance_step(db: Session, record_id: int, expected_current_step: str) -> ChurnRecord:
    """Move a churn record one step forward on its track."""
    record = db.get(ChurnRecord, record_id)
    if not record:
        raise LookupError(f"Churn record {record_id} not found")
    if record.archived:
        raise ChurnTransitionError("Churn record is already finalized")
    client = db.get(Client, record.client_id)
    if client is None or client.archived:
        raise ChurnTransitionError("Client is archived; its churn records are closed")

    try:
        expected = ChurnStep(expected_current_step)
    except ValueError:
        raise ChurnTransitionError(f"Unknown churn step '{expected_current_step}'") from None
    current = ChurnStep(record.step)
    if expected is not current:
        raise StaleStepError(
            f"Churn step changed (now {current.value}, expected {expected.value})"
        )

    nxt = next_step(record.had_valid_contract, current)
    if nxt is None:
        raise ChurnTransitionError("Churn is at its final step — finalize it instead")

    record.step = nxt.value
    if record.scope_type == ChurnScope.CLIENT.value:
        client.distrato_step = nxt.value
    db.commit()
    log.info(f"Churn {record_id} advanced: {current.value} → {nxt.value}")
    return record


# ── Finalize ─────────────────────────────────────────────────────────


def finalize_churn(db: Session, record_id: int, now: datetime | None = None) -> dict:
    """Close a churn record at its terminal step and apply the cascade.

    Returns {"remaining_products": n, "client_archived": bool}.
    """
    now = utc(now) or now_utc()
    record = db.get(ChurnRecord, record_id)
    if not record:
        raise LookupError(f"Churn record {record_id} not found")
    client = db.get(Client, record.client_id)
    if not client:
        raise LookupError(f"Client {record.client_id} not found")

    if record.archived:
        # Already finalized: report current state, change nothing
        remaining = len(client.contracted_products or [])
        return {"remaining_products": remaining, "client_archived": bool(client.archived)}

    if client.archived:
        raise ChurnTransitionError("Client is archived; its churn records are closed")
    if not is_terminal(record.had_valid_contract, ChurnStep(record.step)):
        raise ChurnTransitionError("Churn can only be finalized at its final step")

    record.archived = True
    record.archived_at = now

    products = list(client.contracted_products or [])
    if record.scope_type == ChurnScope.PRODUCT.value:
        products = [p for p in products if p != record.product_slug]
        client.contracted_products = products
        db.query(ClientProductValue).filter(
            ClientProductValue.client_id == client.id,
            ClientProductValue.product_slug == record.product_slug,
        ).delete(synchronize_session=False)

    client_archived = record.scope_type == ChurnScope.CLIENT.value or not products
    if client_archived:
        client.archived = True
        client.archived_at = now
        client.status = "churned"
        _remove_active_billing(db, client.id)
        # Close any other open churn on this client
        swept = (
            db.query(ChurnRecord)
            .filter(
                ChurnRecord.client_id == client.id,
                ChurnRecord.id != record.id,
                ChurnRecord.archived.is_(False),
            )
            .update(
                {ChurnRecord.archived: True, ChurnRecord.archived_at: now},
                synchronize_session="fetch",
            )
        )
        if swept:
            log.info(f"Churn {record_id}: closed {swept} other open churn(s) on client {client.id}")

    db.commit()
    log.info(
        f"Churn {record_id} finalized: client {client.id} remaining_products={len(products)} "
        f"client_archived={client_archived}"
    )
    return {"remaining_products": len(products), "client_archived": client_archived}


# ── Queries ──────────────────────────────────────────────────────────


def list_churns(
    db: Session,
    step: str | None = None,
    product_slug: str | None = None,
    scope_type: str | None = None,
    now: datetime | None = None,
) -> list[dict]:
    """Open churn records, newest first, with days since they entered churn."""
    now = utc(now) or now_utc()
    q = (
        db.query(ChurnRecord)
        .options(joinedload(ChurnRecord.client))
        .filter(ChurnRecord.archived.is_(False))
    )
    if step:
        q = q.filter(ChurnRecord.step == ChurnStep(step).value)
    if product_slug:
        q = q.filter(ChurnRecord.product_slug == product_slug)
    if scope_type:
        q = q.filter(ChurnRecord.scope_type == ChurnScope(scope_type).value)
    rows = q.order_by(ChurnRecord.entered_at.desc(), ChurnRecord.id.desc()).all()
    return [churn_to_dict(r, now) for r in rows]


def churn_to_dict(r: ChurnRecord, now: datetime | None = None) -> dict:
    now = utc(now) or now_utc()
    step = ChurnStep(r.step)
    nxt = next_step(r.had_valid_contract, step)
    return {
        "id": r.id,
        "scope_type": r.scope_type,
        "client_id": r.client_id,
        "client_name": r.client.name if r.client else None,
        "product_slug": r.product_slug,
        "product_name": r.product_name,
        "monthly_value": float(r.monthly_value) if r.monthly_value is not None else None,
        "step": step.value,
        "step_label": STEP_LABELS[step],
        "next_step": nxt.value if nxt else None,
        "is_terminal": nxt is None,
        "had_valid_contract": r.had_valid_contract,
        "entered_at": utc(r.entered_at).isoformat() if r.entered_at else None,
        "days_since_entry": days_between(r.entered_at, now),
        "initiated_by_name": r.initiated_by_name,
        "archived": bool(r.archived),
    }


# ── Churn alert inbox ────────────────────────────────────────────────


def pending_churn_notifications(db: Session, user: User) -> list[ChurnNotification]:
    """Churn alerts the user has not acknowledged. Empty for other roles."""
    if user.role not in roles.CHURN_NOTIFICATION_ROLES:
        return []
    dismissed = {
        r[0]
        for r in db.query(ChurnNotificationDismissal.notification_id)
        .filter(ChurnNotificationDismissal.user_id == user.id)
        .all()
    }
    rows = (
        db.query(ChurnNotification)
        .order_by(ChurnNotification.created_at.desc(), ChurnNotification.id.desc())
        .all()
    )
    return [n for n in rows if n.id not in dismissed]


def dismiss_churn_notification(
    db: Session, user: User, notification_id: int, now: datetime | None = None
) -> bool:
    """Acknowledge a churn alert. Returns False if it was already acknowledged."""
    now = utc(now) or now_utc()
    notification = db.get(ChurnNotification, notification_id)
    if not notification:
        raise LookupError(f"Churn notification {notification_id} not found")

    already = (
        db.query(ChurnNotificationDismissal)
        .filter_by(notification_id=notification_id, user_id=user.id)
        .first()
    )
    if already:
        return False

    try:
        with db.begin_nested():
            db.add(
                ChurnNotificationDismissal(
                    notification_id=notification_id, user_id=user.id, created_at=now
                )
            )
    except IntegrityError:
        return False

    if user.role in roles.CHURN_TASK_ROLES:
        db.add(
            DepartmentTask(
                user_id=user.id,
                department=user.role,
                title=f"Marcar reunião de análise do churn - {notification.client_name}",
                description=(
                    "Agendar e realizar reunião para analisar o churn do cliente "
                    f"{notification.client_name}."
                ),
                task_type="daily",
                status="todo",
                priority="high",
                due_date=now + timedelta(days=settings.churn_task_due_days),
                related_client_id=notification.client_id,
                archived=False,
            )
        )
    db.commit()
    log.info(f"Churn notification {notification_id} acknowledged by user {user.id}")
    return True


def churn_notification_to_dict(n: ChurnNotification) -> dict:
    return {
        "id": n.id,
        "client_id": n.client_id,
        "churn_id": n.churn_id,
        "client_name": n.client_name,
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }
