"""
delay_scanner.py — Finds overdue work items and records delay notifications.

Runs on the scheduler interval and on demand (the dashboard calls the scan
endpoint when the window regains focus). Every source is read through the
task_sources adapters; the scanner only sees WorkItems.

Business Rules:
- "Today" starts at midnight in settings.business_timezone
- Overdue means due_date < start of today (an item due today is not overdue)
- At most one notification per (task_id, task_table), for the item's lifetime
- Owner name comes from the identity lookup, default "Usuário"
- Owner role is the source's fixed role when it has one, otherwise the
  identity lookup, otherwise the source's fallback
- A failure on one candidate (lookup or insert) is logged and skipped; it
  never aborts the rest of the scan
- Concurrent scans may both try to insert the same item; the unique
  constraint makes the loser's insert a no-op

Called by: scheduler.py (delay_scan job), routers/delays.py (manual scan)
Depends on: services/task_sources.py, services/identity_service.py, models
"""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..models import DelayNotification
from ..utils.dates import now_utc, start_of_day, utc
from .identity_service import DEFAULT_DISPLAY_NAME, lookup_display_name, lookup_role
from .task_sources import WorkItem, WorkItemSource, list_candidates

log = logging.getLogger("agencyops.delays")


def is_overdue(due_date: datetime | None, today_start: datetime) -> bool:
    """Strictly before the start of today. Same-day items are not overdue."""
    if due_date is None:
        return False
    return utc(due_date) < today_start


def run_delay_scan(
    db: Session,
    now: datetime | None = None,
    sources: list[WorkItemSource | str] | None = None,
) -> dict:
    """Scan every source once and create notifications for new overdue items.

    Returns summary dict with counts.
    """
    now = utc(now) or now_utc()
    today_start = start_of_day(now, settings.business_timezone)
    summary = {
        "scanned": 0,
        "overdue": 0,
        "created": 0,
        "skipped_existing": 0,
        "failed": 0,
        "failed_sources": [],
        "timestamp": now.isoformat(),
    }

    for source in sources or list(WorkItemSource):
        source = WorkItemSource(source)
        try:
            items = list_candidates(db, source, now)
        except SQLAlchemyError as e:
            db.rollback()
            log.error(f"Delay scan: could not read {source.value}: {e}")
            summary["failed_sources"].append(source.value)
            continue

        for item in items:
            summary["scanned"] += 1
            if item.is_done or not is_overdue(item.due_date, today_start):
                continue
            summary["overdue"] += 1
            try:
                created = notify_if_missing(db, item)
            except Exception as e:
                db.rollback()
                summary["failed"] += 1
                log.error(f"Delay scan: failed on {item.source.value}/{item.id}: {e}")
                continue
            if created:
                summary["created"] += 1
            else:
                summary["skipped_existing"] += 1

    if summary["created"] or summary["failed"] or summary["failed_sources"]:
        log.info(f"Delay scan complete: {summary}")
    else:
        log.debug(f"Delay scan complete: {summary}")
    return summary


def notify_if_missing(db: Session, item: WorkItem) -> bool:
    """Create the notification for item unless one exists. True if created."""
    if _notification_exists(db, item):
        return False

    notification = DelayNotification(
        task_id=item.id,
        task_table=item.source.value,
        task_owner_id=item.owner_id,
        task_owner_name=_resolve_owner_name(db, item),
        task_owner_role=_resolve_owner_role(db, item),
        task_title=item.title,
        task_due_date=item.due_date,
        created_at=now_utc(),
    )
    try:
        with db.begin_nested():
            db.add(notification)
    except IntegrityError:
        # Another scan inserted the same task between our check and insert
        log.info(f"Delay notification for {item.source.value}/{item.id} already created concurrently")
        return False
    db.commit()
    log.info(
        f"Delay notification created: {item.source.value}/{item.id} "
        f"'{item.title}' owner={item.owner_id} ({notification.task_owner_role})"
    )
    return True


def _notification_exists(db: Session, item: WorkItem) -> bool:
    return (
        db.query(DelayNotification.id)
        .filter(
            DelayNotification.task_id == item.id,
            DelayNotification.task_table == item.source.value,
        )
        .first()
        is not None
    )


def _resolve_owner_name(db: Session, item: WorkItem) -> str:
    try:
        name = lookup_display_name(db, item.owner_id)
    except Exception as e:
        db.rollback()
        log.warning(f"Name lookup failed for user {item.owner_id}: {e}")
        name = None
    return name or DEFAULT_DISPLAY_NAME


def _resolve_owner_role(db: Session, item: WorkItem) -> str:
    if item.owner_role:
        return item.owner_role
    try:
        role = lookup_role(db, item.owner_id)
    except Exception as e:
        db.rollback()
        log.warning(f"Role lookup failed for user {item.owner_id}: {e}")
        role = None
    return role or item.role_fallback
