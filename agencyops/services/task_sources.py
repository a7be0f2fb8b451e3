"""
task_sources.py — Normalizes every due-dated task board into WorkItems.

Each board has its own "done" and "archived" semantics. Adapters apply
those exclusions in the query itself so the delay scan only ever sees live,
not-done, due-dated items. The scan depends on the WorkItem shape alone.

Business Rules:
- Only items with status != done and a non-null due date are candidates
- Archived items are excluded (null archived counts as not archived on
  ads_tasks and onboarding_tasks, which predate the column)
- Kanban cards without an assignee are never candidates
- ads_tasks and client_onboarding carry a fixed owner role (gestor_ads);
  every other source resolves the owner's role at scan time
- Adapters are pure reads

Called by: services/delay_scanner.py
Depends on: models, services/onboarding_tracker.py (synthetic source)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import roles
from ..models import AdsTask, DepartmentTask, KanbanCard, OnboardingTask
from ..utils.dates import utc


class WorkItemSource(str, enum.Enum):
    """Source tag. The value is stored as task_table on notifications."""

    ADS_TASKS = "ads_tasks"
    DEPARTMENT_TASKS = "department_tasks"
    ONBOARDING_TASKS = "onboarding_tasks"
    KANBAN_CARDS = "kanban_cards"
    CLIENT_ONBOARDING = "client_onboarding"


@dataclass(frozen=True)
class WorkItem:
    id: str
    source: WorkItemSource
    owner_id: int
    owner_role: str | None  # fixed role; None means "look it up"
    title: str
    due_date: datetime
    is_done: bool = False
    role_fallback: str = roles.UNKNOWN  # used when the lookup finds nothing


Adapter = Callable[[Session, datetime], list[WorkItem]]

_DONE = "done"


def _ads_tasks(db: Session, now: datetime) -> list[WorkItem]:
    rows = (
        db.query(AdsTask)
        .filter(
            or_(AdsTask.archived.is_(None), AdsTask.archived.is_(False)),
            AdsTask.status != _DONE,
            AdsTask.due_date.isnot(None),
        )
        .all()
    )
    return [
        WorkItem(
            id=str(t.id),
            source=WorkItemSource.ADS_TASKS,
            owner_id=t.ads_manager_id,
            owner_role=roles.ADS_MANAGER,
            title=t.title,
            due_date=utc(t.due_date),
        )
        for t in rows
    ]


def _department_tasks(db: Session, now: datetime) -> list[WorkItem]:
    rows = (
        db.query(DepartmentTask)
        .filter(
            DepartmentTask.archived.is_(False),
            DepartmentTask.status != _DONE,
            DepartmentTask.due_date.isnot(None),
        )
        .all()
    )
    return [
        WorkItem(
            id=str(t.id),
            source=WorkItemSource.DEPARTMENT_TASKS,
            owner_id=t.user_id,
            owner_role=None,
            title=t.title,
            due_date=utc(t.due_date),
            role_fallback=t.department or roles.UNKNOWN,
        )
        for t in rows
    ]


def _onboarding_tasks(db: Session, now: datetime) -> list[WorkItem]:
    rows = (
        db.query(OnboardingTask)
        .filter(
            or_(OnboardingTask.archived.is_(None), OnboardingTask.archived.is_(False)),
            OnboardingTask.status != _DONE,
            OnboardingTask.due_date.isnot(None),
            OnboardingTask.assigned_to_id.isnot(None),
        )
        .all()
    )
    return [
        WorkItem(
            id=str(t.id),
            source=WorkItemSource.ONBOARDING_TASKS,
            owner_id=t.assigned_to_id,
            owner_role=None,
            title=t.title,
            due_date=utc(t.due_date),
            role_fallback=roles.ADS_MANAGER,
        )
        for t in rows
    ]


def _kanban_cards(db: Session, now: datetime) -> list[WorkItem]:
    rows = (
        db.query(KanbanCard)
        .filter(
            KanbanCard.archived.is_(False),
            KanbanCard.status != _DONE,
            KanbanCard.due_date.isnot(None),
            KanbanCard.assigned_to_id.isnot(None),
        )
        .all()
    )
    return [
        WorkItem(
            id=str(c.id),
            source=WorkItemSource.KANBAN_CARDS,
            owner_id=c.assigned_to_id,
            owner_role=None,
            title=c.title,
            due_date=utc(c.due_date),
        )
        for c in rows
    ]


def _client_onboarding(db: Session, now: datetime) -> list[WorkItem]:
    from .onboarding_tracker import onboarding_breach_candidates

    return onboarding_breach_candidates(db, now)


SOURCE_ADAPTERS: dict[WorkItemSource, Adapter] = {
    WorkItemSource.ADS_TASKS: _ads_tasks,
    WorkItemSource.DEPARTMENT_TASKS: _department_tasks,
    WorkItemSource.ONBOARDING_TASKS: _onboarding_tasks,
    WorkItemSource.KANBAN_CARDS: _kanban_cards,
    WorkItemSource.CLIENT_ONBOARDING: _client_onboarding,
}


def list_candidates(db: Session, source: WorkItemSource | str, now: datetime) -> list[WorkItem]:
    """All not-done, due-dated, non-archived items of one source."""
    adapter = SOURCE_ADAPTERS[WorkItemSource(source)]
    return adapter(db, now)
