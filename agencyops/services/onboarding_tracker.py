"""
onboarding_tracker.py — Onboarding milestone state and SLA breach detection.

A client in onboarding sits on one of five fixed milestones. Each milestone
has a maximum number of days; a client that stays longer is "breached" and
produces one synthetic work item per (client, milestone) that the delay scan
treats like any other overdue task.

Business Rules:
- SLA days per milestone: 1→3, 2→4, 3→5, 4→6, 5→10
- Breach when whole days in milestone > SLA (strictly greater)
- Synthetic item id: onboarding_{client_id}_{milestone}
- Synthetic due date: milestone_started_at + SLA days
- Owner is the client's assigned ads manager; clients without one are skipped
- Only non-archived clients with status "onboarding" and an incomplete
  onboarding row are considered
- Advancing a milestone overwrites the live row (no history rows);
  completing milestone 5 closes onboarding and marks the client active

Called by: services/task_sources.py, routers/onboarding.py
Depends on: models (Client, ClientOnboarding)
"""

import enum
import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session, joinedload

from .. import roles
from ..models import Client, ClientOnboarding
from ..utils.dates import days_between, now_utc, utc
from .task_sources import WorkItem, WorkItemSource

log = logging.getLogger("agencyops.onboarding")


class OnboardingMilestone(enum.IntEnum):
    CALL_1 = 1
    PRO_STRATEGY = 2
    PRO_CREATIVES = 3
    PRO_OPTIMIZATIONS = 4
    LAUNCH = 5


MILESTONE_MAX_DAYS: dict[OnboardingMilestone, int] = {
    OnboardingMilestone.CALL_1: 3,
    OnboardingMilestone.PRO_STRATEGY: 4,
    OnboardingMilestone.PRO_CREATIVES: 5,
    OnboardingMilestone.PRO_OPTIMIZATIONS: 6,
    OnboardingMilestone.LAUNCH: 10,
}

MILESTONE_LABELS: dict[OnboardingMilestone, str] = {
    OnboardingMilestone.CALL_1: "Call #1",
    OnboardingMilestone.PRO_STRATEGY: "Estratégia PRO+",
    OnboardingMilestone.PRO_CREATIVES: "Criativos PRO+",
    OnboardingMilestone.PRO_OPTIMIZATIONS: "Otimizações PRO+",
    OnboardingMilestone.LAUNCH: "Início",
}

ONBOARDING_STATUS = "onboarding"


class OnboardingTransitionError(ValueError):
    """Illegal onboarding milestone change."""


def synthetic_task_id(client_id: int, milestone: int) -> str:
    return f"onboarding_{client_id}_{milestone}"


def _active_onboardings(db: Session) -> list[ClientOnboarding]:
    return (
        db.query(ClientOnboarding)
        .join(Client, ClientOnboarding.client_id == Client.id)
        .options(joinedload(ClientOnboarding.client))
        .filter(
            ClientOnboarding.completed_at.is_(None),
            Client.status == ONBOARDING_STATUS,
            Client.archived.is_(False),
        )
        .all()
    )


def _evaluate(state: ClientOnboarding, now: datetime) -> dict:
    milestone = OnboardingMilestone(state.current_milestone)
    max_days = MILESTONE_MAX_DAYS[milestone]
    started = utc(state.milestone_started_at)
    days_in = days_between(started, now)
    return {
        "milestone": milestone,
        "max_days": max_days,
        "started_at": started,
        "days_in_milestone": days_in,
        "breached": days_in > max_days,
        "expected_end": started + timedelta(days=max_days),
    }


def onboarding_breach_candidates(db: Session, now: datetime | None = None) -> list[WorkItem]:
    """Synthetic overdue work items for every breached onboarding milestone."""
    now = utc(now) or now_utc()
    items = []
    for state in _active_onboardings(db):
        client = state.client
        ev = _evaluate(state, now)
        if not ev["breached"]:
            continue
        if not client.assigned_ads_manager_id:
            log.debug(f"Onboarding breach for client {client.id} has no ads manager — skipped")
            continue
        items.append(
            WorkItem(
                id=synthetic_task_id(client.id, int(ev["milestone"])),
                source=WorkItemSource.CLIENT_ONBOARDING,
                owner_id=client.assigned_ads_manager_id,
                owner_role=roles.ADS_MANAGER,
                title=f"Onboarding: {client.name} (Marco {int(ev['milestone'])})",
                due_date=ev["expected_end"],
            )
        )
    return items


def onboarding_status(db: Session, now: datetime | None = None) -> list[dict]:
    """Breach status per onboarding client, most overdue first."""
    now = utc(now) or now_utc()
    result = []
    for state in _active_onboardings(db):
        ev = _evaluate(state, now)
        result.append(
            {
                "client_id": state.client_id,
                "client_name": state.client.name,
                "ads_manager_id": state.client.assigned_ads_manager_id,
                "milestone": int(ev["milestone"]),
                "milestone_label": MILESTONE_LABELS[ev["milestone"]],
                "milestone_started_at": ev["started_at"].isoformat(),
                "days_in_milestone": ev["days_in_milestone"],
                "max_days": ev["max_days"],
                "days_remaining": ev["max_days"] - ev["days_in_milestone"],
                "breached": ev["breached"],
            }
        )
    result.sort(key=lambda r: r["days_remaining"])
    return result


def start_onboarding(db: Session, client_id: int, now: datetime | None = None) -> ClientOnboarding:
    """Put a client into onboarding at milestone 1."""
    now = utc(now) or now_utc()
    client = db.get(Client, client_id)
    if not client or client.archived:
        raise LookupError(f"Client {client_id} not found")
    existing = db.query(ClientOnboarding).filter_by(client_id=client_id).first()
    if existing and existing.completed_at is None:
        raise OnboardingTransitionError("Client is already onboarding")

    if existing:
        db.delete(existing)
        db.flush()
    state = ClientOnboarding(
        client_id=client_id,
        current_milestone=int(OnboardingMilestone.CALL_1),
        milestone_started_at=now,
        created_at=now,
    )
    db.add(state)
    client.status = ONBOARDING_STATUS
    client.onboarding_started_at = now
    db.commit()
    log.info(f"Onboarding started for client {client_id}")
    return state


def advance_milestone(
    db: Session, client_id: int, expected_milestone: int, now: datetime | None = None
) -> ClientOnboarding:
    """Move the live onboarding row one milestone forward.

    At the last milestone this completes onboarding instead.
    """
    now = utc(now) or now_utc()
    state = db.query(ClientOnboarding).filter_by(client_id=client_id).first()
    if not state or state.completed_at is not None:
        raise OnboardingTransitionError("Client has no onboarding in progress")
    if state.current_milestone != expected_milestone:
        raise OnboardingTransitionError(
            f"Milestone changed (now {state.current_milestone}, expected {expected_milestone})"
        )

    if state.current_milestone >= int(OnboardingMilestone.LAUNCH):
        state.completed_at = now
        state.client.status = "active"
        log.info(f"Onboarding completed for client {client_id}")
    else:
        state.current_milestone += 1
        state.milestone_started_at = now
        log.info(f"Client {client_id} advanced to onboarding milestone {state.current_milestone}")
    db.commit()
    return state
