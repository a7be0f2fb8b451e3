"""
schemas/responses.py — Shared response models for OpenAPI documentation

Typed response models for the delay, onboarding and churn endpoints.
Used as response_model= on router decorators.

Called by: routers/*.py
Depends on: pydantic
"""

from __future__ import annotations

from pydantic import BaseModel, Field


# ── Base Wrappers ───────────────────────────────────────────────────────


class OkResponse(BaseModel):
    ok: bool = True


class CountResponse(BaseModel):
    count: int = 0


# ── Delays ──────────────────────────────────────────────────────────────


class DelayNotificationItem(BaseModel, extra="allow"):
    id: int
    task_id: str
    task_table: str
    task_owner_id: int
    task_owner_name: str | None = None
    task_owner_role: str
    task_title: str
    task_due_date: str | None = None
    created_at: str | None = None


class DelayScanResponse(BaseModel, extra="allow"):
    scanned: int = 0
    overdue: int = 0
    created: int = 0
    skipped_existing: int = 0
    failed: int = 0
    failed_sources: list[str] = Field(default_factory=list)
    timestamp: str = ""


class JustificationItem(BaseModel, extra="allow"):
    id: int
    notification_id: int
    user_id: int
    user_role: str | None = None
    justification: str
    archived: bool = False


class JustificationListResponse(BaseModel):
    active: list[dict] = Field(default_factory=list)
    archived: list[dict] = Field(default_factory=list)


# ── Churn ───────────────────────────────────────────────────────────────


class ChurnItem(BaseModel, extra="allow"):
    id: int
    scope_type: str
    client_id: int
    product_slug: str | None = None
    step: str
    had_valid_contract: bool
    days_since_entry: int = 0
    archived: bool = False


class ChurnFinalizeResponse(BaseModel):
    remaining_products: int
    client_archived: bool


# ── Onboarding ──────────────────────────────────────────────────────────


class OnboardingStatusItem(BaseModel, extra="allow"):
    client_id: int
    client_name: str
    milestone: int
    days_in_milestone: int
    max_days: int
    breached: bool
