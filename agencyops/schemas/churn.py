"""
schemas/churn.py — Pydantic models for churn workflow endpoints

Business Rules:
- Omitting product_slug churns the whole client
- had_valid_contract picks the track and cannot change later
- Advancing requires the step the caller currently sees

Called by: routers/churn.py
Depends on: pydantic
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class ChurnInitiate(BaseModel):
    client_id: int
    had_valid_contract: bool
    product_slug: str | None = None
    product_name: str | None = None
    monthly_value: float | None = Field(default=None, ge=0)

    @field_validator("product_slug", "product_name")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None


class ChurnAdvance(BaseModel):
    expected_step: str
