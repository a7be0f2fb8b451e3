"""
schemas/onboarding.py — Pydantic models for onboarding milestone endpoints

Called by: routers/onboarding.py
Depends on: pydantic
"""

from pydantic import BaseModel, Field


class OnboardingAdvance(BaseModel):
    expected_milestone: int = Field(..., ge=1, le=5)
