"""
schemas/delays.py — Pydantic models for delay notification endpoints

Business Rules:
- Justification text is required and non-blank
- Archive toggle is an explicit boolean (archive=true, restore=false)

Called by: routers/delays.py
Depends on: pydantic
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class JustificationSubmit(BaseModel):
    justification: str = Field(..., max_length=5000)

    @field_validator("justification")
    @classmethod
    def justification_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Justification is required")
        return v


class JustificationArchive(BaseModel):
    archived: bool = True
