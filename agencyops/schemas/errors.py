"""
schemas/errors.py — Error body returned by every handler in main.py.

Service errors are mapped to status codes in the routers; this is the
shape the frontend reads. request_id matches the X-Request-ID header and
the id bound into the log line for the same request.
"""

from typing import Any

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    error: str
    status_code: int
    request_id: str = ""
    # Validation errors only: [{"loc": [...], "msg": "..."}]
    detail: list[dict[str, Any]] | None = Field(default=None)
