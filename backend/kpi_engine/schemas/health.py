"""Health check schema."""

from __future__ import annotations

from pydantic import BaseModel


class HealthResponse(BaseModel):
    accounting: bool
    commerce: bool
    ai: bool


__all__ = ["HealthResponse"]
