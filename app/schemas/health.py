"""
Liveness response schema.
"""

from __future__ import annotations

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "ok"
    scheduler_running: bool = False
    scheduled_jobs: int = 0
