"""Core routes: health."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from scoreline.jobs.tracking import get_last_success_at
from scoreline.routes.predictions import get_store
from scoreline.security import limiter
from scoreline.store import Store

router = APIRouter(tags=["core"])

TRACKED_JOBS = ("history_backward", "history_forward", "match_stats", "prediction_stats")


class HealthResponse(BaseModel):
    status: str
    last_success: dict[str, Optional[datetime]]


@router.get("/health", response_model=HealthResponse)
@limiter.limit("120/minute")
async def health_check(request: Request, store: Store = Depends(get_store)):
    """Health check endpoint with the last successful run of each batch job."""
    last_success = {}
    for job_name in TRACKED_JOBS:
        last_success[job_name] = await get_last_success_at(store, job_name)
    return HealthResponse(status="ok", last_success=last_success)
