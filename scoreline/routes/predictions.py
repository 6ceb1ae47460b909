"""Prediction settlement endpoints.

- GET  /api/predictions/{post_id}/result  public once settled; author/admin always
- POST /api/predictions/{post_id}/settle  admin API key
- GET  /api/predictions/stats/{user_id}   public per-user aggregate

Responses always carry explicit won/lost/undecided counts.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from scoreline.predictions.settlement import (
    can_view_result,
    settle_post,
    user_aggregate,
)
from scoreline.security import current_viewer, limiter, verify_api_key
from scoreline.store import SQLStore, Store

router = APIRouter(prefix="/api/predictions", tags=["predictions"])

logger = logging.getLogger(__name__)


def get_store() -> Store:
    return SQLStore()


class ResultSummary(BaseModel):
    total: int = 0
    won: int = 0
    lost: int = 0
    undecided: int = 0
    hit_rate: float = 0.0
    roi: float = 0.0


class PredictionResultResponse(BaseModel):
    post_id: int
    status: str = Field(description="pending or settled")
    match_id: Optional[int] = None
    evaluated_at: Optional[datetime] = None
    summary: ResultSummary = Field(default_factory=ResultSummary)
    points: int = 0
    details: list[dict[str, Any]] = Field(default_factory=list)


class UserStatsResponse(ResultSummary):
    user_id: int
    points: int = 0
    settled_predictions: int = 0
    pending_predictions: int = 0


def _to_response(post_id: int, row: Optional[dict]) -> PredictionResultResponse:
    if not row:
        return PredictionResultResponse(post_id=post_id, status="pending")
    return PredictionResultResponse(
        post_id=post_id,
        status=row.get("status") or "pending",
        match_id=row.get("match_id"),
        evaluated_at=row.get("evaluated_at"),
        summary=ResultSummary(**(row.get("summary") or {})),
        points=int((row.get("scoring") or {}).get("points") or 0),
        details=row.get("details") or [],
    )


async def _load_prediction_post(store: Store, post_id: int) -> dict:
    post = await store.find_one("posts", where={"id": {"equals": post_id}})
    if post is None or post.get("post_type") != "prediction":
        raise HTTPException(status_code=404, detail=f"Prediction post {post_id} not found")
    return post


@router.get("/{post_id}/result", response_model=PredictionResultResponse)
@limiter.limit("60/minute")
async def get_prediction_result(
    request: Request,
    post_id: int,
    store: Store = Depends(get_store),
    viewer: Optional[dict] = Depends(current_viewer),
):
    """Settlement result of one prediction post (pending until the match is settled)."""
    post = await _load_prediction_post(store, post_id)
    row = await store.find_one("prediction_stats", where={"post": {"equals": post_id}})

    if not can_view_result(viewer, post, row):
        raise HTTPException(status_code=403, detail="Result not available yet")

    return _to_response(post_id, row)


@router.post("/{post_id}/settle", response_model=PredictionResultResponse)
@limiter.limit("10/minute")
async def settle_prediction(
    request: Request,
    post_id: int,
    store: Store = Depends(get_store),
    _: bool = Depends(verify_api_key),
):
    """
    Evaluate one prediction now.

    Requires API key authentication. Returns status=pending when the match
    is missing or not finished yet; nothing is written in that case.
    """
    post = await _load_prediction_post(store, post_id)
    action = await settle_post(store, post)
    logger.info("[SETTLE] API settle post=%s action=%s", post_id, action or "pending")

    row = await store.find_one("prediction_stats", where={"post": {"equals": post_id}})
    return _to_response(post_id, row if action else None)


@router.get("/stats/{user_id}", response_model=UserStatsResponse)
@limiter.limit("60/minute")
async def get_user_stats(
    request: Request,
    user_id: int,
    store: Store = Depends(get_store),
):
    """Aggregate won/lost/undecided, hit rate, ROI and points of a user."""
    return UserStatsResponse(**await user_aggregate(store, user_id))
