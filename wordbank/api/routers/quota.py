"""
Quota router.

Learner quota status plus the administrative operations: manual reset,
tier change, custom limit, bulk reset and the usage report.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from pydantic import BaseModel, Field

from wordbank.api.dependencies import get_quota_guard
from wordbank.quota import QuotaGuard, QuotaStatus

router = APIRouter()


# ========================================
# Request/Response Models
# ========================================


class QuotaStatusResponse(BaseModel):
    user_id: str
    tier: str
    allowed: bool
    usage: int
    limit: int
    remaining: int
    next_reset: datetime | None


class ResetRequest(BaseModel):
    reason: str | None = None


class TierRequest(BaseModel):
    tier: str


class CustomLimitRequest(BaseModel):
    limit: int | None = Field(default=None, ge=0)


class BulkResetRequest(BaseModel):
    tier: str


class QuotaReportResponse(BaseModel):
    total_users: int
    quota_exceeded_users: int
    average_usage_per_tier: dict[str, float]
    most_active_users: list[dict[str, Any]]
    upgrade_recommendations: list[dict[str, Any]]
    quota_utilization: float


def to_response(status: QuotaStatus) -> QuotaStatusResponse:
    return QuotaStatusResponse(
        user_id=status.user_id,
        tier=status.tier,
        allowed=status.allowed,
        usage=status.usage,
        limit=status.limit,
        remaining=status.remaining,
        next_reset=status.next_reset,
    )


# ========================================
# Admin Endpoints
# ========================================


@router.get("/report", response_model=QuotaReportResponse, summary="Quota usage report")
def quota_report(
    top: int = Query(10, ge=1, le=100),
    guard: QuotaGuard = Depends(get_quota_guard),
) -> QuotaReportResponse:
    report = guard.report(top=top)
    return QuotaReportResponse(**asdict(report))


@router.post("/bulk-reset", summary="Reset every learner on a tier")
def bulk_reset(
    request: BulkResetRequest,
    guard: QuotaGuard = Depends(get_quota_guard),
) -> dict[str, Any]:
    try:
        users = guard.bulk_reset(request.tier)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"tier": request.tier.lower(), "affected_users": len(users), "user_ids": users}


# ========================================
# Per-Learner Endpoints
# ========================================


@router.get("/{user_id}", response_model=QuotaStatusResponse, summary="Check quota")
def check_quota(
    user_id: str,
    tier: str | None = None,
    guard: QuotaGuard = Depends(get_quota_guard),
) -> QuotaStatusResponse:
    """Current usage, limit and next reset; applies a due period reset."""
    return to_response(guard.check(user_id, tier))


@router.post("/{user_id}/reset", response_model=QuotaStatusResponse, summary="Reset quota")
def reset_quota(
    user_id: str,
    request: ResetRequest | None = None,
    guard: QuotaGuard = Depends(get_quota_guard),
) -> QuotaStatusResponse:
    reason = request.reason if request else None
    logger.info(f"Admin quota reset for user {user_id}")
    return to_response(guard.reset(user_id, reason=reason))


@router.put("/{user_id}/tier", response_model=QuotaStatusResponse, summary="Change tier")
def set_tier(
    user_id: str,
    request: TierRequest,
    guard: QuotaGuard = Depends(get_quota_guard),
) -> QuotaStatusResponse:
    try:
        return to_response(guard.set_tier(user_id, request.tier))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/{user_id}/limit", response_model=QuotaStatusResponse, summary="Set custom limit")
def set_custom_limit(
    user_id: str,
    request: CustomLimitRequest,
    guard: QuotaGuard = Depends(get_quota_guard),
) -> QuotaStatusResponse:
    """Override the tier limit; ``null`` restores the tier default."""
    return to_response(guard.set_custom_limit(user_id, request.limit))
