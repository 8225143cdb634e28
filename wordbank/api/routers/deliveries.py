"""
Deliveries router.

Next-item requests, learner actions on deliveries, delivery history.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from pydantic import BaseModel

from wordbank.api.dependencies import get_service
from wordbank.db.models import Delivery
from wordbank.delivery import WordbankService
from wordbank.errors import DeliveryNotFound, InvalidAction, NoContentAvailable, QuotaExceeded

router = APIRouter()


# ========================================
# Request/Response Models
# ========================================


class NextItemRequest(BaseModel):
    """Request body for the next delivery."""

    user_id: str
    strategy: Literal["source_first", "model_first"] | None = None
    tier: str | None = None


class ActionRequest(BaseModel):
    """A learner's reaction to a delivery."""

    action: str  # "none", "opened", "favorited", "learn_again", "mastered"


class DeliveryResponse(BaseModel):
    """A delivered term with its catalog content."""

    id: str
    user_id: str
    term_id: int
    term: str
    definition: str
    examples: list[str]
    facts: list[str]
    kind: str  # "review" | "new"
    action: str
    delivered_at: datetime
    opened_at: datetime | None
    acted_at: datetime | None
    status: str
    bucket: int
    next_review_at: datetime


def to_response(delivery: Delivery) -> DeliveryResponse:
    term = delivery.term
    item = delivery.learning_item
    return DeliveryResponse(
        id=str(delivery.id),
        user_id=delivery.user_id,
        term_id=delivery.term_id,
        term=term.term,
        definition=term.definition,
        examples=list(term.examples or []),
        facts=list(term.facts or []),
        kind=delivery.kind,
        action=delivery.action,
        delivered_at=delivery.delivered_at,
        opened_at=delivery.opened_at,
        acted_at=delivery.acted_at,
        status=item.status,
        bucket=item.bucket,
        next_review_at=item.next_review_at,
    )


def quota_exceeded_detail(exc: QuotaExceeded) -> dict[str, Any]:
    return {
        "message": str(exc),
        "usage": exc.usage,
        "limit": exc.limit,
        "next_reset": exc.next_reset.isoformat() if exc.next_reset else None,
    }


# ========================================
# Delivery Endpoints
# ========================================


@router.post("/next", response_model=DeliveryResponse, summary="Deliver next item")
async def next_item(
    request: NextItemRequest,
    service: WordbankService = Depends(get_service),
) -> DeliveryResponse:
    """
    Deliver the learner's next term.

    The most overdue review wins; otherwise a new term is generated, which
    consumes one unit of the learner's quota.

    Errors:
    - 429: quota exhausted and nothing due (``next_reset`` in the detail)
    - 503: nothing due and no new content could be produced
    """
    logger.info(f"Next item requested for user {request.user_id}")
    try:
        delivery = await service.request_next_item(
            request.user_id, strategy=request.strategy, tier=request.tier
        )
    except QuotaExceeded as e:
        raise HTTPException(status_code=429, detail=quota_exceeded_detail(e))
    except NoContentAvailable as e:
        raise HTTPException(status_code=503, detail=f"No content available, try later: {e}")
    return to_response(delivery)


@router.post("/{delivery_id}/action", response_model=DeliveryResponse, summary="Report action")
def report_action(
    delivery_id: UUID,
    request: ActionRequest,
    service: WordbankService = Depends(get_service),
) -> DeliveryResponse:
    """Apply a learner action; repeating the recorded action is a no-op."""
    try:
        delivery = service.report_action(delivery_id, request.action)
    except InvalidAction as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DeliveryNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return to_response(delivery)


@router.post("/{delivery_id}/open", response_model=DeliveryResponse, summary="Mark opened")
def mark_opened(
    delivery_id: UUID,
    service: WordbankService = Depends(get_service),
) -> DeliveryResponse:
    try:
        delivery = service.mark_opened(delivery_id)
    except DeliveryNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return to_response(delivery)


@router.get("/history/{user_id}", response_model=list[DeliveryResponse], summary="Delivery history")
def delivery_history(
    user_id: str,
    limit: int = Query(50, ge=1, le=500),
    service: WordbankService = Depends(get_service),
) -> list[DeliveryResponse]:
    return [to_response(d) for d in service.delivery_history(user_id, limit)]
