"""Wordbank router: a learner's learning items."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from wordbank.api.dependencies import get_service
from wordbank.db.models import LearningItem
from wordbank.delivery import WordbankService
from wordbank.errors import ItemNotFound

router = APIRouter()


class ItemResponse(BaseModel):
    """One wordbank entry."""

    term_id: int
    term: str
    definition: str
    status: str
    bucket: int
    review_count: int
    streak: int
    favorited: bool
    last_reviewed_at: datetime | None
    next_review_at: datetime


def to_response(item: LearningItem) -> ItemResponse:
    return ItemResponse(
        term_id=item.term_id,
        term=item.term.term,
        definition=item.term.definition,
        status=item.status,
        bucket=item.bucket,
        review_count=item.review_count,
        streak=item.streak,
        favorited=item.favorited,
        last_reviewed_at=item.last_reviewed_at,
        next_review_at=item.next_review_at,
    )


@router.get("/{user_id}", response_model=list[ItemResponse], summary="List wordbank")
def list_wordbank(
    user_id: str,
    status: Literal["learning", "reviewing", "mastered", "archived"] | None = None,
    favorited: bool | None = None,
    service: WordbankService = Depends(get_service),
) -> list[ItemResponse]:
    """List learning items, soonest review first."""
    return [to_response(item) for item in service.list_wordbank(user_id, status, favorited)]


@router.post("/{user_id}/archive/{term_id}", response_model=ItemResponse, summary="Archive term")
def archive_item(
    user_id: str,
    term_id: int,
    service: WordbankService = Depends(get_service),
) -> ItemResponse:
    try:
        return to_response(service.archive_item(user_id, term_id))
    except ItemNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
