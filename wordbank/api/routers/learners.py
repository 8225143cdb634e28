"""Learners router: subject selection and generation preference."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from wordbank.api.dependencies import get_service
from wordbank.db.models import LearnerSubject
from wordbank.delivery import WordbankService

router = APIRouter()


class SubjectsRequest(BaseModel):
    """Subject name -> weight (null for no preference)."""

    subjects: dict[str, float | None] = Field(default_factory=dict)


class SubjectResponse(BaseModel):
    subject_id: int
    name: str
    weight: float | None


class StrategyRequest(BaseModel):
    strategy: Literal["source_first", "model_first"] | None = None


class StrategyResponse(BaseModel):
    user_id: str
    strategy: str


def to_subjects(rows: list[LearnerSubject]) -> list[SubjectResponse]:
    return [
        SubjectResponse(subject_id=row.subject_id, name=row.subject.name, weight=row.weight)
        for row in rows
    ]


@router.get("/{user_id}/subjects", response_model=list[SubjectResponse], summary="Get subjects")
def get_subjects(
    user_id: str,
    service: WordbankService = Depends(get_service),
) -> list[SubjectResponse]:
    return to_subjects(service.get_subjects(user_id))


@router.put("/{user_id}/subjects", response_model=list[SubjectResponse], summary="Set subjects")
def set_subjects(
    user_id: str,
    request: SubjectsRequest,
    service: WordbankService = Depends(get_service),
) -> list[SubjectResponse]:
    """Replace the learner's subjects; unknown names are added to the catalog."""
    return to_subjects(service.set_subjects(user_id, request.subjects))


@router.get("/{user_id}/strategy", response_model=StrategyResponse, summary="Get strategy")
def get_strategy(
    user_id: str,
    service: WordbankService = Depends(get_service),
) -> StrategyResponse:
    return StrategyResponse(user_id=user_id, strategy=service.get_strategy(user_id))


@router.put("/{user_id}/strategy", response_model=StrategyResponse, summary="Set strategy")
def set_strategy(
    user_id: str,
    request: StrategyRequest,
    service: WordbankService = Depends(get_service),
) -> StrategyResponse:
    """Store the learner's default pipeline; null falls back to the server default."""
    service.set_strategy(user_id, request.strategy)
    return StrategyResponse(user_id=user_id, strategy=service.get_strategy(user_id))
