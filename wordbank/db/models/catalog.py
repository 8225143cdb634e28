"""
Catalog table models.

Subjects and the vocabulary terms generated for them, plus the per-learner
subject configuration used for weighted subject selection.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, Float, ForeignKey, Index, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wordbank.db.utils import utcnow

from .base import Base


class Subject(Base):
    """A category of vocabulary a learner can study (e.g. "Photography")."""

    __tablename__ = "subjects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)

    terms: Mapped[list[Term]] = relationship(back_populates="subject")

    def __repr__(self) -> str:
        return f"<Subject id={self.id} name={self.name!r}>"


class Term(Base):
    """
    A permanent catalog entry.

    ``normalized_term`` is the casefolded, whitespace-collapsed text and is
    unique per subject, so duplicate persistence fails at the storage layer
    even when two generators race.
    """

    __tablename__ = "terms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject_id: Mapped[int] = mapped_column(
        ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False
    )
    term: Mapped[str] = mapped_column(Text, nullable=False)
    normalized_term: Mapped[str] = mapped_column(Text, nullable=False)
    definition: Mapped[str] = mapped_column(Text, default="")
    examples: Mapped[list] = mapped_column(JSON, default=list)
    facts: Mapped[list] = mapped_column(JSON, default=list)
    provenance: Mapped[str] = mapped_column(Text, default="model")
    source_url: Mapped[str | None] = mapped_column(Text)
    confidence: Mapped[float] = mapped_column(Float, default=0.5)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)

    subject: Mapped[Subject] = relationship(back_populates="terms")

    __table_args__ = (
        UniqueConstraint("subject_id", "normalized_term", name="uq_term_subject_normalized"),
    )

    def __repr__(self) -> str:
        return f"<Term id={self.id} subject={self.subject_id} term={self.term!r}>"


class Learner(Base):
    """Per-learner preferences owned by this engine."""

    __tablename__ = "learners"

    user_id: Mapped[str] = mapped_column(Text, primary_key=True)
    generation_strategy: Mapped[str | None] = mapped_column(Text)  # 'source_first' | 'model_first'
    created_at: Mapped[datetime] = mapped_column(default=utcnow)


class LearnerSubject(Base):
    """A subject a learner studies, with an optional selection weight."""

    __tablename__ = "learner_subjects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    subject_id: Mapped[int] = mapped_column(
        ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False
    )
    weight: Mapped[float | None] = mapped_column(Float)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    subject: Mapped[Subject] = relationship()

    __table_args__ = (
        UniqueConstraint("user_id", "subject_id", name="uq_learner_subject"),
        Index("idx_learner_subjects_user", "user_id", "enabled"),
    )
