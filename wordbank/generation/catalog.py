"""
Catalog Store.

Subjects, permanent terms and the generation log. Term persistence is
conflict-safe on (subject_id, normalized_term).
"""

from __future__ import annotations

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from wordbank.db.models import GenerationLog, Learner, Subject, Term
from wordbank.db.utils import insert_if_absent, retry_read

from .models import GeneratedTerm, GenerationStats, normalize_term


class CatalogStore:
    """SQLAlchemy-backed catalog of subjects and terms."""

    def __init__(self, db_session: Session):
        self.db = db_session

    # =========================================================================
    # Subjects
    # =========================================================================

    def get_subject(self, subject_id: int) -> Subject | None:
        return retry_read(lambda: self.db.get(Subject, subject_id))

    def find_subject(self, name: str) -> Subject | None:
        stmt = select(Subject).where(func.lower(Subject.name) == name.strip().lower())
        return retry_read(lambda: self.db.scalars(stmt).first())

    def get_or_create_subject(self, name: str, description: str | None = None) -> Subject:
        """Look up a subject by name (case-insensitive), creating it if missing."""
        subject = self.find_subject(name)
        if subject is not None:
            return subject
        insert_if_absent(
            self.db,
            Subject,
            {"name": name.strip(), "description": description},
            conflict_columns=["name"],
        )
        self.db.commit()
        logger.info(f"Subject created: {name.strip()}")
        return self.find_subject(name)

    def list_subjects(self) -> list[Subject]:
        return retry_read(lambda: list(self.db.scalars(select(Subject).order_by(Subject.name))))

    # =========================================================================
    # Terms
    # =========================================================================

    def find_existing(self, subject_id: int, text: str) -> int | None:
        """
        Case-insensitive exact match within one subject.

        Returns:
            The existing term id, or None
        """
        stmt = select(Term.id).where(
            Term.subject_id == subject_id, Term.normalized_term == normalize_term(text)
        )
        return retry_read(lambda: self.db.scalars(stmt).first())

    def persist_term(self, term: GeneratedTerm) -> int | None:
        """
        Insert a generated term into the catalog.

        Returns:
            The new term id, or None if an equal term was stored concurrently
        """
        created = insert_if_absent(
            self.db,
            Term,
            {
                "subject_id": term.subject_id,
                "term": term.term,
                "normalized_term": term.normalized,
                "definition": term.definition,
                "examples": term.examples,
                "facts": term.facts,
                "provenance": term.provenance.value,
                "source_url": term.source_url,
                "confidence": term.confidence,
            },
            conflict_columns=["subject_id", "normalized_term"],
        )
        self.db.commit()
        if not created:
            return None
        term.term_id = self.find_existing(term.subject_id, term.term)
        return term.term_id

    def count_terms(self, subject_id: int) -> int:
        stmt = select(func.count(Term.id)).where(Term.subject_id == subject_id)
        return retry_read(lambda: self.db.scalar(stmt)) or 0

    # =========================================================================
    # Learners & Logs
    # =========================================================================

    def preferred_strategy(self, user_id: str | None) -> str | None:
        if user_id is None:
            return None
        learner = retry_read(lambda: self.db.get(Learner, user_id))
        return learner.generation_strategy if learner else None

    def log_generation(
        self,
        subject_id: int,
        stats: GenerationStats,
        success: bool,
        user_id: str | None = None,
        error_message: str | None = None,
    ) -> GenerationLog:
        """Record one generation attempt."""
        entry = GenerationLog(
            user_id=user_id,
            subject_id=subject_id,
            strategy=stats.strategy.value,
            success=success,
            candidates=stats.candidates,
            persisted=stats.persisted,
            duplicates_removed=stats.duplicates_removed,
            low_confidence_dropped=stats.low_confidence_dropped,
            error_message=error_message,
            elapsed_ms=stats.elapsed_ms,
        )
        self.db.add(entry)
        self.db.commit()
        return entry

    def recent_logs(self, limit: int = 20) -> list[GenerationLog]:
        stmt = select(GenerationLog).order_by(GenerationLog.created_at.desc()).limit(limit)
        return retry_read(lambda: list(self.db.scalars(stmt)))
