"""
Wordbank table models.

LearningItem holds the spaced-repetition state of one term for one learner;
Delivery records each presentation of a term.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wordbank.db.utils import utcnow

from .base import Base
from .catalog import Term


class LearningItem(Base):
    """
    Wordbank entry for a (user, term) pair.

    ``next_review_at`` is written only with values produced by the scheduler.
    """

    __tablename__ = "learning_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    term_id: Mapped[int] = mapped_column(ForeignKey("terms.id", ondelete="CASCADE"), nullable=False)

    status: Mapped[str] = mapped_column(Text, nullable=False, default="learning")
    bucket: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    review_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ease_factor: Mapped[float] = mapped_column(Float, nullable=False, default=2.5)
    streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    favorited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    last_reviewed_at: Mapped[datetime | None] = mapped_column()
    next_review_at: Mapped[datetime] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)

    term: Mapped[Term] = relationship()

    __table_args__ = (
        UniqueConstraint("user_id", "term_id", name="uq_learning_item_user_term"),
        Index("idx_learning_items_due", "user_id", "next_review_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<LearningItem user={self.user_id} term={self.term_id} "
            f"status={self.status} bucket={self.bucket}>"
        )


class Delivery(Base):
    """One presentation of a term to a learner."""

    __tablename__ = "deliveries"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    term_id: Mapped[int] = mapped_column(ForeignKey("terms.id", ondelete="CASCADE"), nullable=False)
    learning_item_id: Mapped[int] = mapped_column(
        ForeignKey("learning_items.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[str] = mapped_column(Text, nullable=False)  # 'review' | 'new'
    action: Mapped[str] = mapped_column(Text, nullable=False, default="none")
    # Comma-delimited set of every action applied so far, e.g. ",opened,favorited,"
    applied_actions: Mapped[str] = mapped_column(Text, nullable=False, default=",")

    delivered_at: Mapped[datetime] = mapped_column(default=utcnow)
    opened_at: Mapped[datetime | None] = mapped_column()
    acted_at: Mapped[datetime | None] = mapped_column()

    learning_item: Mapped[LearningItem] = relationship()
    term: Mapped[Term] = relationship()

    __table_args__ = (Index("idx_deliveries_user", "user_id", "delivered_at"),)

    def __repr__(self) -> str:
        return f"<Delivery id={self.id} user={self.user_id} term={self.term_id} kind={self.kind}>"
