"""
Wordbank Item Store.

Durable storage for learning items, deliveries and learner subject settings.
The store holds no scheduling policy: every new state it writes comes from
the SchedulingEngine.

Concurrency:
- New learning items are inserted conflict-safely on (user_id, term_id);
  the loser of a race gets ConcurrentCreateConflict.
- review_count and streak are updated with SQL-side arithmetic so stale
  snapshots never lose increments.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from wordbank.db.models import Delivery, Learner, LearnerSubject, LearningItem, Subject
from wordbank.db.utils import insert_if_absent, retry_read
from wordbank.errors import ConcurrentCreateConflict, DeliveryNotFound, ItemNotFound

from .scheduler import ItemState, ItemStatus, ReportedAction


class ItemStore:
    """SQLAlchemy-backed persistence for the wordbank."""

    def __init__(self, db_session: Session):
        self.db = db_session

    # =========================================================================
    # Learning Items
    # =========================================================================

    def earliest_due(self, user_id: str, now: datetime) -> LearningItem | None:
        """
        Get the learner's most overdue active item.

        Ordered by next_review_at, then term_id for a deterministic tie-break.
        """
        stmt = (
            select(LearningItem)
            .where(
                LearningItem.user_id == user_id,
                LearningItem.next_review_at <= now,
                LearningItem.status != ItemStatus.ARCHIVED.value,
            )
            .order_by(LearningItem.next_review_at.asc(), LearningItem.term_id.asc())
            .limit(1)
        )
        return retry_read(lambda: self.db.scalars(stmt).first())

    def get_item(self, user_id: str, term_id: int) -> LearningItem:
        """
        Get the learning item for a (user, term) pair.

        Raises:
            ItemNotFound: If the learner has never been shown the term
        """
        stmt = select(LearningItem).where(
            LearningItem.user_id == user_id, LearningItem.term_id == term_id
        )
        item = retry_read(lambda: self.db.scalars(stmt).first())
        if item is None:
            raise ItemNotFound(f"No learning item for user {user_id}, term {term_id}")
        return item

    def create_item(self, user_id: str, term_id: int, state: ItemState) -> LearningItem:
        """
        Create a learning item for a term delivered for the first time.

        Raises:
            ConcurrentCreateConflict: If the (user, term) item already exists
        """
        created = insert_if_absent(
            self.db,
            LearningItem,
            {
                "user_id": user_id,
                "term_id": term_id,
                "status": state.status.value,
                "bucket": state.bucket,
                "review_count": state.review_count,
                "ease_factor": state.ease_factor,
                "streak": state.streak,
                "favorited": state.favorited,
                "last_reviewed_at": state.last_reviewed_at,
                "next_review_at": state.next_review_at,
            },
            conflict_columns=["user_id", "term_id"],
        )
        self.db.commit()
        if not created:
            raise ConcurrentCreateConflict(user_id, term_id)

        logger.debug(f"Created learning item for user {user_id}, term {term_id}")
        return self.get_item(user_id, term_id)

    def apply_transition(
        self,
        item: LearningItem,
        before: ItemState,
        after: ItemState,
        action: ReportedAction | None = None,
    ) -> LearningItem:
        """
        Write a scheduler transition computed from ``before``.

        Counters are written as deltas against the stored row rather than as
        absolute values from the snapshot. LearnAgain always zeroes the streak.
        The caller commits.
        """
        review_delta = after.review_count - before.review_count
        if action is ReportedAction.LEARN_AGAIN or after.streak < before.streak:
            streak = after.streak
        else:
            streak = LearningItem.streak + (after.streak - before.streak)

        stmt = (
            update(LearningItem)
            .where(LearningItem.id == item.id)
            .values(
                status=after.status.value,
                bucket=after.bucket,
                next_review_at=after.next_review_at,
                last_reviewed_at=after.last_reviewed_at,
                favorited=after.favorited,
                ease_factor=after.ease_factor,
                review_count=LearningItem.review_count + review_delta,
                streak=streak,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.execute(stmt)
        self.db.refresh(item)
        return item

    def list_items(
        self,
        user_id: str,
        status: ItemStatus | None = None,
        favorited: bool | None = None,
    ) -> list[LearningItem]:
        """List a learner's wordbank, soonest review first."""
        stmt = select(LearningItem).where(LearningItem.user_id == user_id)
        if status is not None:
            stmt = stmt.where(LearningItem.status == status.value)
        if favorited is not None:
            stmt = stmt.where(LearningItem.favorited == favorited)
        stmt = stmt.order_by(LearningItem.next_review_at.asc(), LearningItem.term_id.asc())
        return retry_read(lambda: list(self.db.scalars(stmt)))

    # =========================================================================
    # Deliveries
    # =========================================================================

    def create_delivery(self, item: LearningItem, kind: str, now: datetime) -> Delivery:
        """Record one presentation of ``item`` to its learner."""
        delivery = Delivery(
            user_id=item.user_id,
            term_id=item.term_id,
            learning_item_id=item.id,
            kind=kind,
            action=ReportedAction.NONE.value,
            delivered_at=now,
        )
        self.db.add(delivery)
        self.db.commit()
        self.db.refresh(delivery)
        logger.debug(f"Delivery {delivery.id} created ({kind}) for user {item.user_id}")
        return delivery

    def get_delivery(self, delivery_id: UUID) -> Delivery:
        """
        Get a delivery by id.

        Raises:
            DeliveryNotFound: If no such delivery exists
        """
        delivery = retry_read(lambda: self.db.get(Delivery, delivery_id))
        if delivery is None:
            raise DeliveryNotFound(f"Delivery not found: {delivery_id}")
        return delivery

    def record_action(self, delivery: Delivery, action: ReportedAction, now: datetime) -> bool:
        """
        Attach a reported action to a delivery.

        The write is conditional on the action never having been applied to
        this delivery, so repeats change nothing even when two identical
        reports race or other actions came in between. The caller commits.

        Returns:
            True if this call recorded the action
        """
        marker = f",{action.value},"
        stmt = (
            update(Delivery)
            .where(Delivery.id == delivery.id)
            .where(~Delivery.applied_actions.contains(marker, autoescape=True))
            .values(
                action=action.value,
                acted_at=now,
                opened_at=func.coalesce(Delivery.opened_at, now),
                applied_actions=Delivery.applied_actions + f"{action.value},",
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.refresh(delivery)
        return result.rowcount == 1

    def mark_opened(self, delivery: Delivery, now: datetime) -> Delivery:
        """Set opened_at on the first open only."""
        stmt = (
            update(Delivery)
            .where(Delivery.id == delivery.id, Delivery.opened_at.is_(None))
            .values(opened_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.execute(stmt)
        self.db.commit()
        self.db.refresh(delivery)
        return delivery

    def list_deliveries(self, user_id: str, limit: int = 50) -> list[Delivery]:
        """Most recent deliveries first."""
        stmt = (
            select(Delivery)
            .where(Delivery.user_id == user_id)
            .order_by(Delivery.delivered_at.desc())
            .limit(limit)
        )
        return retry_read(lambda: list(self.db.scalars(stmt)))

    # =========================================================================
    # Learner Settings
    # =========================================================================

    def get_subjects(self, user_id: str) -> list[LearnerSubject]:
        """Enabled subjects for a learner."""
        stmt = (
            select(LearnerSubject)
            .where(LearnerSubject.user_id == user_id, LearnerSubject.enabled.is_(True))
            .order_by(LearnerSubject.subject_id.asc())
        )
        return retry_read(lambda: list(self.db.scalars(stmt)))

    def set_subjects(self, user_id: str, weights: dict[int, float | None]) -> list[LearnerSubject]:
        """
        Replace a learner's subject selection.

        Args:
            user_id: Learner id
            weights: subject_id -> weight (None for "no preference")

        Subjects not in ``weights`` are disabled, not deleted.
        """
        existing = {
            row.subject_id: row
            for row in self.db.scalars(select(LearnerSubject).where(LearnerSubject.user_id == user_id))
        }
        for subject_id, row in existing.items():
            if subject_id not in weights:
                row.enabled = False
        for subject_id, weight in weights.items():
            row = existing.get(subject_id)
            if row is None:
                self.db.add(LearnerSubject(user_id=user_id, subject_id=subject_id, weight=weight))
            else:
                row.weight = weight
                row.enabled = True
        self.db.commit()
        logger.info(f"Learner {user_id} now studies {len(weights)} subject(s)")
        return self.get_subjects(user_id)

    def subject_name(self, subject_id: int) -> str:
        subject = self.db.get(Subject, subject_id)
        return subject.name if subject else str(subject_id)

    def get_strategy(self, user_id: str) -> str | None:
        """Learner's preferred generation strategy, if any."""
        learner = self.db.get(Learner, user_id)
        return learner.generation_strategy if learner else None

    def set_strategy(self, user_id: str, strategy: str | None) -> None:
        learner = self.db.get(Learner, user_id)
        if learner is None:
            self.db.add(Learner(user_id=user_id, generation_strategy=strategy))
        else:
            learner.generation_strategy = strategy
        self.db.commit()
