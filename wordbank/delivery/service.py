"""
Wordbank Service.

Entry point for the presentation layer (HTTP routers, CLI). Wires the quota
guard, selector, scheduler and stores for one database session.

Quota accounting: ``request_next_item`` checks the quota first and counts
usage only after a "new" delivery was actually recorded. Review deliveries
are free.
"""

from __future__ import annotations

import random
from collections.abc import Callable
from datetime import datetime
from uuid import UUID

from loguru import logger
from sqlalchemy.orm import Session

from config import Settings, get_settings
from wordbank.db.models import Delivery, LearnerSubject, LearningItem
from wordbank.db.utils import utcnow
from wordbank.generation import CatalogStore, GenerationOrchestrator, GenerationStrategy
from wordbank.quota import QuotaGuard, QuotaStatus

from .item_store import ItemStore
from .scheduler import ItemState, ItemStatus, ReportedAction, SchedulingEngine
from .selector import DeliveryKind, DeliverySelector


class WordbankService:
    """Facade over delivery, scheduling and quota for one session."""

    def __init__(
        self,
        db_session: Session,
        orchestrator: GenerationOrchestrator | None = None,
        settings: Settings | None = None,
        scheduler: SchedulingEngine | None = None,
        clock: Callable[[], datetime] = utcnow,
        rng: random.Random | None = None,
    ):
        self.settings = settings or get_settings()
        self.db = db_session
        self.clock = clock
        self.store = ItemStore(db_session)
        self.catalog = CatalogStore(db_session)
        self.scheduler = scheduler or SchedulingEngine()
        self.quota = QuotaGuard(db_session, default_tier=self.settings.default_tier, clock=clock)
        self.selector = DeliverySelector(
            self.store,
            self.scheduler,
            orchestrator,
            generation_timeout=self.settings.generation_timeout_seconds,
            rng=rng,
            clock=clock,
        )

    # =========================================================================
    # Deliveries
    # =========================================================================

    async def request_next_item(
        self,
        user_id: str,
        strategy: GenerationStrategy | str | None = None,
        tier: str | None = None,
    ) -> Delivery:
        """
        Deliver the learner's next item.

        Raises:
            QuotaExceeded: Nothing due and the generation quota is used up
            NoContentAvailable: Nothing due and generation produced nothing
        """
        status = self.quota.check(user_id, tier)
        delivery = await self.selector.next(user_id, strategy=strategy, quota=status)
        if delivery.kind == DeliveryKind.NEW.value:
            self.quota.increment(user_id)
        return delivery

    def report_action(self, delivery_id: UUID, action: ReportedAction | str) -> Delivery:
        """
        Apply a learner's reaction to a delivery.

        Each action is applied at most once per delivery; repeats are no-ops.
        The action and the item transition commit together, so a failed
        report can be retried.

        Raises:
            InvalidAction: Unknown action name
            DeliveryNotFound: Unknown delivery
        """
        parsed = ReportedAction.parse(action)
        delivery = self.store.get_delivery(delivery_id)
        now = self.clock()
        try:
            if not self.store.record_action(delivery, parsed, now):
                logger.debug(f"Action {parsed.value} already applied to delivery {delivery_id}")
                return delivery

            item = delivery.learning_item
            before = ItemState.from_item(item)
            after = self.scheduler.advance(before, parsed, now)
            self.store.apply_transition(item, before, after, parsed)
            self.db.commit()
        except Exception:  # Intentionally broad - rollback on any error before re-raising
            self.db.rollback()
            raise

        logger.info(
            f"User {delivery.user_id} reported {parsed.value} on term {delivery.term_id}: "
            f"{before.status.value}/{before.bucket} -> {after.status.value}/{after.bucket}"
        )
        return delivery

    def mark_opened(self, delivery_id: UUID) -> Delivery:
        """Record that the learner opened a delivery (first open only)."""
        delivery = self.store.get_delivery(delivery_id)
        return self.store.mark_opened(delivery, self.clock())

    def delivery_history(self, user_id: str, limit: int = 50) -> list[Delivery]:
        return self.store.list_deliveries(user_id, limit)

    # =========================================================================
    # Wordbank
    # =========================================================================

    def archive_item(self, user_id: str, term_id: int) -> LearningItem:
        """
        Retire a term from the learner's deliveries.

        Raises:
            ItemNotFound: The learner has no item for the term
        """
        item = self.store.get_item(user_id, term_id)
        before = ItemState.from_item(item)
        after = self.scheduler.archive(before, self.clock())
        self.store.apply_transition(item, before, after)
        self.db.commit()
        return item

    def list_wordbank(
        self,
        user_id: str,
        status: ItemStatus | str | None = None,
        favorited: bool | None = None,
    ) -> list[LearningItem]:
        if status is not None:
            status = ItemStatus(status)
        return self.store.list_items(user_id, status=status, favorited=favorited)

    # =========================================================================
    # Quota & Learner Settings
    # =========================================================================

    def check_quota(self, user_id: str, tier: str | None = None) -> QuotaStatus:
        return self.quota.check(user_id, tier)

    def set_subjects(self, user_id: str, weights: dict[str, float | None]) -> list[LearnerSubject]:
        """
        Replace the learner's subjects, keyed by subject name.

        Unknown subject names are added to the catalog.
        """
        by_id: dict[int, float | None] = {}
        for name, weight in weights.items():
            subject = self.catalog.get_or_create_subject(name)
            by_id[subject.id] = weight
        return self.store.set_subjects(user_id, by_id)

    def get_subjects(self, user_id: str) -> list[LearnerSubject]:
        return self.store.get_subjects(user_id)

    def set_strategy(self, user_id: str, strategy: GenerationStrategy | str | None) -> str | None:
        value = GenerationStrategy(strategy).value if strategy is not None else None
        self.store.set_strategy(user_id, value)
        return value

    def get_strategy(self, user_id: str) -> str:
        return self.store.get_strategy(user_id) or self.settings.default_generation_strategy
