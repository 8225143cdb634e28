"""
Delivery Selector.

Picks what a learner sees next:

1. The most overdue active learning item, as a "review" delivery.
2. Otherwise one freshly generated term for a weighted-random subject, as a
   "new" delivery. Generation is awaited under an overall deadline and no
   database transaction is open while it runs.

Two concurrent calls for the same learner can both miss step 1 and generate
the same term. Item creation is a conflict-safe insert; the loser re-reads
the winner's item and delivers it if due, else moves on to the next term.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from loguru import logger

from wordbank.db.models import Delivery, LearnerSubject
from wordbank.db.utils import utcnow
from wordbank.errors import (
    ConcurrentCreateConflict,
    GenerationError,
    NoContentAvailable,
    QuotaExceeded,
)

from .item_store import ItemStore
from .scheduler import ItemState, SchedulingEngine

if TYPE_CHECKING:
    from wordbank.generation import GenerationOrchestrator, GenerationStrategy
    from wordbank.quota import QuotaStatus


class DeliveryKind(str, Enum):
    REVIEW = "review"
    NEW = "new"


class DeliverySelector:
    """Chooses and records the next delivery for a learner."""

    def __init__(
        self,
        store: ItemStore,
        scheduler: SchedulingEngine,
        orchestrator: GenerationOrchestrator | None,
        generation_timeout: float = 20.0,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.scheduler = scheduler
        self.orchestrator = orchestrator
        self.generation_timeout = generation_timeout
        self.rng = rng or random.Random()
        self.clock = clock

    def pick_subject(self, subjects: list[LearnerSubject]) -> LearnerSubject:
        """
        Weighted random subject choice.

        Uniform when no weights are set or all weights tie. A missing weight
        counts as 1.0 when other subjects carry weights.
        """
        weights = [s.weight for s in subjects]
        if all(w is None for w in weights) or len({w for w in weights}) == 1:
            return self.rng.choice(subjects)
        resolved = [max(w, 0.0) if w is not None else 1.0 for w in weights]
        if sum(resolved) <= 0:
            return self.rng.choice(subjects)
        return self.rng.choices(subjects, weights=resolved, k=1)[0]

    def _deliver_term(self, user_id: str, term_id: int) -> Delivery | None:
        now = self.clock()
        try:
            item = self.store.create_item(user_id, term_id, self.scheduler.initial_state(now))
        except ConcurrentCreateConflict:
            item = self.store.get_item(user_id, term_id)
            if not ItemState.from_item(item).is_due(now):
                logger.debug(f"Term {term_id} already in wordbank of {user_id} and not due; skipping")
                return None
            logger.info(f"Concurrent create for user {user_id}, term {term_id}; delivering existing item")
            return self.store.create_delivery(item, DeliveryKind.REVIEW.value, now)
        return self.store.create_delivery(item, DeliveryKind.NEW.value, now)

    async def next(
        self,
        user_id: str,
        strategy: GenerationStrategy | str | None = None,
        quota: QuotaStatus | None = None,
    ) -> Delivery:
        """
        Deliver the next item for a learner.

        Args:
            user_id: Learner id
            strategy: Generation pipeline override
            quota: Result of the caller's quota check; when denied, only
                review deliveries are possible

        Returns:
            The recorded Delivery (``kind`` is "review" or "new")

        Raises:
            QuotaExceeded: No item is due and the quota denies generation
            NoContentAvailable: No item is due and generation produced nothing
                usable, failed, or timed out
        """
        now = self.clock()
        due = self.store.earliest_due(user_id, now)
        if due is not None:
            logger.debug(f"Review delivery for user {user_id}: term {due.term_id}")
            return self.store.create_delivery(due, DeliveryKind.REVIEW.value, now)

        if quota is not None and not quota.allowed:
            raise QuotaExceeded(quota.usage, quota.limit, quota.next_reset)
        if self.orchestrator is None:
            raise NoContentAvailable("No items due and content generation is disabled")

        subjects = self.store.get_subjects(user_id)
        if not subjects:
            raise NoContentAvailable(f"No subjects configured for user {user_id}")
        subject = self.pick_subject(subjects)
        # End the read transaction before the network wait
        self.store.db.commit()

        try:
            result = await asyncio.wait_for(
                self.orchestrator.generate(
                    subject.subject_id, desired_count=1, strategy=strategy, user_id=user_id
                ),
                timeout=self.generation_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Generation timed out after {self.generation_timeout}s for user {user_id}")
            raise NoContentAvailable("Content generation timed out, try again later") from None
        except GenerationError as e:
            raise NoContentAvailable(f"Content generation failed: {e}") from e

        for term_id in result.usable_term_ids:
            delivery = self._deliver_term(user_id, term_id)
            if delivery is not None:
                return delivery

        raise NoContentAvailable(f"No new content available for subject {subject.subject_id}")
