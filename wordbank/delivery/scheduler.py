"""
Bucket Spaced Repetition Scheduler.

Translates a learning item's state plus a reported learner action into the
item's next state. Every interval is looked up from a per-status table
indexed by bucket:

    learning   1, 3, 7, 14, 30 days
    reviewing  7, 14, 30, 90 days
    mastered   180, 365 days
    archived   (same as mastered)

Transition precedence:
1. LEARN_AGAIN - back to learning bucket 0, streak cleared
2. MASTERED    - mastered, bucket clamped to the mastered table
3. FAVORITED   - only the favorited flag changes
4. anything else - one bucket up, promotion to reviewing at bucket 3

The scheduler never touches storage and never reads the clock; callers pass
``now`` so identical inputs always produce identical outputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from wordbank.errors import InvalidAction

if TYPE_CHECKING:
    from wordbank.db.models import LearningItem


class ItemStatus(str, Enum):
    """Lifecycle status of a learning item."""

    LEARNING = "learning"
    REVIEWING = "reviewing"
    MASTERED = "mastered"
    ARCHIVED = "archived"


class ReportedAction(str, Enum):
    """Actions a learner can report on a delivery."""

    NONE = "none"
    OPENED = "opened"
    FAVORITED = "favorited"
    LEARN_AGAIN = "learn_again"
    MASTERED = "mastered"

    @classmethod
    def parse(cls, value: str | ReportedAction) -> ReportedAction:
        """
        Parse a client-supplied action name.

        Accepts any case plus the legacy ``FAVORITE`` spelling.

        Raises:
            InvalidAction: If the name is not a known action
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("-", "_")
        if key == "favorite":
            key = "favorited"
        try:
            return cls(key)
        except ValueError:
            raise InvalidAction(str(value)) from None


# =============================================================================
# Configuration
# =============================================================================


def _default_tables() -> dict[ItemStatus, tuple[int, ...]]:
    mastered = (180, 365)
    return {
        ItemStatus.LEARNING: (1, 3, 7, 14, 30),
        ItemStatus.REVIEWING: (7, 14, 30, 90),
        ItemStatus.MASTERED: mastered,
        ItemStatus.ARCHIVED: mastered,
    }


@dataclass(frozen=True)
class IntervalConfig:
    """Interval tables (days per bucket) and the promotion threshold."""

    tables: dict[ItemStatus, tuple[int, ...]] = field(default_factory=_default_tables)
    promotion_bucket: int = 3  # learning -> reviewing at this bucket

    def table_for(self, status: ItemStatus) -> tuple[int, ...]:
        return self.tables[status]

    def last_bucket(self, status: ItemStatus) -> int:
        return len(self.tables[status]) - 1


# =============================================================================
# State
# =============================================================================


@dataclass(frozen=True)
class ItemState:
    """Scheduling state of one learning item."""

    status: ItemStatus
    bucket: int
    next_review_at: datetime
    review_count: int = 0
    streak: int = 0
    ease_factor: float = 2.5
    favorited: bool = False
    last_reviewed_at: datetime | None = None

    @classmethod
    def from_item(cls, item: LearningItem) -> ItemState:
        """Snapshot a stored learning item."""
        return cls(
            status=ItemStatus(item.status),
            bucket=item.bucket,
            next_review_at=item.next_review_at,
            review_count=item.review_count,
            streak=item.streak,
            ease_factor=item.ease_factor,
            favorited=item.favorited,
            last_reviewed_at=item.last_reviewed_at,
        )

    def is_due(self, now: datetime) -> bool:
        """Check if this item is eligible for delivery at ``now``."""
        return self.status is not ItemStatus.ARCHIVED and self.next_review_at <= now


# =============================================================================
# Scheduling Engine
# =============================================================================


class SchedulingEngine:
    """
    Pure state-transition function over learning items.

    Total over every (status, action) pair: unknown or neutral actions take
    the default "reviewed normally" path.
    """

    def __init__(self, config: IntervalConfig | None = None):
        self.config = config or IntervalConfig()

    def interval_for(self, status: ItemStatus, bucket: int) -> timedelta:
        """Interval for a (status, bucket) pair; out-of-range buckets clamp."""
        table = self.config.table_for(status)
        index = min(max(bucket, 0), len(table) - 1)
        return timedelta(days=table[index])

    def next_review_for(self, status: ItemStatus, bucket: int, now: datetime) -> datetime:
        return now + self.interval_for(status, bucket)

    def initial_state(self, now: datetime) -> ItemState:
        """State of a freshly delivered term: learning, bucket 0, due immediately."""
        return ItemState(status=ItemStatus.LEARNING, bucket=0, next_review_at=now)

    def advance(self, state: ItemState, action: ReportedAction | str, now: datetime) -> ItemState:
        """
        Compute the next state after the learner reports ``action``.

        Args:
            state: Current item state
            action: Reported action (strings outside the action set fall through
                to the default path)
            now: Transition time

        Returns:
            New ItemState; ``state`` is not modified
        """
        try:
            action = ReportedAction.parse(action)
        except InvalidAction:
            action = ReportedAction.NONE

        reviewed = replace(
            state,
            last_reviewed_at=now,
            review_count=state.review_count + 1,
        )

        if action is ReportedAction.LEARN_AGAIN:
            return replace(
                reviewed,
                status=ItemStatus.LEARNING,
                bucket=0,
                streak=0,
                next_review_at=self.next_review_for(ItemStatus.LEARNING, 0, now),
            )

        if action is ReportedAction.MASTERED:
            bucket = min(state.bucket, self.config.last_bucket(ItemStatus.MASTERED))
            return replace(
                reviewed,
                status=ItemStatus.MASTERED,
                bucket=bucket,
                streak=state.streak + 1,
                next_review_at=self.next_review_for(ItemStatus.MASTERED, bucket, now),
            )

        if action is ReportedAction.FAVORITED:
            return replace(reviewed, favorited=True)

        bucket = min(state.bucket + 1, self.config.last_bucket(state.status))
        status = state.status
        if status is ItemStatus.LEARNING and bucket >= self.config.promotion_bucket:
            status = ItemStatus.REVIEWING

        return replace(
            reviewed,
            status=status,
            bucket=bucket,
            streak=state.streak + 1,
            next_review_at=self.next_review_for(status, bucket, now),
        )

    def archive(self, state: ItemState, now: datetime) -> ItemState:
        """Retire an item from delivery without losing its history."""
        bucket = min(state.bucket, self.config.last_bucket(ItemStatus.ARCHIVED))
        return replace(
            state,
            status=ItemStatus.ARCHIVED,
            bucket=bucket,
            next_review_at=self.next_review_for(ItemStatus.ARCHIVED, bucket, now),
        )
