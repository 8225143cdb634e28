"""
Quota Guard.

Tracks how many generation-triggering actions a learner has taken in the
current period of their tier and decides whether another one is admitted.

Usage is check-then-increment: ``check`` admits or denies, and ``increment``
runs only after the gated action succeeded. The two steps are not atomic
together (two racing requests can overshoot by one), but each storage write
is: resets are conditional on the observed ``last_reset`` and increments are
``current_usage = current_usage + 1``.

All timestamps are naive UTC; day and month boundaries are UTC boundaries.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from wordbank.db.models import QuotaWindow
from wordbank.db.utils import insert_if_absent, retry_read, utcnow
from wordbank.errors import QuotaExceeded

from .tiers import DEFAULT_TIER, ResetPeriod, get_tier_config, is_known_tier, next_tier

UPGRADE_THRESHOLD_PERCENT = 80.0


# =============================================================================
# Period Arithmetic
# =============================================================================


def should_reset(last_reset: datetime, period: ResetPeriod, now: datetime) -> bool:
    """
    Decide whether the usage window has rolled over.

    daily:   calendar day differs
    weekly:  at least seven days elapsed
    monthly: calendar month or year differs
    never:   never
    """
    if period is ResetPeriod.DAILY:
        return last_reset.date() != now.date()
    if period is ResetPeriod.WEEKLY:
        return now - last_reset >= timedelta(days=7)
    if period is ResetPeriod.MONTHLY:
        return (last_reset.year, last_reset.month) != (now.year, now.month)
    return False


def next_reset_after(last_reset: datetime, period: ResetPeriod) -> datetime | None:
    """
    First instant at which ``should_reset`` becomes true for ``last_reset``.

    Anchored on ``last_reset`` and snapped to the period boundary (midnight,
    first of month), so repeated checks never drift.
    """
    if period is ResetPeriod.DAILY:
        return datetime.combine(last_reset.date() + timedelta(days=1), time.min)
    if period is ResetPeriod.WEEKLY:
        return last_reset + timedelta(days=7)
    if period is ResetPeriod.MONTHLY:
        if last_reset.month == 12:
            return datetime(last_reset.year + 1, 1, 1)
        return datetime(last_reset.year, last_reset.month + 1, 1)
    return None


# =============================================================================
# Results
# =============================================================================


@dataclass
class QuotaStatus:
    """Outcome of a quota check."""

    user_id: str
    tier: str
    allowed: bool
    usage: int
    limit: int
    next_reset: datetime | None
    reset_applied: bool = False

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.usage)


@dataclass
class QuotaReport:
    """Aggregate view of quota usage across learners."""

    total_users: int = 0
    quota_exceeded_users: int = 0
    average_usage_per_tier: dict[str, float] = field(default_factory=dict)
    most_active_users: list[dict[str, object]] = field(default_factory=list)
    upgrade_recommendations: list[dict[str, object]] = field(default_factory=list)
    quota_utilization: float = 0.0


# =============================================================================
# Guard
# =============================================================================


class QuotaGuard:
    """
    Per-learner quota windows backed by the ``quota_windows`` table.

    Windows are created lazily on first check.
    """

    def __init__(
        self,
        db_session: Session,
        default_tier: str = DEFAULT_TIER,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db_session
        self.default_tier = default_tier
        self.clock = clock

    @staticmethod
    def limit_for(window: QuotaWindow) -> int:
        """Admin override if set, else the tier maximum."""
        if window.custom_limit is not None:
            return window.custom_limit
        return get_tier_config(window.tier).max_requests_per_period

    def _load(self, user_id: str) -> QuotaWindow | None:
        stmt = select(QuotaWindow).where(QuotaWindow.user_id == user_id)
        return retry_read(lambda: self.db.scalars(stmt).first())

    def _window(self, user_id: str, tier: str | None, now: datetime) -> QuotaWindow:
        window = self._load(user_id)
        if window is None:
            created = insert_if_absent(
                self.db,
                QuotaWindow,
                {
                    "user_id": user_id,
                    "tier": (tier or self.default_tier).lower(),
                    "current_usage": 0,
                    "period_start": now,
                    "last_reset": now,
                },
                conflict_columns=["user_id"],
            )
            self.db.commit()
            if created:
                logger.debug(f"Quota window created for user {user_id}")
            window = self._load(user_id)
        elif tier is not None and window.tier != tier.lower():
            window.tier = tier.lower()
            self.db.commit()
        return window

    def _reset_if_due(self, window: QuotaWindow, now: datetime) -> bool:
        period = get_tier_config(window.tier).reset_period
        if not should_reset(window.last_reset, period, now):
            return False

        observed = window.last_reset
        stmt = (
            update(QuotaWindow)
            .where(QuotaWindow.user_id == window.user_id, QuotaWindow.last_reset == observed)
            .values(current_usage=0, period_start=now, last_reset=now)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()
        self.db.refresh(window)
        if result.rowcount == 1:
            logger.info(f"Quota window reset for user {window.user_id} ({period.value})")
            return True
        return False

    def _status(self, window: QuotaWindow, reset_applied: bool = False) -> QuotaStatus:
        limit = self.limit_for(window)
        return QuotaStatus(
            user_id=window.user_id,
            tier=window.tier,
            allowed=window.current_usage < limit,
            usage=window.current_usage,
            limit=limit,
            next_reset=next_reset_after(window.last_reset, get_tier_config(window.tier).reset_period),
            reset_applied=reset_applied,
        )

    def check(self, user_id: str, tier: str | None = None) -> QuotaStatus:
        """
        Apply a due reset, then report whether another action is admitted.

        Args:
            user_id: Learner id
            tier: Externally assigned tier; updates the stored tier when given
        """
        now = self.clock()
        window = self._window(user_id, tier, now)
        reset_applied = self._reset_if_due(window, now)
        status = self._status(window, reset_applied)
        if not status.allowed:
            logger.info(f"Quota denied for user {user_id}: {status.usage}/{status.limit}")
        return status

    def enforce(self, user_id: str, tier: str | None = None) -> QuotaStatus:
        """
        Check and raise when denied.

        Raises:
            QuotaExceeded: If the learner is at or over the limit
        """
        status = self.check(user_id, tier)
        if not status.allowed:
            raise QuotaExceeded(status.usage, status.limit, status.next_reset)
        return status

    def increment(self, user_id: str) -> int:
        """
        Count one successful gated action.

        Returns:
            Usage after the increment
        """
        now = self.clock()
        self._window(user_id, None, now)
        stmt = (
            update(QuotaWindow)
            .where(QuotaWindow.user_id == user_id)
            .values(current_usage=QuotaWindow.current_usage + 1)
            .execution_options(synchronize_session=False)
        )
        self.db.execute(stmt)
        self.db.commit()
        window = self._load(user_id)
        self.db.refresh(window)
        logger.debug(f"Quota usage for user {user_id} is now {window.current_usage}")
        return window.current_usage

    # =========================================================================
    # Administration
    # =========================================================================

    def reset(self, user_id: str, reason: str | None = None) -> QuotaStatus:
        """Zero a learner's usage and start a new period now."""
        now = self.clock()
        window = self._window(user_id, None, now)
        window.current_usage = 0
        window.period_start = now
        window.last_reset = now
        self.db.commit()
        logger.info(f"Quota reset for user {user_id}: {reason or 'manual reset'}")
        return self._status(window, reset_applied=True)

    def set_tier(self, user_id: str, tier: str) -> QuotaStatus:
        """
        Move a learner to another tier; usage starts over.

        Raises:
            ValueError: If the tier is unknown
        """
        if not is_known_tier(tier):
            raise ValueError(f"Invalid tier: {tier}")
        now = self.clock()
        window = self._window(user_id, None, now)
        window.tier = tier.lower()
        self.db.commit()
        return self.reset(user_id, reason=f"Tier change to {tier.lower()}")

    def set_custom_limit(self, user_id: str, limit: int | None) -> QuotaStatus:
        """Override (or with None, restore) the learner's per-period limit."""
        if limit is not None and limit < 0:
            raise ValueError("Custom limit must be non-negative")
        window = self._window(user_id, None, self.clock())
        window.custom_limit = limit
        self.db.commit()
        logger.info(f"Custom quota limit for user {user_id} set to {limit}")
        return self._status(window)

    def bulk_reset(self, tier: str) -> list[str]:
        """
        Reset every window on ``tier``.

        Returns:
            Affected user ids
        """
        if not is_known_tier(tier):
            raise ValueError(f"Invalid tier: {tier}")
        now = self.clock()
        windows = list(self.db.scalars(select(QuotaWindow).where(QuotaWindow.tier == tier.lower())))
        for window in windows:
            window.current_usage = 0
            window.period_start = now
            window.last_reset = now
        self.db.commit()
        logger.info(f"Bulk reset for {tier} tier - {len(windows)} users affected")
        return [window.user_id for window in windows]

    def report(self, top: int = 10) -> QuotaReport:
        """Summarise usage: exceeded users, per-tier averages, upgrade candidates."""
        windows = list(self.db.scalars(select(QuotaWindow)))
        report = QuotaReport(total_users=len(windows))
        if not windows:
            return report

        usage_by_tier: dict[str, list[int]] = defaultdict(list)
        total_usage = 0
        total_limit = 0
        for window in windows:
            limit = self.limit_for(window)
            total_usage += window.current_usage
            total_limit += limit
            if window.current_usage >= limit:
                report.quota_exceeded_users += 1
            if window.current_usage > 0:
                usage_by_tier[window.tier].append(window.current_usage)
                percent = (window.current_usage / limit) * 100 if limit else 100.0
                upgrade = next_tier(window.tier)
                if percent > UPGRADE_THRESHOLD_PERCENT and upgrade:
                    report.upgrade_recommendations.append(
                        {
                            "user_id": window.user_id,
                            "current_tier": window.tier,
                            "recommended_tier": upgrade,
                            "reason": f"High usage ({round(percent)}%) - consider upgrading to {upgrade}",
                        }
                    )

        report.average_usage_per_tier = {
            tier: sum(usages) / len(usages) for tier, usages in usage_by_tier.items()
        }
        active = sorted(
            (window for window in windows if window.current_usage > 0),
            key=lambda window: window.current_usage,
            reverse=True,
        )
        report.most_active_users = [
            {"user_id": window.user_id, "tier": window.tier, "usage": window.current_usage}
            for window in active[:top]
        ]
        if total_limit:
            report.quota_utilization = round(total_usage / total_limit * 100, 2)
        return report
