"""
Unit tests for the bucket scheduler.

Run with: pytest tests/unit/test_scheduler.py -v
"""

from datetime import datetime, timedelta

import pytest

from wordbank.delivery.scheduler import (
    IntervalConfig,
    ItemState,
    ItemStatus,
    ReportedAction,
    SchedulingEngine,
)
from wordbank.errors import InvalidAction

NOW = datetime(2025, 3, 14, 12, 0, 0)


@pytest.fixture
def scheduler():
    return SchedulingEngine()


def make_state(status=ItemStatus.LEARNING, bucket=0, streak=0, review_count=0, favorited=False):
    return ItemState(
        status=status,
        bucket=bucket,
        next_review_at=NOW - timedelta(hours=1),
        review_count=review_count,
        streak=streak,
        favorited=favorited,
    )


ALL_STATES = [
    make_state(status, bucket, streak=2, review_count=5)
    for status in ItemStatus
    for bucket in range(0, 6)
]


# =============================================================================
# Determinism & Totality
# =============================================================================


class TestDeterminism:
    """advance() is a pure function of its inputs."""

    @pytest.mark.parametrize("action", list(ReportedAction))
    def test_identical_inputs_identical_outputs(self, scheduler, action):
        for state in ALL_STATES:
            assert scheduler.advance(state, action, NOW) == scheduler.advance(state, action, NOW)

    def test_input_state_is_not_modified(self, scheduler):
        state = make_state(bucket=1)
        scheduler.advance(state, ReportedAction.NONE, NOW)
        assert state.bucket == 1

    def test_unknown_action_takes_default_path(self, scheduler):
        state = make_state(bucket=1, streak=1)
        assert scheduler.advance(state, "shrug", NOW) == scheduler.advance(state, ReportedAction.NONE, NOW)

    @pytest.mark.parametrize("action", list(ReportedAction))
    def test_every_transition_counts_a_review(self, scheduler, action):
        for state in ALL_STATES:
            after = scheduler.advance(state, action, NOW)
            assert after.review_count == state.review_count + 1
            assert after.last_reviewed_at == NOW


# =============================================================================
# Default Action
# =============================================================================


class TestDefaultAction:
    @pytest.mark.parametrize("bucket", [0, 1, 2, 3])
    def test_learning_bucket_increases_by_one(self, scheduler, bucket):
        after = scheduler.advance(make_state(bucket=bucket), ReportedAction.NONE, NOW)
        assert after.bucket == bucket + 1

    def test_promotion_fires_at_bucket_three(self, scheduler):
        after = scheduler.advance(make_state(bucket=2), ReportedAction.NONE, NOW)
        assert after.bucket == 3
        assert after.status is ItemStatus.REVIEWING
        assert after.next_review_at == NOW + timedelta(days=90)

    def test_no_promotion_below_threshold(self, scheduler):
        after = scheduler.advance(make_state(bucket=1), ReportedAction.NONE, NOW)
        assert after.status is ItemStatus.LEARNING
        assert after.next_review_at == NOW + timedelta(days=7)

    def test_bucket_clamps_at_end_of_table(self, scheduler):
        state = make_state(ItemStatus.REVIEWING, bucket=3)
        after = scheduler.advance(state, ReportedAction.OPENED, NOW)
        assert after.bucket == 3
        assert after.next_review_at == NOW + timedelta(days=90)

    def test_streak_increments(self, scheduler):
        after = scheduler.advance(make_state(streak=4), ReportedAction.NONE, NOW)
        assert after.streak == 5

    def test_mastered_item_stays_mastered(self, scheduler):
        after = scheduler.advance(make_state(ItemStatus.MASTERED, bucket=0), ReportedAction.NONE, NOW)
        assert after.status is ItemStatus.MASTERED
        assert after.bucket == 1
        assert after.next_review_at == NOW + timedelta(days=365)


# =============================================================================
# Explicit Actions
# =============================================================================


class TestLearnAgain:
    def test_resets_from_any_state(self, scheduler):
        for state in ALL_STATES:
            after = scheduler.advance(state, ReportedAction.LEARN_AGAIN, NOW)
            assert after.bucket == 0
            assert after.status is ItemStatus.LEARNING
            assert after.streak == 0
            assert after.next_review_at == NOW + timedelta(days=1)


class TestMastered:
    def test_moves_to_mastered_table(self, scheduler):
        after = scheduler.advance(make_state(bucket=0, streak=1), ReportedAction.MASTERED, NOW)
        assert after.status is ItemStatus.MASTERED
        assert after.bucket == 0
        assert after.streak == 2
        assert after.next_review_at == NOW + timedelta(days=180)

    def test_bucket_clamped_to_mastered_table(self, scheduler):
        after = scheduler.advance(make_state(bucket=4), ReportedAction.MASTERED, NOW)
        assert after.bucket == 1
        assert after.next_review_at == NOW + timedelta(days=365)


class TestFavorited:
    def test_only_sets_flag(self, scheduler):
        state = make_state(bucket=2, streak=3)
        after = scheduler.advance(state, ReportedAction.FAVORITED, NOW)
        assert after.favorited is True
        assert after.bucket == 2
        assert after.status is ItemStatus.LEARNING
        assert after.streak == 3
        assert after.next_review_at == state.next_review_at


class TestArchive:
    def test_archive_uses_mastered_intervals(self, scheduler):
        after = scheduler.archive(make_state(bucket=3, streak=2), NOW)
        assert after.status is ItemStatus.ARCHIVED
        assert after.bucket == 1
        assert after.streak == 2
        assert after.next_review_at == NOW + timedelta(days=365)

    def test_archived_item_is_never_due(self):
        state = make_state(ItemStatus.ARCHIVED)
        assert state.is_due(NOW) is False

    def test_learn_again_reactivates_archived(self, scheduler):
        after = scheduler.advance(make_state(ItemStatus.ARCHIVED, bucket=1), ReportedAction.LEARN_AGAIN, NOW)
        assert after.status is ItemStatus.LEARNING


# =============================================================================
# Helpers
# =============================================================================


class TestIntervals:
    def test_initial_state_is_due_now(self, scheduler):
        state = scheduler.initial_state(NOW)
        assert state.status is ItemStatus.LEARNING
        assert state.bucket == 0
        assert state.next_review_at == NOW
        assert state.is_due(NOW)

    def test_interval_lookup_clamps(self, scheduler):
        assert scheduler.interval_for(ItemStatus.LEARNING, 99) == timedelta(days=30)
        assert scheduler.interval_for(ItemStatus.LEARNING, -1) == timedelta(days=1)

    def test_custom_tables(self):
        config = IntervalConfig(
            tables={
                ItemStatus.LEARNING: (1, 2),
                ItemStatus.REVIEWING: (5,),
                ItemStatus.MASTERED: (100,),
                ItemStatus.ARCHIVED: (100,),
            },
            promotion_bucket=1,
        )
        after = SchedulingEngine(config).advance(make_state(bucket=0), ReportedAction.NONE, NOW)
        assert after.status is ItemStatus.REVIEWING
        # Reviewing table has one entry; lookup clamps
        assert after.next_review_at == NOW + timedelta(days=5)


class TestActionParsing:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("LEARN_AGAIN", ReportedAction.LEARN_AGAIN),
            ("learn-again", ReportedAction.LEARN_AGAIN),
            ("FAVORITE", ReportedAction.FAVORITED),
            ("Mastered", ReportedAction.MASTERED),
            ("none", ReportedAction.NONE),
        ],
    )
    def test_parse(self, raw, expected):
        assert ReportedAction.parse(raw) is expected

    def test_parse_rejects_unknown(self):
        with pytest.raises(InvalidAction):
            ReportedAction.parse("delete")
