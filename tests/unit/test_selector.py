"""
Unit tests for the delivery selector.

The orchestrator is replaced by small fakes; items, deliveries and subjects
live in the per-test SQLite database.
"""

import asyncio
import random
from collections import Counter
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from wordbank.db.models import Delivery, LearnerSubject, LearningItem
from wordbank.delivery import DeliveryKind, DeliverySelector, ItemStore, SchedulingEngine
from wordbank.delivery.scheduler import ItemState, ItemStatus
from wordbank.errors import GenerationError, NoContentAvailable, QuotaExceeded
from wordbank.generation import GenerationResult, GenerationStats, GenerationStrategy
from wordbank.quota import QuotaStatus


class FakeOrchestrator:
    """Returns pre-existing catalog terms as if they had been generated."""

    def __init__(self, term_ids=(), error=None, delay=0.0):
        self.term_ids = list(term_ids)
        self.error = error
        self.delay = delay
        self.calls = []

    async def generate(self, subject_id, desired_count=1, strategy=None, user_id=None):
        self.calls.append(
            {"subject_id": subject_id, "count": desired_count, "strategy": strategy, "user_id": user_id}
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return GenerationResult(
            subject_id=subject_id,
            terms=[],
            recycled_term_ids=list(self.term_ids),
            stats=GenerationStats(strategy=GenerationStrategy.SOURCE_FIRST),
        )


@pytest.fixture
def store(db_session):
    return ItemStore(db_session)


@pytest.fixture
def build_selector(store, clock):
    def _build(orchestrator=None, timeout=5.0, rng=None):
        return DeliverySelector(
            store,
            SchedulingEngine(),
            orchestrator,
            generation_timeout=timeout,
            rng=rng or random.Random(7),
            clock=clock,
        )

    return _build


@pytest.fixture
def photography(make_subject, store):
    """A subject the learner "alice" studies."""
    subject = make_subject("Photography")
    store.set_subjects("alice", {subject.id: None})
    return subject


def denied(usage=3, limit=3, next_reset=None):
    return QuotaStatus(
        user_id="alice", tier="free", allowed=False, usage=usage, limit=limit, next_reset=next_reset
    )


def count(db_session, model):
    return db_session.scalar(select(func.count()).select_from(model))


def scheduler_initial(clock):
    return SchedulingEngine().initial_state(clock.now)


# =============================================================================
# Review Path
# =============================================================================


class TestReviewDelivery:
    @pytest.mark.asyncio
    async def test_overdue_item_beats_generation(self, build_selector, store, photography, make_term, clock):
        aperture = make_term(photography, "Aperture")
        store.create_item(
            "alice", aperture.id, ItemState(ItemStatus.LEARNING, 1, clock.now - timedelta(hours=2))
        )
        orchestrator = FakeOrchestrator()

        delivery = await build_selector(orchestrator).next("alice")

        assert delivery.kind == DeliveryKind.REVIEW.value
        assert delivery.term_id == aperture.id
        assert orchestrator.calls == []

    @pytest.mark.asyncio
    async def test_most_overdue_first(self, build_selector, store, photography, make_term, clock):
        older = make_term(photography, "Aperture")
        newer = make_term(photography, "Bokeh")
        store.create_item("alice", newer.id, ItemState(ItemStatus.LEARNING, 0, clock.now - timedelta(hours=1)))
        store.create_item("alice", older.id, ItemState(ItemStatus.LEARNING, 0, clock.now - timedelta(days=3)))

        delivery = await build_selector().next("alice")

        assert delivery.term_id == older.id

    @pytest.mark.asyncio
    async def test_review_ignores_quota(self, build_selector, store, photography, make_term, clock):
        aperture = make_term(photography, "Aperture")
        store.create_item("alice", aperture.id, scheduler_initial(clock))

        delivery = await build_selector().next("alice", quota=denied())

        assert delivery.kind == "review"

    @pytest.mark.asyncio
    async def test_archived_and_future_items_are_skipped(
        self, build_selector, store, photography, make_term, clock
    ):
        archived = make_term(photography, "Aperture")
        future = make_term(photography, "Bokeh")
        fresh = make_term(photography, "ISO")
        store.create_item(
            "alice", archived.id, ItemState(ItemStatus.ARCHIVED, 1, clock.now - timedelta(days=1))
        )
        store.create_item("alice", future.id, ItemState(ItemStatus.LEARNING, 1, clock.now + timedelta(days=1)))

        delivery = await build_selector(FakeOrchestrator([fresh.id])).next("alice")

        assert delivery.kind == DeliveryKind.NEW.value
        assert delivery.term_id == fresh.id


# =============================================================================
# Generation Path
# =============================================================================


class TestNewDelivery:
    @pytest.mark.asyncio
    async def test_generated_term_becomes_new_item(self, build_selector, store, photography, make_term, clock):
        iso = make_term(photography, "ISO")
        orchestrator = FakeOrchestrator([iso.id])

        delivery = await build_selector(orchestrator).next("alice", strategy="model_first")

        assert delivery.kind == "new"
        item = store.get_item("alice", iso.id)
        assert item.status == ItemStatus.LEARNING.value
        assert item.bucket == 0
        assert item.next_review_at == clock.now
        assert orchestrator.calls == [
            {"subject_id": photography.id, "count": 1, "strategy": "model_first", "user_id": "alice"}
        ]

    @pytest.mark.asyncio
    async def test_denied_quota_blocks_generation(self, build_selector, photography):
        orchestrator = FakeOrchestrator()

        with pytest.raises(QuotaExceeded) as exc_info:
            await build_selector(orchestrator).next("alice", quota=denied(usage=3, limit=3))

        assert exc_info.value.usage == 3
        assert orchestrator.calls == []

    @pytest.mark.asyncio
    async def test_term_already_in_wordbank_is_skipped(
        self, build_selector, store, photography, make_term, clock
    ):
        known = make_term(photography, "Aperture")
        fresh = make_term(photography, "Bokeh")
        store.create_item("alice", known.id, ItemState(ItemStatus.LEARNING, 2, clock.now + timedelta(days=7)))

        delivery = await build_selector(FakeOrchestrator([known.id, fresh.id])).next("alice")

        assert delivery.term_id == fresh.id
        assert delivery.kind == "new"

    @pytest.mark.asyncio
    async def test_nothing_usable(self, build_selector, store, photography, make_term, clock):
        known = make_term(photography, "Aperture")
        store.create_item("alice", known.id, ItemState(ItemStatus.LEARNING, 2, clock.now + timedelta(days=7)))

        with pytest.raises(NoContentAvailable):
            await build_selector(FakeOrchestrator([known.id])).next("alice")

    @pytest.mark.asyncio
    async def test_generation_error_means_no_content(self, build_selector, photography, db_session):
        orchestrator = FakeOrchestrator(error=GenerationError("all phases failed"))

        with pytest.raises(NoContentAvailable):
            await build_selector(orchestrator).next("alice")

        assert count(db_session, Delivery) == 0

    @pytest.mark.asyncio
    async def test_timeout_leaves_no_rows(self, build_selector, photography, make_term, db_session):
        iso = make_term(photography, "ISO")
        orchestrator = FakeOrchestrator([iso.id], delay=1.0)

        with pytest.raises(NoContentAvailable, match="timed out"):
            await build_selector(orchestrator, timeout=0.01).next("alice")

        assert count(db_session, LearningItem) == 0
        assert count(db_session, Delivery) == 0

    @pytest.mark.asyncio
    async def test_no_subjects(self, build_selector):
        with pytest.raises(NoContentAvailable):
            await build_selector(FakeOrchestrator()).next("alice")

    @pytest.mark.asyncio
    async def test_generation_disabled(self, build_selector, photography):
        with pytest.raises(NoContentAvailable):
            await build_selector(None).next("alice")


# =============================================================================
# Subject Weighting
# =============================================================================


class TestPickSubject:
    def subjects(self, *weights):
        return [LearnerSubject(user_id="alice", subject_id=i + 1, weight=w) for i, w in enumerate(weights)]

    def draw(self, selector, subjects, n=4000):
        return Counter(selector.pick_subject(subjects).subject_id for _ in range(n))

    def test_weights_bias_choice(self, build_selector):
        counts = self.draw(build_selector(rng=random.Random(42)), self.subjects(3.0, 1.0))
        share = counts[1] / sum(counts.values())
        assert 0.70 < share < 0.80

    def test_zero_weight_never_chosen(self, build_selector):
        counts = self.draw(build_selector(), self.subjects(0.0, 2.0), n=200)
        assert counts[1] == 0

    def test_unweighted_is_uniform(self, build_selector):
        counts = self.draw(build_selector(rng=random.Random(42)), self.subjects(None, None))
        share = counts[1] / sum(counts.values())
        assert 0.45 < share < 0.55

    def test_missing_weight_counts_as_one(self, build_selector):
        counts = self.draw(build_selector(rng=random.Random(42)), self.subjects(None, 3.0))
        share = counts[1] / sum(counts.values())
        assert 0.20 < share < 0.30
