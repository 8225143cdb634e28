"""
Generation Orchestrator.

Runs one pipeline for one subject, screens its candidates through the
DeduplicationGuard, persists the survivors to the catalog and writes one
generation log row per attempt.

The pipeline is chosen by the caller, else by the learner's stored
preference, else by the configured default. The orchestrator never switches
pipelines on its own.
"""

from __future__ import annotations

import asyncio
import time

from loguru import logger
from sqlalchemy.orm import Session

from config import Settings, get_settings
from wordbank.errors import GenerationError

from .catalog import CatalogStore
from .dedup import DeduplicationGuard
from .model_client import TermModel
from .models import GeneratedTerm, GenerationResult, GenerationStats, GenerationStrategy
from .sources import DictionarySource, WikipediaSource
from .strategies import ModelFirstPipeline, Pipeline, SourceFirstPipeline
from .transport import RetryingClient


class GenerationOrchestrator:
    """Strategy dispatch, deduplication and persistence for generated terms."""

    def __init__(
        self,
        catalog: CatalogStore,
        pipelines: dict[GenerationStrategy, Pipeline],
        default_strategy: GenerationStrategy = GenerationStrategy.SOURCE_FIRST,
        min_confidence: float = 0.5,
    ):
        self.catalog = catalog
        self.pipelines = pipelines
        self.default_strategy = default_strategy
        self.min_confidence = min_confidence

    @classmethod
    def from_settings(
        cls,
        db_session: Session,
        client: RetryingClient,
        settings: Settings | None = None,
    ) -> GenerationOrchestrator:
        """Wire the Wikipedia/dictionary sources and the model from settings."""
        settings = settings or get_settings()
        sources = [
            WikipediaSource(client, settings.wikipedia_api_url),
            DictionarySource(client, settings.dictionary_api_url),
        ]
        model = TermModel(
            client,
            base_url=settings.model_api_url,
            model_name=settings.model_name,
            api_key=settings.model_api_key,
        )
        pipelines: dict[GenerationStrategy, Pipeline] = {
            GenerationStrategy.SOURCE_FIRST: SourceFirstPipeline(
                sources, model, settings.source_first_max_terms
            ),
            GenerationStrategy.MODEL_FIRST: ModelFirstPipeline(
                sources, model, settings.model_first_max_terms, enrich=settings.enrich_model_first
            ),
        }
        return cls(
            CatalogStore(db_session),
            pipelines,
            default_strategy=GenerationStrategy(settings.default_generation_strategy),
            min_confidence=settings.min_confidence,
        )

    def resolve_strategy(
        self, strategy: GenerationStrategy | str | None, user_id: str | None = None
    ) -> GenerationStrategy:
        """
        Pick the pipeline: caller flag, then learner preference, then default.

        Raises:
            ValueError: If the caller flag names no known pipeline
        """
        if strategy is not None:
            return GenerationStrategy(strategy)
        preferred = self.catalog.preferred_strategy(user_id)
        if preferred:
            try:
                return GenerationStrategy(preferred)
            except ValueError:
                logger.warning(f"Ignoring unknown stored strategy {preferred!r} for user {user_id}")
        return self.default_strategy

    def _persist(self, guard: DeduplicationGuard, desired: int) -> tuple[list[GeneratedTerm], list[int]]:
        persisted: list[GeneratedTerm] = []
        recycled = list(guard.recycled_term_ids)
        for term in guard.survivors[:desired]:
            term_id = self.catalog.persist_term(term)
            if term_id is None:
                # Stored by a concurrent run between screening and insert
                existing_id = self.catalog.find_existing(term.subject_id, term.term)
                if existing_id is not None and existing_id not in recycled:
                    recycled.append(existing_id)
                continue
            persisted.append(term)
        return persisted, recycled

    async def generate(
        self,
        subject_id: int,
        desired_count: int = 1,
        strategy: GenerationStrategy | str | None = None,
        user_id: str | None = None,
    ) -> GenerationResult:
        """
        Generate and persist up to ``desired_count`` new terms.

        Args:
            subject_id: Catalog subject to generate for
            desired_count: Terms wanted (clipped to the pipeline's cap)
            strategy: Pipeline flag; None defers to learner/default
            user_id: Learner the run is for (preference lookup and logging)

        Returns:
            GenerationResult; zero terms is a valid outcome

        Raises:
            GenerationError: If the subject is unknown or every pipeline phase failed
        """
        subject = self.catalog.get_subject(subject_id)
        if subject is None:
            raise GenerationError(f"Unknown subject: {subject_id}")

        chosen = self.resolve_strategy(strategy, user_id)
        pipeline = self.pipelines[chosen]
        desired = max(1, min(desired_count, pipeline.max_terms))
        stats = GenerationStats(strategy=chosen)
        guard = DeduplicationGuard(self.catalog, subject.id, self.min_confidence)
        started = time.monotonic()

        logger.info(f"Generating {desired} term(s) for {subject.name!r} ({chosen.value})")
        try:
            await pipeline.run(subject, desired, guard, stats)
        except (GenerationError, asyncio.CancelledError) as e:
            stats.duplicates_removed = guard.duplicates_removed
            stats.low_confidence_dropped = guard.low_confidence_dropped
            stats.elapsed_ms = int((time.monotonic() - started) * 1000)
            message = str(e) or "Generation cancelled"
            self.catalog.log_generation(subject.id, stats, success=False, user_id=user_id, error_message=message)
            logger.error(f"Generation failed for {subject.name!r}: {message}")
            raise

        terms, recycled = self._persist(guard, desired)
        stats.duplicates_removed = guard.duplicates_removed
        stats.low_confidence_dropped = guard.low_confidence_dropped
        stats.persisted = len(terms)
        stats.elapsed_ms = int((time.monotonic() - started) * 1000)
        self.catalog.log_generation(subject.id, stats, success=True, user_id=user_id)

        logger.info(
            f"Generation for {subject.name!r}: {stats.persisted} new, "
            f"{stats.duplicates_removed} duplicates, {stats.low_confidence_dropped} low confidence"
        )
        return GenerationResult(
            subject_id=subject.id,
            terms=terms,
            recycled_term_ids=recycled,
            stats=stats,
        )
