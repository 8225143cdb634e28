"""
Generation pipelines.

Source-first:
    knowledge sources propose candidates; the model fills any shortfall.
    Cheap per term, high per-call cap.

Model-first:
    the model proposes a batch which is then verified against knowledge
    sources; sources are the fallback if the model phase fails.
    Better coverage of niche subjects, low per-call cap.

Each pipeline feeds candidates through the run's DeduplicationGuard and
raises GenerationError only when every phase it attempted failed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from loguru import logger

from wordbank.db.models import Subject
from wordbank.errors import GenerationError

from .dedup import DeduplicationGuard
from .model_client import TermModel
from .models import GeneratedTerm, GenerationStats, Provenance, SourceEntry
from .sources import KnowledgeSource

# Candidates requested per desired term, to absorb duplicates
OVERFETCH = 3


class Pipeline(ABC):
    """Base class for generation pipelines."""

    def __init__(
        self,
        sources: Sequence[KnowledgeSource],
        model: TermModel | None,
        max_terms: int,
    ):
        self.sources = list(sources)
        self.model = model
        self.max_terms = max_terms

    def request_size(self, desired: int) -> int:
        return max(1, min(self.max_terms, desired * OVERFETCH))

    @abstractmethod
    async def run(
        self,
        subject: Subject,
        desired: int,
        guard: DeduplicationGuard,
        stats: GenerationStats,
    ) -> None:
        """Produce candidates for ``subject`` into ``guard.survivors``."""

    def _take(self, subject: Subject, entries: list[SourceEntry], stats: GenerationStats) -> list[GeneratedTerm]:
        room = self.max_terms - stats.candidates
        candidates = [GeneratedTerm.from_entry(subject.id, entry) for entry in entries[: max(room, 0)]]
        stats.candidates += len(candidates)
        return candidates

    async def _from_sources(
        self,
        subject: Subject,
        desired: int,
        guard: DeduplicationGuard,
        stats: GenerationStats,
    ) -> tuple[int, int]:
        """Query every source until enough survivors exist. Returns (attempted, failed)."""
        attempted = failed = 0
        for source in self.sources:
            if len(guard.survivors) >= desired or stats.candidates >= self.max_terms:
                break
            attempted += 1
            try:
                entries = await source.fetch_candidates(subject.name, self.request_size(desired))
            except GenerationError as e:
                failed += 1
                stats.source_errors += 1
                logger.warning(f"Source {source.name} failed for {subject.name!r}: {e}")
                continue
            guard.screen(self._take(subject, entries, stats))
        return attempted, failed

    async def _from_model(
        self,
        subject: Subject,
        count: int,
        guard: DeduplicationGuard,
        stats: GenerationStats,
        verify: bool = False,
    ) -> tuple[int, int]:
        """Ask the model for ``count`` terms. Returns (attempted, failed)."""
        if self.model is None or not self.model.available:
            return 0, 0
        try:
            entries = await self.model.generate_terms(
                subject.name, count, exclude=guard.seen_terms()
            )
        except GenerationError as e:
            stats.model_errors += 1
            logger.warning(f"Model generation failed for {subject.name!r}: {e}")
            return 1, 1
        if verify:
            entries = [await self._verify(entry, stats) for entry in entries]
        guard.screen(self._take(subject, entries, stats))
        return 1, 0

    async def _verify(self, entry: SourceEntry, stats: GenerationStats) -> SourceEntry:
        """Cross-check a model entry against the sources; first hit wins."""
        for source in self.sources:
            try:
                found = await source.lookup(entry.term)
            except GenerationError as e:
                stats.source_errors += 1
                logger.debug(f"Verification lookup failed on {source.name}: {e}")
                continue
            if found is None or not found.definition:
                continue
            entry.provenance = Provenance.MODEL_VERIFIED
            entry.source_url = found.source_url or entry.source_url
            if not entry.definition.strip():
                entry.definition = found.definition
            entry.examples = entry.examples or found.examples
            return entry
        return entry


class SourceFirstPipeline(Pipeline):
    """Sources first, model for the shortfall."""

    async def run(self, subject, desired, guard, stats):
        attempted, failed = await self._from_sources(subject, desired, guard, stats)
        shortfall = desired - len(guard.survivors)
        if shortfall > 0 and stats.candidates < self.max_terms:
            logger.debug(f"Sources left a shortfall of {shortfall} for {subject.name!r}")
            model_attempted, model_failed = await self._from_model(
                subject, self.request_size(shortfall), guard, stats
            )
            attempted += model_attempted
            failed += model_failed
        if attempted and failed == attempted:
            raise GenerationError(f"All source-first phases failed for {subject.name!r}")


class ModelFirstPipeline(Pipeline):
    """Model batch, optionally verified; sources if the model fails."""

    def __init__(
        self,
        sources: Sequence[KnowledgeSource],
        model: TermModel | None,
        max_terms: int,
        enrich: bool = True,
    ):
        super().__init__(sources, model, max_terms)
        self.enrich = enrich

    async def run(self, subject, desired, guard, stats):
        attempted, failed = await self._from_model(
            subject, self.request_size(desired), guard, stats, verify=self.enrich
        )
        if attempted == failed:
            source_attempted, source_failed = await self._from_sources(subject, desired, guard, stats)
            attempted += source_attempted
            failed += source_failed
        if attempted and failed == attempted:
            raise GenerationError(f"All model-first phases failed for {subject.name!r}")
