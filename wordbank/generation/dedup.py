"""
Deduplication Guard.

Screens generated candidates before persistence:

- a candidate whose normalized text already exists for the same subject, or
  that repeats an earlier candidate of the same run, is a duplicate
- a candidate scoring below the confidence floor is dropped as low confidence

Duplicates of catalog terms are remembered so the caller can recycle them.
Neither case raises; both are only counted.
"""

from __future__ import annotations

from collections.abc import Iterable

from loguru import logger

from .catalog import CatalogStore
from .models import GeneratedTerm


class DeduplicationGuard:
    """Per-run duplicate and confidence filter for one subject."""

    def __init__(self, catalog: CatalogStore, subject_id: int, min_confidence: float = 0.5):
        self.catalog = catalog
        self.subject_id = subject_id
        self.min_confidence = min_confidence

        self.survivors: list[GeneratedTerm] = []
        self.recycled_term_ids: list[int] = []
        self.duplicates_removed = 0
        self.low_confidence_dropped = 0
        self._seen: set[str] = set()

    def seen_terms(self) -> list[str]:
        """Term texts kept or matched in the catalog so far (for model exclusion lists)."""
        return sorted(self._seen)

    def is_duplicate(self, candidate: GeneratedTerm) -> bool:
        """Check the batch and the catalog, recording catalog matches for recycling."""
        key = candidate.normalized
        if key in self._seen:
            return True
        existing_id = self.catalog.find_existing(self.subject_id, candidate.term)
        if existing_id is not None:
            self._seen.add(key)
            if existing_id not in self.recycled_term_ids:
                self.recycled_term_ids.append(existing_id)
            return True
        return False

    def screen(self, candidates: Iterable[GeneratedTerm]) -> list[GeneratedTerm]:
        """
        Filter a batch of candidates.

        A candidate dropped for low confidence does not block a later
        candidate with the same text.

        Returns:
            The candidates of this batch that survived
        """
        kept = []
        for candidate in candidates:
            if not candidate.term or candidate.subject_id != self.subject_id:
                continue
            if self.is_duplicate(candidate):
                self.duplicates_removed += 1
                logger.debug(f"Duplicate dropped: {candidate.term!r}")
                continue
            if candidate.confidence < self.min_confidence:
                self.low_confidence_dropped += 1
                logger.debug(f"Low confidence dropped: {candidate.term!r} ({candidate.confidence:.2f})")
                continue
            self._seen.add(candidate.normalized)
            kept.append(candidate)
        self.survivors.extend(kept)
        return kept
