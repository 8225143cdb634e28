"""
Generation data types.

GeneratedTerm is the uniform output of both pipelines; GenerationStats and
GenerationResult carry the per-run counters back to the caller.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

_WHITESPACE = re.compile(r"\s+")


class GenerationStrategy(str, Enum):
    """Interchangeable content pipelines."""

    SOURCE_FIRST = "source_first"
    MODEL_FIRST = "model_first"


class Provenance(str, Enum):
    """Where a term's definition came from."""

    WIKIPEDIA = "wikipedia"
    DICTIONARY = "dictionary"
    MODEL = "model"
    MODEL_VERIFIED = "model+verified"


# Confidence assigned per provenance
SOURCE_CONFIDENCE = 0.9
MODEL_CONFIDENCE = 0.7
VERIFIED_MODEL_CONFIDENCE = 0.85


def normalize_term(text: str) -> str:
    """Casefold and collapse whitespace; the key for duplicate detection."""
    return _WHITESPACE.sub(" ", text).strip().casefold()


@dataclass
class SourceEntry:
    """A definition as returned by a knowledge source or model."""

    term: str
    definition: str
    provenance: Provenance
    source_url: str | None = None
    examples: list[str] = field(default_factory=list)
    facts: list[str] = field(default_factory=list)


@dataclass
class GeneratedTerm:
    """A candidate vocabulary term for one subject."""

    subject_id: int
    term: str
    definition: str
    provenance: Provenance
    confidence: float
    examples: list[str] = field(default_factory=list)
    facts: list[str] = field(default_factory=list)
    source_url: str | None = None
    term_id: int | None = None  # set once persisted

    @property
    def normalized(self) -> str:
        return normalize_term(self.term)

    @classmethod
    def from_entry(cls, subject_id: int, entry: SourceEntry) -> GeneratedTerm:
        """Wrap a source or model entry, scoring it by provenance."""
        if entry.provenance is Provenance.MODEL_VERIFIED:
            confidence = VERIFIED_MODEL_CONFIDENCE
        elif entry.provenance is Provenance.MODEL:
            confidence = MODEL_CONFIDENCE
        elif entry.source_url:
            confidence = SOURCE_CONFIDENCE
        else:
            confidence = MODEL_CONFIDENCE
        if not entry.definition.strip():
            confidence = 0.0
        return cls(
            subject_id=subject_id,
            term=entry.term.strip(),
            definition=entry.definition.strip(),
            provenance=entry.provenance,
            confidence=confidence,
            examples=list(entry.examples),
            facts=list(entry.facts),
            source_url=entry.source_url,
        )


@dataclass
class GenerationStats:
    """Counters for one orchestrator run."""

    strategy: GenerationStrategy
    candidates: int = 0
    duplicates_removed: int = 0
    low_confidence_dropped: int = 0
    persisted: int = 0
    source_errors: int = 0
    model_errors: int = 0
    elapsed_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "candidates": self.candidates,
            "duplicates_removed": self.duplicates_removed,
            "low_confidence_dropped": self.low_confidence_dropped,
            "persisted": self.persisted,
            "source_errors": self.source_errors,
            "model_errors": self.model_errors,
            "elapsed_ms": self.elapsed_ms,
        }


@dataclass
class GenerationResult:
    """
    Outcome of ``GenerationOrchestrator.generate``.

    ``terms`` are freshly persisted catalog terms; ``recycled_term_ids`` are
    existing catalog terms that candidates duplicated.
    """

    subject_id: int
    terms: list[GeneratedTerm]
    recycled_term_ids: list[int]
    stats: GenerationStats

    @property
    def usable_term_ids(self) -> list[int]:
        """Fresh terms first, then recycled ones, without repeats."""
        ids: list[int] = []
        for term_id in [t.term_id for t in self.terms] + self.recycled_term_ids:
            if term_id is not None and term_id not in ids:
                ids.append(term_id)
        return ids
