"""On-demand vocabulary generation: pipelines, deduplication, catalog persistence."""

from .catalog import CatalogStore
from .dedup import DeduplicationGuard
from .model_client import TermModel
from .models import (
    GeneratedTerm,
    GenerationResult,
    GenerationStats,
    GenerationStrategy,
    Provenance,
    SourceEntry,
    normalize_term,
)
from .orchestrator import GenerationOrchestrator
from .sources import DictionarySource, KnowledgeSource, WikipediaSource
from .strategies import ModelFirstPipeline, Pipeline, SourceFirstPipeline
from .transport import RetryingClient

__all__ = [
    "CatalogStore",
    "DeduplicationGuard",
    "DictionarySource",
    "GeneratedTerm",
    "GenerationOrchestrator",
    "GenerationResult",
    "GenerationStats",
    "GenerationStrategy",
    "KnowledgeSource",
    "ModelFirstPipeline",
    "Pipeline",
    "Provenance",
    "RetryingClient",
    "SourceEntry",
    "SourceFirstPipeline",
    "TermModel",
    "WikipediaSource",
    "normalize_term",
]
