"""
Knowledge sources.

Simple lookup clients over public reference APIs. A source can propose
candidate terms for a subject (``fetch_candidates``) and/or define a single
term (``lookup``). Sources that cannot enumerate terms return an empty list.
"""

from __future__ import annotations

from typing import Any, Protocol
from urllib.parse import quote

from loguru import logger

from wordbank.errors import GenerationTransportError

from .models import Provenance, SourceEntry
from .transport import RetryingClient


class KnowledgeSource(Protocol):
    """Interface every knowledge source implements."""

    name: str

    async def fetch_candidates(self, subject: str, limit: int) -> list[SourceEntry]:
        ...

    async def lookup(self, term: str) -> SourceEntry | None:
        ...


def _first_sentences(text: str, limit: int = 2) -> str:
    sentences = [s.strip() for s in text.replace("\n", " ").split(". ") if s.strip()]
    joined = ". ".join(sentences[:limit])
    if joined and not joined.endswith("."):
        joined += "."
    return joined


# =============================================================================
# Wikipedia
# =============================================================================


class WikipediaSource:
    """Wikipedia REST API: page summaries and related pages."""

    name = "wikipedia"

    def __init__(self, client: RetryingClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip("/")

    @staticmethod
    def _title(text: str) -> str:
        return quote(text.strip().replace(" ", "_"), safe="")

    @staticmethod
    def _entry_from_page(page: dict[str, Any]) -> SourceEntry | None:
        if page.get("type") == "disambiguation":
            return None
        title = page.get("title") or ""
        extract = page.get("extract") or ""
        if not title or not extract:
            return None
        url = (page.get("content_urls") or {}).get("desktop", {}).get("page")
        return SourceEntry(
            term=title,
            definition=_first_sentences(extract),
            provenance=Provenance.WIKIPEDIA,
            source_url=url,
            facts=[page["description"]] if page.get("description") else [],
        )

    async def fetch_candidates(self, subject: str, limit: int) -> list[SourceEntry]:
        """Terms from the pages Wikipedia lists as related to the subject."""
        try:
            data = await self.client.get_json(f"{self.base_url}/page/related/{self._title(subject)}")
        except GenerationTransportError as e:
            if e.status_code == 404:
                logger.debug(f"No Wikipedia page for subject {subject!r}")
                return []
            raise

        entries = []
        for page in data.get("pages", []):
            entry = self._entry_from_page(page)
            if entry is not None:
                entries.append(entry)
            if len(entries) >= limit:
                break
        return entries

    async def lookup(self, term: str) -> SourceEntry | None:
        try:
            data = await self.client.get_json(f"{self.base_url}/page/summary/{self._title(term)}")
        except GenerationTransportError as e:
            if e.status_code == 404:
                return None
            raise
        return self._entry_from_page(data)


# =============================================================================
# Dictionary
# =============================================================================


class DictionarySource:
    """Free dictionary API (dictionaryapi.dev): single-word definitions."""

    name = "dictionary"

    def __init__(self, client: RetryingClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def fetch_candidates(self, subject: str, limit: int) -> list[SourceEntry]:
        # A dictionary cannot enumerate the vocabulary of a subject.
        return []

    async def lookup(self, term: str) -> SourceEntry | None:
        try:
            data = await self.client.get_json(f"{self.base_url}/{quote(term.strip(), safe='')}")
        except GenerationTransportError as e:
            if e.status_code == 404:
                return None
            raise

        if not isinstance(data, list) or not data:
            return None
        entry = data[0]
        definitions: list[str] = []
        examples: list[str] = []
        for meaning in entry.get("meanings", []):
            for definition in meaning.get("definitions", []):
                if definition.get("definition"):
                    definitions.append(definition["definition"])
                if definition.get("example"):
                    examples.append(definition["example"])
        if not definitions:
            return None
        source_urls = entry.get("sourceUrls") or []
        return SourceEntry(
            term=entry.get("word") or term,
            definition=definitions[0],
            provenance=Provenance.DICTIONARY,
            source_url=source_urls[0] if source_urls else None,
            examples=examples[:3],
        )
