"""
Term generation model client.

Talks to an OpenAI-compatible ``/chat/completions`` endpoint and turns the
reply into SourceEntry records. Prompt wording is deliberately plain; the
model is asked for a JSON array of {term, definition, examples, facts}.
"""

from __future__ import annotations

import json
import re
from typing import Any

from loguru import logger

from wordbank.errors import GenerationError

from .models import Provenance, SourceEntry
from .transport import RetryingClient

SYSTEM_PROMPT = (
    "You write vocabulary cards for adult learners. "
    "Reply with JSON only: an array of objects with keys "
    '"term", "definition", "examples" (list of strings) and "facts" (list of strings).'
)


class TermModel:
    """Generative model producing vocabulary for a subject."""

    name = "model"

    def __init__(
        self,
        client: RetryingClient,
        base_url: str,
        model_name: str,
        api_key: str | None = None,
        temperature: float = 0.7,
    ):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.model_name = model_name
        self.api_key = api_key
        self.temperature = temperature

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def _build_prompt(self, subject: str, count: int, exclude: list[str]) -> str:
        prompt = f"Give {count} distinct vocabulary terms a learner of {subject} should know."
        if exclude:
            prompt += " Do not include any of these terms: " + ", ".join(sorted(exclude)[:100]) + "."
        return prompt

    @staticmethod
    def _parse_response(content: str) -> list[dict[str, Any]]:
        """Parse the model reply into raw term dicts."""
        json_match = re.search(r"\[[\s\S]*\]", content)
        if not json_match:
            code_match = re.search(r"```(?:json)?\s*([\s\S]*?)```", content)
            if code_match:
                json_str = code_match.group(1).strip()
            else:
                return []
        else:
            json_str = json_match.group(0)

        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            logger.warning(f"JSON parse error in model reply: {e}")
            return []
        if isinstance(data, dict) and "terms" in data:
            data = data["terms"]
        if not isinstance(data, list):
            data = [data]
        return [item for item in data if isinstance(item, dict)]

    @staticmethod
    def _as_list(value: Any) -> list[str]:
        """Coerce a list-or-scalar field to a list of strings."""
        if not value:
            return []
        if not isinstance(value, list):
            value = [value]
        return [str(x) for x in value]

    async def generate_terms(
        self, subject: str, count: int, exclude: list[str] | None = None
    ) -> list[SourceEntry]:
        """
        Ask the model for ``count`` terms on ``subject``.

        Args:
            subject: Subject name
            count: Number of terms wanted
            exclude: Terms the model should not repeat

        Returns:
            Parsed entries (possibly fewer than ``count``)

        Raises:
            GenerationError: If no model is configured or the reply is malformed
        """
        if not self.available:
            raise GenerationError("No generation model configured")

        payload = {
            "model": self.model_name,
            "temperature": self.temperature,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": self._build_prompt(subject, count, exclude or [])},
            ],
        }
        data = await self.client.post_json(
            f"{self.base_url}/chat/completions",
            payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationError(f"Unexpected model response shape: {e}") from e

        entries = []
        for raw in self._parse_response(content or ""):
            term = str(raw.get("term") or "").strip()
            if not term:
                continue
            entries.append(
                SourceEntry(
                    term=term,
                    definition=str(raw.get("definition") or ""),
                    provenance=Provenance.MODEL,
                    examples=self._as_list(raw.get("examples")),
                    facts=self._as_list(raw.get("facts")),
                )
            )
        logger.debug(f"Model returned {len(entries)} term(s) for {subject!r}")
        return entries[:count]
