"""
HTTP transport for content pipelines.

Every upstream request (knowledge sources, generation model) goes through
``RetryingClient``: bounded attempts with exponential backoff on timeouts,
5xx responses and connection errors. 4xx responses are not retried.
Exhausted retries surface as GenerationTimeout / GenerationTransportError.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
from loguru import logger

from wordbank.errors import GenerationTimeout, GenerationTransportError


class RetryingClient:
    """Async JSON client with retry and backoff."""

    def __init__(
        self,
        timeout_seconds: float = 10.0,
        retry_attempts: int = 3,
        backoff_seconds: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the client.

        Args:
            timeout_seconds: Per-request timeout
            retry_attempts: Attempts per request (at least one)
            backoff_seconds: First retry delay; doubles on every retry
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.retry_attempts = max(1, retry_attempts)
        self.backoff_seconds = backoff_seconds
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=True,
            transport=transport,
            headers={"User-Agent": "wordbank-engine/0.1"},
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> RetryingClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _backoff(self, attempt: int, reason: str, url: str) -> None:
        if attempt >= self.retry_attempts - 1:
            return
        wait_time = self.backoff_seconds * (2**attempt)
        logger.warning(
            f"{reason} for {url} on attempt {attempt + 1}/{self.retry_attempts}. "
            f"Retrying in {wait_time:.1f}s..."
        )
        await asyncio.sleep(wait_time)

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        Send a request and decode the JSON body.

        Raises:
            GenerationTimeout: If every attempt timed out
            GenerationTransportError: On a 4xx response, an undecodable body,
                or when retries are exhausted for any other failure
        """
        last_error: Exception | None = None
        timed_out = False

        for attempt in range(self.retry_attempts):
            try:
                response = await self.client.request(
                    method, url, params=params, json=json, headers=headers
                )
                response.raise_for_status()
                return response.json()

            except httpx.TimeoutException as e:
                last_error = e
                timed_out = True
                await self._backoff(attempt, "Timeout", url)

            except httpx.HTTPStatusError as e:
                last_error = e
                timed_out = False
                status = e.response.status_code
                if status < 500:
                    logger.debug(f"Upstream client error {status} for {url}")
                    raise GenerationTransportError(
                        f"Upstream returned {status} for {url}", status_code=status
                    ) from e
                await self._backoff(attempt, f"Server error {status}", url)

            except httpx.RequestError as e:
                last_error = e
                timed_out = False
                await self._backoff(attempt, f"Request error ({e})", url)

            except ValueError as e:
                raise GenerationTransportError(f"Invalid JSON from {url}: {e}") from e

        error_msg = f"Request to {url} failed after {self.retry_attempts} attempts"
        logger.error(f"{error_msg}: {last_error}")
        if timed_out:
            raise GenerationTimeout(error_msg)
        status_code = None
        if isinstance(last_error, httpx.HTTPStatusError):
            status_code = last_error.response.status_code
        raise GenerationTransportError(error_msg, status_code=status_code)

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request_json("GET", url, params=params)

    async def post_json(
        self, url: str, payload: dict[str, Any], headers: dict[str, str] | None = None
    ) -> Any:
        return await self.request_json("POST", url, json=payload, headers=headers)
