"""
Error taxonomy for the wordbank engine.

Quota and generation outcomes are terminal and surfaced to callers as typed
errors. ConcurrentCreateConflict never leaves the delivery package.
"""

from __future__ import annotations

from datetime import datetime


class WordbankError(Exception):
    """Base class for engine errors."""


class QuotaExceeded(WordbankError):
    """The learner has used up the generation quota for the current period."""

    def __init__(self, usage: int, limit: int, next_reset: datetime | None):
        self.usage = usage
        self.limit = limit
        self.next_reset = next_reset
        when = next_reset.isoformat() if next_reset else "never"
        super().__init__(f"Quota exceeded ({usage}/{limit}), resets at {when}")


class NoContentAvailable(WordbankError):
    """No due item exists and generation produced nothing usable."""


class GenerationError(WordbankError):
    """A content pipeline failed after transport-level retries."""


class GenerationTimeout(GenerationError):
    """A content pipeline did not answer within its deadline."""


class GenerationTransportError(GenerationError):
    """A content pipeline request failed at the transport or HTTP layer."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ConcurrentCreateConflict(WordbankError):
    """Another request created the same (user, term) learning item first."""

    def __init__(self, user_id: str, term_id: int):
        self.user_id = user_id
        self.term_id = term_id
        super().__init__(f"Learning item for user {user_id}, term {term_id} already exists")


class InvalidAction(WordbankError):
    """A reported action is not part of the scheduling action set."""

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Invalid action: {action!r}")


class DeliveryNotFound(WordbankError):
    """No delivery exists with the given id."""


class ItemNotFound(WordbankError):
    """No learning item exists for the given user and term."""
