"""
Subscription tier configuration.

Static, read-only at runtime. Unknown tier names resolve to the free tier.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ResetPeriod(str, Enum):
    """How often a tier's usage counter starts over."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    NEVER = "never"


@dataclass(frozen=True)
class TierConfig:
    """Limits attached to a subscription tier."""

    name: str
    max_requests_per_period: int
    reset_period: ResetPeriod
    max_terms_per_request: int
    features: tuple[str, ...] = field(default_factory=tuple)


DEFAULT_TIER = "free"

TIER_CONFIGS: dict[str, TierConfig] = {
    "free": TierConfig(
        name="Free",
        max_requests_per_period=3,
        reset_period=ResetPeriod.DAILY,
        max_terms_per_request=5,
        features=("Basic vocabulary", "Standard definitions"),
    ),
    "basic": TierConfig(
        name="Basic",
        max_requests_per_period=10,
        reset_period=ResetPeriod.WEEKLY,
        max_terms_per_request=10,
        features=("Enhanced vocabulary", "Examples included"),
    ),
    "premium": TierConfig(
        name="Premium",
        max_requests_per_period=50,
        reset_period=ResetPeriod.MONTHLY,
        max_terms_per_request=25,
        features=("Comprehensive vocabulary", "Rich facts", "Advanced examples"),
    ),
    "enterprise": TierConfig(
        name="Enterprise",
        max_requests_per_period=100,
        reset_period=ResetPeriod.MONTHLY,
        max_terms_per_request=50,
        features=("Maximum vocabulary", "Full fact coverage", "Priority processing"),
    ),
}


def get_tier_config(tier: str | None) -> TierConfig:
    """Look up a tier, falling back to the free tier."""
    return TIER_CONFIGS.get((tier or "").lower(), TIER_CONFIGS[DEFAULT_TIER])


def is_known_tier(tier: str) -> bool:
    return tier.lower() in TIER_CONFIGS


def next_tier(tier: str) -> str | None:
    """The tier above ``tier`` in upgrade order, or None at the top."""
    names = list(TIER_CONFIGS)
    try:
        index = names.index(tier.lower())
    except ValueError:
        return None
    return names[index + 1] if index + 1 < len(names) else None
