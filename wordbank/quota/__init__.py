from .guard import QuotaGuard, QuotaReport, QuotaStatus, next_reset_after, should_reset
from .tiers import TIER_CONFIGS, ResetPeriod, TierConfig, get_tier_config

__all__ = [
    "QuotaGuard",
    "QuotaReport",
    "QuotaStatus",
    "ResetPeriod",
    "TierConfig",
    "TIER_CONFIGS",
    "get_tier_config",
    "next_reset_after",
    "should_reset",
]
