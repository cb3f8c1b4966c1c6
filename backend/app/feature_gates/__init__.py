"""Feature gating utilities coordinating entitlement enforcement."""
from .context import EntitlementContext
from .enforcement import assert_allowed, require_feature
from .exceptions import FeatureGateError, QuotaExceededError
from .quota import ResourceQuotaChecker
from .usage import UsageCounter

__all__ = [
    "EntitlementContext",
    "FeatureGateError",
    "QuotaExceededError",
    "ResourceQuotaChecker",
    "UsageCounter",
    "assert_allowed",
    "require_feature",
]
