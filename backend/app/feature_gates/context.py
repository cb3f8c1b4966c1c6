"""Convenience wrapper around a resolved plan for feature gating."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Union

from ..entitlements.limits import LimitValue
from ..entitlements.models import EffectivePlan, Feature, PlanSource, ResourceKind
from ..entitlements.quota import QuotaEvaluation
from ..entitlements.service import evaluate_plan_limit
from .enforcement import assert_allowed, require_feature


@dataclass(frozen=True)
class EntitlementContext:
    """Facade exposing gating-centric helpers for an already resolved plan.

    Useful when one request performs several checks and should not resolve
    the plan more than once.
    """

    plan: EffectivePlan

    @property
    def features(self) -> Dict[str, bool]:
        return dict(self.plan.features)

    @property
    def plan_name(self) -> str:
        return self.plan.plan_name

    @property
    def source(self) -> PlanSource:
        return self.plan.source

    def has(self, feature: Union[Feature, str]) -> bool:
        """Return whether the feature is enabled; unknown names are disabled."""

        name = feature.value if isinstance(feature, Feature) else feature
        return self.plan.has_feature(name)

    def require(self, feature: Union[Feature, str], *, error_code: str = "feature_not_available") -> None:
        require_feature(self.plan, feature, error_code=error_code)

    def limit_for(self, kind: ResourceKind) -> LimitValue:
        return self.plan.limit_for(kind)

    def evaluate(self, kind: ResourceKind, current: int) -> QuotaEvaluation:
        return evaluate_plan_limit(self.plan, kind, current)

    def assert_within(
        self,
        kind: ResourceKind,
        current: int,
        *,
        message: Optional[str] = None,
    ) -> QuotaEvaluation:
        """Raise when one more ``kind`` resource would exceed the plan."""

        return assert_allowed(self.evaluate(kind, current), message=message)
