"""Helpers for enforcing entitlement checks on API and service layers."""
from __future__ import annotations

from typing import Mapping, Union

from ..entitlements.models import EffectivePlan, Feature
from ..entitlements.quota import QuotaEvaluation
from .exceptions import FeatureGateError, QuotaExceededError


def require_feature(
    plan: Union[EffectivePlan, Mapping[str, object]],
    feature: Union[Feature, str],
    *,
    error_code: str = "feature_not_available",
    message: str | None = None,
) -> None:
    """Ensure a boolean feature flag is enabled before proceeding.

    Parameters
    ----------
    plan:
        Either a resolved :class:`EffectivePlan` or a mapping of feature flags.
    feature:
        The feature flag that must be exactly ``True``. Unknown names are
        treated as disabled.
    error_code:
        Optional override for the surfaced error code when the feature is not
        available. Defaults to ``"feature_not_available"``.
    message:
        Optional human-friendly message explaining the failure. If omitted, a
        default message mentioning the missing flag is used.
    """

    name = feature.value if isinstance(feature, Feature) else feature
    flags = plan.features if isinstance(plan, EffectivePlan) else plan
    if flags.get(name) is True:
        return

    detail = {"missing_feature": name}
    if isinstance(plan, EffectivePlan):
        detail["plan"] = plan.plan_name
    raise FeatureGateError(
        code=error_code,
        message=message or f"Feature '{name}' is not available on the current plan.",
        detail=detail,
    )


def assert_allowed(evaluation: QuotaEvaluation, *, message: str | None = None) -> QuotaEvaluation:
    """Raise :class:`QuotaExceededError` when the evaluation is a denial."""

    if not evaluation.allowed:
        raise QuotaExceededError(evaluation, message=message)
    return evaluation
