"""Errors raised by the entitlement engine."""
from __future__ import annotations


class EntitlementError(Exception):
    """Base class for entitlement domain errors."""


class PlanValidationError(EntitlementError, ValueError):
    """A plan definition failed validation."""


class SubscriptionValidationError(EntitlementError, ValueError):
    """Subscription input failed validation."""


class NotFoundError(EntitlementError, LookupError):
    """A record required by a direct lookup does not exist."""


class PlanNotFoundError(NotFoundError):
    def __init__(self, plan_ref: str) -> None:
        super().__init__(f"Plan not found: {plan_ref}")
        self.plan_ref = plan_ref


class SubscriptionNotFoundError(NotFoundError):
    def __init__(self, subscription_id: str) -> None:
        super().__init__(f"Subscription not found: {subscription_id}")
        self.subscription_id = subscription_id


class PrincipalNotFoundError(NotFoundError):
    def __init__(self, principal_ref: str) -> None:
        super().__init__(f"Principal not found: {principal_ref}")
        self.principal_ref = principal_ref


class NoDefaultPlanError(NotFoundError):
    def __init__(self) -> None:
        super().__init__("No active default plan is configured")
