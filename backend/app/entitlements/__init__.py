"""Entitlement engine: plan catalog, subscription resolution and quota evaluation."""

from .cache import EntitlementCache, InMemoryEntitlementCache
from .catalog import DEFAULT_PLAN_DEFINITIONS, PlanCatalog, PlanRepository
from .config import EntitlementConfig, load_entitlement_config
from .exceptions import (
    EntitlementError,
    NoDefaultPlanError,
    NotFoundError,
    PlanNotFoundError,
    PlanValidationError,
    PrincipalNotFoundError,
    SubscriptionNotFoundError,
    SubscriptionValidationError,
)
from .limits import UNLIMITED, UNLIMITED_SENTINEL, Bounded, LimitValue, Unlimited, parse_limit
from .models import (
    KNOWN_FEATURES,
    Account,
    EffectivePlan,
    Feature,
    ParticipantProfile,
    Plan,
    PlanDefinition,
    PlanSource,
    Principal,
    PrincipalKind,
    ResourceKind,
    Subscription,
    SubscriptionStatus,
)
from .quota import QuotaEvaluation, QuotaReason, deny, evaluate_limit
from .resolver import (
    DefaultPlanStrategy,
    DirectSubscriptionStrategy,
    InheritedSubscriptionStrategy,
    PrincipalDirectory,
    ResolutionStrategy,
    SubscriptionRepository,
    SubscriptionResolver,
    build_default_strategies,
    restricted_plan,
)
from .service import UNSET, EntitlementService, evaluate_plan_limit

__all__ = [
    "DEFAULT_PLAN_DEFINITIONS",
    "KNOWN_FEATURES",
    "UNLIMITED",
    "UNLIMITED_SENTINEL",
    "UNSET",
    "Account",
    "Bounded",
    "DefaultPlanStrategy",
    "DirectSubscriptionStrategy",
    "EffectivePlan",
    "EntitlementCache",
    "EntitlementConfig",
    "EntitlementError",
    "EntitlementService",
    "Feature",
    "InMemoryEntitlementCache",
    "InheritedSubscriptionStrategy",
    "LimitValue",
    "NoDefaultPlanError",
    "NotFoundError",
    "ParticipantProfile",
    "Plan",
    "PlanCatalog",
    "PlanDefinition",
    "PlanNotFoundError",
    "PlanRepository",
    "PlanSource",
    "PlanValidationError",
    "Principal",
    "PrincipalDirectory",
    "PrincipalKind",
    "PrincipalNotFoundError",
    "QuotaEvaluation",
    "QuotaReason",
    "ResolutionStrategy",
    "ResourceKind",
    "Subscription",
    "SubscriptionNotFoundError",
    "SubscriptionRepository",
    "SubscriptionResolver",
    "SubscriptionStatus",
    "SubscriptionValidationError",
    "Unlimited",
    "build_default_strategies",
    "deny",
    "evaluate_limit",
    "evaluate_plan_limit",
    "load_entitlement_config",
    "parse_limit",
    "restricted_plan",
]
