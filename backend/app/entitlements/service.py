"""Entitlement engine facade: plan resolution, quota checks, feature gates and plan assignment."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union
from uuid import uuid4

from .cache import EntitlementCache
from .catalog import PlanCatalog, PlanRepository
from .exceptions import SubscriptionValidationError
from .limits import LimitValue
from .models import (
    EffectivePlan,
    Feature,
    Plan,
    PlanDefinition,
    Principal,
    ResourceKind,
    Subscription,
    SubscriptionStatus,
    as_utc,
)
from .quota import QuotaEvaluation, QuotaReason, evaluate_limit
from .resolver import (
    Clock,
    PrincipalDirectory,
    ResolutionStrategy,
    SubscriptionRepository,
    SubscriptionResolver,
    build_default_strategies,
)

logger = logging.getLogger(__name__)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


def _new_subscription_id() -> str:
    return f"sub_{uuid4().hex}"


def _coerce_status(status: Union[SubscriptionStatus, str, None]) -> Optional[SubscriptionStatus]:
    if status is None or isinstance(status, SubscriptionStatus):
        return status
    try:
        return SubscriptionStatus(str(status).strip().lower())
    except ValueError as exc:
        raise SubscriptionValidationError(f"Unknown subscription status: {status!r}") from exc


def evaluate_plan_limit(plan: EffectivePlan, kind: ResourceKind, current_count: int) -> QuotaEvaluation:
    """Evaluate ``kind`` against an already resolved plan."""

    reason = (
        QuotaReason.USER_MEETING_LIMIT_EXCEEDED
        if kind == ResourceKind.MEETING_PER_USER
        else QuotaReason.LIMIT_EXCEEDED
    )
    return evaluate_limit(kind, plan.limit_for(kind), current_count, denial_reason=reason)


@dataclass
class EntitlementService:
    """Coordinates the plan catalog, the subscription store and the resolver."""

    catalog: PlanCatalog
    subscriptions: SubscriptionRepository
    resolver: SubscriptionResolver

    @classmethod
    def build(
        cls,
        *,
        plans: PlanRepository,
        subscriptions: SubscriptionRepository,
        directory: PrincipalDirectory,
        clock: Optional[Clock] = None,
        cache: Optional[EntitlementCache] = None,
        cache_ttl_seconds: int = 0,
        extra_strategies: Optional[List[ResolutionStrategy]] = None,
    ) -> "EntitlementService":
        """Wire the standard resolution chain.

        ``extra_strategies`` are tried after the inherited step and before the
        catalog default.
        """

        catalog = PlanCatalog(repository=plans, cache=cache)
        strategies = build_default_strategies(
            subscriptions=subscriptions,
            catalog=catalog,
            directory=directory,
        )
        if extra_strategies:
            strategies[-1:-1] = list(extra_strategies)
        resolver = SubscriptionResolver(
            strategies,
            clock=clock,
            cache=cache,
            cache_ttl_seconds=cache_ttl_seconds,
        )
        return cls(catalog=catalog, subscriptions=subscriptions, resolver=resolver)

    # Resolution -------------------------------------------------------

    def resolve_plan(self, principal: Principal) -> EffectivePlan:
        """Return the effective plan for ``principal``; never raises for missing data."""

        return self.resolver.resolve(principal)

    def get_limits(self, principal: Principal) -> Dict[ResourceKind, LimitValue]:
        plan = self.resolve_plan(principal)
        return {kind: plan.limit_for(kind) for kind in ResourceKind}

    def check_limit(
        self,
        kind: ResourceKind,
        principal: Principal,
        current_count: int,
    ) -> QuotaEvaluation:
        """Decide whether one more ``kind`` resource may be created."""

        plan = self.resolve_plan(principal)
        evaluation = evaluate_plan_limit(plan, kind, current_count)
        if not evaluation.allowed:
            logger.info(
                "Quota denied kind=%s principal=%s plan=%s source=%s limit=%s current=%s",
                kind.value,
                principal,
                plan.plan_name,
                plan.source.value,
                evaluation.limit,
                evaluation.current,
            )
        return evaluation

    def is_feature_enabled(self, feature_name: Union[Feature, str], principal: Principal) -> bool:
        name = feature_name.value if isinstance(feature_name, Feature) else feature_name
        return self.resolve_plan(principal).has_feature(name)

    def invalidate_principal(self, principal: Principal) -> None:
        self.resolver.invalidate(principal)

    # Catalog ----------------------------------------------------------

    def list_plans(self) -> List[Plan]:
        return self.catalog.list_active_plans()

    def upsert_plan(self, definition: Union[PlanDefinition, Mapping[str, Any]]) -> Plan:
        return self.catalog.upsert_plan(definition)

    # Subscriptions ----------------------------------------------------

    def assign_plan(
        self,
        conference_id: str,
        plan_id: str,
        *,
        status: Union[SubscriptionStatus, str, None] = None,
        ends_at: Optional[datetime] = UNSET,
    ) -> Subscription:
        """Bind a conference to a plan, updating its existing subscription when present.

        ``status`` and ``ends_at`` are only changed on an existing subscription
        when passed; ``ends_at=None`` explicitly clears the expiry.
        """

        if not conference_id:
            raise SubscriptionValidationError("conference_id is required")
        if ends_at is not UNSET and ends_at is not None and not isinstance(ends_at, datetime):
            raise SubscriptionValidationError("ends_at must be a datetime or None")

        plan = self.catalog.get_plan(plan_id)
        status_value = _coerce_status(status)
        principal = Principal.conference(conference_id)
        now = self.resolver.now()

        existing = self._latest_subscription(principal)
        if existing is not None:
            update: Dict[str, Any] = {"plan_id": plan.id, "updated_at": now}
            if status_value is not None:
                update["status"] = status_value
            if ends_at is not UNSET:
                update["ends_at"] = ends_at
            subscription = existing.model_copy(update=update)
        else:
            subscription = Subscription(
                id=_new_subscription_id(),
                conference_id=principal.id,
                plan_id=plan.id,
                status=status_value or SubscriptionStatus.ACTIVE,
                starts_at=now,
                ends_at=None if ends_at is UNSET else ends_at,
                created_at=now,
                updated_at=now,
            )

        saved = self.subscriptions.save_subscription(subscription)
        self.resolver.invalidate(principal)
        logger.info(
            "Assigned plan %s to %s subscription=%s status=%s ends_at=%s created=%s",
            plan.name,
            principal,
            saved.id,
            saved.status.value,
            saved.ends_at,
            existing is None,
        )
        return saved

    def _latest_subscription(self, principal: Principal) -> Optional[Subscription]:
        subscriptions = self.subscriptions.list_subscriptions(principal)
        if not subscriptions:
            return None
        return max(subscriptions, key=lambda subscription: as_utc(subscription.created_at))
