"""Subscription resolution: the ordered fallback chain producing an effective plan."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Protocol, Sequence

from .cache import EntitlementCache
from .catalog import PlanCatalog, PlanRepository
from .models import (
    KNOWN_FEATURES,
    Account,
    EffectivePlan,
    PlanSource,
    Principal,
    PrincipalKind,
    ResourceKind,
    Subscription,
    SubscriptionStatus,
    as_utc,
)

logger = logging.getLogger(__name__)

RESTRICTED_PLAN_NAME = "restricted"

Clock = Callable[[], datetime]


class SubscriptionRepository(Protocol):
    """Read and upsert access to subscription records."""

    def list_subscriptions(self, principal: Principal) -> Sequence[Subscription]:
        """Return every subscription held by ``principal``, in any status."""

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        ...

    def save_subscription(self, subscription: Subscription) -> Subscription:
        """Insert or update a subscription keyed by its id."""


class PrincipalDirectory(Protocol):
    """Maps account and conference identifiers to internal account records."""

    def get_account(self, account_id: str) -> Optional[Account]:
        ...

    def get_first_admin_account(self, conference_id: str) -> Optional[Account]:
        """Return the account behind the conference's first listed administrator."""


class ResolutionStrategy(Protocol):
    """One step of the fallback chain."""

    source: PlanSource

    def resolve(self, principal: Principal, now: datetime) -> Optional[EffectivePlan]:
        ...


def _current_time(clock: Optional[Clock]) -> datetime:
    if clock is None:
        return datetime.now(timezone.utc)
    return as_utc(clock())


def select_effective_subscription(
    subscriptions: Sequence[Subscription],
    now: datetime,
) -> Optional[Subscription]:
    """Pick the most recently created subscription that is effective at ``now``."""

    candidates = [subscription for subscription in subscriptions if subscription.is_effective(now)]
    if not candidates:
        return None
    return max(candidates, key=lambda subscription: as_utc(subscription.created_at))


class DirectSubscriptionStrategy:
    """Resolve from a subscription held by the principal itself."""

    source = PlanSource.DIRECT

    def __init__(self, subscriptions: SubscriptionRepository, plans: PlanRepository) -> None:
        self._subscriptions = subscriptions
        self._plans = plans

    def resolve(self, principal: Principal, now: datetime) -> Optional[EffectivePlan]:
        subscription = select_effective_subscription(
            self._subscriptions.list_subscriptions(principal), now
        )
        if subscription is None:
            return None
        plan = self._plans.get_plan(subscription.plan_id)
        if plan is None:
            logger.warning(
                "Subscription %s for %s references missing plan %s",
                subscription.id,
                principal,
                subscription.plan_id,
            )
            return None
        return EffectivePlan.from_plan(
            plan,
            principal=principal,
            source=self.source,
            status=subscription.status,
            subscription_id=subscription.id,
            resolved_at=now,
        )


class InheritedSubscriptionStrategy:
    """Resolve a conference from the plan of its first listed administrator."""

    source = PlanSource.INHERITED

    def __init__(self, directory: PrincipalDirectory, upstream: ResolutionStrategy) -> None:
        self._directory = directory
        self._upstream = upstream

    def resolve(self, principal: Principal, now: datetime) -> Optional[EffectivePlan]:
        if principal.kind != PrincipalKind.CONFERENCE:
            return None
        account = self._directory.get_first_admin_account(principal.id)
        if account is None:
            return None
        owner = Principal.user(account.account_id)
        resolved = self._upstream.resolve(owner, now)
        if resolved is None:
            return None
        return resolved.model_copy(
            update={
                "principal": principal,
                "source": self.source,
                "inherited_from": owner,
            }
        )


class DefaultPlanStrategy:
    """Resolve to the catalog's active default plan."""

    source = PlanSource.DEFAULT

    def __init__(self, catalog: PlanCatalog) -> None:
        self._catalog = catalog

    def resolve(self, principal: Principal, now: datetime) -> Optional[EffectivePlan]:
        plan = self._catalog.find_default_plan()
        if plan is None:
            return None
        return EffectivePlan.from_plan(
            plan,
            principal=principal,
            source=self.source,
            status=SubscriptionStatus.ACTIVE,
            resolved_at=now,
        )


def restricted_plan(principal: Principal, now: Optional[datetime] = None) -> EffectivePlan:
    """Sentinel plan denying every resource and feature."""

    return EffectivePlan(
        principal=principal,
        source=PlanSource.RESTRICTED,
        plan_id=None,
        plan_name=RESTRICTED_PLAN_NAME,
        display_name="Restricted",
        limits={kind: 0 for kind in ResourceKind},
        features={name: False for name in KNOWN_FEATURES},
        status=None,
        resolved_at=now or datetime.now(timezone.utc),
    )


def build_default_strategies(
    *,
    subscriptions: SubscriptionRepository,
    catalog: PlanCatalog,
    directory: PrincipalDirectory,
) -> List[ResolutionStrategy]:
    """Return the standard chain: direct, inherited, default."""

    direct = DirectSubscriptionStrategy(subscriptions, catalog.repository)
    return [
        direct,
        InheritedSubscriptionStrategy(directory, upstream=direct),
        DefaultPlanStrategy(catalog),
    ]


class SubscriptionResolver:
    """Runs resolution strategies in order; the restricted plan is the terminal fallback."""

    def __init__(
        self,
        strategies: Sequence[ResolutionStrategy],
        *,
        clock: Optional[Clock] = None,
        cache: Optional[EntitlementCache] = None,
        cache_ttl_seconds: int = 0,
    ) -> None:
        self._strategies = list(strategies)
        self._clock = clock
        self._cache = cache if cache_ttl_seconds > 0 else None
        self._cache_ttl = timedelta(seconds=max(cache_ttl_seconds, 0))

    @property
    def strategies(self) -> List[ResolutionStrategy]:
        return list(self._strategies)

    def now(self) -> datetime:
        return _current_time(self._clock)

    def resolve(self, principal: Principal) -> EffectivePlan:
        if self._cache is None:
            return self._run_chain(principal, self.now())

        cache_key = f"plan|{principal.tag}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug("Resolved %s from cache source=%s", principal, cached.source.value)
            return cached

        # Read before resolving so a concurrent invalidation discards this result.
        generation = self._cache.generation()
        now = self.now()
        resolved = self._run_chain(principal, now)
        self._cache.set(
            cache_key,
            resolved,
            now + self._cache_ttl,
            resolved.cache_tags(),
            generation=generation,
        )
        return resolved

    def invalidate(self, principal: Principal) -> None:
        if self._cache is not None:
            self._cache.invalidate({principal.tag})

    def _run_chain(self, principal: Principal, now: datetime) -> EffectivePlan:
        for strategy in self._strategies:
            resolved = strategy.resolve(principal, now)
            if resolved is not None:
                logger.debug(
                    "Resolved %s to plan %s source=%s",
                    principal,
                    resolved.plan_name,
                    resolved.source.value,
                )
                return resolved
        logger.warning("No plan resolved for %s; falling back to restricted limits", principal)
        return restricted_plan(principal, now)
