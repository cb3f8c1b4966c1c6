from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend.app.entitlements import (
    UNLIMITED_SENTINEL,
    EntitlementService,
    Feature,
    InMemoryEntitlementCache,
    PlanDefinition,
    PlanNotFoundError,
    PlanSource,
    Principal,
    QuotaReason,
    ResourceKind,
    Subscription,
    SubscriptionStatus,
    SubscriptionValidationError,
)
from backend.app.entitlements.memory import (
    InMemoryPlanRepository,
    InMemoryPrincipalDirectory,
    InMemorySubscriptionRepository,
)

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def repositories():
    return InMemoryPlanRepository(), InMemorySubscriptionRepository(), InMemoryPrincipalDirectory()


@pytest.fixture
def entitlement_service(repositories):
    plans, subscriptions, directory = repositories
    return EntitlementService.build(
        plans=plans,
        subscriptions=subscriptions,
        directory=directory,
        clock=lambda: NOW,
    )


@pytest.fixture
def seeded_service(entitlement_service):
    entitlement_service.catalog.ensure_default_plans()
    return entitlement_service


def test_free_plan_polls_enabled_but_poll_limit_reached(seeded_service):
    conference = Principal.conference("conf-1")

    assert seeded_service.is_feature_enabled("polls_enabled", conference) is True

    result = seeded_service.check_limit(ResourceKind.POLL, conference, 10)
    assert result.allowed is False
    assert result.limit == 10
    assert result.current == 10
    assert result.reason == QuotaReason.LIMIT_EXCEEDED

    assert seeded_service.check_limit(ResourceKind.POLL, conference, 9).allowed is True


def test_unlimited_plan_allows_any_count(seeded_service, repositories):
    _, subscriptions, _ = repositories
    premium = seeded_service.catalog.get_plan_by_name("premium")
    subscriptions.add(
        Subscription(id="sub-1", conference_id="conf-1", plan_id=premium.id, created_at=NOW)
    )

    for kind in ResourceKind:
        result = seeded_service.check_limit(kind, Principal.conference("conf-1"), 10_000_000)
        assert result.allowed is True
        assert result.limit == UNLIMITED_SENTINEL


def test_zero_limit_denies_first_resource(entitlement_service):
    entitlement_service.upsert_plan(
        PlanDefinition(
            name="locked",
            display_name="Locked",
            limits={ResourceKind.QUESTION: 0},
            is_default=True,
        )
    )

    result = entitlement_service.check_limit(ResourceKind.QUESTION, Principal.user("u"), 0)

    assert result.allowed is False
    assert result.limit == 0


def test_per_user_meeting_denial_uses_specific_reason(seeded_service):
    result = seeded_service.check_limit(
        ResourceKind.MEETING_PER_USER, Principal.conference("conf-1"), 10
    )

    assert result.allowed is False
    assert result.reason == QuotaReason.USER_MEETING_LIMIT_EXCEEDED


def test_check_limit_rejects_negative_counts(seeded_service):
    with pytest.raises(ValueError):
        seeded_service.check_limit(ResourceKind.POLL, Principal.conference("conf-1"), -1)


def test_restricted_plan_denies_everything(entitlement_service):
    principal = Principal.conference("conf-1")

    plan = entitlement_service.resolve_plan(principal)
    result = entitlement_service.check_limit(ResourceKind.PARTICIPANT, principal, 0)

    assert plan.source == PlanSource.RESTRICTED
    assert result.allowed is False
    assert result.limit == 0
    assert entitlement_service.is_feature_enabled(Feature.POLLS, principal) is False


def test_unknown_feature_name_is_disabled(seeded_service):
    principal = Principal.conference("conf-1")

    assert seeded_service.is_feature_enabled("pollsEnabledTypo", principal) is False
    assert seeded_service.is_feature_enabled(Feature.SECOND_SCREEN, principal) is True
    assert seeded_service.is_feature_enabled(Feature.EXPORT_CSV, principal) is False


def test_get_limits_returns_typed_values(seeded_service):
    limits = seeded_service.get_limits(Principal.user("user-1"))

    assert limits[ResourceKind.CONFERENCE].as_int() == 1
    assert limits[ResourceKind.CONFERENCE].permits(0) is True
    assert limits[ResourceKind.CONFERENCE].permits(1) is False


def test_list_plans_orders_by_price(seeded_service):
    assert [plan.name for plan in seeded_service.list_plans()] == ["free", "basic", "premium"]


def test_assign_plan_creates_conference_subscription(seeded_service, repositories):
    _, subscriptions, _ = repositories
    basic = seeded_service.catalog.get_plan_by_name("basic")

    subscription = seeded_service.assign_plan("conf-1", basic.id)

    assert subscription.conference_id == "conf-1"
    assert subscription.user_id is None
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.starts_at == NOW
    assert subscription.ends_at is None
    assert subscriptions.get_subscription(subscription.id) == subscription

    resolved = seeded_service.resolve_plan(Principal.conference("conf-1"))
    assert resolved.source == PlanSource.DIRECT
    assert resolved.plan_name == "basic"


def test_assign_plan_updates_existing_subscription(seeded_service, repositories):
    _, subscriptions, _ = repositories
    basic = seeded_service.catalog.get_plan_by_name("basic")
    premium = seeded_service.catalog.get_plan_by_name("premium")
    ends_at = NOW + timedelta(days=30)

    first = seeded_service.assign_plan("conf-1", basic.id, status="trial", ends_at=ends_at)
    second = seeded_service.assign_plan("conf-1", premium.id)

    assert second.id == first.id
    assert second.plan_id == premium.id
    assert second.status == SubscriptionStatus.TRIAL
    assert second.ends_at == ends_at
    assert len(subscriptions.all()) == 1

    third = seeded_service.assign_plan("conf-1", premium.id, status=SubscriptionStatus.ACTIVE, ends_at=None)
    assert third.status == SubscriptionStatus.ACTIVE
    assert third.ends_at is None


def test_assign_plan_can_reactivate_expired_subscription(seeded_service, repositories):
    _, subscriptions, _ = repositories
    basic = seeded_service.catalog.get_plan_by_name("basic")
    subscriptions.add(
        Subscription(
            id="sub-old",
            conference_id="conf-1",
            plan_id=basic.id,
            status=SubscriptionStatus.EXPIRED,
            created_at=NOW - timedelta(days=90),
        )
    )
    assert seeded_service.resolve_plan(Principal.conference("conf-1")).source == PlanSource.DEFAULT

    updated = seeded_service.assign_plan("conf-1", basic.id, status="active")

    assert updated.id == "sub-old"
    assert seeded_service.resolve_plan(Principal.conference("conf-1")).source == PlanSource.DIRECT


def test_assign_plan_rejects_unknown_plan(seeded_service):
    with pytest.raises(PlanNotFoundError):
        seeded_service.assign_plan("conf-1", "plan_missing")


@pytest.mark.parametrize("kwargs", [{"status": "paused"}, {"ends_at": "tomorrow"}])
def test_assign_plan_validates_input(seeded_service, kwargs):
    basic = seeded_service.catalog.get_plan_by_name("basic")

    with pytest.raises(SubscriptionValidationError):
        seeded_service.assign_plan("conf-1", basic.id, **kwargs)


def test_assign_plan_invalidates_cached_resolution(repositories):
    plans, subscriptions, directory = repositories
    service = EntitlementService.build(
        plans=plans,
        subscriptions=subscriptions,
        directory=directory,
        clock=lambda: NOW,
        cache=InMemoryEntitlementCache(clock=lambda: NOW),
        cache_ttl_seconds=300,
    )
    service.catalog.ensure_default_plans()
    conference = Principal.conference("conf-1")
    assert service.resolve_plan(conference).plan_name == "free"

    service.assign_plan("conf-1", service.catalog.get_plan_by_name("premium").id)

    assert service.resolve_plan(conference).plan_name == "premium"


def test_upsert_plan_refreshes_cached_default(repositories):
    plans, subscriptions, directory = repositories
    service = EntitlementService.build(
        plans=plans,
        subscriptions=subscriptions,
        directory=directory,
        clock=lambda: NOW,
        cache=InMemoryEntitlementCache(clock=lambda: NOW),
        cache_ttl_seconds=300,
    )
    principal = Principal.user("user-1")
    assert service.resolve_plan(principal).source == PlanSource.RESTRICTED

    service.catalog.ensure_default_plans()

    assert service.resolve_plan(principal).source == PlanSource.DEFAULT


def test_inherited_unlimited_plan_scenario(seeded_service, repositories):
    _, subscriptions, directory = repositories
    premium = seeded_service.catalog.get_plan_by_name("premium")
    directory.add_account("owner-1", external_id="tg-1")
    directory.set_admins("conf-1", ["owner-1"])
    subscriptions.add(Subscription(id="sub-owner", user_id="owner-1", plan_id=premium.id))

    resolved = seeded_service.resolve_plan(Principal.conference("conf-1"))

    assert resolved.source == PlanSource.INHERITED
    assert resolved.plan_name == "premium"
    assert all(value == UNLIMITED_SENTINEL for value in resolved.limits.values())


def test_assign_plan_updates_most_recent_of_several_subscriptions(seeded_service, repositories):
    _, subscriptions, _ = repositories
    basic = seeded_service.catalog.get_plan_by_name("basic")
    premium = seeded_service.catalog.get_plan_by_name("premium")
    subscriptions.add(
        Subscription(id="sub-old", conference_id="conf-1", plan_id=basic.id, created_at=NOW - timedelta(days=60))
    )
    subscriptions.add(
        Subscription(id="sub-new", conference_id="conf-1", plan_id=basic.id, created_at=NOW - timedelta(days=2))
    )

    updated = seeded_service.assign_plan("conf-1", premium.id)

    assert updated.id == "sub-new"
    assert subscriptions.get_subscription("sub-old").plan_id == basic.id
    assert subscriptions.get_subscription("sub-new").plan_id == premium.id


def test_assign_plan_handles_mixed_naive_and_aware_timestamps(seeded_service, repositories):
    _, subscriptions, _ = repositories
    basic = seeded_service.catalog.get_plan_by_name("basic")
    premium = seeded_service.catalog.get_plan_by_name("premium")
    subscriptions.add(
        Subscription(id="sub-naive", conference_id="conf-1", plan_id=basic.id, created_at=datetime(2026, 1, 1))
    )
    subscriptions.add(
        Subscription(id="sub-aware", conference_id="conf-1", plan_id=basic.id, created_at=NOW - timedelta(days=1))
    )
    assert seeded_service.resolve_plan(Principal.conference("conf-1")).source == PlanSource.DIRECT

    updated = seeded_service.assign_plan("conf-1", premium.id)

    assert updated.id == "sub-aware"
    assert seeded_service.resolve_plan(Principal.conference("conf-1")).plan_name == "premium"
