"""Application wiring for the entitlement engine."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Callable, Optional

import psycopg2
from dotenv import load_dotenv

from ... import app_context
from ..entitlements import EntitlementConfig, EntitlementService, InMemoryEntitlementCache, load_entitlement_config
from ..entitlements.repository import (
    PostgresPlanRepository,
    PostgresPrincipalDirectory,
    PostgresSubscriptionRepository,
)
from ..feature_gates import ResourceQuotaChecker
from ..feature_gates.repository import PostgresUsageCounter

logger = logging.getLogger("entitlements")


def connection_factory(config: EntitlementConfig) -> Callable[[], Any]:
    def _connect():
        return psycopg2.connect(**config.db_config)

    return _connect


def build_entitlement_service(config: EntitlementConfig) -> EntitlementService:
    if not app_context.is_configured():
        app_context.configure(get_conn=connection_factory(config))

    cache: Optional[InMemoryEntitlementCache] = None
    if config.cache_enabled:
        cache = InMemoryEntitlementCache()

    service = EntitlementService.build(
        plans=PostgresPlanRepository(),
        subscriptions=PostgresSubscriptionRepository(),
        directory=PostgresPrincipalDirectory(),
        cache=cache,
        cache_ttl_seconds=config.cache_ttl_seconds,
    )
    if config.seed_default_plans:
        plans = service.catalog.ensure_default_plans()
        logger.info("Ensured default plans: %s", ", ".join(plan.name for plan in plans))
    logger.info(
        "Entitlement service ready cache_ttl=%ss seeded=%s",
        config.cache_ttl_seconds,
        config.seed_default_plans,
    )
    return service


@lru_cache(maxsize=1)
def get_entitlement_service() -> EntitlementService:
    load_dotenv()
    return build_entitlement_service(load_entitlement_config())


@lru_cache(maxsize=1)
def get_quota_checker() -> ResourceQuotaChecker:
    return ResourceQuotaChecker(
        entitlements=get_entitlement_service(),
        usage=PostgresUsageCounter(),
        directory=PostgresPrincipalDirectory(),
    )


__all__ = [
    "build_entitlement_service",
    "connection_factory",
    "get_entitlement_service",
    "get_quota_checker",
]
