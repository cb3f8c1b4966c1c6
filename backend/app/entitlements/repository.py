"""Persistence layer for plans, subscriptions and the principal directory."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterable, Iterator, Optional, Sequence, Tuple

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ...app_context import get_conn
from .models import (
    Account,
    Plan,
    PlanDefinition,
    Principal,
    PrincipalKind,
    ResourceKind,
    Subscription,
    SubscriptionStatus,
)

# Serializes default-plan swaps across concurrent administrative writers.
DEFAULT_PLAN_LOCK_KEY = 7_451_002


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None) -> Iterator[Tuple[PgConnection, bool]]:
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


class PostgresRepositoryBase:
    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        with managed_connection(self._conn) as (connection, managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
                if managed:
                    connection.commit()
            except Exception:
                if managed:
                    connection.rollback()
                raise
            finally:
                cursor.close()


_RESOURCE_KIND_VALUES = frozenset(kind.value for kind in ResourceKind)


def _row_to_plan(row: dict) -> Plan:
    limits = {
        ResourceKind(kind): int(value)
        for kind, value in (row.get("limits") or {}).items()
        if kind in _RESOURCE_KIND_VALUES
    }
    return Plan(
        id=row["plan_id"],
        name=row["name"],
        display_name=row["display_name"],
        description=row.get("description"),
        price_per_month=int(row["price_per_month"]),
        currency=row["currency"],
        limits=limits,
        features={name: bool(value) for name, value in (row.get("features") or {}).items()},
        is_active=bool(row["is_active"]),
        is_default=bool(row["is_default"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_subscription(row: dict) -> Subscription:
    return Subscription(
        id=row["subscription_id"],
        user_id=row.get("user_id"),
        conference_id=row.get("conference_id"),
        plan_id=row["plan_id"],
        status=SubscriptionStatus(row["status"]),
        starts_at=row["starts_at"],
        ends_at=row.get("ends_at"),
        trial_ends_at=row.get("trial_ends_at"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresPlanRepository(PostgresRepositoryBase):
    """Plan records keyed by unique name."""

    def upsert_plan(self, definition: PlanDefinition) -> Plan:
        """Write a plan; a default swap is one transaction under an advisory lock."""

        with self._cursor() as cursor:
            if definition.is_default:
                cursor.execute("SELECT pg_advisory_xact_lock(%s)", (DEFAULT_PLAN_LOCK_KEY,))
                cursor.execute(
                    """
                    UPDATE entitlement_plans
                    SET is_default = FALSE,
                        updated_at = NOW()
                    WHERE is_default
                      AND name <> %s
                    """,
                    (definition.name,),
                )
            cursor.execute(
                """
                INSERT INTO entitlement_plans (
                    plan_id,
                    name,
                    display_name,
                    description,
                    price_per_month,
                    currency,
                    limits,
                    features,
                    is_active,
                    is_default
                )
                VALUES (%(plan_id)s, %(name)s, %(display_name)s, %(description)s,
                        %(price_per_month)s, %(currency)s, %(limits)s, %(features)s,
                        %(is_active)s, %(is_default)s)
                ON CONFLICT (name) DO UPDATE SET
                    display_name = EXCLUDED.display_name,
                    description = EXCLUDED.description,
                    price_per_month = EXCLUDED.price_per_month,
                    currency = EXCLUDED.currency,
                    limits = EXCLUDED.limits,
                    features = EXCLUDED.features,
                    is_active = EXCLUDED.is_active,
                    is_default = EXCLUDED.is_default,
                    updated_at = NOW()
                RETURNING *
                """,
                {
                    "plan_id": f"plan_{definition.name}",
                    "name": definition.name,
                    "display_name": definition.display_name,
                    "description": definition.description,
                    "price_per_month": definition.price_per_month,
                    "currency": definition.currency,
                    "limits": psycopg2.extras.Json(
                        {kind.value: value for kind, value in definition.limits.items()}
                    ),
                    "features": psycopg2.extras.Json(dict(definition.features)),
                    "is_active": definition.is_active,
                    "is_default": definition.is_default,
                },
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist plan")
            return _row_to_plan(row)

    def get_plan(self, plan_id: str) -> Optional[Plan]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT * FROM entitlement_plans WHERE plan_id = %s LIMIT 1",
                (plan_id,),
            )
            row = cursor.fetchone()
            return _row_to_plan(row) if row else None

    def get_plan_by_name(self, name: str) -> Optional[Plan]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT * FROM entitlement_plans WHERE name = %s LIMIT 1",
                (name,),
            )
            row = cursor.fetchone()
            return _row_to_plan(row) if row else None

    def get_default_plan(self) -> Optional[Plan]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM entitlement_plans
                WHERE is_default AND is_active
                LIMIT 1
                """
            )
            row = cursor.fetchone()
            return _row_to_plan(row) if row else None

    def list_plans(self, *, active_only: bool = True) -> Sequence[Plan]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM entitlement_plans
                WHERE is_active OR NOT %s
                ORDER BY price_per_month ASC, name ASC
                """,
                (active_only,),
            )
            return [_row_to_plan(row) for row in cursor.fetchall()]


class PostgresSubscriptionRepository(PostgresRepositoryBase):
    """Subscription records for users and conferences."""

    def list_subscriptions(self, principal: Principal) -> Sequence[Subscription]:
        column = "user_id" if principal.kind == PrincipalKind.USER else "conference_id"
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT *
                FROM entitlement_subscriptions
                WHERE {column} = %s
                ORDER BY created_at DESC
                """,
                (principal.id,),
            )
            return [_row_to_subscription(row) for row in cursor.fetchall()]

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT * FROM entitlement_subscriptions WHERE subscription_id = %s LIMIT 1",
                (subscription_id,),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def save_subscription(self, subscription: Subscription) -> Subscription:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO entitlement_subscriptions (
                    subscription_id,
                    user_id,
                    conference_id,
                    plan_id,
                    status,
                    starts_at,
                    ends_at,
                    trial_ends_at,
                    created_at
                )
                VALUES (%(subscription_id)s, %(user_id)s, %(conference_id)s, %(plan_id)s,
                        %(status)s, %(starts_at)s, %(ends_at)s, %(trial_ends_at)s,
                        %(created_at)s)
                ON CONFLICT (subscription_id) DO UPDATE SET
                    plan_id = EXCLUDED.plan_id,
                    status = EXCLUDED.status,
                    ends_at = EXCLUDED.ends_at,
                    trial_ends_at = EXCLUDED.trial_ends_at,
                    updated_at = NOW()
                RETURNING *
                """,
                {
                    "subscription_id": subscription.id,
                    "user_id": subscription.user_id,
                    "conference_id": subscription.conference_id,
                    "plan_id": subscription.plan_id,
                    "status": subscription.status.value,
                    "starts_at": subscription.starts_at,
                    "ends_at": subscription.ends_at,
                    "trial_ends_at": subscription.trial_ends_at,
                    "created_at": subscription.created_at,
                },
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist subscription")
            return _row_to_subscription(row)


class PostgresPrincipalDirectory(PostgresRepositoryBase):
    """Account lookups backing conference plan inheritance."""

    def get_account(self, account_id: str) -> Optional[Account]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT account_id, external_id FROM accounts WHERE account_id = %s LIMIT 1",
                (account_id,),
            )
            row = cursor.fetchone()
            return Account(account_id=row["account_id"], external_id=row["external_id"]) if row else None

    def get_first_admin_account(self, conference_id: str) -> Optional[Account]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT a.account_id, a.external_id
                FROM (
                    SELECT profile_id
                    FROM conference_admins
                    WHERE conference_id = %s
                    ORDER BY position ASC
                    LIMIT 1
                ) first_admin
                JOIN participant_profiles p ON p.profile_id = first_admin.profile_id
                JOIN accounts a ON a.external_id = p.external_id
                LIMIT 1
                """,
                (conference_id,),
            )
            row = cursor.fetchone()
            return Account(account_id=row["account_id"], external_id=row["external_id"]) if row else None
