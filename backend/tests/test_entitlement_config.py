from __future__ import annotations

from datetime import datetime, timezone

import pytest

from backend import app_context
from backend.app.entitlements import InMemoryEntitlementCache, PlanDefinition, ResourceKind, load_entitlement_config
from backend.app.entitlements.repository import DEFAULT_PLAN_LOCK_KEY, PostgresPlanRepository
from backend.app.services import entitlements as wiring


def test_load_entitlement_config_defaults():
    config = load_entitlement_config({})

    assert config.cache_ttl_seconds == 0
    assert config.cache_enabled is False
    assert config.seed_default_plans is True
    assert config.db_config == {
        "host": "127.0.0.1",
        "port": 5432,
        "database": "conference_db",
        "user": "conference_user",
        "password": "conference_pass",
    }


def test_load_entitlement_config_overrides():
    config = load_entitlement_config(
        {
            "ENTITLEMENT_CACHE_TTL_SECONDS": "120",
            "ENTITLEMENT_SEED_DEFAULT_PLANS": "off",
            "DB_HOST": "db.internal",
            "DB_PORT": "6543",
        }
    )

    assert config.cache_ttl_seconds == 120
    assert config.cache_enabled is True
    assert config.seed_default_plans is False
    assert config.db_config["host"] == "db.internal"
    assert config.db_config["port"] == 6543


def test_negative_ttl_disables_cache():
    config = load_entitlement_config({"ENTITLEMENT_CACHE_TTL_SECONDS": "-5"})

    assert config.cache_ttl_seconds == 0
    assert config.cache_enabled is False


def test_invalid_integer_is_rejected():
    with pytest.raises(ValueError):
        load_entitlement_config({"ENTITLEMENT_CACHE_TTL_SECONDS": "soon"})


@pytest.fixture
def clean_context():
    app_context.reset()
    yield
    app_context.reset()


def test_build_entitlement_service_without_seeding(clean_context):
    config = load_entitlement_config(
        {"ENTITLEMENT_SEED_DEFAULT_PLANS": "false", "ENTITLEMENT_CACHE_TTL_SECONDS": "30"}
    )

    service = wiring.build_entitlement_service(config)

    assert app_context.is_configured()
    assert isinstance(service.catalog.cache, InMemoryEntitlementCache)
    assert len(service.resolver.strategies) == 3


class FakeCursor:
    def __init__(self, row):
        self.row = row
        self.statements: list[tuple[str, object]] = []
        self.closed = False

    def execute(self, sql, params=None):
        self.statements.append((" ".join(sql.split()), params))

    def fetchone(self):
        return self.row

    def fetchall(self):
        return [self.row] if self.row else []

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self, cursor: FakeCursor):
        self._cursor = cursor
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def cursor(self, cursor_factory=None):
        return self._cursor

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = True


def _plan_row(name: str, *, is_default: bool) -> dict:
    now = datetime(2026, 5, 1, tzinfo=timezone.utc)
    return {
        "plan_id": f"plan_{name}",
        "name": name,
        "display_name": name.title(),
        "description": None,
        "price_per_month": 0,
        "currency": "USD",
        "limits": {"poll": 10, "legacy_kind": 4},
        "features": {"polls_enabled": True},
        "is_active": True,
        "is_default": is_default,
        "created_at": now,
        "updated_at": now,
    }


def test_default_swap_runs_under_advisory_lock_in_one_transaction(clean_context):
    cursor = FakeCursor(_plan_row("free", is_default=True))
    connection = FakeConnection(cursor)
    app_context.configure(get_conn=lambda: connection)

    plan = PostgresPlanRepository().upsert_plan(
        PlanDefinition(name="free", display_name="Free", limits={ResourceKind.POLL: 10}, is_default=True)
    )

    statements = [sql for sql, _ in cursor.statements]
    assert statements[0] == "SELECT pg_advisory_xact_lock(%s)"
    assert cursor.statements[0][1] == (DEFAULT_PLAN_LOCK_KEY,)
    assert statements[1].startswith("UPDATE entitlement_plans SET is_default = FALSE")
    assert statements[2].startswith("INSERT INTO entitlement_plans")
    assert connection.rollbacks == 0
    assert connection.closed is True
    assert cursor.closed is True
    assert plan.is_default is True
    assert plan.limits == {ResourceKind.POLL: 10}


def test_non_default_upsert_skips_lock(clean_context):
    cursor = FakeCursor(_plan_row("basic", is_default=False))
    app_context.configure(get_conn=lambda: FakeConnection(cursor))

    PostgresPlanRepository().upsert_plan(PlanDefinition(name="basic", display_name="Basic"))

    assert len(cursor.statements) == 1
    assert cursor.statements[0][0].startswith("INSERT INTO entitlement_plans")


def test_failed_write_rolls_back(clean_context):
    cursor = FakeCursor(None)
    connection = FakeConnection(cursor)
    app_context.configure(get_conn=lambda: connection)

    with pytest.raises(RuntimeError):
        PostgresPlanRepository().upsert_plan(PlanDefinition(name="basic", display_name="Basic"))

    assert connection.rollbacks >= 1
    assert connection.closed is True
