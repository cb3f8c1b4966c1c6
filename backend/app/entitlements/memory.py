"""In-memory repositories suitable for tests and local development."""
from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import Dict, List, Optional, Sequence
from uuid import uuid4

from .models import Account, Plan, PlanDefinition, Principal, PrincipalKind, Subscription


class InMemoryPlanRepository:
    """Plan store whose default swap happens under a single lock."""

    def __init__(self) -> None:
        self._plans: Dict[str, Plan] = {}
        self._lock = Lock()

    def upsert_plan(self, definition: PlanDefinition) -> Plan:
        now = datetime.now(timezone.utc)
        with self._lock:
            existing = self._plans.get(definition.name)
            plan = Plan(
                id=existing.id if existing else f"plan_{uuid4().hex}",
                created_at=existing.created_at if existing else now,
                updated_at=now,
                **definition.model_dump(),
            )
            if plan.is_default:
                for name, other in self._plans.items():
                    if name != plan.name and other.is_default:
                        self._plans[name] = other.model_copy(
                            update={"is_default": False, "updated_at": now}
                        )
            self._plans[plan.name] = plan
            return plan

    def get_plan(self, plan_id: str) -> Optional[Plan]:
        with self._lock:
            return next((plan for plan in self._plans.values() if plan.id == plan_id), None)

    def get_plan_by_name(self, name: str) -> Optional[Plan]:
        with self._lock:
            return self._plans.get(name)

    def get_default_plan(self) -> Optional[Plan]:
        with self._lock:
            return next(
                (plan for plan in self._plans.values() if plan.is_default and plan.is_active),
                None,
            )

    def list_plans(self, *, active_only: bool = True) -> Sequence[Plan]:
        with self._lock:
            plans = list(self._plans.values())
        if active_only:
            plans = [plan for plan in plans if plan.is_active]
        return plans


class InMemorySubscriptionRepository:
    def __init__(self) -> None:
        self._subscriptions: Dict[str, Subscription] = {}
        self._lock = Lock()

    def add(self, subscription: Subscription) -> Subscription:
        return self.save_subscription(subscription)

    def list_subscriptions(self, principal: Principal) -> Sequence[Subscription]:
        with self._lock:
            records = list(self._subscriptions.values())
        if principal.kind == PrincipalKind.USER:
            return [record for record in records if record.user_id == principal.id]
        return [record for record in records if record.conference_id == principal.id]

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        with self._lock:
            return self._subscriptions.get(subscription_id)

    def save_subscription(self, subscription: Subscription) -> Subscription:
        with self._lock:
            self._subscriptions[subscription.id] = subscription
        return subscription

    def all(self) -> List[Subscription]:
        with self._lock:
            return list(self._subscriptions.values())


class InMemoryPrincipalDirectory:
    def __init__(self) -> None:
        self._accounts: Dict[str, Account] = {}
        self._conference_admins: Dict[str, List[str]] = {}

    def add_account(self, account_id: str, external_id: Optional[str] = None) -> Account:
        account = Account(account_id=account_id, external_id=external_id or account_id)
        self._accounts[account_id] = account
        return account

    def set_admins(self, conference_id: str, account_ids: Sequence[str]) -> None:
        self._conference_admins[conference_id] = list(account_ids)

    def get_account(self, account_id: str) -> Optional[Account]:
        return self._accounts.get(account_id)

    def get_first_admin_account(self, conference_id: str) -> Optional[Account]:
        admins = self._conference_admins.get(conference_id) or []
        if not admins:
            return None
        return self._accounts.get(admins[0])
