"""Domain models for plans, subscriptions and plan resolution."""
from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .limits import UNLIMITED_SENTINEL, LimitValue, parse_limit

_PLAN_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ResourceKind(str, Enum):
    """Countable entities subject to a plan ceiling."""

    CONFERENCE = "conference"
    PARTICIPANT = "participant"
    POLL = "poll"
    QUESTION = "question"
    MEETING = "meeting"
    MEETING_PER_USER = "meeting_per_user"
    SPEAKER = "speaker"
    ADMIN = "admin"


class Feature(str, Enum):
    """Feature flags defined by the standard plan catalog."""

    POLLS = "polls_enabled"
    SECOND_SCREEN = "second_screen_enabled"
    ORGANIZER_DASHBOARD = "organizer_dashboard_enabled"
    EXPORT_CSV = "export_csv_enabled"
    EXPORT_PDF = "export_pdf_enabled"
    CUSTOM_BRANDING = "custom_branding"
    API_ACCESS = "api_access"
    PRIORITY_SUPPORT = "priority_support"


KNOWN_FEATURES = tuple(feature.value for feature in Feature)


class SubscriptionStatus(str, Enum):
    """Lifecycle state for subscriptions."""

    ACTIVE = "active"
    TRIAL = "trial"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


EFFECTIVE_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIAL})


class PrincipalKind(str, Enum):
    """The two kinds of entity a subscription can be held against."""

    USER = "user"
    CONFERENCE = "conference"


class PlanSource(str, Enum):
    """How an effective plan was derived."""

    DIRECT = "direct"
    INHERITED = "inherited"
    DEFAULT = "default"
    RESTRICTED = "restricted"


class Principal(BaseModel):
    """A user account or a conference."""

    kind: PrincipalKind
    id: str = Field(min_length=1)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def user(cls, user_id: str) -> "Principal":
        return cls(kind=PrincipalKind.USER, id=str(user_id))

    @classmethod
    def conference(cls, conference_id: str) -> "Principal":
        return cls(kind=PrincipalKind.CONFERENCE, id=str(conference_id))

    @property
    def tag(self) -> str:
        return f"{self.kind.value}:{self.id}"

    def __str__(self) -> str:
        return self.tag


class Account(BaseModel):
    """Internal account record as returned by the principal directory."""

    account_id: str
    external_id: str

    model_config = ConfigDict(frozen=True)


class PlanDefinition(BaseModel):
    """Administrative input describing a plan to create or update."""

    name: str
    display_name: str = Field(min_length=1)
    description: Optional[str] = None
    price_per_month: int = Field(default=0, ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    limits: Dict[ResourceKind, int] = Field(default_factory=dict)
    features: Dict[str, bool] = Field(default_factory=dict)
    is_active: bool = True
    is_default: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not _PLAN_NAME_RE.match(normalized):
            raise ValueError("name must be a lowercase slug")
        return normalized

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()

    @field_validator("limits")
    @classmethod
    def _validate_limits(cls, value: Dict[ResourceKind, int]) -> Dict[ResourceKind, int]:
        for kind, ceiling in value.items():
            if ceiling < UNLIMITED_SENTINEL:
                raise ValueError(f"limit for {kind.value} must be >= {UNLIMITED_SENTINEL}")
        return value

    @model_validator(mode="after")
    def _default_must_be_active(self) -> "PlanDefinition":
        if self.is_default and not self.is_active:
            raise ValueError("a default plan must be active")
        return self

    def with_complete_limits(self) -> Dict[ResourceKind, int]:
        """Return limits with every resource kind present; absent kinds are unlimited."""

        return {kind: self.limits.get(kind, UNLIMITED_SENTINEL) for kind in ResourceKind}


class Plan(BaseModel):
    """A named bundle of usage ceilings and feature flags."""

    id: str
    name: str
    display_name: str
    description: Optional[str] = None
    price_per_month: int = 0
    currency: str = "USD"
    limits: Dict[ResourceKind, int] = Field(default_factory=dict)
    features: Dict[str, bool] = Field(default_factory=dict)
    is_active: bool = True
    is_default: bool = False
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(frozen=True)

    def limit_for(self, kind: ResourceKind) -> LimitValue:
        return parse_limit(self.limits.get(kind))

    def has_feature(self, name: str) -> bool:
        return self.features.get(name) is True


class Subscription(BaseModel):
    """Time-bounded binding of exactly one principal to a plan."""

    id: str
    user_id: Optional[str] = None
    conference_id: Optional[str] = None
    plan_id: str
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    starts_at: datetime = Field(default_factory=_utcnow)
    ends_at: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _exactly_one_principal(self) -> "Subscription":
        if (self.user_id is None) == (self.conference_id is None):
            raise ValueError("exactly one of user_id or conference_id must be set")
        return self

    @property
    def principal(self) -> Principal:
        if self.user_id is not None:
            return Principal.user(self.user_id)
        return Principal.conference(self.conference_id or "")

    def is_effective(self, now: datetime) -> bool:
        """Return whether the subscription grants its plan at ``now``."""

        if self.status not in EFFECTIVE_STATUSES:
            return False
        if self.ends_at is None:
            return True
        return as_utc(self.ends_at) >= as_utc(now)


class EffectivePlan(BaseModel):
    """The plan used for a decision, annotated with its derivation source."""

    principal: Principal
    source: PlanSource
    plan_id: Optional[str]
    plan_name: str
    display_name: str
    limits: Dict[ResourceKind, int]
    features: Dict[str, bool]
    status: Optional[SubscriptionStatus] = None
    subscription_id: Optional[str] = None
    inherited_from: Optional[Principal] = None
    resolved_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_plan(
        cls,
        plan: Plan,
        *,
        principal: Principal,
        source: PlanSource,
        status: Optional[SubscriptionStatus],
        subscription_id: Optional[str] = None,
        resolved_at: Optional[datetime] = None,
    ) -> "EffectivePlan":
        limits = {kind: plan.limits.get(kind, UNLIMITED_SENTINEL) for kind in ResourceKind}
        features = {name: False for name in KNOWN_FEATURES}
        features.update({name: value is True for name, value in plan.features.items()})
        return cls(
            principal=principal,
            source=source,
            plan_id=plan.id,
            plan_name=plan.name,
            display_name=plan.display_name,
            limits=limits,
            features=features,
            status=status,
            subscription_id=subscription_id,
            resolved_at=resolved_at or _utcnow(),
        )

    @property
    def is_restricted(self) -> bool:
        return self.source == PlanSource.RESTRICTED

    def limit_for(self, kind: ResourceKind) -> LimitValue:
        return parse_limit(self.limits.get(kind))

    def has_feature(self, name: str) -> bool:
        return self.features.get(name) is True

    def cache_tags(self) -> Set[str]:
        tags: Set[str] = {self.principal.tag, "catalog"}
        if self.inherited_from is not None:
            tags.add(self.inherited_from.tag)
        if self.subscription_id:
            tags.add(f"subscription:{self.subscription_id}")
        return tags


class ParticipantProfile(BaseModel):
    """A participant's membership in a single conference."""

    profile_id: str
    conference_id: str
    external_id: str
    is_active: bool = True

    model_config = ConfigDict(frozen=True)
