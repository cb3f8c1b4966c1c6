"""Plan catalog: plan definitions, the seed catalog and the single-default rule."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from pydantic import ValidationError

from .cache import EntitlementCache
from .exceptions import NoDefaultPlanError, PlanNotFoundError, PlanValidationError
from .models import Feature, Plan, PlanDefinition, ResourceKind

logger = logging.getLogger(__name__)


class PlanRepository(Protocol):
    """Persistence operations required by the plan catalog."""

    def upsert_plan(self, definition: PlanDefinition) -> Plan:
        """Insert or update the plan keyed by ``definition.name``.

        When ``definition.is_default`` is set, clearing the flag on every other
        plan and setting it on this one must be applied as a single atomic unit.
        """

    def get_plan(self, plan_id: str) -> Optional[Plan]:
        ...

    def get_plan_by_name(self, name: str) -> Optional[Plan]:
        ...

    def get_default_plan(self) -> Optional[Plan]:
        """Return the active plan flagged as default, if any."""

    def list_plans(self, *, active_only: bool = True) -> Sequence[Plan]:
        ...


def _limits(
    conferences: int,
    participants: int,
    polls: int,
    questions: int,
    meetings: int,
    meetings_per_user: int,
    speakers: int,
    admins: int,
) -> dict:
    return {
        ResourceKind.CONFERENCE: conferences,
        ResourceKind.PARTICIPANT: participants,
        ResourceKind.POLL: polls,
        ResourceKind.QUESTION: questions,
        ResourceKind.MEETING: meetings,
        ResourceKind.MEETING_PER_USER: meetings_per_user,
        ResourceKind.SPEAKER: speakers,
        ResourceKind.ADMIN: admins,
    }


def _features(*enabled: Feature) -> dict:
    return {feature.value: feature in enabled for feature in Feature}


FREE_PLAN = PlanDefinition(
    name="free",
    display_name="Free Plan",
    description="Basic plan for small conferences",
    price_per_month=0,
    limits=_limits(1, 50, 10, 100, 50, 10, 5, 2),
    features=_features(Feature.POLLS, Feature.SECOND_SCREEN, Feature.ORGANIZER_DASHBOARD),
    is_default=True,
)

BASIC_PLAN = PlanDefinition(
    name="basic",
    display_name="Basic Plan",
    description="For growing conferences",
    price_per_month=2999,
    limits=_limits(5, 200, 50, 500, 200, 50, 20, 10),
    features=_features(
        Feature.POLLS,
        Feature.SECOND_SCREEN,
        Feature.ORGANIZER_DASHBOARD,
        Feature.EXPORT_CSV,
        Feature.API_ACCESS,
    ),
)

PREMIUM_PLAN = PlanDefinition(
    name="premium",
    display_name="Premium Plan",
    description="For large events and enterprises",
    price_per_month=9999,
    limits=_limits(-1, -1, -1, -1, -1, -1, -1, -1),
    features=_features(*Feature),
)

DEFAULT_PLAN_DEFINITIONS: Tuple[PlanDefinition, ...] = (FREE_PLAN, BASIC_PLAN, PREMIUM_PLAN)


def _coerce_definition(definition: Union[PlanDefinition, Mapping[str, Any]]) -> PlanDefinition:
    if isinstance(definition, PlanDefinition):
        return definition
    try:
        return PlanDefinition.model_validate(dict(definition))
    except ValidationError as exc:
        raise PlanValidationError(f"Invalid plan definition: {exc}") from exc


@dataclass
class PlanCatalog:
    """Administrative access to plan definitions."""

    repository: PlanRepository
    cache: Optional[EntitlementCache] = None

    def upsert_plan(self, definition: Union[PlanDefinition, Mapping[str, Any]]) -> Plan:
        """Validate and persist a plan, keeping exactly one active default.

        Fields omitted from the definition take their defaults, except
        ``is_default``: leaving it out keeps the stored flag.
        """

        validated = _coerce_definition(definition)
        update: Dict[str, Any] = {"limits": validated.with_complete_limits()}
        if "is_default" not in validated.model_fields_set and validated.is_active:
            # An edit that omits the flag keeps the stored default.
            existing = self.repository.get_plan_by_name(validated.name)
            if existing is not None and existing.is_default:
                update["is_default"] = True
        normalized = validated.model_copy(update=update)
        plan = self.repository.upsert_plan(normalized)
        if self.cache is not None:
            self.cache.invalidate({"catalog"})
        logger.info(
            "Upserted plan %s id=%s active=%s default=%s",
            plan.name,
            plan.id,
            plan.is_active,
            plan.is_default,
        )
        return plan

    def get_plan(self, plan_id: str) -> Plan:
        plan = self.repository.get_plan(plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)
        return plan

    def get_plan_by_name(self, name: str) -> Plan:
        plan = self.repository.get_plan_by_name(name.strip().lower())
        if plan is None:
            raise PlanNotFoundError(name)
        return plan

    def find_default_plan(self) -> Optional[Plan]:
        plan = self.repository.get_default_plan()
        if plan is None or not plan.is_active or not plan.is_default:
            return None
        return plan

    def get_default_plan(self) -> Plan:
        plan = self.find_default_plan()
        if plan is None:
            raise NoDefaultPlanError()
        return plan

    def list_active_plans(self) -> List[Plan]:
        plans = [plan for plan in self.repository.list_plans(active_only=True) if plan.is_active]
        return sorted(plans, key=lambda plan: (plan.price_per_month, plan.name))

    def ensure_default_plans(
        self,
        definitions: Sequence[PlanDefinition] = DEFAULT_PLAN_DEFINITIONS,
    ) -> List[Plan]:
        """Idempotently upsert the standard catalog.

        A default chosen by an administrator is left in place: the seed only
        claims the default flag while no other active default exists.
        """

        current_default = self.find_default_plan()
        plans = []
        for definition in definitions:
            if current_default is not None:
                definition = definition.model_copy(
                    update={"is_default": definition.name == current_default.name}
                )
            plans.append(self.upsert_plan(definition))
        return plans
