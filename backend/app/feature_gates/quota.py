"""Resource-specific quota checks backed by live usage counts."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..entitlements.models import Principal, ResourceKind
from ..entitlements.quota import QuotaEvaluation, QuotaReason, deny
from ..entitlements.resolver import PrincipalDirectory
from ..entitlements.service import EntitlementService
from .enforcement import assert_allowed
from .usage import UsageCounter

logger = logging.getLogger(__name__)


@dataclass
class ResourceQuotaChecker:
    """Answers "may one more of these be created?" for each resource kind.

    Counting and inserting are separate operations, so two concurrent callers
    may both be allowed and transiently exceed a ceiling. Limits are soft.
    """

    entitlements: EntitlementService
    usage: UsageCounter
    directory: PrincipalDirectory

    def _check_conference_scoped(
        self,
        kind: ResourceKind,
        conference_id: str,
        counter: Callable[[str], int],
    ) -> QuotaEvaluation:
        return self.entitlements.check_limit(
            kind,
            Principal.conference(conference_id),
            counter(conference_id),
        )

    def can_create_conference(self, account_id: str) -> QuotaEvaluation:
        account = self.directory.get_account(account_id)
        if account is None:
            logger.info("Conference quota check for unknown account %s", account_id)
            return deny(ResourceKind.CONFERENCE, QuotaReason.USER_NOT_FOUND)
        current = self.usage.count_conferences_for_account(account)
        return self.entitlements.check_limit(
            ResourceKind.CONFERENCE,
            Principal.user(account.account_id),
            current,
        )

    def can_add_participant(self, conference_id: str) -> QuotaEvaluation:
        return self._check_conference_scoped(
            ResourceKind.PARTICIPANT, conference_id, self.usage.count_active_participants
        )

    def can_create_poll(self, conference_id: str) -> QuotaEvaluation:
        return self._check_conference_scoped(ResourceKind.POLL, conference_id, self.usage.count_polls)

    def can_create_question(self, conference_id: str) -> QuotaEvaluation:
        return self._check_conference_scoped(
            ResourceKind.QUESTION, conference_id, self.usage.count_questions
        )

    def can_create_meeting(self, conference_id: str) -> QuotaEvaluation:
        return self._check_conference_scoped(
            ResourceKind.MEETING, conference_id, self.usage.count_meetings
        )

    def can_add_speaker(self, conference_id: str) -> QuotaEvaluation:
        return self._check_conference_scoped(
            ResourceKind.SPEAKER, conference_id, self.usage.count_speakers
        )

    def can_add_admin(self, conference_id: str) -> QuotaEvaluation:
        return self._check_conference_scoped(ResourceKind.ADMIN, conference_id, self.usage.count_admins)

    def can_user_create_meeting(self, conference_id: str, external_id: str) -> QuotaEvaluation:
        """Per-participant meeting ceiling; the participant must already be in the conference."""

        profile = self.usage.find_participant_profile(conference_id, external_id)
        if profile is None or not profile.is_active:
            return deny(ResourceKind.MEETING_PER_USER, QuotaReason.NOT_IN_CONFERENCE)
        current = self.usage.count_meetings_for_profile(conference_id, profile.profile_id)
        return self.entitlements.check_limit(
            ResourceKind.MEETING_PER_USER,
            Principal.conference(conference_id),
            current,
        )

    def can_schedule_meeting(self, conference_id: str, external_id: str) -> QuotaEvaluation:
        """Both meeting ceilings must pass; the first denial is returned."""

        conference_wide = self.can_create_meeting(conference_id)
        if not conference_wide.allowed:
            return conference_wide
        return self.can_user_create_meeting(conference_id, external_id)

    def require(self, evaluation: QuotaEvaluation, *, message: Optional[str] = None) -> QuotaEvaluation:
        return assert_allowed(evaluation, message=message)
