"""Usage counter interface consumed by the quota checks."""
from __future__ import annotations

from typing import Optional, Protocol

from ..entitlements.models import Account, ParticipantProfile


class UsageCounter(Protocol):
    """Live counts of existing resources, queried at check time.

    Implementations must not cache: the count is compared against the plan
    ceiling immediately before the caller inserts the new resource.
    """

    def count_conferences_for_account(self, account: Account) -> int:
        """Distinct conferences the account joined or administers."""

    def count_active_participants(self, conference_id: str) -> int:
        ...

    def count_polls(self, conference_id: str) -> int:
        ...

    def count_questions(self, conference_id: str) -> int:
        ...

    def count_meetings(self, conference_id: str) -> int:
        ...

    def count_speakers(self, conference_id: str) -> int:
        ...

    def count_admins(self, conference_id: str) -> int:
        ...

    def find_participant_profile(
        self,
        conference_id: str,
        external_id: str,
    ) -> Optional[ParticipantProfile]:
        """Return the participant's active profile in the conference, if any."""

    def count_meetings_for_profile(self, conference_id: str, profile_id: str) -> int:
        """Meetings in the conference where the profile is requester or recipient."""
