"""PostgreSQL implementation of the usage counter."""
from __future__ import annotations

from typing import Optional

from ..entitlements.models import Account, ParticipantProfile
from ..entitlements.repository import PostgresRepositoryBase


class PostgresUsageCounter(PostgresRepositoryBase):
    """Runs live ``COUNT`` queries against the conference tables."""

    def _count(self, query: str, params: tuple) -> int:
        with self._cursor() as cursor:
            cursor.execute(query, params)
            row = cursor.fetchone()
            return int(row["total"]) if row else 0

    def count_conferences_for_account(self, account: Account) -> int:
        # Profiles are matched by the external identifier, not the account id.
        return self._count(
            """
            SELECT COUNT(DISTINCT conference_id) AS total
            FROM (
                SELECT p.conference_id
                FROM participant_profiles p
                WHERE p.external_id = %s
                UNION
                SELECT ca.conference_id
                FROM conference_admins ca
                JOIN participant_profiles p ON p.profile_id = ca.profile_id
                WHERE p.external_id = %s
            ) linked
            """,
            (account.external_id, account.external_id),
        )

    def count_active_participants(self, conference_id: str) -> int:
        return self._count(
            """
            SELECT COUNT(*) AS total
            FROM participant_profiles
            WHERE conference_id = %s AND is_active
            """,
            (conference_id,),
        )

    def count_polls(self, conference_id: str) -> int:
        return self._count(
            "SELECT COUNT(*) AS total FROM polls WHERE conference_id = %s",
            (conference_id,),
        )

    def count_questions(self, conference_id: str) -> int:
        return self._count(
            "SELECT COUNT(*) AS total FROM questions WHERE conference_id = %s",
            (conference_id,),
        )

    def count_meetings(self, conference_id: str) -> int:
        return self._count(
            "SELECT COUNT(*) AS total FROM meetings WHERE conference_id = %s",
            (conference_id,),
        )

    def count_speakers(self, conference_id: str) -> int:
        return self._count(
            """
            SELECT COUNT(*) AS total
            FROM participant_profiles
            WHERE conference_id = %s AND is_active AND 'speaker' = ANY(roles)
            """,
            (conference_id,),
        )

    def count_admins(self, conference_id: str) -> int:
        return self._count(
            "SELECT COUNT(*) AS total FROM conference_admins WHERE conference_id = %s",
            (conference_id,),
        )

    def find_participant_profile(
        self,
        conference_id: str,
        external_id: str,
    ) -> Optional[ParticipantProfile]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT profile_id, conference_id, external_id, is_active
                FROM participant_profiles
                WHERE conference_id = %s AND external_id = %s AND is_active
                LIMIT 1
                """,
                (conference_id, external_id),
            )
            row = cursor.fetchone()
            if not row:
                return None
            return ParticipantProfile(
                profile_id=row["profile_id"],
                conference_id=row["conference_id"],
                external_id=row["external_id"],
                is_active=bool(row["is_active"]),
            )

    def count_meetings_for_profile(self, conference_id: str, profile_id: str) -> int:
        return self._count(
            """
            SELECT COUNT(*) AS total
            FROM meetings
            WHERE conference_id = %s
              AND (requester_profile_id = %s OR recipient_profile_id = %s)
            """,
            (conference_id, profile_id, profile_id),
        )
