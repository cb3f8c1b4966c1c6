"""Quota evaluation against a resolved plan ceiling."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union

from .limits import LimitValue
from .models import ResourceKind


class QuotaReason(str, Enum):
    """Structured reason attached to every denial."""

    LIMIT_EXCEEDED = "limit_exceeded"
    USER_MEETING_LIMIT_EXCEEDED = "user_meeting_limit_exceeded"
    NOT_IN_CONFERENCE = "not_in_conference"
    USER_NOT_FOUND = "user_not_found"


@dataclass(frozen=True)
class QuotaEvaluation:
    """Outcome of a quota check, carrying enough detail to render a message."""

    kind: ResourceKind
    allowed: bool
    limit: int
    current: int
    reason: Optional[QuotaReason] = None

    @property
    def is_unlimited(self) -> bool:
        return self.allowed and self.limit < 0

    @property
    def remaining(self) -> Optional[int]:
        """Resources that may still be created, or ``None`` when unlimited."""

        if self.limit < 0:
            return None
        return max(self.limit - self.current, 0)

    def to_dict(self) -> Dict[str, Union[str, int, bool, None]]:
        """Serialize the evaluation for logging or API responses."""

        return {
            "kind": self.kind.value,
            "allowed": self.allowed,
            "limit": self.limit,
            "current": self.current,
            "reason": self.reason.value if self.reason else None,
        }


def evaluate_limit(
    kind: ResourceKind,
    limit: LimitValue,
    current: int,
    *,
    denial_reason: QuotaReason = QuotaReason.LIMIT_EXCEEDED,
) -> QuotaEvaluation:
    """Decide whether one more resource may be created given ``current`` existing ones."""

    if current < 0:
        raise ValueError("current count must be >= 0")
    allowed = limit.permits(current)
    return QuotaEvaluation(
        kind=kind,
        allowed=allowed,
        limit=limit.as_int(),
        current=current,
        reason=None if allowed else denial_reason,
    )


def deny(
    kind: ResourceKind,
    reason: QuotaReason,
    *,
    limit: int = 0,
    current: int = 0,
) -> QuotaEvaluation:
    """Build a denial that did not come from comparing a count."""

    return QuotaEvaluation(kind=kind, allowed=False, limit=limit, current=current, reason=reason)
