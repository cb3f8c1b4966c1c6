"""Custom exceptions used for feature gating enforcement."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status

from ..entitlements.quota import QuotaEvaluation


@dataclass
class FeatureGateError(Exception):
    """Represents an actionable gating failure surfaced to API callers."""

    code: str
    message: str
    status_code: int = status.HTTP_403_FORBIDDEN
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


_QUOTA_MESSAGES = {
    "limit_exceeded": "Your plan allows at most {limit} {kind} resources.",
    "user_meeting_limit_exceeded": "You have reached your limit of {limit} meetings in this conference.",
    "not_in_conference": "You must join the conference before scheduling meetings.",
    "user_not_found": "Account not found.",
}


class QuotaExceededError(FeatureGateError):
    """Raised when a caller asks for a denied quota evaluation to be enforced."""

    def __init__(self, evaluation: QuotaEvaluation, *, message: Optional[str] = None) -> None:
        code = evaluation.reason.value if evaluation.reason else "limit_exceeded"
        template = _QUOTA_MESSAGES.get(code, "Quota exceeded.")
        super().__init__(
            code=code,
            message=message or template.format(limit=evaluation.limit, kind=evaluation.kind.value),
            detail={
                "kind": evaluation.kind.value,
                "limit": evaluation.limit,
                "current": evaluation.current,
            },
        )
        self.evaluation = evaluation
