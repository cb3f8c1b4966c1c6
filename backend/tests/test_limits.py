from __future__ import annotations

import pytest

from backend.app.entitlements import (
    UNLIMITED,
    UNLIMITED_SENTINEL,
    Bounded,
    ResourceKind,
    Unlimited,
    parse_limit,
)
from backend.app.entitlements.quota import QuotaReason, deny, evaluate_limit


@pytest.mark.parametrize("raw", [None, -1])
def test_parse_limit_treats_sentinel_and_missing_as_unlimited(raw):
    assert parse_limit(raw) == UNLIMITED
    assert isinstance(parse_limit(raw), Unlimited)


def test_parse_limit_rejects_other_negative_values():
    with pytest.raises(ValueError):
        parse_limit(-5)


def test_bounded_rejects_negative_ceiling():
    with pytest.raises(ValueError):
        Bounded(-1)


def test_unlimited_permits_very_large_counts():
    evaluation = evaluate_limit(ResourceKind.POLL, parse_limit(-1), 10_000_000)

    assert evaluation.allowed is True
    assert evaluation.limit == UNLIMITED_SENTINEL
    assert evaluation.current == 10_000_000
    assert evaluation.reason is None
    assert evaluation.is_unlimited is True
    assert evaluation.remaining is None


@pytest.mark.parametrize("ceiling", [0, 1, 5, 10])
def test_bounded_limit_allows_strictly_below_ceiling(ceiling):
    limit = parse_limit(ceiling)

    for current in range(ceiling):
        assert evaluate_limit(ResourceKind.QUESTION, limit, current).allowed is True

    for current in (ceiling, ceiling + 1, ceiling + 100):
        evaluation = evaluate_limit(ResourceKind.QUESTION, limit, current)
        assert evaluation.allowed is False
        assert evaluation.reason == QuotaReason.LIMIT_EXCEEDED
        assert evaluation.limit == ceiling


def test_evaluate_limit_rejects_negative_counts():
    with pytest.raises(ValueError):
        evaluate_limit(ResourceKind.POLL, Bounded(3), -1)


def test_deny_carries_reason_and_serializes():
    evaluation = deny(ResourceKind.MEETING_PER_USER, QuotaReason.NOT_IN_CONFERENCE)

    assert evaluation.allowed is False
    assert evaluation.to_dict() == {
        "kind": "meeting_per_user",
        "allowed": False,
        "limit": 0,
        "current": 0,
        "reason": "not_in_conference",
    }
