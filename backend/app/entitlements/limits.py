"""Typed representation of stored plan ceilings."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

UNLIMITED_SENTINEL = -1


@dataclass(frozen=True)
class Unlimited:
    """A ceiling that never denies."""

    def permits(self, current: int) -> bool:
        return True

    def as_int(self) -> int:
        return UNLIMITED_SENTINEL

    @property
    def is_unlimited(self) -> bool:
        return True


@dataclass(frozen=True)
class Bounded:
    """A finite ceiling: at most ``ceiling`` resources may exist."""

    ceiling: int

    def __post_init__(self) -> None:
        if self.ceiling < 0:
            raise ValueError("ceiling must be >= 0")

    def permits(self, current: int) -> bool:
        return current < self.ceiling

    def as_int(self) -> int:
        return self.ceiling

    @property
    def is_unlimited(self) -> bool:
        return False


LimitValue = Union[Unlimited, Bounded]

UNLIMITED = Unlimited()


def parse_limit(raw: Optional[int]) -> LimitValue:
    """Convert a stored integer ceiling into a :data:`LimitValue`.

    ``None`` and the ``-1`` sentinel both mean "no ceiling". Any other negative
    value is rejected since it cannot be produced by a validated plan.
    """

    if raw is None or raw == UNLIMITED_SENTINEL:
        return UNLIMITED
    if raw < 0:
        raise ValueError(f"Invalid stored limit: {raw!r}")
    return Bounded(int(raw))
