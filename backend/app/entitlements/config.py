"""Entitlement engine configuration helpers."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional


@dataclass(frozen=True)
class EntitlementConfig:
    """Configuration for plan resolution and its backing store."""

    cache_ttl_seconds: int
    seed_default_plans: bool
    db_config: Dict[str, Any] = field(default_factory=dict)

    @property
    def cache_enabled(self) -> bool:
        return self.cache_ttl_seconds > 0


def _to_bool(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def load_entitlement_config(env: Optional[Mapping[str, str]] = None) -> EntitlementConfig:
    """Load :class:`EntitlementConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    cache_ttl_seconds = max(0, _to_int(env_mapping.get("ENTITLEMENT_CACHE_TTL_SECONDS"), default=0))
    seed_default_plans = _to_bool(env_mapping.get("ENTITLEMENT_SEED_DEFAULT_PLANS"), default=True)

    db_config: Dict[str, Any] = {
        "host": env_mapping.get("DB_HOST", "127.0.0.1"),
        "port": _to_int(env_mapping.get("DB_PORT"), default=5432),
        "database": env_mapping.get("DB_NAME", "conference_db"),
        "user": env_mapping.get("DB_USER", "conference_user"),
        "password": env_mapping.get("DB_PASSWORD", "conference_pass"),
    }

    return EntitlementConfig(
        cache_ttl_seconds=cache_ttl_seconds,
        seed_default_plans=seed_default_plans,
        db_config=db_config,
    )
