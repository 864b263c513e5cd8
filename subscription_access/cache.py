from __future__ import annotations

import json
import logging
import time
from typing import Dict, Optional

import redis

from . import config
from .models import FeatureLimits, PolicyConfig

logger = logging.getLogger(__name__)

CACHE_SCHEMA_VERSION = 1


class PolicyCache:
    """Redis-backed policy snapshot cache with in-memory fallback."""

    def __init__(self, redis_url: Optional[str] = None, ttl_seconds: Optional[int] = None) -> None:
        self._ttl_seconds = config.POLICY_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._redis = None
        self._mem: Dict[str, tuple[float, dict]] = {}
        redis_url = config.REDIS_URL if redis_url is None else redis_url

        if redis_url:
            try:
                self._redis = redis.from_url(redis_url, decode_responses=True)
                self._redis.ping()
            except redis.RedisError as exc:
                logger.warning(
                    "Policy cache falling back to in-memory store",
                    extra={"error": str(exc)},
                )
                self._redis = None

    @staticmethod
    def _key() -> str:
        return f"subscription_policy:v{CACHE_SCHEMA_VERSION}"

    def get(self) -> Optional[PolicyConfig]:
        key = self._key()

        if self._redis is not None:
            try:
                raw = self._redis.get(key)
            except redis.RedisError as exc:
                logger.warning("Policy cache read failed", extra={"error": str(exc)})
                return None
            if not raw:
                return None
            return self._decode_or_drop(raw)

        data = self._mem.get(key)
        if not data:
            return None

        cached_at, payload = data
        if time.monotonic() - cached_at >= self._ttl_seconds:
            self._mem.pop(key, None)
            return None
        return self._decode_or_drop(payload)

    def _decode_or_drop(self, payload) -> Optional[PolicyConfig]:
        try:
            if isinstance(payload, str):
                payload = json.loads(payload)
            return _decode_policy(payload)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Discarding unreadable policy cache entry", extra={"error": str(exc)})
            self.invalidate()
            return None

    def set(self, policy: PolicyConfig, *, ttl_seconds: Optional[int] = None) -> None:
        """Store the snapshot. A TTL of zero or less disables caching."""
        ttl = self._ttl_seconds if ttl_seconds is None else ttl_seconds
        key = self._key()
        if ttl <= 0:
            self.invalidate()
            return
        payload = _encode_policy(policy)

        if self._redis is not None:
            try:
                self._redis.setex(key, ttl, json.dumps(payload))
            except redis.RedisError as exc:
                logger.warning("Policy cache write failed", extra={"error": str(exc)})
            return

        self._mem[key] = (time.monotonic(), payload)

    def invalidate(self) -> None:
        key = self._key()
        if self._redis is not None:
            try:
                self._redis.delete(key)
            except redis.RedisError as exc:
                logger.warning("Policy cache invalidation failed", extra={"error": str(exc)})
        self._mem.pop(key, None)


def _encode_policy(policy: PolicyConfig) -> dict:
    return {
        "schema_version": CACHE_SCHEMA_VERSION,
        "subscription_system_enabled": policy.subscription_system_enabled,
        "trial_enabled": policy.trial_enabled,
        "trial_days": policy.trial_days,
        "grace_period_days": policy.grace_period_days,
        "sign_in_restriction_enabled": policy.sign_in_restriction_enabled,
        "sign_in_restriction_days": policy.sign_in_restriction_days,
        "feature_limits": policy.feature_limits.as_dict(),
    }


def _decode_policy(raw: dict) -> PolicyConfig:
    if int(raw.get("schema_version", CACHE_SCHEMA_VERSION)) != CACHE_SCHEMA_VERSION:
        raise ValueError("Unsupported policy cache schema version")

    limits = raw.get("feature_limits", {})
    return PolicyConfig(
        subscription_system_enabled=bool(raw["subscription_system_enabled"]),
        trial_enabled=bool(raw["trial_enabled"]),
        trial_days=int(raw["trial_days"]),
        grace_period_days=int(raw["grace_period_days"]),
        sign_in_restriction_enabled=bool(raw["sign_in_restriction_enabled"]),
        sign_in_restriction_days=int(raw["sign_in_restriction_days"]),
        feature_limits=FeatureLimits(**{k: int(v) for k, v in limits.items()}),
    )
