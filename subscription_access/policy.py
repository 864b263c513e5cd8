"""
Subscription policy loading.

Parses the admin-configurable settings (trial length, grace period,
sign-in restriction window, degraded-access limits) into an immutable
PolicyConfig. A malformed setting never fails an access check: it is
replaced by its documented default and an alert is emitted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

from .alerts import emit_policy_fallback
from .cache import PolicyCache
from .errors import InvalidPolicyValueError
from .models import FeatureLimits, PolicyConfig
from .repository import SettingsStore

logger = logging.getLogger(__name__)

SettingValue = Union[bool, int]


@dataclass(frozen=True)
class SettingSpec:
    key: str
    kind: type
    default: SettingValue


SUBSCRIPTION_ENABLED = SettingSpec("subscriptionEnabled", bool, True)
TRIAL_ENABLED = SettingSpec("trialEnabled", bool, True)
TRIAL_DAYS = SettingSpec("trialDays", int, 14)
GRACE_PERIOD_DAYS = SettingSpec("gracePeriodDays", int, 7)
SIGN_IN_RESTRICTION_ENABLED = SettingSpec("signInRestrictionEnabled", bool, False)
SIGN_IN_RESTRICTION_DAYS = SettingSpec("signInRestrictionDays", int, 30)
EXPIRED_TIMETABLE_DAYS = SettingSpec("expiredTimetableDays", int, 5)
EXPIRED_NOTES_LIMIT = SettingSpec("expiredNotesLimit", int, 20)
EXPIRED_FOCUS_SESSIONS_LIMIT = SettingSpec("expiredFocusSessionsLimit", int, 10)
EXPIRED_PRIVATE_LESSONS_LIMIT = SettingSpec("expiredPrivateLessonsLimit", int, 5)

POLICY_SETTINGS: Dict[str, SettingSpec] = {
    spec.key: spec
    for spec in (
        SUBSCRIPTION_ENABLED,
        TRIAL_ENABLED,
        TRIAL_DAYS,
        GRACE_PERIOD_DAYS,
        SIGN_IN_RESTRICTION_ENABLED,
        SIGN_IN_RESTRICTION_DAYS,
        EXPIRED_TIMETABLE_DAYS,
        EXPIRED_NOTES_LIMIT,
        EXPIRED_FOCUS_SESSIONS_LIMIT,
        EXPIRED_PRIVATE_LESSONS_LIMIT,
    )
}


def _parse_bool(key: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value == "true":
        return True
    if value == "false":
        return False
    raise InvalidPolicyValueError(key, raw, "expected 'true' or 'false'")


def _parse_int(key: str, raw: str) -> int:
    value = raw.strip()
    if not (value.isascii() and value.isdigit()):
        raise InvalidPolicyValueError(key, raw, "expected a non-negative whole number of days or items")
    return int(value)


def parse_setting(spec: SettingSpec, raw: Optional[str]) -> SettingValue:
    """Parse one raw setting strictly. Unset values resolve to the default."""
    if raw is None or not raw.strip():
        return spec.default
    if spec.kind is bool:
        return _parse_bool(spec.key, raw)
    return _parse_int(spec.key, raw)


def validate_setting(key: str, value: Optional[str]) -> SettingValue:
    """
    Validate a setting before it is written by the admin surface.

    Raises:
        InvalidPolicyValueError: unknown key or malformed value
    """
    spec = POLICY_SETTINGS.get(key)
    if spec is None:
        raise InvalidPolicyValueError(key, value, "unknown subscription setting")
    return parse_setting(spec, value)


def _read(get_setting: Callable[[str], Optional[str]], spec: SettingSpec) -> SettingValue:
    raw = get_setting(spec.key)
    try:
        return parse_setting(spec, raw)
    except InvalidPolicyValueError:
        emit_policy_fallback(spec.key, raw, spec.default)
        return spec.default


def load_policy(store: SettingsStore) -> PolicyConfig:
    """Build a PolicyConfig from the settings store, defaulting every malformed knob."""
    get = store.get_setting
    return PolicyConfig(
        subscription_system_enabled=_read(get, SUBSCRIPTION_ENABLED),
        trial_enabled=_read(get, TRIAL_ENABLED),
        trial_days=_read(get, TRIAL_DAYS),
        grace_period_days=_read(get, GRACE_PERIOD_DAYS),
        sign_in_restriction_enabled=_read(get, SIGN_IN_RESTRICTION_ENABLED),
        sign_in_restriction_days=_read(get, SIGN_IN_RESTRICTION_DAYS),
        feature_limits=FeatureLimits(
            timetable_days=_read(get, EXPIRED_TIMETABLE_DAYS),
            notes_limit=_read(get, EXPIRED_NOTES_LIMIT),
            focus_sessions_limit=_read(get, EXPIRED_FOCUS_SESSIONS_LIMIT),
            private_lessons_limit=_read(get, EXPIRED_PRIVATE_LESSONS_LIMIT),
        ),
    )


class PolicyProvider:
    """Cached access to the current PolicyConfig with explicit invalidation."""

    def __init__(self, store: SettingsStore, cache: Optional[PolicyCache] = None) -> None:
        self.store = store
        self.cache = cache or PolicyCache()

    def get_policy(self) -> PolicyConfig:
        cached = self.cache.get()
        if cached is not None:
            return cached
        policy = load_policy(self.store)
        self.cache.set(policy)
        logger.debug("Loaded subscription policy from settings store")
        return policy

    def invalidate(self) -> None:
        """Must be called whenever the settings store changes a policy key."""
        self.cache.invalidate()
