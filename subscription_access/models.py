from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional

DAY = timedelta(days=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Interpret naive datetimes (e.g. read back from SQLite) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def ceil_days(delta: timedelta) -> int:
    """Whole days covering ``delta``, rounded up; exact on timedelta arithmetic."""
    return -((-delta) // DAY)


class SubscriptionStatus(str, Enum):
    """Stored, possibly stale, classification of a subscription record."""

    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"
    PAUSED = "PAUSED"


LIVE_STATUSES = (SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE)


class LifecycleState(str, Enum):
    """Derived lifecycle state; never persisted."""

    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    GRACE_PERIOD = "GRACE_PERIOD"
    SIGN_IN_RESTRICTED = "SIGN_IN_RESTRICTED"
    ACCESS_DENIED = "ACCESS_DENIED"
    EXPIRED = "EXPIRED"


class AccessReason(str, Enum):
    SUBSCRIPTION_DISABLED = "subscription_disabled"
    ADMIN = "admin"
    ACCESS_DENIED = "access_denied"
    TRIAL_ACTIVE = "trial_active"
    SUBSCRIPTION_ACTIVE = "subscription_active"
    GRACE_PERIOD = "grace_period"
    SIGN_IN_RESTRICTED = "sign_in_restricted"
    TRIAL_EXPIRED = "trial_expired"
    NO_SUBSCRIPTION = "no_subscription"


# Reasons under which callers must apply feature limits to what they show.
DEGRADED_REASONS = frozenset({AccessReason.GRACE_PERIOD, AccessReason.SIGN_IN_RESTRICTED})

# Reasons under which the caller may still view but not edit.
READ_ONLY_REASONS = frozenset({AccessReason.SIGN_IN_RESTRICTED})


FEATURE_LIMIT_FIELDS: Dict[str, str] = {
    "timetable": "timetable_days",
    "notes": "notes_limit",
    "focus_sessions": "focus_sessions_limit",
    "private_lessons": "private_lessons_limit",
}


@dataclass(frozen=True)
class FeatureLimits:
    """Caps applied while access is degraded (grace or sign-in restriction)."""

    timetable_days: int = 5
    notes_limit: int = 20
    focus_sessions_limit: int = 10
    private_lessons_limit: int = 5

    def limit_for(self, feature: str) -> Optional[int]:
        attr = FEATURE_LIMIT_FIELDS.get(str(feature).strip())
        if attr is None:
            return None
        return getattr(self, attr)

    def as_dict(self) -> Dict[str, int]:
        return {
            "timetable_days": self.timetable_days,
            "notes_limit": self.notes_limit,
            "focus_sessions_limit": self.focus_sessions_limit,
            "private_lessons_limit": self.private_lessons_limit,
        }


@dataclass(frozen=True)
class PolicyConfig:
    """Immutable snapshot of the admin-configurable subscription knobs."""

    subscription_system_enabled: bool = True
    trial_enabled: bool = True
    trial_days: int = 14
    grace_period_days: int = 7
    sign_in_restriction_enabled: bool = False
    sign_in_restriction_days: int = 30
    feature_limits: FeatureLimits = field(default_factory=FeatureLimits)

    @property
    def grace_period(self) -> timedelta:
        return timedelta(days=self.grace_period_days)

    @property
    def sign_in_restriction(self) -> timedelta:
        return timedelta(days=self.sign_in_restriction_days)


@dataclass(frozen=True)
class Plan:
    """Read-only catalog entry."""

    id: str
    name: str
    price: Decimal
    duration_days: int
    name_ar: Optional[str] = None
    is_active: bool = True


@dataclass(frozen=True)
class SubscriptionRecord:
    """One entitlement grant for a user. Only the most recently created is authoritative."""

    user_id: str
    status: SubscriptionStatus
    start_date: datetime
    created_at: datetime
    id: Optional[int] = None
    plan_id: Optional[str] = None
    end_date: Optional[datetime] = None
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    grace_period_end: Optional[datetime] = None
    plan: Optional[Plan] = None

    def __post_init__(self) -> None:
        user_id = str(self.user_id).strip()
        if not user_id:
            raise ValueError("user_id is required")
        object.__setattr__(self, "user_id", user_id)
        object.__setattr__(self, "status", SubscriptionStatus(self.status))
        for name in ("start_date", "created_at", "end_date", "trial_start", "trial_end", "grace_period_end"):
            value = getattr(self, name)
            if value is not None and value.tzinfo is None:
                raise ValueError(f"{name} must be timezone-aware")


@dataclass(frozen=True)
class DerivedStatus:
    """Output of the status evaluator. Recomputed on demand, never stored."""

    lifecycle_state: LifecycleState
    is_active: bool
    is_in_trial: bool
    is_in_grace_period: bool
    remaining_trial_days: int
    feature_limits: FeatureLimits
    has_record: bool = True
    has_limited_access: bool = False
    is_access_denied: bool = False
    sign_in_restricted: bool = False
    stored_status: Optional[SubscriptionStatus] = None
    days_until_expiry: Optional[int] = None
    days_since_expiry: Optional[int] = None
    trial_end: Optional[datetime] = None
    end_date: Optional[datetime] = None
    grace_period_end: Optional[datetime] = None
    plan: Optional[Plan] = None


@dataclass(frozen=True)
class FeatureAccessResult:
    """Access decision for a user, optionally scoped to one feature."""

    has_access: bool
    reason: AccessReason
    lifecycle_state: LifecycleState
    is_active: bool
    is_in_trial: bool
    is_in_grace_period: bool
    is_access_denied: bool
    sign_in_restricted: bool
    remaining_trial_days: int
    feature_limits: FeatureLimits
    days_until_expiry: Optional[int] = None
    days_since_expiry: Optional[int] = None
    grace_period_end: Optional[datetime] = None
    plan: Optional[Plan] = None
    feature: Optional[str] = None
    feature_limit: Optional[int] = None

    @property
    def limits_apply(self) -> bool:
        return self.has_access and self.reason in DEGRADED_REASONS

    @property
    def is_read_only(self) -> bool:
        return not self.has_access or self.reason in READ_ONLY_REASONS
