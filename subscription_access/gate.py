"""
Feature access decisions.

Translates a DerivedStatus into an access decision plus the degraded
limits the calling feature must apply. Enforcing a cap (e.g. truncating
a note list) stays with the caller.

DECISION TABLE (first match wins):
- subscription system disabled -> allow (subscription_disabled)
- access denied                -> deny  (access_denied)
- trial / active               -> allow (trial_active / subscription_active)
- grace period                 -> allow, limits apply (grace_period)
- sign-in restricted           -> allow, limits apply, read-only (sign_in_restricted)
- otherwise                    -> deny  (trial_expired / no_subscription)
"""

from __future__ import annotations

from typing import Optional

from .models import (
    AccessReason,
    DerivedStatus,
    FeatureAccessResult,
    LifecycleState,
    PolicyConfig,
)


def _deny_reason(status: DerivedStatus) -> AccessReason:
    # A bare trial never gets an end_date; anything with one was paid.
    if status.trial_end is not None and status.end_date is None:
        return AccessReason.TRIAL_EXPIRED
    return AccessReason.NO_SUBSCRIPTION


def decide(status: DerivedStatus, policy: PolicyConfig) -> tuple[bool, AccessReason]:
    if not policy.subscription_system_enabled:
        return True, AccessReason.SUBSCRIPTION_DISABLED
    if status.is_access_denied:
        return False, AccessReason.ACCESS_DENIED
    if status.is_active:
        return True, AccessReason.TRIAL_ACTIVE if status.is_in_trial else AccessReason.SUBSCRIPTION_ACTIVE
    if status.is_in_grace_period:
        return True, AccessReason.GRACE_PERIOD
    if status.sign_in_restricted:
        return True, AccessReason.SIGN_IN_RESTRICTED
    return False, _deny_reason(status)


def check_access(
    status: DerivedStatus,
    policy: PolicyConfig,
    feature: Optional[str] = None,
) -> FeatureAccessResult:
    """
    Build the access decision for a derived status.

    Args:
        status: Output of evaluate_status
        policy: Policy snapshot the status was evaluated against
        feature: Optional feature name (timetable, notes, focus_sessions, private_lessons)

    Returns:
        FeatureAccessResult; ``feature_limit`` is set when a known feature was named
    """
    has_access, reason = decide(status, policy)
    feature_key = str(feature).strip() if feature else None
    return FeatureAccessResult(
        has_access=has_access,
        reason=reason,
        lifecycle_state=status.lifecycle_state,
        is_active=status.is_active,
        is_in_trial=status.is_in_trial,
        is_in_grace_period=status.is_in_grace_period,
        is_access_denied=status.is_access_denied,
        sign_in_restricted=status.sign_in_restricted,
        remaining_trial_days=status.remaining_trial_days,
        feature_limits=status.feature_limits,
        days_until_expiry=status.days_until_expiry,
        days_since_expiry=status.days_since_expiry,
        grace_period_end=status.grace_period_end,
        plan=status.plan,
        feature=feature_key,
        feature_limit=status.feature_limits.limit_for(feature_key) if feature_key else None,
    )


def admin_access(policy: PolicyConfig, feature: Optional[str] = None) -> FeatureAccessResult:
    """Unconditional access for administrators; no subscription lookup is needed."""
    feature_key = str(feature).strip() if feature else None
    return FeatureAccessResult(
        has_access=True,
        reason=AccessReason.ADMIN,
        lifecycle_state=LifecycleState.ACTIVE,
        is_active=True,
        is_in_trial=False,
        is_in_grace_period=False,
        is_access_denied=False,
        sign_in_restricted=False,
        remaining_trial_days=0,
        feature_limits=policy.feature_limits,
        feature=feature_key,
        feature_limit=policy.feature_limits.limit_for(feature_key) if feature_key else None,
    )


def can_view_feature(result: FeatureAccessResult, feature: str, count: Optional[int] = None) -> bool:
    """
    Whether an item at position ``count`` of ``feature`` may be shown.

    Without access nothing is shown; outside degraded access everything is.
    """
    if not result.has_access:
        return False
    if not result.limits_apply:
        return True
    limit = result.feature_limits.limit_for(feature)
    if limit is None or count is None:
        return True
    return count < limit
