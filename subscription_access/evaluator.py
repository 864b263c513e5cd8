"""
Subscription status evaluation.

Derives a user's lifecycle state from the raw dates of their current
subscription record, the policy snapshot, and the evaluation time.
The stored ``status`` column is only consulted for the ACTIVE window;
it is never trusted for expiry.

Precedence (first match wins):
1. no record          -> EXPIRED, limited access, no windows
2. trial window       -> TRIAL (now < trial_end)
3. active window      -> ACTIVE (stored ACTIVE and now < end_date, or no end_date)
4. grace window       -> GRACE_PERIOD (end_date <= now <= grace_period_end)
5. restriction window -> SIGN_IN_RESTRICTED / ACCESS_DENIED (policy-gated)
otherwise             -> EXPIRED

A trial that ends without an end_date has no anchor for steps 4-5 and
falls straight through to EXPIRED.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from .models import (
    DerivedStatus,
    LifecycleState,
    PolicyConfig,
    SubscriptionRecord,
    SubscriptionStatus,
    ceil_days,
    utcnow,
)


def compute_grace_period_end(end_date: datetime, policy: PolicyConfig) -> datetime:
    return end_date + timedelta(days=policy.grace_period_days)


def resolve_grace_period_end(record: SubscriptionRecord, policy: PolicyConfig) -> Optional[datetime]:
    """Frozen value when stored, otherwise computed from the current policy."""
    if record.grace_period_end is not None:
        return record.grace_period_end
    if record.end_date is not None:
        return compute_grace_period_end(record.end_date, policy)
    return None


def evaluate_status(
    record: Optional[SubscriptionRecord],
    policy: PolicyConfig,
    now: Optional[datetime] = None,
) -> DerivedStatus:
    """
    Evaluate the lifecycle state of a subscription record.

    Pure and deterministic for fixed inputs; business outcomes are
    reported in the result, never raised.

    Args:
        record: The user's current subscription record, or None
        policy: Policy snapshot to evaluate against
        now: Evaluation instant (defaults to the current UTC time)

    Returns:
        DerivedStatus for the record at ``now``
    """
    now = now or utcnow()

    if record is None:
        return DerivedStatus(
            lifecycle_state=LifecycleState.EXPIRED,
            is_active=False,
            is_in_trial=False,
            is_in_grace_period=False,
            remaining_trial_days=0,
            feature_limits=policy.feature_limits,
            has_record=False,
            has_limited_access=True,
        )

    trial_end = record.trial_end
    end_date = record.end_date
    remaining_trial_days = max(0, ceil_days(trial_end - now)) if trial_end is not None else 0
    days_until_expiry = max(0, ceil_days(end_date - now)) if end_date is not None and now < end_date else None

    common = dict(
        feature_limits=policy.feature_limits,
        stored_status=record.status,
        remaining_trial_days=remaining_trial_days,
        trial_end=trial_end,
        end_date=end_date,
        plan=record.plan,
    )

    if trial_end is not None and now < trial_end:
        return DerivedStatus(
            lifecycle_state=LifecycleState.TRIAL,
            is_active=True,
            is_in_trial=True,
            is_in_grace_period=False,
            days_until_expiry=days_until_expiry,
            grace_period_end=record.grace_period_end,
            **common,
        )

    if record.status == SubscriptionStatus.ACTIVE and (end_date is None or now < end_date):
        return DerivedStatus(
            lifecycle_state=LifecycleState.ACTIVE,
            is_active=True,
            is_in_trial=False,
            is_in_grace_period=False,
            days_until_expiry=days_until_expiry,
            grace_period_end=resolve_grace_period_end(record, policy),
            **common,
        )

    grace_period_end = resolve_grace_period_end(record, policy)
    days_since_expiry = None

    if end_date is not None and now >= end_date:
        days_since_expiry = max(0, ceil_days(now - end_date))
        if now <= grace_period_end:
            return DerivedStatus(
                lifecycle_state=LifecycleState.GRACE_PERIOD,
                is_active=False,
                is_in_trial=False,
                is_in_grace_period=True,
                days_since_expiry=days_since_expiry,
                grace_period_end=grace_period_end,
                **common,
            )

    sign_in_restricted = False
    is_access_denied = False
    if policy.sign_in_restriction_enabled and grace_period_end is not None:
        total_access_end = grace_period_end + timedelta(days=policy.sign_in_restriction_days)
        if now > total_access_end:
            is_access_denied = True
        elif now > grace_period_end:
            sign_in_restricted = True

    if is_access_denied:
        state = LifecycleState.ACCESS_DENIED
    elif sign_in_restricted:
        state = LifecycleState.SIGN_IN_RESTRICTED
    else:
        state = LifecycleState.EXPIRED

    return DerivedStatus(
        lifecycle_state=state,
        is_active=False,
        is_in_trial=False,
        is_in_grace_period=False,
        has_limited_access=True,
        is_access_denied=is_access_denied,
        sign_in_restricted=sign_in_restricted,
        days_since_expiry=days_since_expiry,
        grace_period_end=grace_period_end,
        **common,
    )
