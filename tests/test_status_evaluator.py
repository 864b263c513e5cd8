"""
Tests for subscription status evaluation.

These tests verify:
1. Window precedence: trial, active, grace, restriction, denial
2. Day counts round up and never go negative
3. A stored grace_period_end wins over the current policy
4. The stored status is never trusted for expiry
"""

from datetime import timedelta

import pytest

from subscription_access.evaluator import compute_grace_period_end, evaluate_status, resolve_grace_period_end
from subscription_access.models import (
    LifecycleState,
    PolicyConfig,
    SubscriptionRecord,
    SubscriptionStatus,
)

from conftest import NOW


def _record(status=SubscriptionStatus.ACTIVE, **fields) -> SubscriptionRecord:
    fields.setdefault("start_date", NOW - timedelta(days=30))
    fields.setdefault("created_at", fields["start_date"])
    return SubscriptionRecord(user_id="user-1", status=status, **fields)


RESTRICTED = PolicyConfig(sign_in_restriction_enabled=True, sign_in_restriction_days=30)


# =============================================================================
# No record
# =============================================================================

class TestNoRecord:
    def test_no_record_is_expired_with_limited_access(self, policy):
        status = evaluate_status(None, policy, NOW)

        assert status.lifecycle_state == LifecycleState.EXPIRED
        assert status.has_record is False
        assert status.has_limited_access is True
        assert status.is_active is False
        assert status.is_in_trial is False
        assert status.is_in_grace_period is False
        assert status.remaining_trial_days == 0

    def test_no_record_never_restricted_or_denied(self):
        """Restriction needs a dated anchor; a user with no record has none."""
        status = evaluate_status(None, RESTRICTED, NOW)

        assert status.sign_in_restricted is False
        assert status.is_access_denied is False

    def test_no_record_carries_policy_limits(self, policy):
        assert evaluate_status(None, policy, NOW).feature_limits == policy.feature_limits


# =============================================================================
# Trial window
# =============================================================================

class TestTrialWindow:
    def test_trial_with_one_day_left(self, policy):
        record = _record(SubscriptionStatus.TRIAL, trial_start=NOW - timedelta(days=13), trial_end=NOW + timedelta(days=1))

        status = evaluate_status(record, policy, NOW)

        assert status.lifecycle_state == LifecycleState.TRIAL
        assert status.is_in_trial is True
        assert status.is_active is True
        assert status.remaining_trial_days == 1

    def test_partial_day_rounds_up(self, policy):
        record = _record(SubscriptionStatus.TRIAL, trial_end=NOW + timedelta(days=1, seconds=1))

        assert evaluate_status(record, policy, NOW).remaining_trial_days == 2

    def test_trial_ended_one_second_ago(self, policy):
        record = _record(SubscriptionStatus.TRIAL, trial_end=NOW - timedelta(seconds=1))

        status = evaluate_status(record, policy, NOW)

        assert status.is_in_trial is False
        assert status.is_active is False
        assert status.remaining_trial_days == 0

    def test_trial_end_equal_to_now_is_closed(self, policy):
        record = _record(SubscriptionStatus.TRIAL, trial_end=NOW)

        assert evaluate_status(record, policy, NOW).is_in_trial is False

    def test_trial_window_ignores_stale_stored_status(self, policy):
        """Only the dates decide; a record already marked EXPIRED with an open trial is in trial."""
        record = _record(SubscriptionStatus.EXPIRED, trial_end=NOW + timedelta(days=3))

        status = evaluate_status(record, policy, NOW)

        assert status.lifecycle_state == LifecycleState.TRIAL
        assert status.stored_status == SubscriptionStatus.EXPIRED


# =============================================================================
# Active window
# =============================================================================

class TestActiveWindow:
    def test_active_without_end_date(self, policy):
        status = evaluate_status(_record(), policy, NOW)

        assert status.lifecycle_state == LifecycleState.ACTIVE
        assert status.is_active is True
        assert status.days_until_expiry is None

    def test_active_with_future_end_date(self, policy):
        record = _record(end_date=NOW + timedelta(days=10, hours=1))

        status = evaluate_status(record, policy, NOW)

        assert status.lifecycle_state == LifecycleState.ACTIVE
        assert status.days_until_expiry == 11
        assert status.grace_period_end == NOW + timedelta(days=17, hours=1)

    def test_stale_active_status_does_not_extend_access(self, policy):
        record = _record(end_date=NOW - timedelta(days=1))

        status = evaluate_status(record, policy, NOW)

        assert status.is_active is False
        assert status.lifecycle_state == LifecycleState.GRACE_PERIOD

    def test_paused_record_with_future_end_is_not_active(self, policy):
        record = _record(SubscriptionStatus.PAUSED, end_date=NOW + timedelta(days=5))

        status = evaluate_status(record, policy, NOW)

        assert status.is_active is False
        assert status.lifecycle_state == LifecycleState.EXPIRED


# =============================================================================
# Grace, restriction and denial
# =============================================================================

class TestExpiryWindows:
    def test_one_day_after_end_is_grace(self, policy):
        end = NOW - timedelta(days=1)
        status = evaluate_status(_record(end_date=end), policy, NOW)

        assert status.lifecycle_state == LifecycleState.GRACE_PERIOD
        assert status.is_in_grace_period is True
        assert status.days_since_expiry == 1
        assert status.grace_period_end == end + timedelta(days=7)

    def test_grace_end_is_inclusive(self, policy):
        end = NOW - timedelta(days=7)

        assert evaluate_status(_record(end_date=end), policy, NOW).is_in_grace_period is True

    def test_past_grace_without_restriction_is_expired(self, policy):
        end = NOW - timedelta(days=8)

        status = evaluate_status(_record(end_date=end), policy, NOW)

        assert status.lifecycle_state == LifecycleState.EXPIRED
        assert status.is_in_grace_period is False
        assert status.sign_in_restricted is False
        assert status.is_access_denied is False
        assert status.days_since_expiry == 8

    def test_restriction_disabled_never_denies(self, policy):
        end = NOW - timedelta(days=400)

        status = evaluate_status(_record(end_date=end), policy, NOW)

        assert status.is_access_denied is False
        assert status.sign_in_restricted is False

    def test_past_grace_with_restriction_is_restricted(self):
        end = NOW - timedelta(days=8)

        status = evaluate_status(_record(end_date=end), RESTRICTED, NOW)

        assert status.lifecycle_state == LifecycleState.SIGN_IN_RESTRICTED
        assert status.sign_in_restricted is True
        assert status.is_access_denied is False

    def test_restriction_end_is_inclusive(self):
        end = NOW - timedelta(days=7 + 30)

        status = evaluate_status(_record(end_date=end), RESTRICTED, NOW)

        assert status.sign_in_restricted is True
        assert status.is_access_denied is False

    def test_past_restriction_window_is_denied(self):
        end = NOW - timedelta(days=7 + 31)

        status = evaluate_status(_record(end_date=end), RESTRICTED, NOW)

        assert status.lifecycle_state == LifecycleState.ACCESS_DENIED
        assert status.is_access_denied is True
        assert status.sign_in_restricted is False

    def test_expired_trial_without_end_date_gets_no_grace(self):
        """A bare trial has no anchor for grace or restriction."""
        record = _record(SubscriptionStatus.TRIAL, trial_end=NOW - timedelta(days=2))

        status = evaluate_status(record, RESTRICTED, NOW)

        assert status.lifecycle_state == LifecycleState.EXPIRED
        assert status.is_in_grace_period is False
        assert status.sign_in_restricted is False
        assert status.is_access_denied is False
        assert status.grace_period_end is None


# =============================================================================
# Grace period freezing
# =============================================================================

class TestGraceFreezing:
    def test_stored_grace_end_wins_over_policy(self):
        end = NOW - timedelta(days=5)
        record = _record(end_date=end, grace_period_end=end + timedelta(days=3))

        status = evaluate_status(record, PolicyConfig(grace_period_days=7), NOW)

        assert status.is_in_grace_period is False
        assert status.grace_period_end == end + timedelta(days=3)

    @pytest.mark.parametrize("grace_days", [0, 3, 7, 30])
    def test_policy_change_does_not_move_frozen_grace_end(self, grace_days):
        end = NOW - timedelta(days=1)
        frozen = end + timedelta(days=7)
        record = _record(end_date=end, grace_period_end=frozen)

        status = evaluate_status(record, PolicyConfig(grace_period_days=grace_days), NOW)

        assert status.grace_period_end == frozen
        assert status.is_in_grace_period is True

    def test_missing_grace_end_follows_current_policy(self):
        end = NOW - timedelta(days=5)
        record = _record(end_date=end)

        assert evaluate_status(record, PolicyConfig(grace_period_days=3), NOW).is_in_grace_period is False
        assert evaluate_status(record, PolicyConfig(grace_period_days=10), NOW).is_in_grace_period is True

    def test_restriction_counts_from_frozen_grace_end(self):
        end = NOW - timedelta(days=10)
        record = _record(end_date=end, grace_period_end=end + timedelta(days=1))
        policy = PolicyConfig(sign_in_restriction_enabled=True, sign_in_restriction_days=5)

        status = evaluate_status(record, policy, NOW)

        assert status.is_access_denied is True

    def test_resolve_grace_period_end(self, policy):
        end = NOW - timedelta(days=1)

        assert resolve_grace_period_end(_record(end_date=end), policy) == compute_grace_period_end(end, policy)
        assert resolve_grace_period_end(_record(), policy) is None


class TestDeterminism:
    def test_same_inputs_same_output(self, policy):
        record = _record(end_date=NOW - timedelta(days=2))

        assert evaluate_status(record, policy, NOW) == evaluate_status(record, policy, NOW)
