"""
Subscription error hierarchy.

Provides:
- SubscriptionError: base for all engine failures
- PlanNotFoundError: activation requested for an unknown or inactive plan
- InvalidPolicyValueError: a policy setting failed to parse
- ActivationConflictError: a concurrent activation won the race for a user

Business outcomes (expired, restricted, denied) are results, never errors.
"""

from typing import Optional


class SubscriptionError(Exception):
    """Base exception for subscription-related failures."""

    error_code = "SUBSCRIPTION_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.error_code, "message": self.message}


class PlanNotFoundError(SubscriptionError):
    """Raised when a plan id does not resolve to an active plan."""

    error_code = "PLAN_NOT_FOUND"

    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__(f"Plan {plan_id!r} not found or inactive")

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": self.message,
            "plan_id": self.plan_id,
        }


class InvalidPolicyValueError(SubscriptionError):
    """
    Raised when a policy setting cannot be parsed.

    The policy loader catches this and substitutes the documented default;
    only the admin validation path lets it escape.
    """

    error_code = "INVALID_POLICY_VALUE"

    def __init__(self, key: str, value: Optional[str], detail: str):
        self.key = key
        self.value = value
        self.detail = detail
        super().__init__(f"Invalid value for {key}: {value!r} ({detail})")

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": self.detail,
            "key": self.key,
            "value": self.value,
        }


class ActivationConflictError(SubscriptionError):
    """Raised when another activation committed a live record for the same user first."""

    error_code = "ACTIVATION_CONFLICT"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Concurrent activation detected for user {user_id}")
