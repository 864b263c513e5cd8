"""
Subscription lifecycle and feature-access policy engine.

This package provides:
- PolicyProvider / load_policy: parse admin settings into a PolicyConfig
- evaluate_status: derive the lifecycle state of a subscription record
- check_access: turn a derived status into an access decision with limits
- LifecycleReconciler: keep stored statuses current for reporting
- ActivationService: supersede and create subscriptions on purchase
- SubscriptionAccessService: the entry point most callers need

HTTP adapters live in subscription_access.dependencies and
subscription_access.routes.
"""

from subscription_access.activation import ActivationService
from subscription_access.errors import (
    ActivationConflictError,
    InvalidPolicyValueError,
    PlanNotFoundError,
    SubscriptionError,
)
from subscription_access.evaluator import evaluate_status
from subscription_access.gate import can_view_feature, check_access
from subscription_access.models import (
    AccessReason,
    DerivedStatus,
    FeatureAccessResult,
    FeatureLimits,
    LifecycleState,
    Plan,
    PolicyConfig,
    SubscriptionRecord,
    SubscriptionStatus,
)
from subscription_access.policy import PolicyProvider, load_policy, validate_setting
from subscription_access.reconciler import LifecycleReconciler, reconcile_all
from subscription_access.service import SubscriptionAccessService

__all__ = [
    "ActivationService",
    "ActivationConflictError",
    "InvalidPolicyValueError",
    "PlanNotFoundError",
    "SubscriptionError",
    "evaluate_status",
    "can_view_feature",
    "check_access",
    "AccessReason",
    "DerivedStatus",
    "FeatureAccessResult",
    "FeatureLimits",
    "LifecycleState",
    "Plan",
    "PolicyConfig",
    "SubscriptionRecord",
    "SubscriptionStatus",
    "PolicyProvider",
    "load_policy",
    "validate_setting",
    "LifecycleReconciler",
    "reconcile_all",
    "SubscriptionAccessService",
]
