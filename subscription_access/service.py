from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from .activation import ActivationService
from .alerts import record_deny_and_alert
from .cache import PolicyCache
from .evaluator import evaluate_status
from .gate import check_access
from .models import DerivedStatus, FeatureAccessResult, Plan, SubscriptionRecord, utcnow
from .policy import PolicyProvider
from .reconciler import LifecycleReconciler
from .repository import (
    PlanRepository,
    SqlPlanRepository,
    SqlSettingsStore,
    SqlSubscriptionRepository,
    SubscriptionRepository,
)

logger = logging.getLogger(__name__)


class SubscriptionAccessService:
    """
    Entry point for callers that need subscription state.

    Every decision is recomputed from the raw record dates and the current
    policy snapshot; the stored status column is never consulted for access.
    """

    def __init__(
        self,
        *,
        subscriptions: SubscriptionRepository,
        plans: PlanRepository,
        policy_provider: PolicyProvider,
        clock: Optional[Callable[[], datetime]] = None,
        audit_sink: Optional[Callable[[str, dict], None]] = None,
    ) -> None:
        self.subscriptions = subscriptions
        self.plans = plans
        self.policy_provider = policy_provider
        self._clock = clock or utcnow
        self._audit_sink = audit_sink or (lambda event, payload: None)
        self.activation = ActivationService(subscriptions, plans, policy_loader=policy_provider.get_policy)

    @classmethod
    def from_session(
        cls,
        db_session: Session,
        *,
        cache: Optional[PolicyCache] = None,
        clock: Optional[Callable[[], datetime]] = None,
        audit_sink: Optional[Callable[[str, dict], None]] = None,
    ) -> "SubscriptionAccessService":
        return cls(
            subscriptions=SqlSubscriptionRepository(db_session),
            plans=SqlPlanRepository(db_session),
            policy_provider=PolicyProvider(SqlSettingsStore(db_session), cache=cache),
            clock=clock,
            audit_sink=audit_sink,
        )

    def get_status(self, user_id: str) -> DerivedStatus:
        policy = self.policy_provider.get_policy()
        record = self.subscriptions.find_current_by_user(_require_user(user_id))
        return evaluate_status(record, policy, self._clock())

    def evaluate_access(self, user_id: str, feature: Optional[str] = None) -> FeatureAccessResult:
        """
        Can ``user_id`` use ``feature`` right now?

        A denial is an ordinary result; it is counted towards the repeated
        denial alert but never raised.
        """
        user_id = _require_user(user_id)
        policy = self.policy_provider.get_policy()
        record = self.subscriptions.find_current_by_user(user_id)
        status = evaluate_status(record, policy, self._clock())
        result = check_access(status, policy, feature)

        if not result.has_access:
            logger.info(
                "Subscription access denied",
                extra={
                    "user_id": user_id,
                    "feature": result.feature,
                    "reason": result.reason.value,
                    "lifecycle_state": result.lifecycle_state.value,
                },
            )
            record_deny_and_alert(user_id, result.reason.value)
        return result

    def activate_plan(self, user_id: str, plan_id: str) -> SubscriptionRecord:
        record = self.activation.activate(user_id, plan_id, self._clock())
        self._audit_sink(
            "subscription.activated",
            {
                "user_id": record.user_id,
                "plan_id": record.plan_id,
                "subscription_id": record.id,
                "end_date": record.end_date.isoformat(),
                "grace_period_end": record.grace_period_end.isoformat(),
            },
        )
        return record

    def grant_trial(self, user_id: str) -> Optional[SubscriptionRecord]:
        record = self.activation.grant_trial(user_id, self._clock())
        if record is not None:
            self._audit_sink(
                "subscription.trial_granted",
                {
                    "user_id": record.user_id,
                    "subscription_id": record.id,
                    "trial_end": record.trial_end.isoformat(),
                },
            )
        return record

    def reconcile(self, batch_size: Optional[int] = None) -> dict:
        """One reconciliation pass; returns the reconciler summary."""
        reconciler = LifecycleReconciler(
            self.subscriptions,
            policy_loader=self.policy_provider.get_policy,
            clock=self._clock,
        )
        if batch_size is not None:
            reconciler.batch_size = max(1, batch_size)
        results = reconciler.run()
        self._audit_sink(
            "subscription.reconciled",
            {
                "checked": results["checked"],
                "transitioned": results["transitioned"],
                "grace_frozen": results["grace_frozen"],
                "errors": len(results["errors"]),
            },
        )
        return results

    def reconcile_all(self) -> int:
        """Number of records whose stored status was transitioned."""
        return self.reconcile()["transitioned"]

    def list_active_plans(self) -> List[Plan]:
        return self.plans.list_active()

    def subscription_history(self, user_id: str) -> List[SubscriptionRecord]:
        return self.subscriptions.list_by_user(_require_user(user_id))


def _require_user(user_id: str) -> str:
    normalized = str(user_id).strip() if user_id is not None else ""
    if not normalized:
        raise ValueError("user_id is required")
    return normalized
