"""
Subscription activation and trial grants.

Activation supersedes every live record of the user and creates a new
ACTIVE one with its grace period frozen at creation. The supersede and
the create share one transaction; the per-user live-record unique index
turns a lost race into ActivationConflictError, which is retried.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from .config import ACTIVATION_MAX_ATTEMPTS
from .errors import ActivationConflictError, PlanNotFoundError
from .evaluator import compute_grace_period_end
from .models import PolicyConfig, SubscriptionRecord, SubscriptionStatus, utcnow
from .repository import PlanRepository, SubscriptionRepository

logger = logging.getLogger(__name__)


class ActivationService:
    def __init__(
        self,
        subscriptions: SubscriptionRepository,
        plans: PlanRepository,
        *,
        policy_loader: Callable[[], PolicyConfig],
        max_attempts: int = ACTIVATION_MAX_ATTEMPTS,
    ) -> None:
        self.subscriptions = subscriptions
        self.plans = plans
        self._policy_loader = policy_loader
        self.max_attempts = max(1, max_attempts)

    def activate(self, user_id: str, plan_id: str, now: Optional[datetime] = None) -> SubscriptionRecord:
        """
        Activate ``plan_id`` for ``user_id``.

        Raises:
            PlanNotFoundError: plan is unknown or inactive
            ActivationConflictError: concurrent activations kept winning
        """
        user_id = str(user_id).strip()
        if not user_id:
            raise ValueError("user_id is required")

        plan = self.plans.find_active_by_id(plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)

        now = now or utcnow()
        policy = self._policy_loader()
        end_date = now + timedelta(days=plan.duration_days)
        new_record = SubscriptionRecord(
            user_id=user_id,
            plan_id=plan.id,
            status=SubscriptionStatus.ACTIVE,
            start_date=now,
            end_date=end_date,
            grace_period_end=compute_grace_period_end(end_date, policy),
            created_at=now,
        )

        for attempt in range(1, self.max_attempts + 1):
            try:
                with self.subscriptions.atomic(user_id):
                    superseded = self.subscriptions.supersede(user_id)
                    created = self.subscriptions.create(new_record)
            except ActivationConflictError:
                logger.warning(
                    "Concurrent subscription activation, retrying",
                    extra={"user_id": user_id, "plan_id": plan.id, "attempt": attempt},
                )
                if attempt == self.max_attempts:
                    raise
                continue

            logger.info(
                "Subscription activated",
                extra={
                    "user_id": user_id,
                    "plan_id": plan.id,
                    "subscription_id": created.id,
                    "superseded": superseded,
                    "end_date": end_date.isoformat(),
                },
            )
            return created

    def grant_trial(self, user_id: str, now: Optional[datetime] = None) -> Optional[SubscriptionRecord]:
        """Onboarding trial; only for users that never held any record and only when trials are enabled."""
        user_id = str(user_id).strip()
        if not user_id:
            raise ValueError("user_id is required")

        policy = self._policy_loader()
        if not policy.trial_enabled:
            return None
        if self.subscriptions.find_current_by_user(user_id) is not None:
            return None

        now = now or utcnow()
        record = SubscriptionRecord(
            user_id=user_id,
            status=SubscriptionStatus.TRIAL,
            start_date=now,
            trial_start=now,
            trial_end=now + timedelta(days=policy.trial_days),
            created_at=now,
        )
        try:
            with self.subscriptions.atomic(user_id):
                created = self.subscriptions.create(record)
        except ActivationConflictError:
            # A concurrent grant or activation created the live record first.
            logger.info("Trial grant lost to a concurrent record", extra={"user_id": user_id})
            return None

        logger.info(
            "Trial granted",
            extra={"user_id": user_id, "subscription_id": created.id, "trial_end": record.trial_end.isoformat()},
        )
        return created
