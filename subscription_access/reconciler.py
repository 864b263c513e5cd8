"""
Subscription lifecycle reconciliation.

Brings the stored ``status`` column in line with what the evaluator would
derive right now, so listings filtering on stored status stay accurate.
Access decisions never depend on this job having run.

Transitions:
- TRIAL whose trial_end has passed          -> EXPIRED
- ACTIVE whose end_date has passed          -> EXPIRED, grace_period_end frozen
  from the current policy when not already stored
- EXPIRED records                           -> untouched

Every write is a compare-and-set on the expected stored status, so
overlapping runs converge without locking.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from .config import RECONCILE_BATCH_SIZE
from .evaluator import resolve_grace_period_end
from .models import PolicyConfig, SubscriptionRecord, SubscriptionStatus, utcnow
from .repository import SubscriptionRepository

logger = logging.getLogger(__name__)


def plan_transition(
    record: SubscriptionRecord,
    policy: PolicyConfig,
    now: datetime,
) -> Optional[SubscriptionRecord]:
    """
    Return the record as it should be stored at ``now``, or None when it is current.

    Args:
        record: Stored subscription record
        policy: Policy used to freeze a missing grace period
        now: Reconciliation instant
    """
    if record.status == SubscriptionStatus.TRIAL:
        if record.trial_end is not None and record.trial_end <= now:
            return replace(record, status=SubscriptionStatus.EXPIRED)
        return None

    if record.status == SubscriptionStatus.ACTIVE:
        if record.end_date is not None and record.end_date <= now:
            return replace(
                record,
                status=SubscriptionStatus.EXPIRED,
                grace_period_end=resolve_grace_period_end(record, policy),
            )
        return None

    return None


class LifecycleReconciler:
    """
    Transitions stale stored statuses, reading candidates in batches until none remain.

    Best-effort: a failing record is logged and counted, never raised.
    """

    def __init__(
        self,
        subscriptions: SubscriptionRepository,
        *,
        policy_loader: Callable[[], PolicyConfig],
        clock: Callable[[], datetime] = utcnow,
        batch_size: int = RECONCILE_BATCH_SIZE,
    ):
        self.subscriptions = subscriptions
        self._policy_loader = policy_loader
        self._clock = clock
        self.batch_size = max(1, batch_size)

    def run(self) -> dict:
        """
        Execute one reconciliation pass.

        Returns:
            Summary with ``checked``, ``transitioned``, ``grace_frozen`` and ``errors``
        """
        now = self._clock()
        policy = self._policy_loader()
        results = {
            "started_at": now.isoformat(),
            "checked": 0,
            "transitioned": 0,
            "grace_frozen": 0,
            "pages": 1,
            "errors": [],
        }
        logger.info("Starting subscription lifecycle reconciliation")

        # Keyset paging: a record that fails stays a candidate, so never re-read it this pass.
        last_id = None
        while True:
            page = self.subscriptions.list_reconcile_candidates(now, self.batch_size, after_id=last_id)
            for record in page:
                results["checked"] += 1
                try:
                    self._reconcile_record(record, policy, now, results)
                except Exception as e:
                    error_msg = f"Failed to reconcile subscription {record.id}: {e}"
                    logger.error(error_msg, extra={"subscription_id": record.id, "user_id": record.user_id})
                    results["errors"].append(error_msg)
            if len(page) < self.batch_size:
                break
            last_id = page[-1].id
            results["pages"] += 1

        results["completed_at"] = utcnow().isoformat()
        logger.info(
            "Subscription lifecycle reconciliation completed",
            extra={
                "checked": results["checked"],
                "transitioned": results["transitioned"],
                "grace_frozen": results["grace_frozen"],
                "error_count": len(results["errors"]),
            },
        )
        return results

    def _reconcile_record(
        self,
        record: SubscriptionRecord,
        policy: PolicyConfig,
        now: datetime,
        results: dict,
    ) -> None:
        target = plan_transition(record, policy, now)
        if target is None:
            return

        with self.subscriptions.atomic():
            applied = self.subscriptions.update(target, expected_status=record.status)

        if not applied:
            # Another pass or an activation changed the row first.
            return

        results["transitioned"] += 1
        froze_grace = record.grace_period_end is None and target.grace_period_end is not None
        if froze_grace:
            results["grace_frozen"] += 1

        logger.info(
            "Subscription status reconciled",
            extra={
                "subscription_id": record.id,
                "user_id": record.user_id,
                "old_status": record.status.value,
                "new_status": target.status.value,
                "grace_period_end": target.grace_period_end.isoformat() if froze_grace else None,
            },
        )


def reconcile_all(
    subscriptions: SubscriptionRepository,
    policy: PolicyConfig,
    now: Optional[datetime] = None,
    batch_size: int = RECONCILE_BATCH_SIZE,
) -> int:
    """Run one pass with a fixed policy and instant; returns the number of records transitioned."""
    moment = now or utcnow()
    reconciler = LifecycleReconciler(
        subscriptions,
        policy_loader=lambda: policy,
        clock=lambda: moment,
        batch_size=batch_size,
    )
    return reconciler.run()["transitioned"]
