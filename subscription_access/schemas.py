"""
Request and response schemas for the subscription endpoints.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from .models import FeatureAccessResult, FeatureLimits, Plan, SubscriptionRecord


# =============================================================================
# Request Models
# =============================================================================

class ActivatePlanRequest(BaseModel):
    plan_id: str = Field(..., min_length=1, max_length=64)


# =============================================================================
# Response Models
# =============================================================================

class FeatureLimitsResponse(BaseModel):
    """Caps applied while access is degraded."""

    timetable_days: int
    notes_limit: int
    focus_sessions_limit: int
    private_lessons_limit: int

    @classmethod
    def from_limits(cls, limits: FeatureLimits) -> "FeatureLimitsResponse":
        return cls(**limits.as_dict())


class PlanResponse(BaseModel):
    id: str
    name: str
    name_ar: Optional[str] = None
    price: Decimal
    duration_days: int

    @classmethod
    def from_plan(cls, plan: Plan) -> "PlanResponse":
        return cls(
            id=plan.id,
            name=plan.name,
            name_ar=plan.name_ar,
            price=plan.price,
            duration_days=plan.duration_days,
        )


class PlanListResponse(BaseModel):
    plans: List[PlanResponse]


class SubscriptionStatusResponse(BaseModel):
    """Access snapshot for the current user. Informational; enforcement happens per route."""

    has_access: bool
    reason: str
    lifecycle_state: str
    is_active: bool
    is_in_trial: bool
    is_in_grace_period: bool
    is_access_denied: bool
    sign_in_restricted: bool
    is_read_only: bool
    limits_apply: bool
    remaining_trial_days: int
    days_until_expiry: Optional[int] = None
    days_since_expiry: Optional[int] = None
    grace_period_end: Optional[datetime] = None
    feature_limits: FeatureLimitsResponse
    plan: Optional[PlanResponse] = None

    @classmethod
    def from_result(cls, result: FeatureAccessResult) -> "SubscriptionStatusResponse":
        return cls(
            has_access=result.has_access,
            reason=result.reason.value,
            lifecycle_state=result.lifecycle_state.value,
            is_active=result.is_active,
            is_in_trial=result.is_in_trial,
            is_in_grace_period=result.is_in_grace_period,
            is_access_denied=result.is_access_denied,
            sign_in_restricted=result.sign_in_restricted,
            is_read_only=result.is_read_only,
            limits_apply=result.limits_apply,
            remaining_trial_days=result.remaining_trial_days,
            days_until_expiry=result.days_until_expiry,
            days_since_expiry=result.days_since_expiry,
            grace_period_end=result.grace_period_end,
            feature_limits=FeatureLimitsResponse.from_limits(result.feature_limits),
            plan=PlanResponse.from_plan(result.plan) if result.plan is not None else None,
        )


class SubscriptionRecordResponse(BaseModel):
    id: Optional[int] = None
    plan_id: Optional[str] = None
    status: str
    start_date: datetime
    end_date: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    grace_period_end: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_record(cls, record: SubscriptionRecord) -> "SubscriptionRecordResponse":
        return cls(
            id=record.id,
            plan_id=record.plan_id,
            status=record.status.value,
            start_date=record.start_date,
            end_date=record.end_date,
            trial_end=record.trial_end,
            grace_period_end=record.grace_period_end,
            created_at=record.created_at,
        )


class SubscriptionHistoryResponse(BaseModel):
    subscriptions: List[SubscriptionRecordResponse]
