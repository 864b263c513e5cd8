"""
Subscription endpoints.

Status, plans and history are informational; routes that need protection declare
``Depends(require_access(...))`` themselves.
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status

from .dependencies import (
    Principal,
    get_access_service,
    get_principal,
    resolve_access,
    subscription_headers,
)
from .errors import ActivationConflictError, PlanNotFoundError
from .schemas import (
    ActivatePlanRequest,
    PlanListResponse,
    PlanResponse,
    SubscriptionHistoryResponse,
    SubscriptionRecordResponse,
    SubscriptionStatusResponse,
)
from .service import SubscriptionAccessService

router = APIRouter(prefix="/subscription", tags=["subscription"])


@router.get("/status", response_model=SubscriptionStatusResponse)
def get_subscription_status(
    response: Response,
    principal: Principal = Depends(get_principal),
    service: SubscriptionAccessService = Depends(get_access_service),
) -> SubscriptionStatusResponse:
    """Current access snapshot for the calling user, including degraded limits."""
    result = resolve_access(principal, service)
    response.headers.update(subscription_headers(result))
    return SubscriptionStatusResponse.from_result(result)


@router.get("/plans", response_model=PlanListResponse)
def list_plans(service: SubscriptionAccessService = Depends(get_access_service)) -> PlanListResponse:
    return PlanListResponse(plans=[PlanResponse.from_plan(plan) for plan in service.list_active_plans()])


@router.get("/history", response_model=SubscriptionHistoryResponse)
def get_subscription_history(
    principal: Principal = Depends(get_principal),
    service: SubscriptionAccessService = Depends(get_access_service),
) -> SubscriptionHistoryResponse:
    records = service.subscription_history(principal.user_id)
    return SubscriptionHistoryResponse(
        subscriptions=[SubscriptionRecordResponse.from_record(record) for record in records]
    )


@router.post("/activate", response_model=SubscriptionRecordResponse, status_code=status.HTTP_201_CREATED)
def activate_subscription(
    body: ActivatePlanRequest,
    principal: Principal = Depends(get_principal),
    service: SubscriptionAccessService = Depends(get_access_service),
) -> SubscriptionRecordResponse:
    """Activate a plan for the calling user once payment has been confirmed upstream."""
    try:
        record = service.activate_plan(principal.user_id, body.plan_id)
    except PlanNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.to_dict())
    except ActivationConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.to_dict())
    return SubscriptionRecordResponse.from_record(record)
