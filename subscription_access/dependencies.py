"""
Subscription access dependencies.

FastAPI dependencies that resolve the calling user and block access when
their subscription does not allow the request. The authentication layer
is expected to have set ``request.state.user_id`` (and optionally
``request.state.user_role``) before these run.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from fastapi import Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from .cache import PolicyCache
from .gate import admin_access
from .models import FeatureAccessResult
from .service import SubscriptionAccessService

logger = logging.getLogger(__name__)

ADMIN_ROLE = "ADMIN"

STATUS_HEADER = "x-subscription-status"
READ_ONLY_HEADER = "x-subscription-readonly"

# Process-wide; one snapshot serves every request.
_policy_cache: Optional[PolicyCache] = None


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def get_principal(request: Request) -> Principal:
    user_id = getattr(request.state, "user_id", None)
    if not user_id or not str(user_id).strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing user context")
    return Principal(user_id=str(user_id).strip(), role=getattr(request.state, "user_role", None))


def get_policy_cache() -> PolicyCache:
    global _policy_cache
    if _policy_cache is None:
        _policy_cache = PolicyCache()
    return _policy_cache


def get_access_service(request: Request) -> SubscriptionAccessService:
    """Build the service on the request-scoped database session."""
    db: Optional[Session] = getattr(request.state, "db", None)
    if db is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database session not available",
        )
    return SubscriptionAccessService.from_session(db, cache=get_policy_cache())


def resolve_access(
    principal: Principal,
    service: SubscriptionAccessService,
    feature: Optional[str] = None,
) -> FeatureAccessResult:
    """Administrators bypass the subscription lookup entirely."""
    if principal.is_admin:
        return admin_access(service.policy_provider.get_policy(), feature)
    return service.evaluate_access(principal.user_id, feature)


def subscription_headers(result: FeatureAccessResult) -> Dict[str, str]:
    return {
        STATUS_HEADER: result.lifecycle_state.value.lower(),
        READ_ONLY_HEADER: "true" if result.is_read_only else "false",
    }


def _denied(result: FeatureAccessResult, error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        detail={
            "error": error,
            "message": message,
            "reason": result.reason.value,
            "is_read_only": result.is_read_only,
        },
        headers=subscription_headers(result),
    )


def require_access(feature: Optional[str] = None, *, write: bool = False) -> Callable:
    """
    Dependency factory gating a route on the caller's subscription.

    Use on a route: Depends(require_access("notes", write=True))
    Raises 402 when access is denied, or when ``write`` is set and the
    caller is read-only. Returns the FeatureAccessResult so the route can
    apply feature limits.
    """

    def _check(
        response: Response,
        principal: Principal = Depends(get_principal),
        service: SubscriptionAccessService = Depends(get_access_service),
    ) -> FeatureAccessResult:
        result = resolve_access(principal, service, feature)
        response.headers.update(subscription_headers(result))

        if not result.has_access:
            logger.warning(
                "Subscription required",
                extra={"user_id": principal.user_id, "feature": feature, "reason": result.reason.value},
            )
            raise _denied(result, "SUBSCRIPTION_REQUIRED", "An active subscription is required")

        if write and result.is_read_only:
            logger.warning(
                "Write rejected for read-only subscription",
                extra={"user_id": principal.user_id, "feature": feature, "reason": result.reason.value},
            )
            raise _denied(result, "SUBSCRIPTION_READ_ONLY", "Renew your subscription to make changes")

        return result

    return _check
