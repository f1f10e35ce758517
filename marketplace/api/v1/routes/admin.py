import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from marketplace.api.v1.errors import to_http_exception
from marketplace.core.database import get_db
from marketplace.core.exceptions import MarketplaceError
from marketplace.core.middleware import get_admin_user
from marketplace.models.payment import PaymentStatus
from marketplace.services.payment_service import PaymentService
from marketplace.services.plan_service import (PlanCreate, PlanResponse,
                                               PlanService, PlanUpdate)
from marketplace.services.pricing_service import PricingConfigService
from marketplace.services.subscription_service import SubscriptionService
from marketplace.services.usage_service import UsageService

router = APIRouter()
logger = logging.getLogger(__name__)


def get_plan_service() -> PlanService:
    return PlanService()


def get_pricing_service() -> PricingConfigService:
    return PricingConfigService()


def get_payment_service() -> PaymentService:
    return PaymentService()


def get_subscription_service() -> SubscriptionService:
    return SubscriptionService()


def get_usage_service() -> UsageService:
    return UsageService()


class SetPriceRequest(BaseModel):
    value: Any  # a number or {"amount": n, "currency": "USD"}
    description: Optional[str] = None


class PaymentStatusRequest(BaseModel):
    status: PaymentStatus
    provider_charge_id: Optional[str] = None


class ResetUsageRequest(BaseModel):
    month_year: Optional[str] = None  # YYYY-MM, defaults to the current month


def _internal_error(action: str, error: Exception) -> HTTPException:
    logger.error(f"{action}: Failure - {error}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(error)
    )


@router.get("/plans")
async def list_plans(
    db: Session = Depends(get_db),
    admin_user: dict = Depends(get_admin_user),
    plan_service: PlanService = Depends(get_plan_service)
):
    """All plans, including inactive ones"""
    try:
        plans = plan_service.list_plans(db)
        return {"plans": [PlanResponse.model_validate(plan).model_dump() for plan in plans]}
    except Exception as e:
        raise _internal_error("list_plans", e)


@router.post("/plans", status_code=status.HTTP_201_CREATED)
async def create_plan(
    request: PlanCreate,
    db: Session = Depends(get_db),
    admin_user: dict = Depends(get_admin_user),
    plan_service: PlanService = Depends(get_plan_service)
):
    logger.info(f"create_plan: Entry - admin: {admin_user['uid']}, name: {request.name}")

    try:
        plan = plan_service.create_plan(db, request)
        return PlanResponse.model_validate(plan).model_dump()
    except MarketplaceError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _internal_error("create_plan", e)


@router.patch("/plans/{plan_id}")
async def update_plan(
    plan_id: str,
    request: PlanUpdate,
    db: Session = Depends(get_db),
    admin_user: dict = Depends(get_admin_user),
    plan_service: PlanService = Depends(get_plan_service)
):
    logger.info(f"update_plan: Entry - admin: {admin_user['uid']}, plan: {plan_id}")

    try:
        plan = plan_service.update_plan(db, plan_id, request)
        return PlanResponse.model_validate(plan).model_dump()
    except MarketplaceError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _internal_error("update_plan", e)


@router.delete("/plans/{plan_id}")
async def delete_plan(
    plan_id: str,
    db: Session = Depends(get_db),
    admin_user: dict = Depends(get_admin_user),
    plan_service: PlanService = Depends(get_plan_service)
):
    logger.info(f"delete_plan: Entry - admin: {admin_user['uid']}, plan: {plan_id}")

    try:
        plan_service.delete_plan(db, plan_id)
        return {"message": "Plan deleted", "plan_id": plan_id}
    except MarketplaceError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _internal_error("delete_plan", e)


@router.put("/pricing/{config_key}")
async def set_price(
    config_key: str,
    request: SetPriceRequest,
    db: Session = Depends(get_db),
    admin_user: dict = Depends(get_admin_user),
    pricing_service: PricingConfigService = Depends(get_pricing_service)
):
    logger.info(f"set_price: Entry - admin: {admin_user['uid']}, key: {config_key}")

    try:
        entry = pricing_service.set(db, config_key, request.value, request.description)
        return {
            "config_key": entry.config_key,
            "config_value": entry.config_value,
            "description": entry.description,
            "is_active": entry.is_active
        }
    except MarketplaceError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _internal_error("set_price", e)


@router.post("/payments/{provider_payment_id}/status")
async def update_payment_status(
    provider_payment_id: str,
    request: PaymentStatusRequest,
    db: Session = Depends(get_db),
    admin_user: dict = Depends(get_admin_user),
    payment_service: PaymentService = Depends(get_payment_service)
):
    """Apply a processor-confirmed payment status"""
    try:
        payment = payment_service.update_payment_status(
            db, provider_payment_id, request.status, request.provider_charge_id
        )
        return payment_service.to_dict(payment)
    except MarketplaceError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _internal_error("update_payment_status", e)


@router.post("/users/{user_id}/suspend")
async def suspend_user(
    user_id: str,
    db: Session = Depends(get_db),
    admin_user: dict = Depends(get_admin_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    logger.info(f"suspend_user: Entry - admin: {admin_user['uid']}, user: {user_id}")

    try:
        subscription = subscription_service.suspend_subscription(db, user_id)
        return {"user_id": user_id, "status": subscription.status.value}
    except MarketplaceError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _internal_error("suspend_user", e)


@router.post("/users/{user_id}/resume")
async def resume_user(
    user_id: str,
    db: Session = Depends(get_db),
    admin_user: dict = Depends(get_admin_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    logger.info(f"resume_user: Entry - admin: {admin_user['uid']}, user: {user_id}")

    try:
        subscription = subscription_service.resume_subscription(db, user_id)
        return {"user_id": user_id, "status": subscription.status.value}
    except MarketplaceError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _internal_error("resume_user", e)


@router.post("/users/{user_id}/reset-usage")
async def reset_usage(
    user_id: str,
    request: Optional[ResetUsageRequest] = None,
    db: Session = Depends(get_db),
    admin_user: dict = Depends(get_admin_user),
    usage_service: UsageService = Depends(get_usage_service)
):
    logger.info(f"reset_usage: Entry - admin: {admin_user['uid']}, user: {user_id}")
    month_year = request.month_year if request else None

    try:
        rows = usage_service.reset_usage(db, user_id, month_year)
        return {"user_id": user_id, "rows_updated": rows}
    except Exception as e:
        raise _internal_error("reset_usage", e)


@router.post("/subscriptions/expire")
async def expire_subscriptions(
    db: Session = Depends(get_db),
    admin_user: dict = Depends(get_admin_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """Run the expiry reconciliation job now"""
    try:
        processed = subscription_service.check_expired_subscriptions(db)
        return {"processed_users": processed}
    except Exception as e:
        raise _internal_error("expire_subscriptions", e)
