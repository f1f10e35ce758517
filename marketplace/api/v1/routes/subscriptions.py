import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from marketplace.api.v1.errors import to_http_exception
from marketplace.core.database import get_db
from marketplace.core.exceptions import MarketplaceError
from marketplace.core.middleware import get_current_user
from marketplace.models.listing import ListingType
from marketplace.services.entitlement_service import EntitlementService
from marketplace.services.plan_service import PlanResponse, PlanService
from marketplace.services.subscription_service import SubscriptionService

router = APIRouter()
logger = logging.getLogger(__name__)


def get_plan_service() -> PlanService:
    """Dependency to get plan service instance"""
    return PlanService()


def get_subscription_service() -> SubscriptionService:
    """Dependency to get subscription service instance"""
    return SubscriptionService()


def get_entitlement_service() -> EntitlementService:
    """Dependency to get entitlement service instance"""
    return EntitlementService()


class ChangePlanRequest(BaseModel):
    plan_id: str


@router.get("/plans")
async def get_plans(
    db: Session = Depends(get_db),
    plan_service: PlanService = Depends(get_plan_service)
):
    """
    Get all active subscription plans.
    Public endpoint - no authentication required.
    """
    logger.info("get_plans: Entry")

    try:
        plans = plan_service.list_active_plans(db)
        logger.info(f"get_plans: Success - {len(plans)} plans")
        return {"plans": [PlanResponse.model_validate(plan).model_dump() for plan in plans]}
    except Exception as e:
        logger.error(f"get_plans: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.get("/current")
async def get_current_subscription(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """
    Get current user's subscription details.
    Requires authentication.
    """
    user_id = current_user['uid']
    logger.info(f"get_current_subscription: Entry - user: {user_id}")

    try:
        subscription = subscription_service.get_current_subscription(db, user_id)
        logger.info(f"get_current_subscription: Success - user: {user_id}")
        return subscription
    except MarketplaceError as e:
        logger.error(f"get_current_subscription: {type(e).__name__} - {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"get_current_subscription: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.post("/upgrade")
async def upgrade_subscription(
    request: ChangePlanRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """
    Switch the current subscription to another plan.
    Called once the billing charge for the plan has been confirmed.
    """
    user_id = current_user['uid']
    logger.info(f"upgrade_subscription: Entry - user: {user_id}, plan: {request.plan_id}")

    try:
        subscription_service.upgrade_subscription(db, user_id, request.plan_id)
        return subscription_service.get_current_subscription(db, user_id)
    except MarketplaceError as e:
        logger.error(f"upgrade_subscription: {type(e).__name__} - {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"upgrade_subscription: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.post("/cancel")
async def cancel_subscription(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """
    Cancel user's subscription.
    Plan benefits stay until the end of the billing period.
    """
    user_id = current_user['uid']
    logger.info(f"cancel_subscription: Entry - user: {user_id}")

    try:
        subscription = subscription_service.cancel_subscription(db, user_id)
        logger.info(f"cancel_subscription: Success - user: {user_id}")
        return {
            "message": "Subscription will be cancelled at the end of the billing period",
            "current_period_end": subscription.current_period_end.isoformat()
        }
    except MarketplaceError as e:
        logger.error(f"cancel_subscription: {type(e).__name__} - {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"cancel_subscription: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.post("/downgrade")
async def downgrade_subscription(
    request: ChangePlanRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """Schedule a move to a cheaper plan at the end of the billing period"""
    user_id = current_user['uid']
    logger.info(f"downgrade_subscription: Entry - user: {user_id}, plan: {request.plan_id}")

    try:
        subscription = subscription_service.downgrade_subscription(db, user_id, request.plan_id)
        return {
            "message": "Plan change scheduled for the end of the billing period",
            "effective_at": subscription.current_period_end.isoformat()
        }
    except MarketplaceError as e:
        logger.error(f"downgrade_subscription: {type(e).__name__} - {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"downgrade_subscription: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.post("/reactivate")
async def reactivate_subscription(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    user_id = current_user['uid']
    logger.info(f"reactivate_subscription: Entry - user: {user_id}")

    try:
        subscription_service.reactivate_subscription(db, user_id)
        return subscription_service.get_current_subscription(db, user_id)
    except MarketplaceError as e:
        logger.error(f"reactivate_subscription: {type(e).__name__} - {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"reactivate_subscription: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.get("/history")
async def get_subscription_history(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    user_id = current_user['uid']

    try:
        history = subscription_service.get_subscription_history(db, user_id)
        return {"history": history}
    except Exception as e:
        logger.error(f"get_subscription_history: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.get("/usage")
async def get_usage(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    entitlement_service: EntitlementService = Depends(get_entitlement_service)
):
    """This month's listing usage and the plan ceilings it counts against"""
    user_id = current_user['uid']
    logger.info(f"get_usage: Entry - user: {user_id}")

    try:
        return entitlement_service.get_usage(db, user_id)
    except MarketplaceError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"get_usage: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.get("/entitlement")
async def check_entitlement(
    listing_type: ListingType = Query(ListingType.FREE),
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    entitlement_service: EntitlementService = Depends(get_entitlement_service)
):
    """
    Can the user create a listing of this type right now?
    Clients call this before showing the listing form.
    """
    user_id = current_user['uid']
    logger.info(f"check_entitlement: Entry - user: {user_id}, type: {listing_type.value}")

    try:
        decision = entitlement_service.check_entitlement(db, user_id, listing_type)
        return decision.to_dict()
    except MarketplaceError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"check_entitlement: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.get("/pricing")
async def get_pricing(
    db: Session = Depends(get_db),
    entitlement_service: EntitlementService = Depends(get_entitlement_service)
):
    """Public price list for additional listings"""
    try:
        return {"pricing": entitlement_service.get_pricing_config(db)}
    except Exception as e:
        logger.error(f"get_pricing: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )
