"""
Listing entitlement decisions.

A check resolves the user's effective plan and this month's usage and
returns one of three outcomes:

    Allowed            create now, no charge
    AllowedWithCharge  create only after paying `amount`
    Denied             do not create

Plan ceilings form one shared pool: while `free_listings_used` is below
`max_listings` every listing type is allowed, whatever the per-type
featured/vehicle ceilings say. Those ceilings are reported to clients but
not enforced here.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace.models.listing import ListingType
from marketplace.models.subscription_plan import UNLIMITED
from marketplace.models.user_subscription import SubscriptionStatus
from marketplace.services.analytics_service import AnalyticsService
from marketplace.services.pricing_service import (ADDITIONAL_LISTING_PRICE,
                                                  PricingConfigService)
from marketplace.services.subscription_service import (SubscriptionService,
                                                       effective_plan,
                                                       plan_limits)
from marketplace.services.usage_service import (ListingUsageSnapshot,
                                                UsageService, month_key)

logger = logging.getLogger(__name__)


class Allowed(BaseModel):
    degraded: bool = False

    @property
    def allowed(self) -> bool:
        return True

    @property
    def requires_payment(self) -> bool:
        return False

    @property
    def additional_cost(self) -> Optional[Decimal]:
        return None

    @property
    def reason(self) -> Optional[str]:
        if self.degraded:
            return "Entitlement check unavailable; allowed in degraded mode"
        return None

    def to_dict(self) -> Dict[str, Any]:
        result = {'allowed': True, 'requires_payment': False}
        if self.degraded:
            result['degraded'] = True
            result['reason'] = self.reason
        return result


class AllowedWithCharge(BaseModel):
    amount: Decimal
    message: str

    # Creation is not free: callers must collect `amount` first
    @property
    def allowed(self) -> bool:
        return False

    @property
    def requires_payment(self) -> bool:
        return True

    @property
    def additional_cost(self) -> Decimal:
        return self.amount

    @property
    def reason(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            'allowed': False,
            'requires_payment': True,
            'additional_cost': float(self.amount),
            'reason': self.message,
        }


class Denied(BaseModel):
    message: str

    @property
    def allowed(self) -> bool:
        return False

    @property
    def requires_payment(self) -> bool:
        return False

    @property
    def additional_cost(self) -> Optional[Decimal]:
        return None

    @property
    def reason(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {'allowed': False, 'requires_payment': False, 'reason': self.message}


EntitlementDecision = Union[Allowed, AllowedWithCharge, Denied]


class EntitlementService:
    def __init__(
        self,
        subscription_service: SubscriptionService = None,
        usage_service: UsageService = None,
        pricing: PricingConfigService = None,
        analytics: AnalyticsService = None
    ):
        self.analytics = analytics or AnalyticsService()
        self.subscription_service = subscription_service or SubscriptionService(analytics=self.analytics)
        self.usage_service = usage_service or UsageService(analytics=self.analytics)
        self.pricing = pricing or PricingConfigService(analytics=self.analytics)
        self.logger = logging.getLogger(__name__)

    def check_entitlement(
        self,
        db: Session,
        user_id: str,
        listing_type: ListingType = ListingType.FREE,
        now: datetime = None
    ) -> EntitlementDecision:
        """
        Decide whether the user may create a listing of the given type now.
        Store failures while resolving plan or usage fail open.
        """
        now = now or datetime.utcnow()
        listing_type = ListingType(listing_type)
        self.logger.info(f"check_entitlement: Entry - user: {user_id}, type: {listing_type.value}")

        try:
            subscription = self.subscription_service.get_or_create_subscription(db, user_id, now)
            free_plan = self.subscription_service.plan_service.get_free_plan(db)
            plan = effective_plan(subscription, now, free_plan)
            usage = self.usage_service.get_usage(db, user_id, month_key(now))
        except SQLAlchemyError as e:
            db.rollback()
            self.logger.warning(f"check_entitlement: Degraded mode, allowing - user: {user_id}, error: {e}")
            self.analytics.log_degraded(
                action='check_entitlement',
                error=str(e),
                user_id=user_id,
                parameters={'listing_type': listing_type.value}
            )
            return Allowed(degraded=True)

        if subscription.status == SubscriptionStatus.SUSPENDED:
            self.logger.info(f"check_entitlement: Denied - user: {user_id}, subscription suspended")
            return Denied(message="Subscription is suspended; listing creation is disabled")

        limits = plan_limits(plan)
        free_limit = limits.max_listings
        if free_limit == UNLIMITED or usage.free_listings_used < free_limit:
            self.logger.info(
                f"check_entitlement: Allowed - user: {user_id}, used: {usage.free_listings_used}, limit: {free_limit}"
            )
            return Allowed()

        amount = self.pricing.get_price(db, ADDITIONAL_LISTING_PRICE)
        plan_name = plan.name if plan is not None else 'current'
        message = (
            f"You have used all {free_limit} listings included in your {plan_name} plan this month. "
            f"Additional listings cost ${amount}."
        )
        self.logger.info(f"check_entitlement: Payment required - user: {user_id}, amount: {amount}")
        return AllowedWithCharge(amount=amount, message=message)

    def record_listing_created(
        self,
        db: Session,
        user_id: str,
        listing_type: ListingType,
        now: datetime = None
    ) -> ListingUsageSnapshot:
        """Count a persisted listing against this month's usage. Errors propagate."""
        now = now or datetime.utcnow()
        snapshot = self.usage_service.increment_usage(db, user_id, listing_type, month_key(now))
        self.analytics.log_event(
            event_name='listing_created',
            user_id=user_id,
            parameters={'listing_type': ListingType(listing_type).value, 'month_year': snapshot.month_year}
        )
        return snapshot

    def get_usage(self, db: Session, user_id: str, now: datetime = None) -> Dict[str, Any]:
        """This month's usage next to the effective plan's ceilings"""
        now = now or datetime.utcnow()
        plan = self.subscription_service.get_effective_plan(db, user_id, now)
        usage = self.usage_service.get_usage(db, user_id, month_key(now))
        return {
            'plan_name': plan.name if plan is not None else None,
            'usage': usage.model_dump(),
            'limits': plan_limits(plan).model_dump(),
        }

    def get_pricing_config(self, db: Session) -> Dict[str, Any]:
        return self.pricing.get_all(db)
