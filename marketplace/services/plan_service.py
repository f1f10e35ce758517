import logging
import uuid
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.core.exceptions import (ConflictError, PlanNotFoundError,
                                         ProtectedResourceError)
from marketplace.models.subscription_plan import SubscriptionPlan
from marketplace.services.analytics_service import AnalyticsService

logger = logging.getLogger(__name__)


class PlanCreate(BaseModel):
    """Administrator input for a new plan"""
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    price_monthly: Decimal = Field(ge=0)
    price_yearly: Optional[Decimal] = Field(default=None, ge=0)
    max_listings: int = Field(default=5, ge=-1)
    max_featured_listings: int = Field(default=0, ge=-1)
    max_vehicle_listings: int = Field(default=0, ge=-1)
    features: List[str] = []
    is_active: bool = True
    sort_order: int = 0


class PlanUpdate(BaseModel):
    """Partial update; only fields that were sent are applied"""
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    price_monthly: Optional[Decimal] = Field(default=None, ge=0)
    price_yearly: Optional[Decimal] = Field(default=None, ge=0)
    max_listings: Optional[int] = Field(default=None, ge=-1)
    max_featured_listings: Optional[int] = Field(default=None, ge=-1)
    max_vehicle_listings: Optional[int] = Field(default=None, ge=-1)
    features: Optional[List[str]] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None


class PlanResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    price_monthly: float
    price_yearly: Optional[float] = None
    max_listings: int
    max_featured_listings: int
    max_vehicle_listings: int
    features: List[str]
    is_active: bool
    sort_order: int

    class Config:
        from_attributes = True


DEFAULT_PLANS = [
    {
        'name': 'Free',
        'description': 'Basic listing with limited features',
        'price_monthly': Decimal('0.00'),
        'max_listings': 5,
        'max_featured_listings': 0,
        'max_vehicle_listings': 0,
        'features': ['5 free listings per month', 'Basic search visibility', 'Standard listing duration'],
        'sort_order': 1,
    },
    {
        'name': 'Basic',
        'description': 'More listings and better visibility',
        'price_monthly': Decimal('9.99'),
        'max_listings': 25,
        'max_featured_listings': 2,
        'max_vehicle_listings': 1,
        'features': ['25 listings per month', '2 featured listings', '1 vehicle listing',
                     'Priority support', 'Enhanced search visibility'],
        'sort_order': 2,
    },
    {
        'name': 'Professional',
        'description': 'For serious sellers',
        'price_monthly': Decimal('19.99'),
        'max_listings': 100,
        'max_featured_listings': 10,
        'max_vehicle_listings': 5,
        'features': ['100 listings per month', '10 featured listings', '5 vehicle listings',
                     'Priority support', 'Analytics dashboard', 'Bulk upload tools'],
        'sort_order': 3,
    },
    {
        'name': 'Enterprise',
        'description': 'Unlimited listings for businesses',
        'price_monthly': Decimal('49.99'),
        'max_listings': -1,
        'max_featured_listings': -1,
        'max_vehicle_listings': -1,
        'features': ['Unlimited listings', 'Unlimited featured listings', 'Unlimited vehicle listings',
                     'Priority support', 'Advanced analytics', 'API access', 'Custom branding'],
        'sort_order': 4,
    },
]


class PlanService:
    def __init__(self, analytics: AnalyticsService = None):
        self.analytics = analytics or AnalyticsService()
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def is_free_plan(plan: SubscriptionPlan) -> bool:
        return plan is not None and plan.name == settings.free_plan_name

    def seed_plans_if_empty(self, db: Session) -> int:
        """Seed plans table if empty (for initial setup or if migration didn't run)"""
        if db.query(SubscriptionPlan).count() > 0:
            return 0

        self.logger.info("seed_plans_if_empty: Plans table is empty, seeding plans")
        try:
            for plan_data in DEFAULT_PLANS:
                db.add(SubscriptionPlan(id=str(uuid.uuid4()), is_active=True, **plan_data))
            db.commit()
            self.logger.info(f"seed_plans_if_empty: Success - seeded {len(DEFAULT_PLANS)} plans")
            return len(DEFAULT_PLANS)
        except Exception as e:
            db.rollback()
            self.logger.error(f"seed_plans_if_empty: Failure - {e}")
            raise

    def list_plans(self, db: Session) -> List[SubscriptionPlan]:
        """All plans, including inactive ones, by display rank"""
        self.logger.info("list_plans: Entry")
        plans = db.query(SubscriptionPlan).order_by(SubscriptionPlan.sort_order.asc()).all()
        self.logger.info(f"list_plans: Success - {len(plans)} plans")
        return plans

    def list_active_plans(self, db: Session) -> List[SubscriptionPlan]:
        self.logger.info("list_active_plans: Entry")
        self.seed_plans_if_empty(db)
        plans = db.query(SubscriptionPlan).filter(
            SubscriptionPlan.is_active == True
        ).order_by(SubscriptionPlan.sort_order.asc()).all()
        self.logger.info(f"list_active_plans: Success - {len(plans)} plans")
        return plans

    def get_plan(self, db: Session, plan_id: str) -> SubscriptionPlan:
        plan = db.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id).first()
        if not plan:
            raise PlanNotFoundError(f"Plan not found: {plan_id}")
        return plan

    def get_active_plan(self, db: Session, plan_id: str) -> SubscriptionPlan:
        """Plan a user may subscribe to; inactive plans are treated as absent"""
        plan = db.query(SubscriptionPlan).filter(
            SubscriptionPlan.id == plan_id,
            SubscriptionPlan.is_active == True
        ).first()
        if not plan:
            raise PlanNotFoundError(f"Plan not found or inactive: {plan_id}")
        return plan

    def get_free_plan(self, db: Session) -> SubscriptionPlan:
        """The fallback plan for users with no explicit subscription"""
        plan = db.query(SubscriptionPlan).filter(SubscriptionPlan.name == settings.free_plan_name).first()
        if plan is None:
            self.seed_plans_if_empty(db)
            plan = db.query(SubscriptionPlan).filter(SubscriptionPlan.name == settings.free_plan_name).first()
        if plan is None:
            raise PlanNotFoundError(f"Plan not found: {settings.free_plan_name}")
        return plan

    def _ensure_name_available(self, db: Session, name: str, exclude_id: str = None):
        query = db.query(SubscriptionPlan).filter(SubscriptionPlan.name == name)
        if exclude_id:
            query = query.filter(SubscriptionPlan.id != exclude_id)
        if query.first():
            raise ConflictError(f"A plan named '{name}' already exists")

    def create_plan(self, db: Session, data: PlanCreate) -> SubscriptionPlan:
        self.logger.info(f"create_plan: Entry - name: {data.name}")

        try:
            self._ensure_name_available(db, data.name)

            plan = SubscriptionPlan(id=str(uuid.uuid4()), **data.model_dump())
            db.add(plan)
            db.commit()
            db.refresh(plan)

            self.analytics.log_success(action='create_plan', parameters={'plan_id': plan.id, 'name': plan.name})
            self.logger.info(f"create_plan: Success - plan: {plan.id}")
            return plan
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(action='create_plan', error=str(e), parameters={'name': data.name})
            self.logger.error(f"create_plan: Failure - {e}")
            raise

    def update_plan(self, db: Session, plan_id: str, data: PlanUpdate) -> SubscriptionPlan:
        self.logger.info(f"update_plan: Entry - plan: {plan_id}")

        try:
            plan = self.get_plan(db, plan_id)
            changes = data.model_dump(exclude_unset=True)

            if self.is_free_plan(plan):
                if 'name' in changes and changes['name'] != plan.name:
                    raise ProtectedResourceError(f"The {plan.name} plan cannot be renamed")
                if changes.get('is_active') is False:
                    raise ProtectedResourceError(f"The {plan.name} plan cannot be deactivated")

            if 'name' in changes and changes['name'] != plan.name:
                self._ensure_name_available(db, changes['name'], exclude_id=plan.id)

            for field, value in changes.items():
                setattr(plan, field, value)

            db.commit()
            db.refresh(plan)

            self.analytics.log_success(action='update_plan', parameters={'plan_id': plan_id, 'fields': sorted(changes)})
            self.logger.info(f"update_plan: Success - plan: {plan_id}")
            return plan
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(action='update_plan', error=str(e), parameters={'plan_id': plan_id})
            self.logger.error(f"update_plan: Failure - {e}")
            raise

    def delete_plan(self, db: Session, plan_id: str):
        """
        Delete a plan. The Free plan is protected.

        Subscriptions that still reference the plan are not a blocker: their
        plan_id is nulled by the foreign key and the entitlement engine
        applies its plan-missing defaults.
        """
        self.logger.info(f"delete_plan: Entry - plan: {plan_id}")

        try:
            plan = self.get_plan(db, plan_id)
            if self.is_free_plan(plan):
                raise ProtectedResourceError(f"The {plan.name} plan cannot be deleted")

            db.delete(plan)
            db.commit()

            self.analytics.log_success(action='delete_plan', parameters={'plan_id': plan_id})
            self.logger.info(f"delete_plan: Success - plan: {plan_id}")
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(action='delete_plan', error=str(e), parameters={'plan_id': plan_id})
            self.logger.error(f"delete_plan: Failure - {e}")
            raise
