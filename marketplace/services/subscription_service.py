import json
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.core.exceptions import (InvalidStateError,
                                         NoActiveSubscriptionError)
from marketplace.models.subscription_history import SubscriptionHistory
from marketplace.models.subscription_plan import SubscriptionPlan
from marketplace.models.user_subscription import (SubscriptionStatus,
                                                  UserSubscription)
from marketplace.services.analytics_service import AnalyticsService
from marketplace.services.plan_service import PlanService

logger = logging.getLogger(__name__)

# Rows that still carry plan benefits while their period runs
BENEFIT_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED)


class PlanLimits(BaseModel):
    """Quota ceilings of a plan (-1 = unlimited)"""
    max_listings: int
    max_featured_listings: int
    max_vehicle_listings: int


def plan_limits(plan: Optional[SubscriptionPlan]) -> PlanLimits:
    """Ceilings for a plan, with the documented defaults when the plan is missing"""
    if plan is None:
        return PlanLimits(
            max_listings=settings.default_free_listing_limit,
            max_featured_listings=0,
            max_vehicle_listings=0,
        )
    return PlanLimits(
        max_listings=plan.max_listings,
        max_featured_listings=plan.max_featured_listings,
        max_vehicle_listings=plan.max_vehicle_listings,
    )


def is_lapsed(subscription: UserSubscription, now: datetime) -> bool:
    """An active or cancelled row whose billing period is over"""
    return subscription.status in BENEFIT_STATUSES and subscription.current_period_end < now


def effective_plan(
    subscription: Optional[UserSubscription],
    now: datetime,
    free_plan: Optional[SubscriptionPlan] = None
) -> Optional[SubscriptionPlan]:
    """
    Plan whose ceilings apply at `now`.

    Computed on every read so a stale row (period over, not yet
    materialized by the expiry job) still resolves correctly: it lapses to
    the scheduled downgrade target when one is set and still active, and to
    the Free plan otherwise.
    """
    if subscription is None:
        return free_plan
    if is_lapsed(subscription, now):
        target = subscription.downgrade_to_plan
        if target is not None and target.is_active:
            return target
        return free_plan
    return subscription.plan


class SubscriptionService:
    def __init__(self, plan_service: PlanService = None, analytics: AnalyticsService = None):
        self.analytics = analytics or AnalyticsService()
        self.plan_service = plan_service or PlanService(analytics=self.analytics)
        self.logger = logging.getLogger(__name__)

    def _find_current(self, db: Session, user_id: str, now: datetime) -> Optional[UserSubscription]:
        """Newest row still in its period, or a suspended row (suspension does not lapse)"""
        return db.query(UserSubscription).filter(
            UserSubscription.user_id == user_id,
            or_(
                UserSubscription.status == SubscriptionStatus.SUSPENDED,
                and_(
                    UserSubscription.status.in_(BENEFIT_STATUSES),
                    UserSubscription.current_period_end >= now
                ),
            )
        ).order_by(UserSubscription.created_at.desc()).first()

    def _find_active(self, db: Session, user_id: str, now: datetime) -> Optional[UserSubscription]:
        return db.query(UserSubscription).filter(
            UserSubscription.user_id == user_id,
            UserSubscription.status == SubscriptionStatus.ACTIVE,
            UserSubscription.current_period_end >= now
        ).order_by(UserSubscription.created_at.desc()).first()

    def _find_latest(self, db: Session, user_id: str) -> Optional[UserSubscription]:
        return db.query(UserSubscription).filter(
            UserSubscription.user_id == user_id
        ).order_by(UserSubscription.created_at.desc()).first()

    @staticmethod
    def _plan_name(plan: Optional[SubscriptionPlan]) -> Optional[str]:
        return plan.name if plan is not None else None

    def _record_history(
        self,
        db: Session,
        subscription: UserSubscription,
        action: str,
        from_plan: Optional[str],
        to_plan: Optional[str],
        details: dict = None
    ):
        db.add(SubscriptionHistory(
            id=str(uuid.uuid4()),
            user_id=subscription.user_id,
            subscription_id=subscription.id,
            action=action,
            from_plan=from_plan,
            to_plan=to_plan,
            details=json.dumps(details) if details else None
        ))

    def _materialize(self, db: Session, user_id: str, now: datetime) -> UserSubscription:
        """
        Expire lapsed rows and start the next period when the user has no
        current row. Does not commit.
        """
        lapsed = db.query(UserSubscription).filter(
            UserSubscription.user_id == user_id,
            UserSubscription.status.in_(BENEFIT_STATUSES),
            UserSubscription.current_period_end < now
        ).order_by(UserSubscription.created_at.desc()).all()

        free_plan = self.plan_service.get_free_plan(db)
        next_plan = effective_plan(lapsed[0], now, free_plan) if lapsed else free_plan

        for subscription in lapsed:
            subscription.status = SubscriptionStatus.EXPIRED
            subscription.updated_at = now
            self._record_history(
                db, subscription, 'expired',
                from_plan=self._plan_name(subscription.plan),
                to_plan=next_plan.name,
                details={
                    'expired_at': now.isoformat(),
                    'current_period_end': subscription.current_period_end.isoformat()
                }
            )
        # The expired rows must leave the active index before the new row is inserted
        db.flush()

        current = self._find_current(db, user_id, now)
        if current is not None:
            return current

        subscription = UserSubscription(
            id=str(uuid.uuid4()),
            user_id=user_id,
            plan_id=next_plan.id,
            status=SubscriptionStatus.ACTIVE,
            current_period_start=now,
            current_period_end=now + timedelta(days=settings.billing_period_days),
            cancel_at_period_end=False
        )
        db.add(subscription)
        db.flush()
        self._record_history(
            db, subscription, 'renewed' if lapsed else 'created',
            from_plan=self._plan_name(lapsed[0].plan) if lapsed else None,
            to_plan=next_plan.name,
            details={'current_period_end': subscription.current_period_end.isoformat()}
        )
        return subscription

    def get_or_create_subscription(self, db: Session, user_id: str, now: datetime = None) -> UserSubscription:
        """
        Current subscription for a user, creating a Free-plan one when the
        user has none (or only lapsed ones). Safe to call repeatedly.
        """
        now = now or datetime.utcnow()
        self.logger.info(f"get_or_create_subscription: Entry - user: {user_id}")

        current = self._find_current(db, user_id, now)
        if current is not None:
            return current

        try:
            subscription = self._materialize(db, user_id, now)
            db.commit()
            db.refresh(subscription)
        except IntegrityError:
            # A concurrent request created the row first
            db.rollback()
            subscription = self._find_current(db, user_id, now)
            if subscription is None:
                raise
            self.logger.info(f"get_or_create_subscription: Lost creation race - user: {user_id}")
            return subscription
        except Exception as e:
            db.rollback()
            self.logger.error(f"get_or_create_subscription: Failure - {e}")
            raise

        self.analytics.log_success(
            action='create_subscription',
            user_id=user_id,
            parameters={'plan_id': subscription.plan_id}
        )
        self.logger.info(f"get_or_create_subscription: Created - user: {user_id}, subscription: {subscription.id}")
        return subscription

    def get_effective_plan(self, db: Session, user_id: str, now: datetime = None) -> Optional[SubscriptionPlan]:
        now = now or datetime.utcnow()
        subscription = self.get_or_create_subscription(db, user_id, now)
        return effective_plan(subscription, now, self.plan_service.get_free_plan(db))

    def upgrade_subscription(self, db: Session, user_id: str, plan_id: str, now: datetime = None) -> UserSubscription:
        """
        Move the current subscription to another plan. The period window is
        kept; renewal timing belongs to the external billing charge.
        """
        now = now or datetime.utcnow()
        self.logger.info(f"upgrade_subscription: Entry - user: {user_id}, plan: {plan_id}")

        try:
            plan = self.plan_service.get_active_plan(db, plan_id)
            subscription = self.get_or_create_subscription(db, user_id, now)
            if subscription.status == SubscriptionStatus.SUSPENDED:
                raise InvalidStateError("Suspended subscriptions cannot be changed")

            old_plan = self._plan_name(subscription.plan)
            subscription.plan_id = plan.id
            subscription.status = SubscriptionStatus.ACTIVE
            subscription.cancel_at_period_end = False
            subscription.cancelled_at = None
            subscription.downgrade_to_plan_id = None
            subscription.updated_at = now

            self._record_history(db, subscription, 'upgraded', from_plan=old_plan, to_plan=plan.name)
            db.commit()
            db.refresh(subscription)

            self.analytics.log_success(
                action='upgrade_subscription',
                user_id=user_id,
                parameters={'from_plan': old_plan, 'to_plan': plan.name}
            )
            self.logger.info(f"upgrade_subscription: Success - user: {user_id}, subscription: {subscription.id}")
            return subscription
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(
                action='upgrade_subscription',
                error=str(e),
                user_id=user_id,
                parameters={'plan_id': plan_id}
            )
            self.logger.error(f"upgrade_subscription: Failure - {e}")
            raise

    def cancel_subscription(self, db: Session, user_id: str, now: datetime = None) -> UserSubscription:
        """Cancel at period end; plan benefits stay in effect until then"""
        now = now or datetime.utcnow()
        self.logger.info(f"cancel_subscription: Entry - user: {user_id}")

        try:
            subscription = self._find_active(db, user_id, now)
            if not subscription:
                raise NoActiveSubscriptionError("No active subscription found")

            subscription.status = SubscriptionStatus.CANCELLED
            subscription.cancelled_at = now
            subscription.cancel_at_period_end = True
            subscription.updated_at = now

            self._record_history(
                db, subscription, 'cancelled',
                from_plan=self._plan_name(subscription.plan),
                to_plan=settings.free_plan_name,
                details={
                    'cancelled_at': now.isoformat(),
                    'current_period_end': subscription.current_period_end.isoformat()
                }
            )
            db.commit()
            db.refresh(subscription)

            self.analytics.log_success(
                action='cancel_subscription',
                user_id=user_id,
                parameters={'subscription_id': subscription.id}
            )
            self.logger.info(f"cancel_subscription: Success - user: {user_id}, subscription: {subscription.id}")
            return subscription
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(action='cancel_subscription', error=str(e), user_id=user_id)
            self.logger.error(f"cancel_subscription: Failure - {e}")
            raise

    def downgrade_subscription(self, db: Session, user_id: str, plan_id: str, now: datetime = None) -> UserSubscription:
        """Schedule a switch to plan_id when the current period ends"""
        now = now or datetime.utcnow()
        self.logger.info(f"downgrade_subscription: Entry - user: {user_id}, plan: {plan_id}")

        try:
            target = self.plan_service.get_active_plan(db, plan_id)
            subscription = self._find_active(db, user_id, now)
            if not subscription:
                raise NoActiveSubscriptionError("No active subscription found")
            if subscription.plan_id == target.id:
                raise InvalidStateError(f"Subscription is already on the {target.name} plan")

            subscription.status = SubscriptionStatus.CANCELLED
            subscription.cancelled_at = now
            subscription.cancel_at_period_end = True
            subscription.downgrade_to_plan_id = target.id
            subscription.updated_at = now

            self._record_history(
                db, subscription, 'downgrade_scheduled',
                from_plan=self._plan_name(subscription.plan),
                to_plan=target.name,
                details={'effective_at': subscription.current_period_end.isoformat()}
            )
            db.commit()
            db.refresh(subscription)

            self.analytics.log_success(
                action='downgrade_subscription',
                user_id=user_id,
                parameters={'to_plan': target.name}
            )
            self.logger.info(f"downgrade_subscription: Success - user: {user_id}, subscription: {subscription.id}")
            return subscription
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(
                action='downgrade_subscription',
                error=str(e),
                user_id=user_id,
                parameters={'plan_id': plan_id}
            )
            self.logger.error(f"downgrade_subscription: Failure - {e}")
            raise

    def reactivate_subscription(self, db: Session, user_id: str, now: datetime = None) -> UserSubscription:
        """Undo a cancellation or scheduled downgrade before the period ends"""
        now = now or datetime.utcnow()
        self.logger.info(f"reactivate_subscription: Entry - user: {user_id}")

        try:
            subscription = self._find_latest(db, user_id)
            if subscription is None or subscription.status != SubscriptionStatus.CANCELLED:
                raise InvalidStateError("Only a cancelled subscription can be reactivated")
            if now >= subscription.current_period_end:
                raise InvalidStateError("Subscription period has already ended")

            subscription.status = SubscriptionStatus.ACTIVE
            subscription.cancel_at_period_end = False
            subscription.cancelled_at = None
            subscription.downgrade_to_plan_id = None
            subscription.updated_at = now

            plan_name = self._plan_name(subscription.plan)
            self._record_history(db, subscription, 'reactivated', from_plan=plan_name, to_plan=plan_name)
            db.commit()
            db.refresh(subscription)

            self.analytics.log_success(action='reactivate_subscription', user_id=user_id)
            self.logger.info(f"reactivate_subscription: Success - user: {user_id}, subscription: {subscription.id}")
            return subscription
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(action='reactivate_subscription', error=str(e), user_id=user_id)
            self.logger.error(f"reactivate_subscription: Failure - {e}")
            raise

    def suspend_subscription(self, db: Session, user_id: str, now: datetime = None) -> UserSubscription:
        """Administrative suspension; listing creation is denied until resumed"""
        now = now or datetime.utcnow()
        self.logger.info(f"suspend_subscription: Entry - user: {user_id}")

        try:
            subscription = self.get_or_create_subscription(db, user_id, now)
            if subscription.status == SubscriptionStatus.SUSPENDED:
                return subscription

            subscription.status = SubscriptionStatus.SUSPENDED
            subscription.updated_at = now
            plan_name = self._plan_name(subscription.plan)
            self._record_history(db, subscription, 'suspended', from_plan=plan_name, to_plan=plan_name)
            db.commit()
            db.refresh(subscription)

            self.analytics.log_success(action='suspend_subscription', user_id=user_id)
            self.logger.info(f"suspend_subscription: Success - user: {user_id}")
            return subscription
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(action='suspend_subscription', error=str(e), user_id=user_id)
            self.logger.error(f"suspend_subscription: Failure - {e}")
            raise

    def resume_subscription(self, db: Session, user_id: str, now: datetime = None) -> UserSubscription:
        """Lift a suspension; the row keeps its plan and period"""
        now = now or datetime.utcnow()
        self.logger.info(f"resume_subscription: Entry - user: {user_id}")

        try:
            subscription = self._find_latest(db, user_id)
            if subscription is None or subscription.status != SubscriptionStatus.SUSPENDED:
                raise InvalidStateError("Subscription is not suspended")

            subscription.status = SubscriptionStatus.ACTIVE
            subscription.updated_at = now
            plan_name = self._plan_name(subscription.plan)
            self._record_history(db, subscription, 'reactivated', from_plan=plan_name, to_plan=plan_name)
            db.commit()
            db.refresh(subscription)

            self.analytics.log_success(action='resume_subscription', user_id=user_id)
            self.logger.info(f"resume_subscription: Success - user: {user_id}")
            return subscription
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(action='resume_subscription', error=str(e), user_id=user_id)
            self.logger.error(f"resume_subscription: Failure - {e}")
            raise

    def get_current_subscription(self, db: Session, user_id: str, now: datetime = None) -> dict:
        """User's subscription details as returned by the API"""
        now = now or datetime.utcnow()
        subscription = self.get_or_create_subscription(db, user_id, now)
        plan = effective_plan(subscription, now, self.plan_service.get_free_plan(db))
        limits = plan_limits(plan)

        return {
            'subscription_id': subscription.id,
            'user_id': user_id,
            'plan_id': plan.id if plan else None,
            'plan_name': self._plan_name(plan),
            'status': subscription.status.value,
            'current_period_start': subscription.current_period_start.isoformat(),
            'current_period_end': subscription.current_period_end.isoformat(),
            'cancel_at_period_end': subscription.cancel_at_period_end,
            'cancelled_at': subscription.cancelled_at.isoformat() if subscription.cancelled_at else None,
            'downgrade_to_plan': self._plan_name(subscription.downgrade_to_plan),
            'limits': limits.model_dump()
        }

    def get_subscription_history(self, db: Session, user_id: str) -> list[dict]:
        """Get user's subscription history"""
        self.logger.info(f"get_subscription_history: Entry - user: {user_id}")

        history = db.query(SubscriptionHistory).filter(
            SubscriptionHistory.user_id == user_id
        ).order_by(SubscriptionHistory.created_at.desc()).all()

        result = [
            {
                'id': entry.id,
                'subscription_id': entry.subscription_id,
                'action': entry.action,
                'from_plan': entry.from_plan,
                'to_plan': entry.to_plan,
                'created_at': entry.created_at.isoformat(),
                'details': json.loads(entry.details) if entry.details else None
            }
            for entry in history
        ]
        self.logger.info(f"get_subscription_history: Success - user: {user_id}, count: {len(result)}")
        return result

    def check_expired_subscriptions(self, db: Session, now: datetime = None) -> int:
        """
        Reconciliation job: materialize every lapsed subscription into an
        expired row plus a fresh period on the next plan. Idempotent, and
        entitlement checks do not depend on it running.
        """
        now = now or datetime.utcnow()
        self.logger.info("check_expired_subscriptions: Entry")

        try:
            user_ids = [
                row[0] for row in db.query(UserSubscription.user_id).filter(
                    UserSubscription.status.in_(BENEFIT_STATUSES),
                    UserSubscription.current_period_end < now
                ).distinct().all()
            ]

            for user_id in user_ids:
                self._materialize(db, user_id, now)
            db.commit()

            self.analytics.log_success(
                action='check_expired_subscriptions',
                parameters={'expired_users': len(user_ids)}
            )
            self.logger.info(f"check_expired_subscriptions: Success - users: {len(user_ids)}")
            return len(user_ids)
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(action='check_expired_subscriptions', error=str(e))
            self.logger.error(f"check_expired_subscriptions: Failure - {e}")
            raise
