from sqlalchemy import Column, String, DateTime, Boolean, Enum, ForeignKey, Index, text
from sqlalchemy.orm import relationship
from marketplace.core.database import Base
from datetime import datetime
import enum


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    SUSPENDED = "suspended"


class UserSubscription(Base):
    __tablename__ = "user_subscriptions"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)  # Firebase UID, identity lives with the auth provider
    plan_id = Column(String, ForeignKey("subscription_plans.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(Enum(SubscriptionStatus), nullable=False, default=SubscriptionStatus.ACTIVE, index=True)
    current_period_start = Column(DateTime, nullable=False)
    current_period_end = Column(DateTime, nullable=False)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    cancelled_at = Column(DateTime, nullable=True)
    # Plan to switch to when the current period ends (scheduled downgrade)
    downgrade_to_plan_id = Column(String, ForeignKey("subscription_plans.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    plan = relationship("SubscriptionPlan", foreign_keys=[plan_id])
    downgrade_to_plan = relationship("SubscriptionPlan", foreign_keys=[downgrade_to_plan_id])

    __table_args__ = (
        # At most one active subscription per user
        Index(
            "ix_user_subscriptions_active_unique",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
    )
