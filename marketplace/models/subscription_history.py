from sqlalchemy import Column, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from marketplace.core.database import Base
from datetime import datetime


class SubscriptionHistory(Base):
    __tablename__ = "subscription_history"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    subscription_id = Column(String, ForeignKey("user_subscriptions.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(String, nullable=False, index=True)  # 'created', 'upgraded', 'cancelled', 'downgrade_scheduled', 'reactivated', 'suspended', 'expired', 'renewed'
    from_plan = Column(String, nullable=True)
    to_plan = Column(String, nullable=True)
    details = Column(Text, nullable=True)  # JSON for additional details
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    subscription = relationship("UserSubscription")
