from sqlalchemy import Column, String, Integer, DateTime, Boolean, Numeric, JSON, Text
from marketplace.core.database import Base
from datetime import datetime

UNLIMITED = -1


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(String, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    price_monthly = Column(Numeric(10, 2), nullable=False)
    price_yearly = Column(Numeric(10, 2), nullable=True)
    max_listings = Column(Integer, nullable=False, default=5)  # -1 = unlimited
    max_featured_listings = Column(Integer, nullable=False, default=0)
    max_vehicle_listings = Column(Integer, nullable=False, default=0)
    features = Column(JSON, nullable=False, default=list)  # Ordered list of strings
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
