from sqlalchemy import Column, String, Integer, DateTime, UniqueConstraint
from marketplace.core.database import Base
from datetime import datetime


class ListingUsage(Base):
    __tablename__ = "user_listing_usage"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    month_year = Column(String(7), nullable=False, index=True)  # YYYY-MM
    free_listings_used = Column(Integer, nullable=False, default=0)
    featured_listings_used = Column(Integer, nullable=False, default=0)
    vehicle_listings_used = Column(Integer, nullable=False, default=0)
    total_listings_created = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "month_year", name="uq_user_listing_usage_user_month"),
    )
