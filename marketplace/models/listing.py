from sqlalchemy import Column, String, DateTime, Boolean, Enum, Numeric, JSON, Text
from marketplace.core.database import Base
from datetime import datetime
import enum


class ListingType(str, enum.Enum):
    FREE = "free"
    FEATURED = "featured"
    VEHICLE = "vehicle"


class Listing(Base):
    __tablename__ = "listings"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    category = Column(String, nullable=True, index=True)
    location = Column(String, nullable=True)
    zip_code = Column(String(10), nullable=True)
    condition = Column(String(50), nullable=False, default="good")
    images = Column(JSON, nullable=False, default=list)  # URLs from the image upload service
    listing_type = Column(Enum(ListingType), nullable=False, default=ListingType.FREE, index=True)
    listing_fee = Column(Numeric(10, 2), nullable=False, default=0)
    is_featured = Column(Boolean, nullable=False, default=False, index=True)
    status = Column(String, nullable=False, default="active", index=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
