from sqlalchemy import Column, String, DateTime, Enum, ForeignKey, Numeric, JSON, Text
from marketplace.core.database import Base
from datetime import datetime
import enum


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentType(str, enum.Enum):
    SUBSCRIPTION = "subscription"
    ADDITIONAL_LISTING = "additional_listing"
    FEATURED_LISTING = "featured_listing"
    VEHICLE_LISTING = "vehicle_listing"
    VEHICLE_FEATURED_LISTING = "vehicle_featured_listing"
    ONE_TIME = "one_time"


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    subscription_id = Column(String, ForeignKey("user_subscriptions.id", ondelete="SET NULL"), nullable=True, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    payment_type = Column(Enum(PaymentType), nullable=False)
    payment_method = Column(String(50), nullable=False)  # 'card', 'paypal', etc.
    provider_payment_id = Column(String, nullable=True, unique=True)  # Processor's payment intent id
    provider_charge_id = Column(String, nullable=True)
    status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, index=True)
    description = Column(Text, nullable=True)
    details = Column(JSON, nullable=True)  # Free-form metadata from the caller
    listing_id = Column(String, nullable=True, index=True)  # Listing that consumed the payment; kept after the listing is deleted
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
