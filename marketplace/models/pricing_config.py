from sqlalchemy import Column, String, DateTime, Boolean, JSON, Text
from marketplace.core.database import Base
from datetime import datetime


class PricingConfig(Base):
    __tablename__ = "pricing_config"

    id = Column(String, primary_key=True, index=True)
    config_key = Column(String(100), nullable=False, unique=True, index=True)
    config_value = Column(JSON, nullable=False)  # Number, or {"amount": 5.0, "currency": "USD"}
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
