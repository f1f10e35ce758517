from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional
from marketplace.core.cache import get_cached_pricing, set_cached_pricing, invalidate_cached_pricing
from marketplace.models.pricing_config import PricingConfig
from marketplace.services.analytics_service import AnalyticsService
import uuid
import logging

logger = logging.getLogger(__name__)

ADDITIONAL_LISTING_PRICE = 'additional_listing_price'
ADDITIONAL_FEATURED_PRICE = 'additional_featured_price'
ADDITIONAL_VEHICLE_PRICE = 'additional_vehicle_price'

# Used whenever a key is missing or inactive
DEFAULT_PRICING = {
    ADDITIONAL_LISTING_PRICE: 5.00,
    ADDITIONAL_FEATURED_PRICE: 2.99,
    ADDITIONAL_VEHICLE_PRICE: 4.99,
}


def to_amount(value: Any) -> Optional[Decimal]:
    """
    Normalize a stored config value to a currency amount.
    Accepts plain numbers, numeric strings and {"amount": n, ...} objects.
    """
    if isinstance(value, dict):
        value = value.get('amount')
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value)).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError):
        return None


class PricingConfigService:
    def __init__(self, analytics: AnalyticsService = None):
        self.analytics = analytics or AnalyticsService()
        self.logger = logging.getLogger(__name__)

    def _load_active(self, db: Session) -> Dict[str, Any]:
        cached = get_cached_pricing()
        if cached is not None:
            return cached

        rows = db.query(PricingConfig).filter(PricingConfig.is_active == True).all()
        config = {row.config_key: row.config_value for row in rows}
        set_cached_pricing(config)
        return config

    def get_all(self, db: Session) -> Dict[str, Any]:
        """Defaults overlaid with every active config entry"""
        self.logger.info("get_all: Entry")
        config = dict(DEFAULT_PRICING)
        config.update(self._load_active(db))
        self.logger.info(f"get_all: Success - {len(config)} keys")
        return config

    def get(self, db: Session, key: str) -> Any:
        """Active value for key, falling back to its documented default"""
        config = self._load_active(db)
        if key in config:
            return config[key]
        return DEFAULT_PRICING.get(key)

    def get_price(self, db: Session, key: str) -> Decimal:
        """
        Currency amount for a pricing key.
        A store outage or malformed value falls back to the hard-coded default.
        """
        default = to_amount(DEFAULT_PRICING.get(key))
        try:
            amount = to_amount(self.get(db, key))
        except SQLAlchemyError as e:
            db.rollback()
            self.logger.warning(f"get_price: Store unavailable, using default for {key} - {e}")
            return default

        if amount is None:
            self.logger.warning(f"get_price: Unusable value for {key}, using default")
            return default
        return amount

    def set(self, db: Session, key: str, value: Any, description: str = None) -> PricingConfig:
        """Create or update a pricing key (administrator edit)"""
        self.logger.info(f"set: Entry - key: {key}")

        try:
            entry = db.query(PricingConfig).filter(PricingConfig.config_key == key).first()
            if entry is None:
                entry = PricingConfig(
                    id=str(uuid.uuid4()),
                    config_key=key,
                    config_value=value,
                    description=description,
                    is_active=True
                )
                db.add(entry)
            else:
                entry.config_value = value
                entry.is_active = True
                if description is not None:
                    entry.description = description

            db.commit()
            db.refresh(entry)
            invalidate_cached_pricing()

            self.analytics.log_success(action='set_pricing_config', parameters={'config_key': key})
            self.logger.info(f"set: Success - key: {key}")
            return entry
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(action='set_pricing_config', error=str(e), parameters={'config_key': key})
            self.logger.error(f"set: Failure - {e}")
            raise
