from marketplace.models.subscription_plan import SubscriptionPlan, UNLIMITED
from marketplace.models.user_subscription import UserSubscription, SubscriptionStatus
from marketplace.models.subscription_history import SubscriptionHistory
from marketplace.models.listing_usage import ListingUsage
from marketplace.models.pricing_config import PricingConfig
from marketplace.models.listing import Listing, ListingType
from marketplace.models.payment import Payment, PaymentStatus, PaymentType

__all__ = [
    "SubscriptionPlan", "UNLIMITED", "UserSubscription", "SubscriptionStatus", "SubscriptionHistory",
    "ListingUsage", "PricingConfig", "Listing", "ListingType", "Payment", "PaymentStatus", "PaymentType",
]
