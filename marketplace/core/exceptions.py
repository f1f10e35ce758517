"""
Domain errors raised by the marketplace services.

Each error carries the HTTP status code the API layer responds with, so
routes can translate them without knowing every subclass.
"""
from decimal import Decimal
from typing import Optional


class MarketplaceError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(MarketplaceError):
    status_code = 404


class PlanNotFoundError(NotFoundError):
    pass


class NoActiveSubscriptionError(NotFoundError):
    pass


class ListingNotFoundError(NotFoundError):
    pass


class PaymentNotFoundError(NotFoundError):
    pass


class ConflictError(MarketplaceError):
    """Duplicate resource, e.g. a plan name that is already taken"""


class ProtectedResourceError(MarketplaceError):
    """Attempt to delete or break a resource the system depends on (the Free plan)"""


class InvalidStateError(MarketplaceError):
    """Operation not valid for the subscription's current state"""


class PaymentRequiredError(MarketplaceError):
    status_code = 402

    def __init__(self, message: str, amount: Optional[Decimal] = None):
        super().__init__(message)
        self.amount = amount


class ListingNotPermittedError(MarketplaceError):
    status_code = 403
