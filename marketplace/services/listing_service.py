import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.core.exceptions import (ListingNotFoundError,
                                         ListingNotPermittedError,
                                         PaymentRequiredError)
from marketplace.models.listing import Listing, ListingType
from marketplace.models.payment import Payment, PaymentStatus
from marketplace.services.analytics_service import AnalyticsService
from marketplace.services.entitlement_service import (AllowedWithCharge,
                                                      Denied,
                                                      EntitlementService)

logger = logging.getLogger(__name__)


class ListingCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    price: Decimal = Field(ge=0)
    category: Optional[str] = None
    location: Optional[str] = None
    zip_code: Optional[str] = Field(default=None, max_length=10)
    condition: str = "good"
    images: List[str] = []
    listing_type: ListingType = ListingType.FREE


class ListingService:
    def __init__(self, entitlement_service: EntitlementService = None, analytics: AnalyticsService = None):
        self.analytics = analytics or AnalyticsService()
        self.entitlement_service = entitlement_service or EntitlementService(analytics=self.analytics)
        self.logger = logging.getLogger(__name__)

    def _claim_payment(self, db: Session, user_id: str, payment_id: Optional[str], amount: Decimal, listing_id: str):
        """
        Attach a succeeded, unused payment of at least `amount` to the listing.
        The claim is a conditional UPDATE so one payment can never pay for two listings.
        """
        if not payment_id:
            raise PaymentRequiredError(f"Payment of ${amount} required to create this listing", amount=amount)

        payment = db.query(Payment).filter(Payment.id == payment_id, Payment.user_id == user_id).first()
        if payment is None:
            raise PaymentRequiredError(f"Payment not found: {payment_id}", amount=amount)
        if payment.status != PaymentStatus.SUCCEEDED:
            raise PaymentRequiredError(f"Payment {payment_id} has not succeeded", amount=amount)
        if payment.listing_id is not None:
            raise PaymentRequiredError(f"Payment {payment_id} has already been used", amount=amount)
        if Decimal(payment.amount) < amount:
            raise PaymentRequiredError(
                f"Payment of ${payment.amount} does not cover the ${amount} listing fee", amount=amount
            )

        claimed = db.query(Payment).filter(
            Payment.id == payment_id,
            Payment.listing_id.is_(None)
        ).update({Payment.listing_id: listing_id}, synchronize_session=False)
        if not claimed:
            raise PaymentRequiredError(f"Payment {payment_id} has already been used", amount=amount)

    def create_listing(
        self,
        db: Session,
        user_id: str,
        data: ListingCreate,
        payment_id: str = None,
        now: datetime = None
    ) -> Listing:
        """
        Create a listing if the user's plan allows it.

        Over the monthly allowance the listing is only created against a
        succeeded payment covering the additional listing price. Usage is
        counted after the listing is committed.
        """
        now = now or datetime.utcnow()
        self.logger.info(f"create_listing: Entry - user: {user_id}, type: {data.listing_type.value}")

        try:
            decision = self.entitlement_service.check_entitlement(db, user_id, data.listing_type, now)
            if isinstance(decision, Denied):
                raise ListingNotPermittedError(decision.reason)

            listing = Listing(
                id=str(uuid.uuid4()),
                user_id=user_id,
                title=data.title,
                description=data.description,
                price=data.price,
                category=data.category,
                location=data.location,
                zip_code=data.zip_code,
                condition=data.condition,
                images=data.images,
                listing_type=data.listing_type,
                listing_fee=Decimal('0.00'),
                is_featured=data.listing_type == ListingType.FEATURED,
                status='active',
                expires_at=now + timedelta(days=settings.listing_duration_days),
                created_at=now
            )
            db.add(listing)
            db.flush()

            if isinstance(decision, AllowedWithCharge):
                self._claim_payment(db, user_id, payment_id, decision.amount, listing.id)
                listing.listing_fee = decision.amount

            db.commit()
            db.refresh(listing)
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(
                action='create_listing',
                error=str(e),
                user_id=user_id,
                parameters={'listing_type': data.listing_type.value}
            )
            self.logger.error(f"create_listing: Failure - {e}")
            raise

        self.entitlement_service.record_listing_created(db, user_id, data.listing_type, now)
        self.logger.info(f"create_listing: Success - user: {user_id}, listing: {listing.id}")
        return listing

    def list_user_listings(self, db: Session, user_id: str) -> List[Listing]:
        return db.query(Listing).filter(
            Listing.user_id == user_id
        ).order_by(Listing.created_at.desc()).all()

    def delete_listing(self, db: Session, user_id: str, listing_id: str):
        """Remove a listing. Monthly usage is not refunded."""
        self.logger.info(f"delete_listing: Entry - user: {user_id}, listing: {listing_id}")

        try:
            listing = db.query(Listing).filter(
                Listing.id == listing_id,
                Listing.user_id == user_id
            ).first()
            if not listing:
                raise ListingNotFoundError(f"Listing not found: {listing_id}")

            db.delete(listing)
            db.commit()
            self.logger.info(f"delete_listing: Success - listing: {listing_id}")
        except Exception as e:
            db.rollback()
            self.logger.error(f"delete_listing: Failure - {e}")
            raise

    @staticmethod
    def to_dict(listing: Listing) -> dict:
        return {
            'id': listing.id,
            'user_id': listing.user_id,
            'title': listing.title,
            'description': listing.description,
            'price': float(listing.price),
            'category': listing.category,
            'location': listing.location,
            'zip_code': listing.zip_code,
            'condition': listing.condition,
            'images': listing.images or [],
            'listing_type': listing.listing_type.value,
            'listing_fee': float(listing.listing_fee or 0),
            'is_featured': listing.is_featured,
            'status': listing.status,
            'expires_at': listing.expires_at.isoformat() if listing.expires_at else None,
            'created_at': listing.created_at.isoformat() if listing.created_at else None,
        }
