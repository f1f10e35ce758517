from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from decimal import Decimal
from typing import List, Optional
from marketplace.core.config import settings
from marketplace.core.exceptions import ConflictError, PaymentNotFoundError
from marketplace.models.payment import Payment, PaymentStatus, PaymentType
from marketplace.services.analytics_service import AnalyticsService
import uuid
import logging

logger = logging.getLogger(__name__)


class PaymentService:
    """
    Ledger of payment intents. Charges happen at the processor; this only
    records intents and the status the processor reports back.
    """

    def __init__(self, analytics: AnalyticsService = None):
        self.analytics = analytics or AnalyticsService()
        self.logger = logging.getLogger(__name__)

    def create_payment(
        self,
        db: Session,
        user_id: str,
        amount: Decimal,
        payment_type: PaymentType,
        payment_method: str,
        provider_payment_id: str = None,
        currency: str = None,
        subscription_id: str = None,
        description: str = None,
        details: dict = None
    ) -> Payment:
        self.logger.info(f"create_payment: Entry - user: {user_id}, type: {payment_type}, amount: {amount}")

        try:
            payment = Payment(
                id=str(uuid.uuid4()),
                user_id=user_id,
                subscription_id=subscription_id,
                amount=amount,
                currency=currency or settings.default_currency,
                payment_type=PaymentType(payment_type),
                payment_method=payment_method,
                provider_payment_id=provider_payment_id,
                status=PaymentStatus.PENDING,
                description=description,
                details=details
            )
            db.add(payment)
            db.commit()
            db.refresh(payment)

            self.analytics.log_success(
                action='create_payment',
                user_id=user_id,
                parameters={'payment_id': payment.id, 'payment_type': payment.payment_type.value}
            )
            self.logger.info(f"create_payment: Success - payment: {payment.id}")
            return payment
        except IntegrityError as e:
            db.rollback()
            self.analytics.log_failure(action='create_payment', error=str(e), user_id=user_id)
            self.logger.warning(f"create_payment: Duplicate provider id - {provider_payment_id}")
            raise ConflictError(f"Payment '{provider_payment_id}' is already recorded")
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(action='create_payment', error=str(e), user_id=user_id)
            self.logger.error(f"create_payment: Failure - {e}")
            raise

    def update_payment_status(
        self,
        db: Session,
        provider_payment_id: str,
        status: PaymentStatus,
        provider_charge_id: str = None
    ) -> Payment:
        """Apply a status reported by the processor (webhook or admin)"""
        self.logger.info(f"update_payment_status: Entry - provider id: {provider_payment_id}, status: {status}")

        try:
            payment = db.query(Payment).filter(Payment.provider_payment_id == provider_payment_id).first()
            if not payment:
                raise PaymentNotFoundError(f"Payment not found: {provider_payment_id}")

            payment.status = PaymentStatus(status)
            if provider_charge_id:
                payment.provider_charge_id = provider_charge_id
            db.commit()
            db.refresh(payment)

            self.analytics.log_success(
                action='update_payment_status',
                user_id=payment.user_id,
                parameters={'payment_id': payment.id, 'status': payment.status.value}
            )
            self.logger.info(f"update_payment_status: Success - payment: {payment.id}")
            return payment
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(
                action='update_payment_status',
                error=str(e),
                parameters={'provider_payment_id': provider_payment_id}
            )
            self.logger.error(f"update_payment_status: Failure - {e}")
            raise

    def get_payment(self, db: Session, payment_id: str) -> Payment:
        payment = db.query(Payment).filter(Payment.id == payment_id).first()
        if not payment:
            raise PaymentNotFoundError(f"Payment not found: {payment_id}")
        return payment

    def get_user_payments(self, db: Session, user_id: str, limit: Optional[int] = 50) -> List[Payment]:
        query = db.query(Payment).filter(Payment.user_id == user_id).order_by(Payment.created_at.desc())
        if limit:
            query = query.limit(limit)
        return query.all()

    @staticmethod
    def to_dict(payment: Payment) -> dict:
        return {
            'id': payment.id,
            'user_id': payment.user_id,
            'amount': float(payment.amount),
            'currency': payment.currency,
            'payment_type': payment.payment_type.value,
            'payment_method': payment.payment_method,
            'provider_payment_id': payment.provider_payment_id,
            'status': payment.status.value,
            'listing_id': payment.listing_id,
            'description': payment.description,
            'created_at': payment.created_at.isoformat() if payment.created_at else None,
        }
