import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from marketplace.api.v1.errors import to_http_exception
from marketplace.core.database import get_db
from marketplace.core.exceptions import MarketplaceError
from marketplace.core.middleware import get_current_user
from marketplace.models.payment import PaymentType
from marketplace.services.payment_service import PaymentService

router = APIRouter()
logger = logging.getLogger(__name__)


def get_payment_service() -> PaymentService:
    """Dependency to get payment service instance"""
    return PaymentService()


class CreatePaymentRequest(BaseModel):
    amount: Decimal = Field(gt=0)
    payment_type: PaymentType
    payment_method: str  # 'card', 'paypal', etc.
    provider_payment_id: str  # Processor's payment intent id
    currency: Optional[str] = None
    description: Optional[str] = None
    details: Optional[dict] = None


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_payment(
    request: CreatePaymentRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service)
):
    """
    Record a payment intent created with the processor.
    Its status is confirmed later by the processor webhook or an admin.
    """
    user_id = current_user['uid']
    logger.info(f"create_payment: Entry - user: {user_id}, type: {request.payment_type.value}")

    try:
        payment = payment_service.create_payment(
            db,
            user_id,
            amount=request.amount,
            payment_type=request.payment_type,
            payment_method=request.payment_method,
            provider_payment_id=request.provider_payment_id,
            currency=request.currency,
            description=request.description,
            details=request.details
        )
        return payment_service.to_dict(payment)
    except MarketplaceError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"create_payment: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.get("")
async def list_payments(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service)
):
    user_id = current_user['uid']

    try:
        payments = payment_service.get_user_payments(db, user_id)
        return {"payments": [payment_service.to_dict(payment) for payment in payments]}
    except Exception as e:
        logger.error(f"list_payments: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )
