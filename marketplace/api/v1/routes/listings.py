import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from marketplace.api.v1.errors import to_http_exception
from marketplace.core.database import get_db
from marketplace.core.exceptions import MarketplaceError
from marketplace.core.middleware import get_current_user
from marketplace.services.listing_service import ListingCreate, ListingService

router = APIRouter()
logger = logging.getLogger(__name__)


def get_listing_service() -> ListingService:
    """Dependency to get listing service instance"""
    return ListingService()


class CreateListingRequest(ListingCreate):
    payment_id: Optional[str] = None  # Succeeded payment for listings over the monthly allowance


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_listing(
    request: CreateListingRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    listing_service: ListingService = Depends(get_listing_service)
):
    """
    Create a listing.
    Returns 402 with the additional cost when the monthly allowance is used up
    and no valid payment was supplied.
    """
    user_id = current_user['uid']
    logger.info(f"create_listing: Entry - user: {user_id}, type: {request.listing_type.value}")

    try:
        data = ListingCreate(**request.model_dump(exclude={'payment_id'}))
        listing = listing_service.create_listing(db, user_id, data, payment_id=request.payment_id)
        logger.info(f"create_listing: Success - user: {user_id}, listing: {listing.id}")
        return listing_service.to_dict(listing)
    except MarketplaceError as e:
        logger.error(f"create_listing: {type(e).__name__} - {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"create_listing: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.get("/mine")
async def list_my_listings(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    listing_service: ListingService = Depends(get_listing_service)
):
    user_id = current_user['uid']

    try:
        listings = listing_service.list_user_listings(db, user_id)
        return {"listings": [listing_service.to_dict(listing) for listing in listings]}
    except Exception as e:
        logger.error(f"list_my_listings: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.delete("/{listing_id}")
async def delete_listing(
    listing_id: str,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    listing_service: ListingService = Depends(get_listing_service)
):
    """Delete one of the user's listings. Monthly usage is not refunded."""
    user_id = current_user['uid']

    try:
        listing_service.delete_listing(db, user_id, listing_id)
        return {"message": "Listing deleted"}
    except MarketplaceError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"delete_listing: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )
