from fastapi import APIRouter
from marketplace.api.v1.routes import subscriptions, listings, payments, admin

api_router = APIRouter()

api_router.include_router(subscriptions.router, prefix="/subscriptions", tags=["subscriptions"])
api_router.include_router(listings.router, prefix="/listings", tags=["listings"])
api_router.include_router(payments.router, prefix="/payments", tags=["payments"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
