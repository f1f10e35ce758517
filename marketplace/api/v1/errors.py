from fastapi import HTTPException
from marketplace.core.exceptions import MarketplaceError, PaymentRequiredError


def to_http_exception(error: MarketplaceError) -> HTTPException:
    """Translate a domain error into the HTTP error it maps to"""
    if isinstance(error, PaymentRequiredError) and error.amount is not None:
        detail = {'message': error.message, 'additional_cost': float(error.amount)}
        return HTTPException(status_code=error.status_code, detail=detail)
    return HTTPException(status_code=error.status_code, detail=error.message)
