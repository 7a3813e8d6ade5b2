# storefront/api/deps.py
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from storefront.data.database import get_db
from storefront.domain.errors import (
    AddressChangeNotAllowed,
    CartNotReady,
    CatalogLookupFailed,
    ConcurrentModification,
    InsufficientStock,
    InvalidRefundTransition,
    InvalidTransition,
    StaleCallback,
    StorefrontError,
)
from storefront.domain.schemas import ErrorOut
from storefront.services.cart_service import CartRegistry
from storefront.services.order_service import OrderService
from storefront.services.payment_service import PaymentService

_CONFLICTS = (
    InvalidTransition,
    StaleCallback,
    InsufficientStock,
    ConcurrentModification,
    AddressChangeNotAllowed,
    InvalidRefundTransition,
    CartNotReady,
)


def get_cart_registry(request: Request) -> CartRegistry:
    return request.app.state.carts


def get_order_service(request: Request, db: Session = Depends(get_db)) -> OrderService:
    state = request.app.state
    return OrderService(
        db=db,
        product_client=state.product_client,
        product_cache=state.product_cache,
        notification_service=state.notifications,
    )


def get_payment_service(request: Request, db: Session = Depends(get_db)) -> PaymentService:
    return PaymentService(db=db, notification_service=request.app.state.notifications)


def http_error(e: Exception) -> HTTPException:
    """Mapowanie wyjatkow domenowych na HTTP, detail zawsze z kodem i komunikatem."""
    if isinstance(e, PermissionError):
        return HTTPException(status_code=403, detail=ErrorOut(code="FORBIDDEN", message=str(e)).model_dump())

    code = e.code if isinstance(e, StorefrontError) else type(e).__name__
    allowed = e.allowed if isinstance(e, InvalidTransition) else None
    detail = ErrorOut(code=code, message=str(e), allowed=allowed).model_dump(exclude_none=True)

    if isinstance(e, LookupError):
        return HTTPException(status_code=404, detail=detail)
    if isinstance(e, _CONFLICTS):
        return HTTPException(status_code=409, detail=detail)
    if isinstance(e, CatalogLookupFailed):
        return HTTPException(status_code=502, detail=detail)
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=detail)
    return HTTPException(status_code=500, detail=detail)
