# storefront/api/routers/orders.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from storefront.api.deps import get_cart_registry, get_order_service, http_error
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import (
    AddressIn,
    CancelIn,
    OrderCreate,
    OrderOut,
    OrderStatsOut,
    StatusUpdateIn,
    TransitionOut,
)
from storefront.domain.states import OrderStatus
from storefront.services.cart_service import CartRegistry
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/", response_model=OrderOut, status_code=201)
def create_order(
    payload: OrderCreate,
    svc: OrderService = Depends(get_order_service),
    carts: CartRegistry = Depends(get_cart_registry),
):
    """
    Checkout z zaznaczonych pozycji koszyka.
    GATEWAY -> PENDING_PAYMENT, CASH_ON_DELIVERY -> PENDING.
    """
    try:
        return svc.create_order_from_cart(carts.get(payload.user_id), payload.address, payload.method)
    except StorefrontError as e:
        raise http_error(e)


@router.get("/", response_model=List[OrderOut])
def list_orders(
    user_id: Optional[int] = Query(None),
    status: Optional[OrderStatus] = Query(None),
    svc: OrderService = Depends(get_order_service),
):
    return svc.list_orders(user_id=user_id, status=status)


@router.get("/stats", response_model=OrderStatsOut)
def order_stats(
    top: int = Query(5, ge=1, le=50),
    svc: OrderService = Depends(get_order_service),
):
    """Statystyki zamowien dla obslugi sklepu."""
    return svc.stats(top=top)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user_id: Optional[int] = Query(None),
    svc: OrderService = Depends(get_order_service),
):
    try:
        return svc.get_order(order_id, user_id)
    except (PermissionError, StorefrontError) as e:
        raise http_error(e)


@router.patch("/{order_id}/status", response_model=TransitionOut)
def update_status(
    order_id: int,
    payload: StatusUpdateIn,
    svc: OrderService = Depends(get_order_service),
):
    """Zmiana statusu przez obsluge, uprawnienia sprawdzane przed serwisem."""
    try:
        return svc.request_transition(order_id, payload.status, reason=payload.cancel_reason)
    except StorefrontError as e:
        raise http_error(e)


@router.post("/{order_id}/cancel", response_model=TransitionOut)
def cancel_order(
    order_id: int,
    payload: CancelIn,
    user_id: int = Query(...),
    svc: OrderService = Depends(get_order_service),
):
    try:
        return svc.cancel_order(order_id, user_id, payload.reason)
    except (PermissionError, StorefrontError) as e:
        raise http_error(e)


@router.put("/{order_id}/address", response_model=OrderOut)
def change_address(
    order_id: int,
    payload: AddressIn,
    user_id: int = Query(...),
    svc: OrderService = Depends(get_order_service),
):
    try:
        return svc.change_address(order_id, user_id, payload.address)
    except (PermissionError, StorefrontError) as e:
        raise http_error(e)


@router.post("/{order_id}/refund/complete", response_model=OrderOut)
def complete_refund(order_id: int, svc: OrderService = Depends(get_order_service)):
    try:
        return svc.complete_refund(order_id)
    except StorefrontError as e:
        raise http_error(e)
