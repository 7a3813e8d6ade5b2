# storefront/api/routers/payments.py
from typing import Optional

from fastapi import APIRouter, Depends, Query

from storefront.api.deps import get_payment_service, http_error
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import CallbackOutcomeOut, PaymentOut
from storefront.services.payment_service import GatewayCallback, PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("/gateway-return", response_model=CallbackOutcomeOut)
def gateway_return(
    response_code: Optional[str] = Query(None, alias="responseCode"),
    gateway_txn_ref: Optional[str] = Query(None, alias="gatewayTxnRef"),
    amount: Optional[str] = Query(None),
    bank_ref: Optional[str] = Query(None, alias="bankRef"),
    timestamp: Optional[str] = Query(None),
    svc: PaymentService = Depends(get_payment_service),
):
    """
    Redirect z bramki platnosci. Mozna go wywolac wiele razy,
    zawsze zwraca ten sam wynik dla tego samego callbacku.
    """
    callback = GatewayCallback(
        response_code=response_code,
        gateway_txn_ref=gateway_txn_ref,
        amount=amount,
        bank_ref=bank_ref,
        timestamp=timestamp,
    )
    try:
        return svc.apply_gateway_callback(callback)
    except StorefrontError as e:
        raise http_error(e)


@router.get("/{payment_id}", response_model=PaymentOut)
def get_payment(payment_id: int, svc: PaymentService = Depends(get_payment_service)):
    try:
        return svc.get_payment(payment_id)
    except StorefrontError as e:
        raise http_error(e)
